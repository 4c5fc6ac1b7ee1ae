"""
Stage adapters and persistence for the legal analysis pipeline
"""

from typing import Optional

from ..pipeline.config import PipelineConfig
from ..pipeline.stages import AnalysisStages
from ..utils.data_validator import DataValidator
from .analysis_store import AnalysisStore, InMemoryAnalysisStore
from .bedrock_client import BedrockClaudeClient
from .document_classifier import DocumentClassifier
from .domain_analyzer import DomainAnalyzer
from .report_generator import ReportGenerator
from .text_extractor import TextExtractor
from .translator import ClauseTranslator


def build_bedrock_stages(config: Optional[PipelineConfig] = None,
                         claude: Optional[BedrockClaudeClient] = None) -> AnalysisStages:
    """Wire the five Bedrock-backed stage adapters into an AnalysisStages bundle"""

    config = config or PipelineConfig()
    claude = claude or BedrockClaudeClient(model_id=config.bedrock_model_id, region=config.bedrock_region)

    extractor = TextExtractor(
        claude=claude,
        validator=DataValidator(max_instruction_length=config.max_instruction_length)
    )
    translator = ClauseTranslator(claude)
    classifier = DocumentClassifier(claude)
    analyzer = DomainAnalyzer(claude)
    reporter = ReportGenerator(claude)

    return AnalysisStages(
        extract_text=extractor.extract,
        translate_and_structure=translator.translate,
        classify=classifier.classify,
        domain_analyze=analyzer.analyze,
        synthesize_report=reporter.generate
    )


__all__ = [
    'AnalysisStore',
    'InMemoryAnalysisStore',
    'BedrockClaudeClient',
    'DocumentClassifier',
    'DomainAnalyzer',
    'ReportGenerator',
    'TextExtractor',
    'ClauseTranslator',
    'build_bedrock_stages'
]
