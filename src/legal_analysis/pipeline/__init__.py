"""
Pipeline orchestration for legal document analysis
"""

from .admission import AdmissionController, SlotHandle
from .config import PipelineConfig
from .main_pipeline import AnalysisPipeline, CONJOINT_REPORT_INSTRUCTION
from .models import AnalysisArtifact, AnalysisStatus, DocumentStatusRecord
from .stages import AnalysisStages

__all__ = [
    'AdmissionController',
    'SlotHandle',
    'PipelineConfig',
    'AnalysisPipeline',
    'CONJOINT_REPORT_INSTRUCTION',
    'AnalysisArtifact',
    'AnalysisStatus',
    'DocumentStatusRecord',
    'AnalysisStages'
]
