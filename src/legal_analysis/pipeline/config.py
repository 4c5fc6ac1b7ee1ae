"""
Pipeline configuration
Dataclass defaults, overridable from the environment (.env.local is loaded by the entry points)
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    if raw.strip().lower() in ("none", "unbounded"):
        return None
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid integer for {name}: {raw!r}, using {default}")
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Invalid number for {name}: {raw!r}, using {default}")
        return default


@dataclass
class PipelineConfig:
    """Configuration for the analysis pipeline"""
    max_concurrent_analyses: int = 3
    max_queue_size: Optional[int] = 10
    single_timeout_seconds: float = 180.0  # whole pipeline, one document
    conjoint_timeout_per_document_seconds: float = 180.0
    regeneration_timeout_seconds: float = 120.0
    max_instruction_length: int = 2000
    bedrock_region: str = "us-east-1"
    bedrock_model_id: str = "us.anthropic.claude-sonnet-4-20250514-v1:0"
    documents_table: str = "legal-documents"
    analysis_table: str = "legal-analysis"
    documents_bucket: str = "legal-documents-raw"
    log_level: str = "INFO"

    def conjoint_timeout(self, document_count: int) -> float:
        return self.conjoint_timeout_per_document_seconds * max(1, document_count)

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        """Build a configuration from environment variables"""

        defaults = cls()
        return cls(
            max_concurrent_analyses=(
                _env_int("MAX_CONCURRENT_ANALYSES", defaults.max_concurrent_analyses)
                or defaults.max_concurrent_analyses
            ),
            max_queue_size=_env_int("MAX_ANALYSIS_QUEUE_SIZE", defaults.max_queue_size),
            single_timeout_seconds=_env_float("PIPELINE_TIMEOUT_SECONDS", defaults.single_timeout_seconds),
            conjoint_timeout_per_document_seconds=_env_float(
                "CONJOINT_TIMEOUT_PER_DOCUMENT_SECONDS",
                defaults.conjoint_timeout_per_document_seconds
            ),
            regeneration_timeout_seconds=_env_float(
                "REGENERATION_TIMEOUT_SECONDS",
                defaults.regeneration_timeout_seconds
            ),
            max_instruction_length=(
                _env_int("MAX_INSTRUCTION_LENGTH", defaults.max_instruction_length)
                or defaults.max_instruction_length
            ),
            bedrock_region=os.getenv("BEDROCK_REGION", defaults.bedrock_region),
            bedrock_model_id=os.getenv("BEDROCK_MODEL_ID", defaults.bedrock_model_id),
            documents_table=os.getenv("DOCUMENTS_TABLE", defaults.documents_table),
            analysis_table=os.getenv("ANALYSIS_TABLE", defaults.analysis_table),
            documents_bucket=os.getenv("DOCUMENTS_BUCKET", defaults.documents_bucket),
            log_level=os.getenv("LOG_LEVEL", defaults.log_level),
        )
