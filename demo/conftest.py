"""
Shared fixtures for the pipeline tests
Scripted stages and an in-memory store stand in for Bedrock and DynamoDB/S3
"""

import asyncio
import os
import sys
import tempfile
from pathlib import Path

# Keep the daily error log out of the working tree
os.environ.setdefault("LEGAL_ANALYSIS_LOG_DIR", str(Path(tempfile.gettempdir()) / "legal-analysis-test-logs"))

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest

from legal_analysis.core.analysis_store import InMemoryAnalysisStore
from legal_analysis.pipeline.config import PipelineConfig
from legal_analysis.pipeline.main_pipeline import AnalysisPipeline
from legal_analysis.pipeline.models import (
    DISTRIBUTION_CONTRACT,
    ChecklistItem,
    Classification,
    DistributionChecklist,
    Report,
    TranslatedClause,
    UnspecializedChecklist,
)
from legal_analysis.pipeline.stages import AnalysisStages

SAMPLE_CONTRACT = (
    "DISTRIBUTION AGREEMENT\n"
    "1. Territory. The Distributor shall sell the Products only in Mexico.\n"
    "2. Sales targets. The Distributor shall purchase at least 10,000 units per year."
)


class ScriptedStages:
    """
    Deterministic stand-ins for the five stage functions

    Records every call, can fail a named stage, and can hold extraction on a
    gate so tests control when runs make progress.
    """

    def __init__(self, document_type: str = DISTRIBUTION_CONTRACT):
        self.document_type = document_type
        self.calls = []
        self.report_requests = []
        self.failures = {}
        self.gate = None
        self.active = 0
        self.max_active = 0
        self.on_extract = None
        self.report_counter = 0

    def fail(self, stage: str, error: Exception):
        self.failures[stage] = error

    def hold(self) -> asyncio.Event:
        """Block extraction until the returned event is set"""
        self.gate = asyncio.Event()
        return self.gate

    def count(self, stage: str) -> int:
        return sum(1 for name, _ in self.calls if name == stage)

    def stage_names(self):
        return [name for name, _ in self.calls]

    def _record(self, stage: str, payload):
        self.calls.append((stage, payload))
        if stage in self.failures:
            raise self.failures[stage]

    async def extract_text(self, raw: bytes, mime_type: str, filename: str) -> str:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.on_extract:
                self.on_extract(filename)
            if self.gate is not None:
                await self.gate.wait()
            self._record("extract_text", filename)
            return raw.decode("utf-8")
        finally:
            self.active -= 1

    async def translate_and_structure(self, text: str):
        self._record("translate_and_structure", text)
        return [
            TranslatedClause(
                clause_number="1",
                title_en="Territory",
                title_es="Territorio",
                body_en="The Distributor shall sell the Products only in Mexico.",
                body_es="El Distribuidor venderá los Productos solo en México."
            ),
            TranslatedClause(
                clause_number="2",
                title_en="Sales targets",
                title_es="Objetivos de venta",
                body_en="At least 10,000 units per year.",
                body_es="Al menos 10.000 unidades al año."
            ),
        ]

    async def classify(self, clauses):
        self._record("classify", len(clauses))
        return Classification(type=self.document_type, confidence="high", reasoning="scripted")

    async def domain_analyze(self, document_type: str, clauses):
        self._record("domain_analyze", document_type)
        if document_type != DISTRIBUTION_CONTRACT:
            return UnspecializedChecklist(type=document_type)
        return DistributionChecklist(items=[
            ChecklistItem(key="salesTargets", found="yes", clauses=["2"], risk="high",
                          comment="Minimum purchase obligation")
        ])

    async def synthesize_report(self, request):
        self._record("synthesize_report", request.user_instructions)
        self.report_requests.append(request)
        self.report_counter += 1
        return Report(
            text=f"Report #{self.report_counter} for {request.type}",
            document_type=request.type,
            user_instructions=request.user_instructions
        )

    def as_stages(self) -> AnalysisStages:
        return AnalysisStages(
            extract_text=self.extract_text,
            translate_and_structure=self.translate_and_structure,
            classify=self.classify,
            domain_analyze=self.domain_analyze,
            synthesize_report=self.synthesize_report
        )


class ReportWatchingStore(InMemoryAnalysisStore):
    """Records whether a report was visible at every status checkpoint"""

    def __init__(self):
        super().__init__()
        self.report_visible = []

    async def set_status(self, document_id, status, progress):
        await super().set_status(document_id, status, progress)
        artifact = self.artifacts.get(document_id)
        self.report_visible.append((progress, artifact is not None and artifact.report is not None))


async def wait_for_condition(predicate, rounds: int = 200):
    """Let the event loop run until predicate() holds"""
    for _ in range(rounds):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


@pytest.fixture
def store():
    store = ReportWatchingStore()
    store.add_document("doc-1", SAMPLE_CONTRACT.encode("utf-8"), filename="distribution.pdf")
    return store


@pytest.fixture
def stages():
    return ScriptedStages()


@pytest.fixture
def config():
    return PipelineConfig(
        max_concurrent_analyses=2,
        max_queue_size=10,
        single_timeout_seconds=5,
        conjoint_timeout_per_document_seconds=5,
        regeneration_timeout_seconds=5
    )


@pytest.fixture
def pipeline(store, stages, config):
    return AnalysisPipeline(store=store, stages=stages.as_stages(), config=config)
