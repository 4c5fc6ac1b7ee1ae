"""
Stage contract
The five opaque asynchronous operations the orchestrator drives
"""

from dataclasses import dataclass
from typing import Awaitable, Callable, List

from .models import Checklist, Classification, Report, ReportRequest, TranslatedClause

STAGE_EXTRACT = "extract_text"
STAGE_TRANSLATE = "translate_and_structure"
STAGE_CLASSIFY = "classify"
STAGE_ANALYZE = "domain_analyze"
STAGE_REPORT = "synthesize_report"


@dataclass
class AnalysisStages:
    """
    Bundle of stage callables

    extract_text(raw, mime_type, filename) -> text
    translate_and_structure(text) -> clauses
    classify(clauses) -> Classification
    domain_analyze(type, clauses) -> checklist
    synthesize_report(ReportRequest) -> Report
    """
    extract_text: Callable[[bytes, str, str], Awaitable[str]]
    translate_and_structure: Callable[[str], Awaitable[List[TranslatedClause]]]
    classify: Callable[[List[TranslatedClause]], Awaitable[Classification]]
    domain_analyze: Callable[[str, List[TranslatedClause]], Awaitable[Checklist]]
    synthesize_report: Callable[[ReportRequest], Awaitable[Report]]
