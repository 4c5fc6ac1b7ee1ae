"""
Analysis data model
Status state machine, artifacts and the typed stage outputs
"""

import json
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class AnalysisStatus(str, Enum):
    """Per-document status; the enum order follows the pipeline"""

    UPLOADED = "uploaded"
    OCR = "ocr"
    TRANSLATING = "translating"
    CLASSIFYING = "classifying"
    ANALYZING = "analyzing"
    GENERATING_REPORT = "generating_report"
    SAVING = "saving"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def progress(self) -> int:
        return STATUS_PROGRESS[self]


STATUS_PROGRESS = {
    AnalysisStatus.UPLOADED: 0,
    AnalysisStatus.OCR: 10,
    AnalysisStatus.TRANSLATING: 25,
    AnalysisStatus.CLASSIFYING: 40,
    AnalysisStatus.ANALYZING: 60,
    AnalysisStatus.GENERATING_REPORT: 80,
    AnalysisStatus.SAVING: 90,
    AnalysisStatus.COMPLETED: 100,
    AnalysisStatus.ERROR: 0,
}

FULL_RUN_SEQUENCE = (
    AnalysisStatus.OCR,
    AnalysisStatus.TRANSLATING,
    AnalysisStatus.CLASSIFYING,
    AnalysisStatus.ANALYZING,
    AnalysisStatus.GENERATING_REPORT,
    AnalysisStatus.SAVING,
    AnalysisStatus.COMPLETED,
)

REGENERATION_SEQUENCE = (
    AnalysisStatus.GENERATING_REPORT,
    AnalysisStatus.SAVING,
    AnalysisStatus.COMPLETED,
)

DISTRIBUTION_CONTRACT = "distribution_contract"
DEFAULT_DOCUMENT_TYPE = "other"
UNSPECIALIZED_NOTE = "No specific analyzer implemented yet"
CONJOINT_STUB_NOTE = "part of conjoint analysis"


@dataclass
class AnalysisRun:
    """Unit of work submitted to the orchestrator; never persisted"""
    targets: List[str]
    user_instructions: Optional[str] = None

    @property
    def primary_target(self) -> str:
        return self.targets[0]


@dataclass
class DocumentMetadata:
    """Stored metadata of an uploaded document"""
    document_id: str
    filename: str
    mime_type: str
    created_at: datetime = field(default_factory=datetime.now)


@dataclass
class DocumentStatusRecord:
    """Observable progress of one document"""
    document_id: str
    status: AnalysisStatus = AnalysisStatus.UPLOADED
    progress: int = 0
    error_message: Optional[str] = None
    updated_at: datetime = field(default_factory=datetime.now)


@dataclass
class TranslatedClause:
    """One clause produced by the translate stage"""
    clause_number: str
    title_en: str = ""
    title_es: str = ""
    body_en: str = ""
    body_es: str = ""

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> "TranslatedClause":
        return cls(
            clause_number=str(data.get("clause_number", "")),
            title_en=data.get("title_en") or "",
            title_es=data.get("title_es") or "",
            body_en=data.get("body_en") or "",
            body_es=data.get("body_es") or "",
        )


@dataclass
class Classification:
    """Output of the classify stage"""
    type: str
    confidence: str = "medium"
    reasoning: str = ""


@dataclass
class ChecklistItem:
    key: str
    found: str = "no"
    clauses: List[str] = field(default_factory=list)
    text: str = ""
    risk: str = "low"
    comment: str = ""


@dataclass
class DistributionChecklist:
    """Distributor-side review of a distribution contract"""
    items: List[ChecklistItem] = field(default_factory=list)
    type: str = DISTRIBUTION_CONTRACT

    def to_dict(self) -> Dict:
        return {"type": self.type, "items": [asdict(item) for item in self.items]}


@dataclass
class UnspecializedChecklist:
    """Placeholder for document types without a dedicated analyzer"""
    type: str
    note: str = UNSPECIALIZED_NOTE

    def to_dict(self) -> Dict:
        return {"type": self.type, "note": self.note}


Checklist = Union[DistributionChecklist, UnspecializedChecklist]


def checklist_from_dict(data: Optional[Dict], document_type: str = DEFAULT_DOCUMENT_TYPE) -> Optional[Checklist]:
    """Rebuild a checklist variant from its stored form"""

    if data is None:
        return None

    if isinstance(data, (DistributionChecklist, UnspecializedChecklist)):
        return data

    if "items" in data:
        items = [
            ChecklistItem(
                key=item.get("key", ""),
                found=item.get("found", "no"),
                clauses=[str(c) for c in item.get("clauses") or []],
                text=item.get("text") or "",
                risk=item.get("risk", "low"),
                comment=item.get("comment") or "",
            )
            for item in data.get("items") or []
        ]
        return DistributionChecklist(items=items, type=data.get("type") or DISTRIBUTION_CONTRACT)

    return UnspecializedChecklist(
        type=data.get("type") or document_type,
        note=data.get("note") or UNSPECIALIZED_NOTE
    )


@dataclass
class Report:
    """Final synthesized report"""
    text: str
    document_type: str
    generated_at: datetime = field(default_factory=datetime.now)
    user_instructions: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "text": self.text,
            "document_type": self.document_type,
            "generated_at": self.generated_at.isoformat(),
            "user_instructions": self.user_instructions,
        }

    @classmethod
    def from_value(cls, value: Any, document_type: str = DEFAULT_DOCUMENT_TYPE) -> Optional["Report"]:
        """Accept a stored report as a dict, a JSON string or plain text"""

        if value is None or isinstance(value, Report):
            return value

        if isinstance(value, str):
            stripped = value.strip()
            if stripped.startswith("{"):
                value = json.loads(stripped)
            else:
                return cls(text=value, document_type=document_type)

        generated_at = value.get("generated_at")
        return cls(
            text=value.get("text", ""),
            document_type=value.get("document_type") or document_type,
            generated_at=datetime.fromisoformat(generated_at) if generated_at else datetime.now(),
            user_instructions=value.get("user_instructions"),
        )


@dataclass
class ReportRequest:
    """Input of the report stage"""
    original: str
    translated: List[TranslatedClause]
    type: str
    checklist: Checklist
    user_instructions: Optional[str] = None


@dataclass
class AnalysisArtifact:
    """Persisted bundle of intermediate and final outputs for one document"""
    document_id: str
    type: Optional[str] = None
    original: Any = None
    translated: Any = None
    checklist: Any = None
    report: Optional[Report] = None
    user_instructions: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def is_conjoint_stub(self) -> bool:
        return isinstance(self.original, dict) and bool(self.original.get("is_part_of_conjoint_analysis"))

    def to_dict(self) -> Dict:
        """Plain JSON-compatible form"""

        checklist = self.checklist
        if isinstance(checklist, (DistributionChecklist, UnspecializedChecklist)):
            checklist = checklist.to_dict()

        translated = self.translated
        if isinstance(translated, list):
            translated = [c.to_dict() if isinstance(c, TranslatedClause) else c for c in translated]

        return {
            "document_id": self.document_id,
            "type": self.type,
            "original": self.original,
            "translated": translated,
            "checklist": checklist,
            "report": self.report.to_dict() if self.report else None,
            "user_instructions": self.user_instructions,
            "created_at": self.created_at.isoformat(),
        }
