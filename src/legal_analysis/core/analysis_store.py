"""
Analysis Store
Persistence interface used by the orchestrator, plus an in-memory implementation
"""

import copy
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from ..pipeline.models import (
    AnalysisArtifact,
    AnalysisStatus,
    DocumentMetadata,
    DocumentStatusRecord,
)

logger = logging.getLogger(__name__)


class AnalysisStore(ABC):
    """
    Document metadata, raw bytes, status records and artifacts

    Writes for one document id are assumed to be serialized by the backend.
    """

    @abstractmethod
    async def get_document_metadata(self, document_id: str) -> Optional[DocumentMetadata]:
        """Stored metadata, or None for an unknown id"""

    @abstractmethod
    async def get_raw_bytes(self, document_id: str) -> Optional[bytes]:
        """Original document bytes, or None if missing or empty"""

    @abstractmethod
    async def get_artifact(self, document_id: str) -> Optional[AnalysisArtifact]:
        """Stored analysis artifact, or None"""

    @abstractmethod
    async def upsert_artifact(self, artifact: AnalysisArtifact) -> None:
        """Insert or wholesale replace the artifact for artifact.document_id"""

    @abstractmethod
    async def delete_artifact(self, document_id: str) -> None:
        """Remove the artifact; a missing artifact is not an error"""

    @abstractmethod
    async def set_status(self, document_id: str, status: AnalysisStatus, progress: int) -> None:
        """Record a status transition and clear any previous error"""

    @abstractmethod
    async def set_error(self, document_id: str, message: str) -> None:
        """Record status=error, progress=0 and the message"""

    @abstractmethod
    async def get_status(self, document_id: str) -> Optional[DocumentStatusRecord]:
        """Current status record for pollers"""


class InMemoryAnalysisStore(AnalysisStore):
    """
    Dict-backed store for tests, demos and local runs

    Keeps the full status history per document so progress can be inspected.
    Nothing is ever evicted; do not use it as a long-lived production store.
    """

    def __init__(self):
        self.documents: Dict[str, DocumentMetadata] = {}
        self.raw_bytes: Dict[str, bytes] = {}
        self.artifacts: Dict[str, AnalysisArtifact] = {}
        self.statuses: Dict[str, DocumentStatusRecord] = {}
        self.history: Dict[str, List[Tuple[AnalysisStatus, int]]] = {}
        self.deleted: List[str] = []

    def add_document(self,
                     document_id: str,
                     raw: Optional[bytes],
                     filename: str = "document.pdf",
                     mime_type: str = "application/pdf") -> DocumentMetadata:
        """Register an uploaded document"""

        metadata = DocumentMetadata(document_id=document_id, filename=filename, mime_type=mime_type)
        self.documents[document_id] = metadata
        if raw is not None:
            self.raw_bytes[document_id] = raw
        self.statuses[document_id] = DocumentStatusRecord(document_id=document_id)
        return metadata

    def evict_raw_bytes(self, document_id: str):
        self.raw_bytes.pop(document_id, None)

    def progress_history(self, document_id: str) -> List[int]:
        return [progress for _, progress in self.history.get(document_id, [])]

    def status_history(self, document_id: str) -> List[AnalysisStatus]:
        return [status for status, _ in self.history.get(document_id, [])]

    async def get_document_metadata(self, document_id: str) -> Optional[DocumentMetadata]:
        return self.documents.get(document_id)

    async def get_raw_bytes(self, document_id: str) -> Optional[bytes]:
        raw = self.raw_bytes.get(document_id)
        if not raw:
            return None
        return raw

    async def get_artifact(self, document_id: str) -> Optional[AnalysisArtifact]:
        artifact = self.artifacts.get(document_id)
        return copy.deepcopy(artifact) if artifact else None

    async def upsert_artifact(self, artifact: AnalysisArtifact) -> None:
        self.artifacts[artifact.document_id] = copy.deepcopy(artifact)

    async def delete_artifact(self, document_id: str) -> None:
        if self.artifacts.pop(document_id, None) is not None:
            self.deleted.append(document_id)

    async def set_status(self, document_id: str, status: AnalysisStatus, progress: int) -> None:
        record = self.statuses.setdefault(document_id, DocumentStatusRecord(document_id=document_id))
        record.status = status
        record.progress = progress
        record.error_message = None
        record.updated_at = datetime.now()
        self.history.setdefault(document_id, []).append((status, progress))

    async def set_error(self, document_id: str, message: str) -> None:
        record = self.statuses.setdefault(document_id, DocumentStatusRecord(document_id=document_id))
        record.status = AnalysisStatus.ERROR
        record.progress = 0
        record.error_message = message
        record.updated_at = datetime.now()
        self.history.setdefault(document_id, []).append((AnalysisStatus.ERROR, 0))

    async def get_status(self, document_id: str) -> Optional[DocumentStatusRecord]:
        record = self.statuses.get(document_id)
        return copy.deepcopy(record) if record else None
