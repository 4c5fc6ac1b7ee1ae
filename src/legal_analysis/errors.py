"""
Analysis pipeline errors
Every run failure is an AnalysisError; request errors are raised before a run starts
"""

from typing import Optional


class AnalysisError(Exception):
    """Base class for failures that terminate an analysis run"""

    def __init__(self, message: str, document_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.document_id = document_id


class DocumentNotFoundError(AnalysisError):
    """The document id is unknown to the store"""

    def __init__(self, document_id: str):
        super().__init__(f"Document not found: {document_id}", document_id)


class UnreadableSourceError(AnalysisError):
    """Raw bytes are missing and there is nothing to recover from"""

    def __init__(self, document_id: str, detail: str = "source file is missing or empty"):
        super().__init__(
            f"Could not read document file for {document_id}: {detail}. Please upload the document again.",
            document_id
        )


class NoPriorAnalysisError(AnalysisError):
    """Report regeneration was requested but no earlier analysis exists"""

    def __init__(self, document_id: str):
        super().__init__(f"No prior analysis to regenerate the report from for {document_id}", document_id)


class StageFailureError(AnalysisError):
    """One of the five stage functions raised; its message is passed through verbatim"""

    def __init__(self, stage: str, message: str, document_id: Optional[str] = None):
        super().__init__(message, document_id)
        self.stage = stage


class PipelineTimeoutError(AnalysisError):
    """The run exceeded its wall-clock budget"""

    def __init__(self, document_id: str, timeout: float):
        super().__init__(
            f"Pipeline timeout: analysis took more than {timeout:g}s",
            document_id
        )
        self.timeout = timeout


class AdmissionError(Exception):
    """A slot could not be granted"""


class AdmissionCancelledError(AdmissionError):
    """The admission controller is shutting down"""


class AdmissionQueueFullError(AdmissionError):
    """Too many analyses are already waiting for a slot"""


class InvalidAnalysisRequestError(ValueError):
    """The request is malformed (no targets, duplicate ids, instructions too long)"""


class AnalysisInProgressError(Exception):
    """Another analysis already holds one of the requested document ids"""

    def __init__(self, document_ids):
        self.document_ids = list(document_ids)
        super().__init__(f"Analysis already in progress for: {', '.join(self.document_ids)}")
