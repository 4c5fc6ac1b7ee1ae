"""
Single-flight guard for document ids
At most one running analysis may write a document's status and artifact
"""

import logging
from contextlib import contextmanager
from typing import Iterable, Set

from ..errors import AnalysisInProgressError

logger = logging.getLogger(__name__)


class InFlightRegistry:
    """Tracks which document ids are owned by a running analysis"""

    def __init__(self):
        self._held: Set[str] = set()

    def is_running(self, document_id: str) -> bool:
        return document_id in self._held

    @property
    def running(self) -> Set[str]:
        return set(self._held)

    @contextmanager
    def claim(self, document_ids: Iterable[str]):
        """
        Claim every id for the duration of the block, all or nothing

        Raises:
            AnalysisInProgressError: one of the ids is already claimed
        """

        ids = list(document_ids)
        busy = [doc_id for doc_id in ids if doc_id in self._held]
        if busy:
            logger.warning(f"Rejected analysis request, already running: {', '.join(busy)}")
            raise AnalysisInProgressError(busy)

        self._held.update(ids)
        try:
            yield ids
        finally:
            self._held.difference_update(ids)
