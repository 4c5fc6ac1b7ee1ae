"""
Data Validator Utility
Validates source documents, analysis requests and stage outputs
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence
import magic

from ..errors import InvalidAnalysisRequestError

logger = logging.getLogger(__name__)


class DataValidator:
    """
    Validates documents and request data
    Ensures data quality throughout the pipeline
    """

    SUPPORTED_FORMATS = {
        'application/pdf': '.pdf',
        'image/jpeg': '.jpg',
        'image/png': '.png',
        'image/tiff': '.tiff',
        'text/plain': '.txt',
    }

    EXTENSION_FORMATS = {
        '.pdf': 'application/pdf',
        '.jpg': 'image/jpeg',
        '.jpeg': 'image/jpeg',
        '.png': 'image/png',
        '.tif': 'image/tiff',
        '.tiff': 'image/tiff',
        '.txt': 'text/plain',
    }

    GENERIC_MIME_TYPES = {'', 'application/octet-stream', 'binary/octet-stream'}

    MAX_FILE_SIZE = 50 * 1024 * 1024  # 50MB
    DEFAULT_MAX_INSTRUCTION_LENGTH = 2000

    def __init__(self, max_instruction_length: int = DEFAULT_MAX_INSTRUCTION_LENGTH):
        """Initialize data validator"""
        self.max_instruction_length = max_instruction_length

    def resolve_mime_type(self, raw: bytes, mime_type: Optional[str], filename: str = "") -> str:
        """
        Determine the effective MIME type of a source document

        Declared types win unless they are generic, in which case the bytes are
        sniffed, then the file extension is consulted.
        """

        declared = (mime_type or '').split(';')[0].strip().lower()
        if declared not in self.GENERIC_MIME_TYPES:
            return declared

        try:
            sniffed = magic.from_buffer(raw[:4096], mime=True)
            if sniffed and sniffed not in self.GENERIC_MIME_TYPES:
                return sniffed
        except Exception as e:
            logger.warning(f"MIME sniffing failed for {filename or 'document'}: {e}")

        return self.EXTENSION_FORMATS.get(Path(filename).suffix.lower(), declared or 'application/octet-stream')

    def validate_source(self, raw: bytes, mime_type: Optional[str], filename: str = "") -> str:
        """
        Validate raw source bytes before text extraction

        Args:
            raw: Document bytes
            mime_type: Declared MIME type
            filename: Original filename

        Returns:
            The resolved MIME type

        Raises:
            ValueError: empty, oversized or unsupported document
        """

        if not raw:
            raise ValueError("File is empty")

        if len(raw) > self.MAX_FILE_SIZE:
            raise ValueError(
                f"File too large: {len(raw) / 1024 / 1024:.2f}MB. Maximum allowed: "
                f"{self.MAX_FILE_SIZE // (1024 * 1024)}MB"
            )

        resolved = self.resolve_mime_type(raw, mime_type, filename)
        if resolved not in self.SUPPORTED_FORMATS:
            raise ValueError(f"Unsupported file type: {resolved}")

        return resolved

    def validate_instructions(self, instructions: Optional[str]) -> Optional[str]:
        """
        Normalize user instructions for the report stage

        Blank instructions become None; overlong ones are rejected.
        """

        if instructions is None:
            return None

        if not isinstance(instructions, str):
            raise InvalidAnalysisRequestError("Instructions must be text")

        instructions = instructions.strip()
        if not instructions:
            return None

        if len(instructions) > self.max_instruction_length:
            raise InvalidAnalysisRequestError(
                f"Instructions too long: {len(instructions)} characters "
                f"(maximum {self.max_instruction_length})"
            )

        return instructions

    def validate_targets(self, document_ids: Sequence[str]) -> List[str]:
        """Validate the ordered list of documents for a run"""

        targets = [str(doc_id).strip() for doc_id in document_ids or []]

        if not targets:
            raise InvalidAnalysisRequestError("At least one document id is required")

        if any(not doc_id for doc_id in targets):
            raise InvalidAnalysisRequestError("Document ids must not be empty")

        duplicates = sorted({doc_id for doc_id in targets if targets.count(doc_id) > 1})
        if duplicates:
            raise InvalidAnalysisRequestError(f"Duplicate document ids: {', '.join(duplicates)}")

        return targets

    def validate_clauses(self, clauses: List) -> Dict:
        """
        Validate the translate stage output

        Returns:
            Validation results with errors and warnings
        """

        results = {
            "valid": True,
            "errors": [],
            "warnings": []
        }

        if not clauses:
            results["warnings"].append("No clauses produced by translation")
            return results

        seen = set()
        for idx, clause in enumerate(clauses):
            number = getattr(clause, 'clause_number', None)
            if not number:
                results["warnings"].append(f"Clause {idx} has no clause number")
            elif number in seen:
                results["warnings"].append(f"Clause number {number} appears more than once")
            else:
                seen.add(number)

            if not getattr(clause, 'body_es', None) and not getattr(clause, 'body_en', None):
                results["valid"] = False
                results["errors"].append(f"Clause {idx} has no body text")

        return results
