"""
Normalization of stored artifact fields
Stores may hand back JSON strings or structured values for the same field
"""

import json
import logging
from typing import Any, List, Optional

from .models import (
    DEFAULT_DOCUMENT_TYPE,
    Checklist,
    TranslatedClause,
    checklist_from_dict,
)

logger = logging.getLogger(__name__)


def parse_stored_value(value: Any) -> Any:
    """Decode a JSON string into a structured value; anything else passes through"""

    if not isinstance(value, str):
        return value

    stripped = value.strip()
    if not stripped or stripped[0] not in "{[\"":
        return value

    try:
        return json.loads(stripped)
    except json.JSONDecodeError as e:
        logger.warning(f"Stored value looks like JSON but does not parse ({e}); keeping it as text")
        return value


def plain_text(original: Any) -> str:
    """Plain text of an artifact's original field, whatever shape it arrived in"""

    original = parse_stored_value(original)

    if original is None:
        return ""
    if isinstance(original, str):
        return original
    if isinstance(original, dict):
        text = original.get("text")
        if isinstance(text, str):
            return text
        return plain_text(text) if text is not None else ""
    if isinstance(original, list):
        return "\n\n".join(plain_text(part) for part in original if part is not None)
    return str(original)


def clauses_from_value(value: Any) -> List[TranslatedClause]:
    """Structured clauses from a stored translated field"""

    value = parse_stored_value(value)

    if isinstance(value, dict):
        value = value.get("clauses", [])
    if not isinstance(value, list):
        return []

    clauses = []
    for item in value:
        if isinstance(item, TranslatedClause):
            clauses.append(item)
        elif isinstance(item, dict):
            clauses.append(TranslatedClause.from_dict(item))
    return clauses


def checklist_from_value(value: Any, document_type: Optional[str] = None) -> Optional[Checklist]:
    """Checklist variant from a stored checklist field"""

    value = parse_stored_value(value)
    if value is None or isinstance(value, str):
        return None
    return checklist_from_dict(value, document_type or DEFAULT_DOCUMENT_TYPE)
