"""
Translation Stage
Splits the source text into clauses and translates each one to Spanish
"""

import logging
from typing import List, Optional

from ..pipeline.models import TranslatedClause
from .bedrock_client import BedrockClaudeClient

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a professional legal translator. Return ONLY a valid JSON object "
    "with a 'clauses' array, no additional text."
)

TRANSLATION_PROMPT = """You are a legal translator specialized in contract translation.

Input: legal document clauses in English.

Task: translate to Spanish preserving structure, clause numbers and titles.

Return JSON:
{{
  "clauses": [
    {{
      "clause_number": "1.1",
      "title_en": "...",
      "title_es": "...",
      "body_en": "...",
      "body_es": "..."
    }}
  ]
}}

Do NOT summarize. Do NOT omit content. Preserve all legal terminology and structure.

DOCUMENT:
{text}"""


class ClauseTranslator:
    """Translate-and-structure stage"""

    MAX_INPUT_CHARS = 12000

    def __init__(self, claude: BedrockClaudeClient, max_input_chars: Optional[int] = None):
        self.claude = claude
        self.max_input_chars = max_input_chars or self.MAX_INPUT_CHARS

    async def translate(self, text: str) -> List[TranslatedClause]:
        """
        Translate document text into structured clauses

        Raises:
            ValueError: empty input or a reply without clauses
        """

        if not text or not text.strip():
            raise ValueError("No text to translate")

        # Limit text size to avoid timeouts
        excerpt = text[:self.max_input_chars]
        if len(text) > self.max_input_chars:
            logger.warning(f"Translating first {self.max_input_chars} of {len(text)} characters")

        response = await self.claude.complete_json(
            TRANSLATION_PROMPT.format(text=excerpt),
            system=SYSTEM_PROMPT,
            max_tokens=8000,
            temperature=0.2
        )

        raw_clauses = response.get("clauses") if isinstance(response, dict) else response
        if not isinstance(raw_clauses, list) or not raw_clauses:
            raise ValueError("Translation returned no clauses")

        clauses = [TranslatedClause.from_dict(item) for item in raw_clauses if isinstance(item, dict)]
        for idx, clause in enumerate(clauses, 1):
            if not clause.clause_number:
                clause.clause_number = str(idx)

        return clauses
