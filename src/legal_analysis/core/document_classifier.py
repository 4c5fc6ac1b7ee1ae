"""
Document Classification Stage
Categorizes contracts so the matching domain analyzer can run
"""

import logging
from typing import Dict, List
from botocore.exceptions import ClientError

from ..pipeline.models import DEFAULT_DOCUMENT_TYPE, Classification, TranslatedClause
from .bedrock_client import BedrockClaudeClient

logger = logging.getLogger(__name__)


class DocumentClassifier:
    """
    Claude classification of translated clauses.
    Falls back to indicator matching when Bedrock rejects the call.
    """

    DOCUMENT_TYPES = {
        "distribution_contract": {
            "description": "Distribution agreements, reseller contracts, dealer agreements",
            "indicators": ["DISTRIBUTOR", "DISTRIBUIDOR", "DISTRIBUTION AGREEMENT", "RESELLER", "DEALER", "TERRITORY"],
        },
        "service_contract": {
            "description": "Service provision agreements, consulting contracts",
            "indicators": ["SERVICE PROVIDER", "PRESTACIÓN DE SERVICIOS", "STATEMENT OF WORK", "CONSULTING SERVICES"],
        },
        "license_agreement": {
            "description": "Software licenses, IP licenses, trademark licenses",
            "indicators": ["LICENSOR", "LICENSEE", "LICENCIANTE", "GRANTS A LICENSE", "ROYALT"],
        },
        "nda": {
            "description": "Non-disclosure agreements, confidentiality agreements",
            "indicators": ["NON-DISCLOSURE", "CONFIDENTIAL INFORMATION", "INFORMACIÓN CONFIDENCIAL", "CONFIDENCIALIDAD"],
        },
        "purchase_agreement": {
            "description": "Purchase and sale agreements, supply agreements",
            "indicators": ["PURCHASE PRICE", "SELLER", "BUYER", "COMPRAVENTA", "SUPPLY AGREEMENT"],
        },
    }

    MAX_INPUT_CHARS = 6000

    def __init__(self, claude: BedrockClaudeClient):
        """Initialize with the shared Claude client"""
        self.claude = claude

    async def classify(self, clauses: List[TranslatedClause]) -> Classification:
        """
        Classify a document from its translated clauses

        Returns:
            Classification with type, confidence and reasoning
        """

        document_text = self._document_text(clauses)

        try:
            result = await self.claude.complete_json(
                self._build_classification_prompt(document_text),
                system="You are a legal document classifier. Return ONLY valid JSON, no additional text.",
                max_tokens=500,
                temperature=0.1  # Low temperature for consistent classification
            )
        except ClientError as e:
            logger.warning(f"Claude API error during classification: {e}")
            return self._fallback_classification(document_text)
        except ValueError as e:
            logger.warning(f"Unparseable classification reply: {e}")
            return self._fallback_classification(document_text)

        if not isinstance(result, dict):
            logger.warning(f"Classification reply is not a JSON object: {type(result).__name__}")
            return self._fallback_classification(document_text)

        doc_type = result.get("type")
        if doc_type not in self.DOCUMENT_TYPES:
            if doc_type and doc_type != DEFAULT_DOCUMENT_TYPE:
                logger.warning(f"Unknown document type from classifier: {doc_type}")
            doc_type = DEFAULT_DOCUMENT_TYPE

        classification = Classification(
            type=doc_type,
            confidence=str(result.get("confidence", "medium")),
            reasoning=result.get("reasoning", "")
        )
        logger.info(f"Document classified as {classification.type} ({classification.confidence})")
        return classification

    def _document_text(self, clauses: List[TranslatedClause]) -> str:
        return "\n\n".join(
            f"{c.clause_number}. {c.title_es or c.title_en}\n{c.body_es or c.body_en}"
            for c in clauses
        )[:self.MAX_INPUT_CHARS]

    def _build_classification_prompt(self, text: str) -> str:
        """Build classification prompt for Claude."""
        categories = "\n".join(
            f"- {name}: {info['description']}" for name, info in self.DOCUMENT_TYPES.items()
        )
        type_choices = " | ".join(f'"{name}"' for name in list(self.DOCUMENT_TYPES) + [DEFAULT_DOCUMENT_TYPE])
        return f"""Analyze the following translated legal document clauses and determine the document type.

DOCUMENT TYPES:
{categories}
- other: Any other type of legal document

Return JSON:
{{
  "type": {type_choices},
  "confidence": "high" | "medium" | "low",
  "reasoning": "brief explanation"
}}

DOCUMENT:
{text}"""

    def _fallback_classification(self, text: str) -> Classification:
        """Pattern-based fallback classification when Claude is unavailable."""
        text_upper = text.upper()

        scores: Dict[str, int] = {}
        for doc_type, type_info in self.DOCUMENT_TYPES.items():
            hits = sum(1 for indicator in type_info["indicators"] if indicator in text_upper)
            if hits:
                scores[doc_type] = hits

        if not scores:
            return Classification(
                type=DEFAULT_DOCUMENT_TYPE,
                confidence="low",
                reasoning="Could not determine document type"
            )

        best = max(scores, key=scores.get)
        return Classification(
            type=best,
            confidence="low",
            reasoning=f"Pattern matching found {scores[best]} indicator(s) for {best}"
        )
