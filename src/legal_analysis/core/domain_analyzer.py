"""
Domain Analysis Stage
Routes classified documents to a type-specific analyzer
"""

import logging
from typing import Dict, List

from ..pipeline.models import (
    DISTRIBUTION_CONTRACT,
    ChecklistItem,
    Checklist,
    DistributionChecklist,
    TranslatedClause,
    UnspecializedChecklist,
)
from .bedrock_client import BedrockClaudeClient

logger = logging.getLogger(__name__)

DISTRIBUTION_KEYS = [
    "salesTargets",
    "terminationWithoutCause",
    "inventoryBuyBack",
    "paymentTerms",
    "jurisdiction",
    "afterSales",
    "intellectualProperty",
    "territorialRestrictions",
]

DISTRIBUTION_PROMPT = """You are LegalAnalyzer for distribution contracts from the perspective of the DISTRIBUTOR.

Given the contract clauses in SPANISH, identify and analyze:

1. Sales targets (obligations, consequences for not meeting them)
2. Termination without cause
3. Inventory buy back (whether the supplier must repurchase stock)
4. Payment terms and penalties for late payment
5. Choice of law and jurisdiction / arbitration
6. After-sales obligations and customer complaints/returns
7. Intellectual property: use of the supplier's trademarks and logos
8. Territorial restrictions and sales outside the assigned territory

For each item return JSON:

{{
  "key": {keys},
  "found": "yes" | "no" | "partial",
  "clauses": ["5.1", "5.2"],
  "text": "relevant text in Spanish",
  "risk": "low" | "medium" | "high",
  "comment": "brief legal analysis from the DISTRIBUTOR's point of view"
}}

Return a JSON object:

{{
  "items": [ ...8 items... ]
}}

CLAUSES:
{clauses}"""


class DistributionAnalyzer:
    """Distributor-side checklist for distribution contracts"""

    MAX_INPUT_CHARS = 10000

    def __init__(self, claude: BedrockClaudeClient):
        self.claude = claude

    async def analyze(self, clauses: List[TranslatedClause]) -> DistributionChecklist:
        document_text = "\n\n".join(
            f"{c.clause_number}. {c.title_es}\n{c.body_es}" for c in clauses
        )[:self.MAX_INPUT_CHARS]

        response = await self.claude.complete_json(
            DISTRIBUTION_PROMPT.format(
                keys=" | ".join(f'"{key}"' for key in DISTRIBUTION_KEYS),
                clauses=document_text
            ),
            system="You are a legal analyst. Return ONLY valid JSON, no additional text.",
            max_tokens=4000,
            temperature=0.2
        )

        raw_items = response.get("items") if isinstance(response, dict) else None
        if not isinstance(raw_items, list):
            raise ValueError("Distribution analysis returned no checklist items")

        items = {}
        for raw in raw_items:
            if not isinstance(raw, dict) or raw.get("key") not in DISTRIBUTION_KEYS:
                continue
            items[raw["key"]] = ChecklistItem(
                key=raw["key"],
                found=raw.get("found", "no"),
                clauses=[str(c) for c in raw.get("clauses") or []],
                text=raw.get("text") or "",
                risk=raw.get("risk", "low"),
                comment=raw.get("comment") or ""
            )

        missing = [key for key in DISTRIBUTION_KEYS if key not in items]
        if missing:
            logger.warning(f"Distribution analysis did not cover: {', '.join(missing)}")
            for key in missing:
                items[key] = ChecklistItem(key=key, found="no", comment="Not covered by the analysis")

        return DistributionChecklist(items=[items[key] for key in DISTRIBUTION_KEYS])


class DomainAnalyzer:
    """
    Domain-analyze stage

    Types without a registered analyzer get the unspecialized placeholder.
    """

    def __init__(self, claude: BedrockClaudeClient):
        self.analyzers: Dict = {
            DISTRIBUTION_CONTRACT: DistributionAnalyzer(claude),
        }

    async def analyze(self, document_type: str, clauses: List[TranslatedClause]) -> Checklist:
        analyzer = self.analyzers.get(document_type)
        if analyzer is None:
            logger.info(f"No specialized analyzer for {document_type}")
            return UnspecializedChecklist(type=document_type)

        checklist = await analyzer.analyze(clauses)
        logger.info(f"{document_type} analysis completed with {len(checklist.items)} items")
        return checklist
