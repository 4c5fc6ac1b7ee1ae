"""
Report Synthesis Stage
Turns clauses, classification and checklist into the client-facing report
"""

import logging
from typing import Optional

from ..pipeline.models import DistributionChecklist, Report, ReportRequest
from .bedrock_client import BedrockClaudeClient

logger = logging.getLogger(__name__)

REPORT_PROMPT = """You are a legal report generator for a law firm.

Generate a comprehensive legal analysis report in Spanish based on:

1. Original document text (English)
2. Translated clauses (Spanish)
3. Document type classification
4. Analysis checklist (if available)

The report should include:

- Executive summary
- Document type and key characteristics
- Critical clauses analysis
- Risk assessment
- Recommendations for the client
- Action items

Format: Professional legal report in Spanish, structured with clear sections.

Return ONLY the report text, no JSON, no markdown headers."""


class ReportGenerator:
    """Synthesize-report stage"""

    MAX_ORIGINAL_CHARS = 2000
    MAX_CLAUSE_CHARS = 6000

    def __init__(self, claude: BedrockClaudeClient):
        self.claude = claude

    async def generate(self, request: ReportRequest) -> Report:
        """
        Generate the final report

        Raises:
            ValueError: the model returned no text
        """

        text = await self.claude.complete(
            self._build_prompt(request),
            system="You are a legal report generator. Return ONLY the report text in Spanish, professional format.",
            max_tokens=4000,
            temperature=0.3
        )

        return Report(
            text=text,
            document_type=request.type,
            user_instructions=request.user_instructions
        )

    def _build_prompt(self, request: ReportRequest) -> str:
        translated_text = "\n\n".join(
            f"{c.clause_number}. {c.title_es}\n{c.body_es}" for c in request.translated
        )[:self.MAX_CLAUSE_CHARS]

        sections = [
            REPORT_PROMPT,
            f"DOCUMENT TYPE: {request.type}",
            f"ORIGINAL TEXT (first characters):\n{request.original[:self.MAX_ORIGINAL_CHARS]}",
            f"TRANSLATED CLAUSES:\n{translated_text}",
            f"ANALYSIS CHECKLIST:\n{self._checklist_text(request)}",
        ]

        instructions = self._instructions_text(request.user_instructions)
        if instructions:
            sections.append(instructions)

        return "\n\n".join(sections)

    @staticmethod
    def _checklist_text(request: ReportRequest) -> str:
        checklist = request.checklist
        if isinstance(checklist, DistributionChecklist) and checklist.items:
            return "\n\n".join(
                f"- {item.key}: {item.found} (Risk: {item.risk})\n  {item.comment}"
                for item in checklist.items
            )
        return f"No checklist available ({getattr(checklist, 'note', 'no specialized analyzer')})"

    @staticmethod
    def _instructions_text(user_instructions: Optional[str]) -> str:
        if not user_instructions:
            return ""
        return f"ADDITIONAL INSTRUCTIONS FROM THE LAWYER:\n{user_instructions}"
