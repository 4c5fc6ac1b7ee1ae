"""
Text Extraction Stage
Reads text from uploaded bytes: PDF text layer first, Claude vision for scans and images
"""

import asyncio
import io
import logging
from typing import List, Optional
from PIL import Image
import pdf2image
from pypdf import PdfReader

from ..utils.data_validator import DataValidator
from .bedrock_client import BedrockClaudeClient

logger = logging.getLogger(__name__)

OCR_PROMPT = """Transcribe all text on this page of a legal document.

Rules:
- Output the original text only, with no translation and no commentary.
- Keep clause numbers, headings and paragraph breaks in reading order.
- Render tables as plain rows separated by " | "."""


class TextExtractor:
    """
    Extract-text stage

    PDFs with a text layer are read with pypdf. Scanned PDFs are rasterized
    with pdf2image and, like image uploads, transcribed page by page with Claude.
    """

    MIN_TEXT_CHARS_PER_PAGE = 20

    def __init__(self,
                 claude: Optional[BedrockClaudeClient] = None,
                 validator: Optional[DataValidator] = None,
                 dpi: int = 200,
                 max_ocr_pages: int = 30):
        """Initialize text extractor"""
        self.claude = claude
        self.validator = validator or DataValidator()
        self.dpi = dpi
        self.max_ocr_pages = max_ocr_pages

    async def extract(self, raw: bytes, mime_type: str, filename: str) -> str:
        """
        Extract plain text from a source document

        Args:
            raw: Document bytes
            mime_type: Declared MIME type
            filename: Original filename

        Returns:
            Extracted text

        Raises:
            ValueError: unsupported, empty or unreadable document
        """

        resolved = self.validator.validate_source(raw, mime_type, filename)

        if resolved == 'text/plain':
            return raw.decode('utf-8', errors='replace')

        if resolved == 'application/pdf':
            text, page_count = await asyncio.to_thread(self._read_pdf_text, raw)
            if len(text.strip()) >= self.MIN_TEXT_CHARS_PER_PAGE * max(1, page_count):
                logger.info(f"Read text layer of {filename}: {page_count} pages, {len(text)} characters")
                return text

            logger.info(f"{filename} has no usable text layer, falling back to OCR")
            images = await asyncio.to_thread(
                pdf2image.convert_from_bytes, raw, dpi=self.dpi, last_page=self.max_ocr_pages
            )
            return await self._transcribe(images, filename)

        frames = await asyncio.to_thread(self._load_frames, raw)
        return await self._transcribe(frames, filename)

    def _read_pdf_text(self, raw: bytes):
        try:
            reader = PdfReader(io.BytesIO(raw))
        except Exception as e:
            raise ValueError(f"Failed to extract text from PDF: {e}") from e

        pages = []
        for page in reader.pages:
            pages.append(page.extract_text() or "")
        return "\n\n".join(pages), len(pages)

    def _load_frames(self, raw: bytes) -> List[Image.Image]:
        """Every frame of a (possibly multi-page TIFF) image"""
        image = Image.open(io.BytesIO(raw))
        frames = []
        for index in range(getattr(image, 'n_frames', 1)):
            image.seek(index)
            frames.append(image.copy())
            if len(frames) >= self.max_ocr_pages:
                break
        return frames

    async def _transcribe(self, images: List[Image.Image], filename: str) -> str:
        if self.claude is None:
            raise ValueError(f"OCR is not available for {filename}: no Bedrock client configured")

        pages = []
        for idx, image in enumerate(images):
            logger.info(f"Transcribing page {idx + 1}/{len(images)} of {filename}")
            pages.append(await self.claude.complete(
                OCR_PROMPT,
                images=[await asyncio.to_thread(self._to_png, image)],
                max_tokens=4000,
                temperature=0.0
            ))

        text = "\n\n--- Page Break ---\n\n".join(pages)
        if not text.strip():
            raise ValueError(f"No text could be extracted from {filename}")
        return text

    @staticmethod
    def _to_png(image: Image.Image) -> bytes:
        if image.mode != 'RGB':
            image = image.convert('RGB')
        buffer = io.BytesIO()
        image.save(buffer, format='PNG')
        return buffer.getvalue()
