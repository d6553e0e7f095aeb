from __future__ import annotations

import asyncio
import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Protocol

import httpx

from extraction import pdf_render
from extraction.errors import ExtractionError
from settings.config import settings
from storage.s3_client import StorageError

if TYPE_CHECKING:
    from storage.s3_client import S3Client

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"


class TextDetector(Protocol):
    async def detect_text(self, content: bytes) -> str: ...


@dataclass
class ProcessingResult:
    success: bool
    text: Optional[str] = None
    error: Optional[str] = None


class TextExtractor:
    """
    Turns a stored statement file into plain text.

    Images go straight to OCR. PDFs are rasterized page by page (at most
    `max_pages`) and each page's text is preceded by a `--- Page N ---`
    marker line. Every temporary file lives in a per-call temporary
    directory that is removed on every exit path.
    """

    def __init__(
        self,
        vision: TextDetector,
        storage: Optional["S3Client"] = None,
        max_pages: int = settings.PDF_MAX_PAGES,
        dpi: int = settings.PDF_RENDER_DPI,
        http_timeout: float = 60.0,
    ) -> None:
        self.vision = vision
        self.storage = storage
        self.max_pages = max_pages
        self.dpi = dpi
        self.http_timeout = http_timeout

    async def extract(self, source: str, mime_type: str) -> str:
        logger.info(f"Processing statement: {source}, type: {mime_type}")
        mime = (mime_type or "").lower()
        if mime.startswith("image/"):
            content = await self.load_bytes(source)
            return await self.vision.detect_text(content)
        if mime == PDF_MIME_TYPE:
            content = await self.load_bytes(source)
            return await self._extract_pdf(content)
        raise ExtractionError(f"Unsupported file type: {mime_type}")

    async def load_bytes(self, source: str) -> bytes:
        """Read a file from the object store, an http(s) URL or the local filesystem."""
        # Service credentials are used only for s3:// sources, which come from a
        # statement's checked bucket and path; http(s) URLs are fetched anonymously
        location = None
        if self.storage is not None and source.startswith("s3://"):
            location = self.storage.parse_object_url(source)
        if location is not None:
            try:
                return await self.storage.get_bytes(*location)  # type: ignore[union-attr]
            except StorageError as e:
                raise ExtractionError(f"File not found or not accessible: {e}") from e

        if source.startswith(("http://", "https://")):
            try:
                async with httpx.AsyncClient(timeout=self.http_timeout, follow_redirects=True) as client:
                    response = await client.get(source)
                    response.raise_for_status()
                    return response.content
            except httpx.HTTPError as e:
                raise ExtractionError(f"File not found or not accessible: {e}") from e

        try:
            return await asyncio.to_thread(Path(source).read_bytes)
        except OSError as e:
            raise ExtractionError(f"File not found or not accessible: {e}") from e

    async def _extract_pdf(self, content: bytes) -> str:
        with tempfile.TemporaryDirectory(prefix="statement-pdf-") as tmp:
            work_dir = Path(tmp)
            pdf_path = work_dir / "statement.pdf"
            pdf_path.write_bytes(content)

            page_count = await pdf_render.count_pages(pdf_path)
            if page_count < 1:
                raise ExtractionError("Failed to process PDF: document has no pages")
            pages_to_process = min(page_count, self.max_pages)

            parts: list[str] = []
            for index in range(pages_to_process):
                logger.info(f"Processing page {index + 1} of {pages_to_process}")
                image_path = await pdf_render.render_page(pdf_path, index, work_dir, self.dpi)
                try:
                    page_text = await self.vision.detect_text(image_path.read_bytes())
                finally:
                    image_path.unlink(missing_ok=True)
                if page_text:
                    parts.append(f"\n--- Page {index + 1} ---\n{page_text}\n")
            return "".join(parts).strip()


async def process_uploaded_file(extractor: TextExtractor, source: str, mime_type: str) -> ProcessingResult:
    """
    Run extraction and fold every failure into a single error string.
    Empty output counts as a failure.
    """
    try:
        text = await extractor.extract(source, mime_type)
    except ExtractionError as e:
        logger.error(f"Extraction failed for {source}: {e}")
        return ProcessingResult(success=False, error=str(e))
    except Exception as e:
        logger.exception(f"Vision processing error for {source}")
        return ProcessingResult(success=False, error=f"Error during Vision AI processing: {e}")

    if not text or not text.strip():
        logger.warning(f"No text extracted from {source}")
        return ProcessingResult(success=False, error="No text could be extracted from the file")

    logger.info(f"Successfully extracted {len(text)} characters of text")
    return ProcessingResult(success=True, text=text)
