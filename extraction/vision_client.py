from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

from google.cloud import vision

from settings.config import settings
from extraction.errors import ExtractionError

logger = logging.getLogger(__name__)


class VisionClient:
    """
    Thin async wrapper over the Google Cloud Vision ImageAnnotatorClient.

    Built once by the composition root (worker startup) and handed to the
    text extractor. Construction fails fast when credentials are missing.
    """

    def __init__(self, credentials_path: Optional[str] = None, client: Optional[vision.ImageAnnotatorClient] = None):
        if client is None:
            client = self._build_client(credentials_path or settings.GOOGLE_APPLICATION_CREDENTIALS)
        self._client = client

    @staticmethod
    def _build_client(credentials_path: Optional[str]) -> vision.ImageAnnotatorClient:
        if not credentials_path:
            raise RuntimeError("GOOGLE_APPLICATION_CREDENTIALS environment variable not set")
        full_path = Path(credentials_path)
        if not full_path.is_absolute():
            full_path = Path.cwd() / full_path
        if not full_path.is_file():
            raise RuntimeError(f"Credentials file not found at {full_path}")
        logger.info(f"Initializing Vision client with credentials at: {full_path}")
        return vision.ImageAnnotatorClient.from_service_account_file(str(full_path))

    async def detect_text(self, content: bytes) -> str:
        """Full-page text of an image, or an empty string when nothing was detected."""
        return await asyncio.to_thread(self._detect_text_sync, content)

    def _detect_text_sync(self, content: bytes) -> str:
        logger.info(f"Calling Vision text detection on {len(content)} bytes")
        response = self._client.text_detection(image=vision.Image(content=content))
        if response.error.message:
            raise ExtractionError(f"Vision API error: {response.error.message}")
        annotations = response.text_annotations
        if not annotations:
            logger.info("No text detected in the image")
            return ""
        # The first annotation holds the entire detected text
        text = annotations[0].description or ""
        logger.info(f"Extracted {len(text)} characters of text")
        return text
