"""Expiry extractor base class and factory."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from .dates import find_dates, normalize_date, parse_iso_date, parse_model_response

if TYPE_CHECKING:
    from ..config import FreshScanConfig

logger = logging.getLogger(__name__)

EXPIRY_PROMPT = """\
This image shows part of a product label.
Find ONLY the expiration / best-before date. Printed dates come in many
formats (dd/MM/yyyy, yyyy-MM-dd, MM/yyyy, 31 DEC 25, ...).

Answer with JSON only, no other text:
{"expiryDate": "YYYY-MM-DD"}

If no expiration date is visible, answer {"expiryDate": null}.
"""


class ExpiryExtractor(ABC):
    """Abstract base for reading a printed expiry date from an image.

    Subclasses implement ``_recognize``; ``extract`` fails closed, so any
    error raised while recognizing is logged and reported as "no date".
    """

    name = "base"

    async def extract(self, image: bytes) -> str | None:
        """Return the date as ``YYYY-MM-DD``, or None."""
        try:
            text = await self._recognize(image)
        except Exception:
            logger.exception("%s: 賞味期限の読み取りに失敗しました", self.name)
            return None

        if not text:
            return None
        normalized = normalize_date(text)
        if normalized is None:
            logger.info("%s: 日付として解釈できませんでした: %r", self.name, text)
        return normalized

    @abstractmethod
    async def _recognize(self, image: bytes) -> str | None:
        """Return raw date text found in a JPEG image, or None."""
        ...


def create_extractor(config: FreshScanConfig) -> ExpiryExtractor:
    """Create an expiry extractor based on configuration."""
    backend_name = config.extractor.backend

    match backend_name:
        case "gemini":
            from .gemini import GeminiExpiryExtractor

            return GeminiExpiryExtractor(
                api_key=config.extractor.gemini.api_key,
                model=config.extractor.gemini.model,
            )
        case "claude":
            from .claude import ClaudeExpiryExtractor

            return ClaudeExpiryExtractor(
                api_key=config.extractor.claude.api_key,
                model=config.extractor.claude.model,
            )
        case "ocr":
            from .ocr import OCRExpiryExtractor

            return OCRExpiryExtractor(
                tesseract_cmd=config.extractor.ocr.tesseract_cmd,
                lang=config.extractor.ocr.lang,
            )
        case _:
            raise ValueError(
                f"不明な抽出バックエンド: {backend_name!r}  "
                f"(gemini / claude / ocr から選択してください)"
            )


__all__ = [
    "EXPIRY_PROMPT",
    "ExpiryExtractor",
    "create_extractor",
    "find_dates",
    "normalize_date",
    "parse_iso_date",
    "parse_model_response",
]
