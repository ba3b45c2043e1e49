"""Local Tesseract OCR backend for expiry date extraction."""

from __future__ import annotations

import asyncio
import logging

from . import ExpiryExtractor
from .dates import find_dates

logger = logging.getLogger(__name__)


class OCRExpiryExtractor(ExpiryExtractor):
    """Read expiry dates offline with Tesseract.

    Labels often carry both a production and an expiry date; the latest
    date found in the text is taken as the expiry date.
    """

    name = "ocr"

    def __init__(self, tesseract_cmd: str = "", lang: str = "eng") -> None:
        self._tesseract_cmd = tesseract_cmd
        self._lang = lang

    async def _recognize(self, image: bytes) -> str | None:
        text = await asyncio.to_thread(self._ocr, image)
        dates = find_dates(text)
        if not dates:
            return None
        return max(dates).isoformat()

    def _ocr(self, image: bytes) -> str:
        try:
            import pytesseract
        except ImportError:
            raise ImportError("pytesseract is required: pip install pytesseract") from None

        try:
            import cv2
            import numpy as np
            from PIL import Image
        except ImportError:
            raise ImportError(
                "opencv-python, numpy and Pillow are required for the OCR backend"
            ) from None

        if self._tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = self._tesseract_cmd

        frame = cv2.imdecode(np.frombuffer(image, dtype=np.uint8), cv2.IMREAD_COLOR)
        if frame is None:
            raise ValueError("画像をデコードできませんでした")

        gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
        _, binary = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)

        text = pytesseract.image_to_string(Image.fromarray(binary), lang=self._lang)
        logger.debug("OCR結果: %r", text)
        return text
