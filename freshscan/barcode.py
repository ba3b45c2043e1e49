"""Barcode detector base class and the pyzbar implementation."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any

RETAIL_FORMATS: tuple[str, ...] = ("EAN13", "EAN8", "UPCA", "UPCE")


class BarcodeDetector(ABC):
    """Abstract base for decoding symbol values from a frame."""

    @abstractmethod
    async def detect(self, frame: Any) -> list[str]:
        """Return decoded values in detection order (possibly empty)."""
        ...


class PyzbarBarcodeDetector(BarcodeDetector):
    """Decode retail barcodes (EAN/UPC) with zbar."""

    def __init__(self, formats: list[str] | tuple[str, ...] = RETAIL_FORMATS) -> None:
        unknown = [f for f in formats if f not in RETAIL_FORMATS]
        if unknown:
            raise ValueError(
                f"不明なバーコード形式: {unknown!r}  "
                f"({' / '.join(RETAIL_FORMATS)} から選択してください)"
            )
        self._formats = tuple(formats)

    async def detect(self, frame: Any) -> list[str]:
        return await asyncio.to_thread(self.decode, frame)

    def decode(self, frame: Any) -> list[str]:
        try:
            from pyzbar.pyzbar import ZBarSymbol, decode
        except ImportError:
            raise ImportError("pyzbar is required: pip install pyzbar") from None

        symbols = [ZBarSymbol[name] for name in self._formats]
        values: list[str] = []
        for result in decode(frame, symbols=symbols):
            data = (result.data or b"").decode("utf-8", errors="ignore").strip()
            if data and data not in values:
                values.append(data)
        return values
