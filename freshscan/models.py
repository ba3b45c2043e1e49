"""Data models for scanned products and the in-flight scan."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


def placeholder_name(barcode: str) -> str:
    return f"Product [{barcode}]"


@dataclass
class ProductCandidate:
    """Product metadata resolved for a barcode, awaiting an expiry date."""

    name: str
    barcode: str
    found: bool = True  # False -> placeholder name, lookup missed
    image_url: str | None = None
    brand: str | None = None
    quantity: str | None = None
    categories: str | None = None
    nutri_score: str | None = None
    eco_score: str | None = None
    ingredients: str | None = None
    country: str | None = None
    url: str | None = None
    suggested_expiry: str | None = None  # first guess from the trigger frame
    raw: dict[str, Any] | None = None


@dataclass
class PendingScan:
    """Transient state for the single physical scan being processed."""

    barcode: str
    snapshot: bytes  # JPEG frozen at detection time
    candidate: ProductCandidate | None = None
    expiry_attempts: int = 0
    suggested_expiry: str | None = None


@dataclass(frozen=True)
class ScanRecord:
    """A committed product with its expiry date.

    ``expiry_date`` is ``YYYY-MM-DD`` text; it is not re-validated after
    commit, so consumers must tolerate malformed values.
    """

    id: str
    name: str
    expiry_date: str
    scan_timestamp: str  # ISO8601
    image_url: str | None = None
    brand: str | None = None
    quantity: str | None = None
    categories: str | None = None
    nutri_score: str | None = None
    eco_score: str | None = None
    ingredients: str | None = None
    country: str | None = None
    barcode: str | None = None
    url: str | None = None
    expiry_source: str = "extractor"  # extractor | manual

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
