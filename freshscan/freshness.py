"""Freshness status and soonest-expiry ordering for committed records."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from enum import Enum

from .expiry.dates import parse_iso_date
from .models import ScanRecord


class FreshnessStatus(str, Enum):
    OK = "ok"
    EXPIRING = "expiring"
    EXPIRED = "expired"
    INVALID = "invalid"


@dataclass
class Freshness:
    status: FreshnessStatus
    days_left: int | None  # None when the date is invalid
    label: str


def freshness(record: ScanRecord, today: date | None = None, warn_days: int = 3) -> Freshness:
    """Classify a record relative to ``today``."""
    today = today or date.today()
    expiry = parse_iso_date(record.expiry_date)
    if expiry is None:
        return Freshness(FreshnessStatus.INVALID, None, "賞味期限が不正です")

    days_left = (expiry - today).days
    if days_left < 0:
        return Freshness(FreshnessStatus.EXPIRED, days_left, "期限切れ")
    if days_left <= warn_days:
        label = "今日まで" if days_left == 0 else f"あと {days_left} 日"
        return Freshness(FreshnessStatus.EXPIRING, days_left, label)
    return Freshness(FreshnessStatus.OK, days_left, "OK")


def sort_by_expiry(records: Iterable[ScanRecord]) -> list[ScanRecord]:
    """Soonest expiry first; invalid dates after all valid ones.

    The sort is stable, so invalid dates keep their relative order.
    """
    def key(record: ScanRecord) -> tuple[int, date]:
        expiry = parse_iso_date(record.expiry_date)
        if expiry is None:
            return (1, date.min)
        return (0, expiry)

    return sorted(records, key=key)
