"""SQLite storage for committed scan records."""

from .records import RecordStore
from .schema import ensure_schema

__all__ = [
    "RecordStore",
    "ensure_schema",
]
