"""Committed scan records: append, delete and read back."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from dataclasses import fields
from pathlib import Path

from ..models import ScanRecord
from .schema import ensure_schema

_COLUMNS = [f.name for f in fields(ScanRecord)]


class RecordStore:
    """Manages the scan_records table.

    Records are never updated in place; iteration yields the newest
    record first.
    """

    def __init__(self, db_path: str | Path = "~/.config/freshscan/records.db") -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = ensure_schema(self._db_path)
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def append(self, record: ScanRecord) -> None:
        """Insert a committed record in a single transaction.

        Raises:
            ValueError: If the record has no expiry date.
            sqlite3.IntegrityError: If the id already exists.
        """
        if not record.expiry_date:
            raise ValueError(f"賞味期限のないレコードは登録できません: {record.id}")

        conn = self._get_conn()
        placeholders = ", ".join("?" for _ in _COLUMNS)
        with conn:
            conn.execute(
                f"INSERT INTO scan_records ({', '.join(_COLUMNS)}) "
                f"VALUES ({placeholders})",
                tuple(getattr(record, c) for c in _COLUMNS),
            )

    def delete(self, record_id: str) -> bool:
        """Delete a record by ID. Returns False if it did not exist."""
        conn = self._get_conn()
        with conn:
            cur = conn.execute("DELETE FROM scan_records WHERE id = ?", (record_id,))
        return cur.rowcount > 0

    def get(self, record_id: str) -> ScanRecord | None:
        conn = self._get_conn()
        row = conn.execute(
            "SELECT * FROM scan_records WHERE id = ?", (record_id,)
        ).fetchone()
        return _to_record(row) if row else None

    def list_records(self) -> list[ScanRecord]:
        conn = self._get_conn()
        rows = conn.execute("SELECT * FROM scan_records ORDER BY seq DESC").fetchall()
        return [_to_record(r) for r in rows]

    def __iter__(self) -> Iterator[ScanRecord]:
        return iter(self.list_records())

    def __len__(self) -> int:
        conn = self._get_conn()
        return conn.execute("SELECT COUNT(*) FROM scan_records").fetchone()[0]


def _to_record(row: sqlite3.Row) -> ScanRecord:
    return ScanRecord(**{c: row[c] for c in _COLUMNS})
