"""Tests for RecordStore append / delete / iteration."""

import sqlite3

import pytest

from freshscan.db.records import RecordStore
from freshscan.models import ScanRecord


@pytest.fixture
def store(tmp_path):
    """Create a temporary RecordStore."""
    records = RecordStore(db_path=tmp_path / "test.db")
    yield records
    records.close()


def _record(record_id: str, name: str = "Organic Milk", expiry: str = "2025-12-31") -> ScanRecord:
    return ScanRecord(
        id=record_id,
        name=name,
        expiry_date=expiry,
        scan_timestamp="2025-01-10T09:00:00+00:00",
        brand="Happy Cow",
        barcode="7501234567890",
    )


def test_append_and_get(store):
    record = _record("r1")
    store.append(record)
    assert store.get("r1") == record
    assert len(store) == 1


def test_list_newest_first(store):
    store.append(_record("r1", "Milk"))
    store.append(_record("r2", "Cheese"))
    store.append(_record("r3", "Bread"))

    assert [r.id for r in store.list_records()] == ["r3", "r2", "r1"]
    assert [r.id for r in store] == ["r3", "r2", "r1"]


def test_round_trip_optional_fields(store):
    record = ScanRecord(
        id="r1",
        name="Organic Milk",
        expiry_date="2025-12-31",
        scan_timestamp="2025-01-10T09:00:00+00:00",
        image_url="https://images.example/milk.jpg",
        quantity="1 L",
        categories="Dairies",
        nutri_score="b",
        eco_score="c",
        ingredients="milk",
        country="Mexico",
        url="https://world.openfoodfacts.org/product/7501234567890",
        expiry_source="manual",
    )
    store.append(record)
    assert store.get("r1") == record


def test_append_without_expiry_rejected(store):
    with pytest.raises(ValueError, match="賞味期限"):
        store.append(_record("r1", expiry=""))
    assert len(store) == 0


def test_duplicate_id_rejected(store):
    store.append(_record("r1"))
    with pytest.raises(sqlite3.IntegrityError):
        store.append(_record("r1", "Other"))
    assert len(store) == 1


def test_delete(store):
    store.append(_record("r1"))
    store.append(_record("r2"))

    assert store.delete("r1") is True
    assert [r.id for r in store] == ["r2"]


def test_delete_missing_is_noop(store):
    """Deleting a nonexistent id leaves the store unchanged."""
    store.append(_record("r1"))
    before = store.list_records()

    assert store.delete("does-not-exist") is False
    assert store.delete("does-not-exist") is False
    assert store.list_records() == before


def test_invalid_date_text_is_stored_as_is(store):
    store.append(_record("r1", expiry="not-a-date"))
    assert store.get("r1").expiry_date == "not-a-date"


def test_persists_across_connections(tmp_path):
    db_path = tmp_path / "test.db"
    first = RecordStore(db_path)
    first.append(_record("r1"))
    first.close()

    second = RecordStore(db_path)
    try:
        assert [r.id for r in second] == ["r1"]
    finally:
        second.close()
