"""Tests for the barcode cooldown cache."""

import pytest

from freshscan.cooldown import CooldownCache


def test_first_detection_triggers():
    cache = CooldownCache(window_ms=5000)
    assert cache.should_trigger("7501234567890", 0) is True
    assert cache.last_triggered("7501234567890") == 0


def test_repeat_within_window_suppressed():
    cache = CooldownCache(window_ms=5000)
    assert cache.should_trigger("7501234567890", 0) is True
    assert cache.should_trigger("7501234567890", 1) is False
    assert cache.should_trigger("7501234567890", 4999) is False


def test_triggers_again_at_window_boundary():
    cache = CooldownCache(window_ms=5000)
    cache.should_trigger("7501234567890", 0)
    assert cache.should_trigger("7501234567890", 5000) is True
    assert cache.last_triggered("7501234567890") == 5000


def test_suppressed_detection_does_not_extend_window():
    """Only triggering updates the timestamp."""
    cache = CooldownCache(window_ms=5000)
    cache.should_trigger("A", 0)
    cache.should_trigger("A", 4000)
    assert cache.last_triggered("A") == 0
    assert cache.should_trigger("A", 5000) is True


def test_barcodes_are_independent():
    cache = CooldownCache(window_ms=5000)
    assert cache.should_trigger("A", 0) is True
    assert cache.should_trigger("B", 10) is True
    assert cache.should_trigger("A", 20) is False


def test_is_cooling_is_read_only():
    cache = CooldownCache(window_ms=100)
    assert cache.is_cooling("A", 0) is False
    assert "A" not in cache
    cache.should_trigger("A", 0)
    assert cache.is_cooling("A", 50) is True
    assert cache.is_cooling("A", 100) is False


@pytest.mark.parametrize("t2,expected", [(1, False), (2500, False), (4999, False),
                                         (5000, True), (60000, True)])
def test_window_property(t2, expected):
    cache = CooldownCache(window_ms=5000)
    cache.should_trigger("X", 0)
    assert cache.should_trigger("X", t2) is expected


def test_unbounded_by_default():
    cache = CooldownCache(window_ms=5000)
    for i in range(1000):
        cache.should_trigger(str(i), 0)
    assert len(cache) == 1000


def test_lru_cap_evicts_oldest():
    cache = CooldownCache(window_ms=5000, max_entries=2)
    cache.should_trigger("A", 0)
    cache.should_trigger("B", 1)
    cache.should_trigger("C", 2)

    assert len(cache) == 2
    assert "A" not in cache
    assert "B" in cache and "C" in cache
