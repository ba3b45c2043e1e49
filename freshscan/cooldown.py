"""Per-barcode trigger suppression."""

from __future__ import annotations

from collections import OrderedDict


class CooldownCache:
    """Remembers when each barcode last started a scan.

    ``should_trigger`` is a check-and-set: it only records ``now`` when it
    returns True. With ``max_entries`` > 0 the least recently triggered
    barcode is evicted once the cap is exceeded; an evicted barcode
    triggers again, which is indistinguishable from a stale entry as long
    as the cap is larger than the number of barcodes seen per window.
    """

    def __init__(self, window_ms: float = 5000, max_entries: int = 0) -> None:
        self._window_ms = window_ms
        self._max_entries = max_entries
        self._entries: OrderedDict[str, float] = OrderedDict()

    @property
    def window_ms(self) -> float:
        return self._window_ms

    def is_cooling(self, barcode: str, now: float) -> bool:
        """Read-only check: True while ``barcode`` is inside its window."""
        last = self._entries.get(barcode)
        return last is not None and now - last < self._window_ms

    def should_trigger(self, barcode: str, now: float) -> bool:
        if self.is_cooling(barcode, now):
            return False

        self._entries[barcode] = now
        self._entries.move_to_end(barcode)
        if self._max_entries and len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)
        return True

    def last_triggered(self, barcode: str) -> float | None:
        return self._entries.get(barcode)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, barcode: object) -> bool:
        return barcode in self._entries
