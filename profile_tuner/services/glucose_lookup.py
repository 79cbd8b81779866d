"""Time-indexed glucose lookups shared by the analyzers."""

from bisect import bisect_left, bisect_right
from collections.abc import Sequence
from datetime import datetime, timedelta

from profile_tuner.schemas.glucose import GlucoseEntry


class GlucoseSeries:
    """Sorted CGM readings with window and nearest-reading queries."""

    def __init__(self, entries: Sequence[GlucoseEntry]):
        self._entries = sorted(entries, key=lambda entry: entry.timestamp)
        self._times = [entry.timestamp for entry in self._entries]

    def __len__(self) -> int:
        return len(self._entries)

    def window(self, start: datetime, end: datetime) -> list[GlucoseEntry]:
        """Readings with start <= timestamp <= end."""
        lo = bisect_left(self._times, start)
        hi = bisect_right(self._times, end)
        return self._entries[lo:hi]

    def nearest_in_window(
        self, start: datetime, end: datetime, anchor: datetime
    ) -> GlucoseEntry | None:
        """Reading within [start, end] closest to ``anchor`` (earliest on ties)."""
        best: GlucoseEntry | None = None
        best_distance: timedelta | None = None
        for entry in self.window(start, end):
            distance = abs(entry.timestamp - anchor)
            if best_distance is None or distance < best_distance:
                best, best_distance = entry, distance
        return best

    def nearest(self, target: datetime, max_distance: timedelta) -> GlucoseEntry | None:
        """Reading closest to ``target`` that is at most ``max_distance`` away."""
        return self.nearest_in_window(target - max_distance, target + max_distance, target)

    def max_in_window(self, start: datetime, end: datetime) -> float | None:
        values = [entry.value for entry in self.window(start, end)]
        return max(values) if values else None
