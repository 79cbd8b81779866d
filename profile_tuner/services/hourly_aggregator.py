"""Hour-of-day glucose aggregation."""

from collections.abc import Iterable

from profile_tuner.core.tuning.constants import HOURS_PER_DAY
from profile_tuner.schemas.glucose import GlucoseEntry


def hourly_buckets(entries: Iterable[GlucoseEntry]) -> list[list[GlucoseEntry]]:
    """Group readings from all days by hour of day (24 buckets)."""
    buckets: list[list[GlucoseEntry]] = [[] for _ in range(HOURS_PER_DAY)]
    for entry in entries:
        buckets[entry.timestamp.hour].append(entry)
    return buckets


def hourly_average(entries: Iterable[GlucoseEntry]) -> list[float | None]:
    """Average glucose per hour of day.

    Returns:
        24 values indexed by hour; None for hours without readings.
    """
    averages: list[float | None] = []
    for bucket in hourly_buckets(entries):
        if bucket:
            averages.append(sum(entry.value for entry in bucket) / len(bucket))
        else:
            averages.append(None)
    return averages
