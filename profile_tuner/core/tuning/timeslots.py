"""Clock and profile-slot helpers.

Profile slots are expressed as wall-clock start times ("HH:MM"). A slot's
value applies from its start until the next slot's start; the last slot
of the day wraps past midnight to the first start.
"""

import re
from collections.abc import Sequence
from datetime import datetime
from typing import Protocol
from zoneinfo import ZoneInfo

MINUTES_PER_DAY = 24 * 60

_CLOCK_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})(?::(\d{2}))?\s*$")


class TimedValue(Protocol):
    """Anything that has a start minute and a value (e.g. ProfileSlot)."""

    @property
    def minute_of_day(self) -> int: ...

    @property
    def value(self) -> float: ...


def parse_clock(value: str) -> int | None:
    """Parse "H:MM", "HH:MM" or "HH:MM:SS" into minutes since midnight.

    Returns:
        Minute of day, or None when the string is not a valid clock time.
    """
    match = _CLOCK_RE.match(value)
    if not match:
        return None
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        return None
    return hours * 60 + minutes


def format_clock(minute_of_day: int) -> str:
    minute_of_day %= MINUTES_PER_DAY
    return f"{minute_of_day // 60:02d}:{minute_of_day % 60:02d}"


def to_wall_clock(value: datetime, tz: str | None = None) -> datetime:
    """Normalize a timestamp to a naive wall-clock datetime.

    Aware timestamps are converted to ``tz`` first when one is given, so
    that hour-of-day reflects the patient's day. Naive timestamps are
    already wall clock and are returned unchanged.
    """
    if value.tzinfo is None:
        return value
    if tz:
        value = value.astimezone(ZoneInfo(tz))
    return value.replace(tzinfo=None)


def owning_index(starts: Sequence[int], position: int) -> int | None:
    """Index of the slot that owns ``position``.

    ``starts`` must be sorted ascending. The owner is the slot with the
    largest start <= position; positions before the first start belong to
    the last slot (wrap-around from the previous day).

    Returns:
        Slot index, or None when there are no slots.
    """
    if not starts:
        return None
    owner = len(starts) - 1
    for index, start in enumerate(starts):
        if start <= position:
            owner = index
        else:
            break
    return owner


def slot_for_hour(slots: Sequence[TimedValue], hour: int) -> int | None:
    """Owning slot index using hour-floored slot starts (06:30 acts as 06)."""
    return owning_index([slot.minute_of_day // 60 for slot in slots], hour)


def slot_for_minute(slots: Sequence[TimedValue], minute_of_day: int) -> int | None:
    """Owning slot index at minute precision."""
    return owning_index([slot.minute_of_day for slot in slots], minute_of_day)


def expand_to_24_hours(slots: Sequence[TimedValue], default: float) -> list[float]:
    """Expand sparse profile slots into one value per hour of day.

    Each hour gets the value of the last slot whose start hour is <= that
    hour. Hours before the first slot inherit the last slot of the
    previous day.

    Args:
        slots: Slots sorted by start time.
        default: Value used for every hour when there are no slots.

    Returns:
        List of 24 values indexed by hour of day.
    """
    if not slots:
        return [default] * 24
    expanded = []
    for hour in range(24):
        index = slot_for_hour(slots, hour)
        expanded.append(float(slots[index].value))
    return expanded
