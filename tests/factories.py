"""Builders for glucose, treatment and profile test data."""

from datetime import datetime, timedelta

from profile_tuner.core.tuning.enums import TreatmentType
from profile_tuner.schemas.glucose import GlucoseEntry, Treatment
from profile_tuner.schemas.profile import Profile, ProfileSlot

# A Monday well away from any DST transition
BASE_DAY = datetime(2024, 3, 4)


def at(day: int, hour: int, minute: int = 0) -> datetime:
    """Wall-clock time on BASE_DAY + day."""
    return BASE_DAY + timedelta(days=day, hours=hour, minutes=minute)


def entry(timestamp: datetime, value: float) -> GlucoseEntry:
    return GlucoseEntry(timestamp=timestamp, value=value)


def correction(timestamp: datetime, insulin: float) -> Treatment:
    return Treatment(
        timestamp=timestamp,
        type=TreatmentType.correction_bolus,
        insulin_units=insulin,
    )


def meal(timestamp: datetime, carbs: float, insulin: float | None = None) -> Treatment:
    return Treatment(
        timestamp=timestamp,
        type=TreatmentType.meal_bolus,
        insulin_units=insulin,
        carbs_grams=carbs,
    )


def temp_basal(timestamp: datetime, rate: float, duration: float = 30) -> Treatment:
    return Treatment(
        timestamp=timestamp,
        type=TreatmentType.temp_basal,
        rate_per_hour=rate,
        duration_minutes=duration,
    )


def slots(*pairs: tuple[str, float]) -> list[ProfileSlot]:
    return [ProfileSlot(time=time, value=value) for time, value in pairs]


def make_profile(
    basal: list[tuple[str, float]] | None = None,
    icr: list[tuple[str, float]] | None = None,
    isf: list[tuple[str, float]] | None = None,
    effective_from: datetime | None = None,
) -> Profile:
    return Profile(
        effective_from=effective_from,
        basal=slots(*(basal or [("00:00", 1.0)])),
        carb_ratio=slots(*(icr or [("00:00", 10.0)])),
        sensitivity=slots(*(isf or [("00:00", 50.0)])),
    )
