"""Pump profile schemas.

A profile is a set of time-of-day schedules. Each schedule is a list of
slots; a slot applies from its start time until the next slot's start
time, wrapping at midnight.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from profile_tuner.core.tuning.constants import DEFAULT_BASAL, DEFAULT_ICR, DEFAULT_ISF
from profile_tuner.core.tuning.timeslots import expand_to_24_hours, format_clock, parse_clock


class ProfileSlot(BaseModel):
    """One entry of a basal, carb ratio or sensitivity schedule."""

    model_config = ConfigDict(frozen=True)

    time: str = Field(..., description="Slot start time (HH:MM)")
    value: float = Field(..., ge=0, description="U/h, g/U or mg/dL per U")

    @field_validator("time")
    @classmethod
    def normalize_time(cls, value: str) -> str:
        minute = parse_clock(value)
        if minute is None:
            raise ValueError(f"invalid slot time: {value!r}")
        return format_clock(minute)

    @property
    def minute_of_day(self) -> int:
        hours, minutes = self.time.split(":")
        return int(hours) * 60 + int(minutes)

    @property
    def hour(self) -> int:
        return self.minute_of_day // 60


class TargetRange(BaseModel):
    """Glucose target band starting at a time of day."""

    model_config = ConfigDict(frozen=True)

    time: str = Field(default="00:00", description="Start time (HH:MM)")
    low: float = Field(..., description="Lower target in mg/dL")
    high: float = Field(..., description="Upper target in mg/dL")

    @field_validator("time")
    @classmethod
    def normalize_time(cls, value: str) -> str:
        minute = parse_clock(value)
        if minute is None:
            raise ValueError(f"invalid target time: {value!r}")
        return format_clock(minute)


class Profile(BaseModel):
    """A normalized profile snapshot.

    Slots are always sorted by start time. ``effective_from`` is the
    moment the snapshot became active; it is None for a bare profile
    that did not come from a history document.
    """

    model_config = ConfigDict(frozen=True)

    effective_from: datetime | None = None
    name: str | None = None
    basal: list[ProfileSlot] = Field(default_factory=list)
    carb_ratio: list[ProfileSlot] = Field(default_factory=list)
    sensitivity: list[ProfileSlot] = Field(default_factory=list)
    target: list[TargetRange] = Field(default_factory=list)
    dia: float | None = Field(default=None, description="Duration of insulin action (h)")
    timezone: str | None = None

    @field_validator("basal", "carb_ratio", "sensitivity")
    @classmethod
    def sort_slots(cls, slots: list[ProfileSlot]) -> list[ProfileSlot]:
        return sorted(slots, key=lambda slot: slot.minute_of_day)

    def hourly_basal(self) -> list[float]:
        return expand_to_24_hours(self.basal, DEFAULT_BASAL)

    def hourly_icr(self) -> list[float]:
        return expand_to_24_hours(self.positive_slots(self.carb_ratio), DEFAULT_ICR)

    def hourly_isf(self) -> list[float]:
        return expand_to_24_hours(self.positive_slots(self.sensitivity), DEFAULT_ISF)

    @staticmethod
    def positive_slots(slots: list[ProfileSlot]) -> list[ProfileSlot]:
        """Slots usable as divisors (a zero ratio or sensitivity is invalid)."""
        return [slot for slot in slots if slot.value > 0]
