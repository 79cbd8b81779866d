"""Glucose entry and treatment schemas.

CGM uploaders and pump bridges use different field names for the same
data (``sgv`` vs ``value``, ``eventType`` vs ``type``, epoch milliseconds
vs ISO strings). The aliases below are the only place that variance is
visible; everything downstream works on the canonical snake_case fields.

Timestamps are normalized to naive wall-clock time. Pass
``context={"tz": "Europe/Berlin"}`` to ``model_validate`` to convert
timezone-aware input to that zone before the tzinfo is dropped.
"""

import re
from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from profile_tuner.core.tuning.enums import TreatmentType
from profile_tuner.core.tuning.timeslots import to_wall_clock

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_SEPARATORS = re.compile(r"[\s\-]+")


def _context_tz(info: ValidationInfo) -> str | None:
    if isinstance(info.context, dict):
        return info.context.get("tz")
    return None


def normalize_event_type(value: Any) -> TreatmentType:
    """Map a vendor event type ("Correction Bolus", "tempBasal") to TreatmentType."""
    if isinstance(value, TreatmentType):
        return value
    if not isinstance(value, str) or not value.strip():
        return TreatmentType.other
    name = _CAMEL_BOUNDARY.sub("_", value.strip())
    name = _SEPARATORS.sub("_", name).lower()
    try:
        return TreatmentType(name)
    except ValueError:
        return TreatmentType.other


class GlucoseEntry(BaseModel):
    """A single CGM reading."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(
        ...,
        validation_alias=AliasChoices("timestamp", "date", "dateString", "sysTime"),
        description="Reading time (naive wall clock)",
    )
    value: float = Field(
        ...,
        gt=0,
        validation_alias=AliasChoices("value", "sgv", "glucose"),
        description="Glucose value in mg/dL",
    )

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, value: datetime, info: ValidationInfo) -> datetime:
        return to_wall_clock(value, _context_tz(info))

    @property
    def hour(self) -> int:
        return self.timestamp.hour


class Treatment(BaseModel):
    """An insulin, carbohydrate or temp basal event."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(
        ...,
        validation_alias=AliasChoices("timestamp", "created_at", "date", "mills"),
        description="Event time (naive wall clock)",
    )
    type: TreatmentType = Field(
        default=TreatmentType.other,
        validation_alias=AliasChoices("type", "eventType"),
    )
    insulin_units: float | None = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("insulin_units", "insulin"),
        description="Bolus insulin in units",
    )
    carbs_grams: float | None = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("carbs_grams", "carbs"),
        description="Carbohydrates in grams",
    )
    duration_minutes: float | None = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("duration_minutes", "duration"),
        description="Temp basal duration in minutes",
    )
    rate_per_hour: float | None = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("rate_per_hour", "absolute", "rate"),
        description="Absolute temp basal rate in U/h",
    )

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, value: Any) -> TreatmentType:
        return normalize_event_type(value)

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, value: datetime, info: ValidationInfo) -> datetime:
        return to_wall_clock(value, _context_tz(info))

    @property
    def insulin(self) -> float:
        return self.insulin_units or 0.0

    @property
    def carbs(self) -> float:
        return self.carbs_grams or 0.0
