"""Profile tuning analysis schemas.

Result models produced by the analysis engine and the request schema of
the HTTP endpoint. Every hour-indexed list has exactly 24 entries with
index == hour of day.
"""

from datetime import date, datetime
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator

from profile_tuner.core.tuning.enums import (
    BasalMode,
    ChangeStrategy,
    ChangeType,
    ConflictSeverity,
    SlotGranularity,
)
from profile_tuner.schemas.profile import ProfileSlot


class HourlyAdjustment(BaseModel):
    """Suggested change for one hour or one profile slot."""

    model_config = ConfigDict(frozen=True)

    hour: int = Field(..., ge=0, le=23, description="Hour of day")
    time: str = Field(..., description="Slot or hour start (HH:MM)")
    current_value: float = Field(..., description="Value in the current profile")
    suggested_value: float = Field(..., description="Suggested new value")
    adjustment_pct: float = Field(..., description="Change relative to current (%)")
    confidence: float = Field(..., ge=0, le=1)
    sample_count: int = Field(default=0, ge=0, description="Events backing this finding")
    success_rate: float = Field(default=0.0, ge=0, le=1)
    avg_efficiency: float | None = Field(
        default=None, description="Mean observed/expected drop (ISF only)"
    )
    is_new_slot: bool = False
    is_profile_compliant: bool = False
    is_grouped_recommendation: bool = False
    affected_hours: list[int] = Field(default_factory=list)
    reduction_blocked: bool = Field(
        default=False, description="A contributing correction ended low or overlapped a suspension"
    )


class BasalHourlyAdjustment(HourlyAdjustment):
    """Basal suggestion for one hour of day.

    ``success_rate`` is the hour's time in range (70-180 mg/dL).
    """

    avg_glucose: float | None = Field(default=None, description="Mean glucose (mg/dL)")
    trend: float = Field(
        default=0.0, ge=-1, le=1, description="Net share of rising over falling steps"
    )
    stability: float = Field(default=0.0, ge=0, le=1)
    is_nighttime: bool = False
    has_insulin_activity: bool = Field(
        default=False, description="Readings may be contaminated by bolus insulin"
    )


class SlotRecommendations(BaseModel):
    """Findings classified against the existing profile slots."""

    modifications: list[HourlyAdjustment] = Field(default_factory=list)
    new_slots: list[HourlyAdjustment] = Field(default_factory=list)
    profile_compliant: list[HourlyAdjustment] = Field(default_factory=list)


class ProfileChange(BaseModel):
    """A schedule that differs between two consecutive days."""

    model_config = ConfigDict(frozen=True)

    day: date
    change_type: ChangeType
    prev: list[ProfileSlot]
    curr: list[ProfileSlot]


class ProfileChangeAnalysis(BaseModel):
    """Recent profile changes and how they were applied to the data."""

    has_changes: bool = False
    changes: list[ProfileChange] = Field(default_factory=list)
    strategy: ChangeStrategy = ChangeStrategy.warn_only
    segment_start: datetime | None = Field(
        default=None,
        description="Data before this moment was excluded (segment strategy only)",
    )


class Conflict(BaseModel):
    """Basal and ICR suggestions that pull in opposite directions."""

    hour: int = Field(..., ge=0, le=23)
    basal_change: float
    icr_change: float
    avg_glucose: float
    severity: ConflictSeverity
    recommendation: str


class ValidationResult(BaseModel):
    """Cross-validation of basal and ICR suggestions."""

    conflicts: list[Conflict] = Field(default_factory=list)
    overall_coherence: float = Field(default=1.0, ge=0, le=1)
    has_significant_conflicts: bool = False


class SuggestedSlot(BaseModel):
    """Old and new value of one schedule slot."""

    time: str
    old: float
    new: float
    pct: float
    old_units_per_exchange: float | None = Field(
        default=None, description="Insulin units per 10 g carbohydrate (ICR only)"
    )
    new_units_per_exchange: float | None = None


class SuggestedProfile(BaseModel):
    """Profile with all surfaced suggestions applied."""

    basal: list[SuggestedSlot] = Field(default_factory=list)
    icr: list[SuggestedSlot] = Field(default_factory=list)
    isf: list[SuggestedSlot] = Field(default_factory=list)


class AnalysisResult(BaseModel):
    """Aggregate output of one analysis run."""

    run_id: str | None = None
    entry_count: int = 0
    treatment_count: int = 0
    hourly_avg: list[float | None]
    basal_mode: BasalMode
    basal_change: list[BasalHourlyAdjustment]
    hourly_icr_adjustments: SlotRecommendations
    hourly_isf_adjustments: SlotRecommendations
    profile_change_analysis: ProfileChangeAnalysis
    validation: ValidationResult | None = None
    suggested_profile: SuggestedProfile
    basal_step: float


class AnalyzeRequest(BaseModel):
    """Request schema for running an analysis.

    Entries, treatments and profiles are accepted in their vendor shape
    and normalized by the engine. Unset tuning options fall back to the
    service configuration.
    """

    entries: list[dict[str, Any]] = Field(default_factory=list)
    treatments: list[dict[str, Any]] = Field(default_factory=list)
    profile: dict[str, Any] | list[dict[str, Any]] | None = None
    profile_history: list[dict[str, Any]] = Field(default_factory=list)
    basal_step: float | None = Field(
        default=None, gt=0, le=1, description="Basal rounding step in U/h (default 0.05)"
    )
    lookback_days: int | None = Field(
        default=None, ge=1, le=30, description="Profile change lookback (default 3)"
    )
    change_strategy: ChangeStrategy | None = None
    isf_granularity: SlotGranularity | None = None
    timezone: str | None = Field(
        default=None, description="IANA zone used to derive hour of day"
    )
    now: datetime | None = Field(
        default=None, description="Reference time for the lookback window"
    )

    @field_validator("timezone")
    @classmethod
    def check_timezone(cls, value: str | None) -> str | None:
        if value is None:
            return value
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown timezone: {value}") from exc
        return value
