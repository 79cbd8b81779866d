"""Basal rate adjustment analysis.

Derives a per-hour basal change (in percent) from how far each hour's
glucose sits from the basal target. Two algorithms, selected by how much
data is available:

- simple: deviation of the hourly average only
- detailed: readings free of recent bolus insulin, weighted by trend,
  stability, sample size and day/night conservatism

Hours without enough usable readings are never extrapolated: they get a
0% change with zero confidence.
"""

from bisect import bisect_right
from collections.abc import Sequence
from datetime import timedelta
from statistics import pstdev

from profile_tuner.core.tuning.constants import (
    ACTIVE_INSULIN_MIN_UNITS,
    CLEAN_SHARE_FOR_NO_ACTIVITY,
    DAY_STABILITY_PENALTY,
    DEFAULT_BASAL,
    DEFAULT_BASAL_STEP,
    DEFAULT_BASAL_TARGET_MGDL,
    DETAILED_BASAL_MIN_ENTRIES,
    FALLBACK_INSULIN_WINDOW_HOURS,
    FALLBACK_MIN_TOTAL_READINGS,
    FULL_CONFIDENCE_READINGS,
    HIGH_GLUCOSE_MGDL,
    HOURS_PER_DAY,
    INSULIN_ACTIVITY_PENALTY,
    LOW_GLUCOSE_MGDL,
    LOW_STABILITY,
    MIN_HOUR_READINGS,
    NIGHT_CONSERVATISM,
    NIGHT_STABILITY_PENALTY,
    NIGHT_WINDOW_FACTOR,
    SEVERE_NIGHT_CONSERVATISM,
    SEVERE_NIGHT_HIGH_DELTA,
    SIMPLE_DEADBAND_MGDL,
    SIMPLE_MAX_PCT,
    STABILITY_ZERO_SD,
    TREND_STEP_MGDL,
)
from profile_tuner.core.tuning.enums import BasalMode
from profile_tuner.core.tuning.rounding import round_int, round_to_step
from profile_tuner.core.tuning.timeslots import format_clock
from profile_tuner.logging_config import StructuredLogger, get_logger
from profile_tuner.schemas.analysis import BasalHourlyAdjustment
from profile_tuner.schemas.glucose import GlucoseEntry, Treatment
from profile_tuner.schemas.profile import Profile
from profile_tuner.services.hourly_aggregator import hourly_buckets

logger = get_logger(__name__)

# Longest exclusion window; doses older than this never contaminate a reading
MAX_EXCLUSION_HOURS = 3.5


def _is_exclusion_night(hour: int) -> bool:
    """Hours where the bolus exclusion window is shortened (22:00-06:00)."""
    return hour >= 22 or hour <= 6


def _is_conservative_night(hour: int) -> bool:
    """Hours where night conservatism applies (23:00-06:00)."""
    return hour >= 23 or hour <= 6


def exclusion_window_hours(dose_units: float, hour: int) -> float:
    """Hours after a bolus during which readings are considered contaminated.

    Args:
        dose_units: Bolus size in units.
        hour: Hour of day of the reading being checked.

    Returns:
        Window length in hours (2.5 / 3 / 3.5 by dose, x0.75 at night).
    """
    if dose_units < 2:
        window = 2.5
    elif dose_units < 4:
        window = 3.0
    else:
        window = MAX_EXCLUSION_HOURS
    if _is_exclusion_night(hour):
        window *= NIGHT_WINDOW_FACTOR
    return window


class _DoseIndex:
    """Boluses large enough to affect basal-only readings."""

    def __init__(self, treatments: Sequence[Treatment]):
        doses = sorted(
            (t for t in treatments if t.insulin >= ACTIVE_INSULIN_MIN_UNITS),
            key=lambda t: t.timestamp,
        )
        self._doses = doses
        self._times = [dose.timestamp for dose in doses]

    def _recent(self, entry: GlucoseEntry, hours: float) -> list[Treatment]:
        end = bisect_right(self._times, entry.timestamp)
        start = bisect_right(self._times, entry.timestamp - timedelta(hours=hours))
        return self._doses[start:end]

    def is_contaminated(self, entry: GlucoseEntry) -> bool:
        """True if the reading falls inside any dose's scaled exclusion window."""
        for dose in self._recent(entry, MAX_EXCLUSION_HOURS):
            window = timedelta(hours=exclusion_window_hours(dose.insulin, entry.hour))
            if entry.timestamp - dose.timestamp < window:
                return True
        return False

    def has_dose_within(self, entry: GlucoseEntry, hours: float) -> bool:
        return bool(self._recent(entry, hours))


def _trend(readings: Sequence[GlucoseEntry]) -> float:
    """(rising - falling) / moving steps between consecutive same-day readings.

    Ranges from -1 (always falling) to 1 (always rising); 0 when flat or
    when there are too few readings to tell.
    """
    if len(readings) < MIN_HOUR_READINGS:
        return 0.0
    rising = falling = 0
    for prev, curr in zip(readings, readings[1:]):
        if prev.timestamp.date() != curr.timestamp.date():
            continue
        step = curr.value - prev.value
        if step > TREND_STEP_MGDL:
            rising += 1
        elif step < -TREND_STEP_MGDL:
            falling += 1
    moving = rising + falling
    return (rising - falling) / moving if moving else 0.0


def _stability(values: Sequence[float]) -> float:
    if len(values) < 2:
        return 1.0 if values else 0.0
    return max(0.0, 1 - pstdev(values) / STABILITY_ZERO_SD)


def _time_in_range(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    in_range = sum(1 for value in values if LOW_GLUCOSE_MGDL <= value <= HIGH_GLUCOSE_MGDL)
    return in_range / len(values)


def simple_adjustment_pct(delta: float) -> int:
    """Deviation-only basal change, capped at +/-30%."""
    if delta > SIMPLE_DEADBAND_MGDL:
        return min(round_int(delta / 15) * 5, SIMPLE_MAX_PCT)
    if delta < -SIMPLE_DEADBAND_MGDL:
        return max(round_int(delta / 15) * 5, -SIMPLE_MAX_PCT)
    return 0


def tiered_adjustment_pct(delta: float) -> int:
    """Base basal change by deviation tier (detailed mode)."""
    if delta > 50:
        return min(30, round_int(delta * 0.5))
    if delta > 30:
        return min(25, round_int(delta * 0.4))
    if delta > 15:
        return min(20, round_int(delta * 0.6))
    if delta < -30:
        return max(-25, round_int(delta * 0.4))
    if delta < -15:
        return max(-15, round_int(delta * 0.5))
    return 0


def scale_detailed_pct(
    base_pct: float,
    delta: float,
    hour: int,
    stability: float,
    confidence: float,
    insulin_affected: bool,
) -> int:
    """Apply stability, confidence, night and insulin-activity factors."""
    night = _is_conservative_night(hour)
    pct = float(base_pct)
    if stability < LOW_STABILITY:
        pct *= NIGHT_STABILITY_PENALTY if night else DAY_STABILITY_PENALTY
    pct *= confidence
    if night:
        pct *= SEVERE_NIGHT_CONSERVATISM if delta > SEVERE_NIGHT_HIGH_DELTA else NIGHT_CONSERVATISM
    if insulin_affected:
        pct *= INSULIN_ACTIVITY_PENALTY
    return round_int(pct)


def _build(
    hour: int,
    current: float,
    pct: float,
    confidence: float,
    basal_step: float,
    readings: Sequence[GlucoseEntry],
    all_values: Sequence[float],
    insulin_affected: bool,
) -> BasalHourlyAdjustment:
    values = [entry.value for entry in readings]
    return BasalHourlyAdjustment(
        hour=hour,
        time=format_clock(hour * 60),
        current_value=current,
        suggested_value=round_to_step(current * (1 + pct / 100), basal_step),
        adjustment_pct=pct,
        confidence=confidence,
        sample_count=len(readings),
        success_rate=_time_in_range(all_values),
        avg_glucose=sum(values) / len(values) if values else None,
        trend=_trend(readings),
        stability=_stability(values),
        is_nighttime=_is_conservative_night(hour),
        has_insulin_activity=insulin_affected,
        affected_hours=[hour],
    )


def _simple(
    hourly_avg: Sequence[float | None],
    buckets: list[list[GlucoseEntry]],
    current: list[float],
    target: float,
    basal_step: float,
) -> list[BasalHourlyAdjustment]:
    adjustments = []
    for hour, readings in enumerate(buckets):
        values = [entry.value for entry in readings]
        average = hourly_avg[hour]
        if average is not None:
            delta = average - target
            pct = simple_adjustment_pct(delta)
            confidence = min(1.0, len(readings) / FULL_CONFIDENCE_READINGS)
        else:
            pct, confidence = 0, 0.0
        adjustments.append(
            _build(hour, current[hour], pct, confidence, basal_step, readings, values, False)
        )
    return adjustments


def _detailed(
    buckets: list[list[GlucoseEntry]],
    treatments: Sequence[Treatment],
    current: list[float],
    target: float,
    basal_step: float,
    log: StructuredLogger,
) -> list[BasalHourlyAdjustment]:
    doses = _DoseIndex(treatments)
    adjustments = []
    for hour, readings in enumerate(buckets):
        all_values = [entry.value for entry in readings]
        clean = [entry for entry in readings if not doses.is_contaminated(entry)]
        insulin_affected = len(clean) < CLEAN_SHARE_FOR_NO_ACTIVITY * len(readings)
        used = clean

        if len(clean) < MIN_HOUR_READINGS and len(readings) >= FALLBACK_MIN_TOTAL_READINGS:
            used = [
                entry
                for entry in readings
                if not doses.has_dose_within(entry, FALLBACK_INSULIN_WINDOW_HOURS)
            ]
            insulin_affected = True
            log.debug(
                "Relaxed insulin filter",
                hour=hour,
                clean=len(clean),
                fallback=len(used),
                total=len(readings),
            )

        if len(used) < MIN_HOUR_READINGS:
            log.debug("Insufficient basal readings", hour=hour, usable=len(used))
            adjustments.append(
                _build(hour, current[hour], 0, 0.0, basal_step, used, all_values, insulin_affected)
            )
            continue

        values = [entry.value for entry in used]
        delta = sum(values) / len(values) - target
        stability = _stability(values)
        confidence = min(1.0, len(used) / FULL_CONFIDENCE_READINGS)
        base_pct = tiered_adjustment_pct(delta)
        pct = scale_detailed_pct(base_pct, delta, hour, stability, confidence, insulin_affected)
        log.debug(
            "Basal hour analyzed",
            hour=hour,
            readings=len(used),
            delta=round(delta, 1),
            stability=round(stability, 2),
            base_pct=base_pct,
            pct=pct,
            insulin_affected=insulin_affected,
        )
        adjustments.append(
            _build(
                hour, current[hour], pct, confidence, basal_step, used, all_values, insulin_affected
            )
        )
    return adjustments


def compute_basal_adjustments(
    hourly_avg: Sequence[float | None],
    entries: Sequence[GlucoseEntry],
    treatments: Sequence[Treatment],
    profile: Profile | None,
    target: float = DEFAULT_BASAL_TARGET_MGDL,
    basal_step: float = DEFAULT_BASAL_STEP,
    detailed_min_entries: int = DETAILED_BASAL_MIN_ENTRIES,
    log: StructuredLogger | None = None,
) -> tuple[BasalMode, list[BasalHourlyAdjustment]]:
    """Compute per-hour basal suggestions.

    Args:
        hourly_avg: 24 hourly averages (used to report which hours have data).
        entries: Glucose entries, any order.
        treatments: Treatments; boluses mark readings as insulin-contaminated.
        profile: Current profile, or None (current basal treated as 0).
        target: Basal target glucose in mg/dL.
        basal_step: Pump basal granularity used to round suggestions.
        detailed_min_entries: Entry count from which the detailed mode is used.
        log: Structured logger for breadcrumbs.

    Returns:
        The mode used and 24 BasalHourlyAdjustment (index == hour).
    """
    log = (log or logger).bind(analyzer="basal")
    current = profile.hourly_basal() if profile else [DEFAULT_BASAL] * HOURS_PER_DAY
    buckets = hourly_buckets(sorted(entries, key=lambda entry: entry.timestamp))

    if len(entries) < detailed_min_entries:
        mode = BasalMode.simple
        adjustments = _simple(hourly_avg, buckets, current, target, basal_step)
    else:
        mode = BasalMode.detailed
        adjustments = _detailed(buckets, treatments, current, target, basal_step, log)

    log.info(
        "Basal analysis complete",
        mode=mode.value,
        entries=len(entries),
        hours_with_data=sum(1 for value in hourly_avg if value is not None),
        hours_adjusted=sum(1 for adj in adjustments if adj.adjustment_pct != 0),
    )
    return mode, adjustments
