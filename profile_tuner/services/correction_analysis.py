"""Correction outcome analysis for insulin sensitivity (ISF) tuning.

Two kinds of corrections are evaluated:

- small carb-free boluses given while glucose was high
- elevated temp basals running while glucose was high (closed-loop
  systems correct this way rather than with boluses)

Each correction's efficiency is the observed drop divided by the drop
the current ISF predicts. Consistently high efficiency means insulin is
stronger than the profile assumes (ISF should rise), low efficiency the
opposite.

Hypoglycemia evidence is never used to justify a lower ISF: if any
contributing correction went below 70 mg/dL, delivered no net insulin or
was interrupted by a basal suspension, reductions are blocked.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

from profile_tuner.core.tuning.constants import (
    CORRECTION_MAX_UNITS,
    CORRECTION_MEAL_WINDOW_MINUTES,
    CORRECTION_MIN_PRE_GLUCOSE,
    CORRECTION_MIN_UNITS,
    DEFAULT_ISF,
    EFFICIENCY_RANGE,
    FOLLOW_UP_2H_WINDOW,
    FOLLOW_UP_3H_WINDOW,
    FULL_CONFIDENCE_CORRECTIONS,
    HOURS_PER_DAY,
    ISF_SIGNIFICANT_CHANGE_PCT,
    LOW_GLUCOSE_MGDL,
    MAX_ISF_CHANGE_PCT,
    MIN_CORRECTIONS_PER_SLOT,
    MIN_DROP_CAP_MGDL,
    MIN_DROP_SHARE_OF_EXPECTED,
    MIN_ISF,
    MISTAGGED_MEAL_EFFICIENCY,
    MISTAGGED_MEAL_MIN_UNITS,
    NEARBY_MEAL_MIN_CARBS,
    OBSERVATION_WINDOW_HOURS,
    TARGET_EFFICIENCY,
    TEMP_BASAL_BASELINE_FACTOR,
    TEMP_BASAL_DEFAULT_MINUTES,
    TEMP_BASAL_MEAL_WINDOW_MINUTES,
    TEMP_BASAL_MIN_PRE_GLUCOSE,
    TEMP_BASAL_MIN_RATE,
    TEMP_BASAL_MIN_UNITS,
    TEMP_BASAL_RATE_FACTOR,
    TEMP_BASAL_SUCCESS_DROP_MGDL,
    TEMP_BASAL_SUCCESS_EFFICIENCY,
    TEMP_BASAL_SUCCESS_FINAL_SHARE,
)
from profile_tuner.core.tuning.enums import SlotGranularity, TreatmentType
from profile_tuner.core.tuning.rounding import round_half_up, round_int
from profile_tuner.core.tuning.timeslots import (
    expand_to_24_hours,
    format_clock,
    slot_for_minute,
)
from profile_tuner.logging_config import StructuredLogger, get_logger
from profile_tuner.schemas.analysis import HourlyAdjustment, SlotRecommendations
from profile_tuner.schemas.glucose import GlucoseEntry, Treatment
from profile_tuner.schemas.profile import ProfileSlot
from profile_tuner.services.glucose_lookup import GlucoseSeries
from profile_tuner.services.slot_optimizer import SlotPolicy, isf_policy, optimize_slots

logger = get_logger(__name__)


@dataclass(frozen=True)
class CorrectionOutcome:
    """Glucose response to one correction (bolus or temp basal)."""

    timestamp: datetime
    source: str  # "bolus" or "temp_basal"
    insulin: float
    current_isf: float
    pre_glucose: float
    glucose_at_2h: float | None
    glucose_at_3h: float | None
    expected_drop: float
    actual_drop: float | None
    efficiency: float | None
    success: bool
    nearby_meal: bool
    suspended: bool = False

    @property
    def hour(self) -> int:
        return self.timestamp.hour

    @property
    def minute_of_day(self) -> int:
        return self.timestamp.hour * 60 + self.timestamp.minute

    @property
    def had_low(self) -> bool:
        readings = (self.pre_glucose, self.glucose_at_2h, self.glucose_at_3h)
        return any(value is not None and value < LOW_GLUCOSE_MGDL for value in readings)


class _IsfLookup:
    """Current ISF for a moment, at the configured granularity."""

    def __init__(self, slots: Sequence[ProfileSlot], granularity: SlotGranularity):
        self._slots = slots
        self._granularity = granularity
        self._hourly = expand_to_24_hours(slots, DEFAULT_ISF)

    def __call__(self, moment: datetime) -> float:
        if self._granularity == SlotGranularity.minute:
            index = slot_for_minute(self._slots, moment.hour * 60 + moment.minute)
            return self._slots[index].value
        return self._hourly[moment.hour]


def _follow_up(series: GlucoseSeries, start: datetime, window: tuple[int, int]) -> float | None:
    reading = series.nearest_in_window(
        start + timedelta(minutes=window[0]),
        start + timedelta(minutes=window[1]),
        start,
    )
    return reading.value if reading else None


def _pre_glucose(series: GlucoseSeries, moment: datetime) -> float | None:
    reading = series.nearest_in_window(moment - timedelta(minutes=30), moment, moment)
    return reading.value if reading else None


def _has_meal_near(meals: Sequence[Treatment], moment: datetime, minutes: int) -> bool:
    window = timedelta(minutes=minutes)
    return any(abs(meal.timestamp - moment) < window for meal in meals)


def _is_suspended(suspensions: Sequence[Treatment], moment: datetime) -> bool:
    end = moment + timedelta(hours=OBSERVATION_WINDOW_HOURS)
    return any(moment < suspension.timestamp <= end for suspension in suspensions)


def is_correction_bolus(treatment: Treatment) -> bool:
    """Small carb-free bolus; larger ones are usually unlogged meal boluses."""
    return (
        CORRECTION_MIN_UNITS <= treatment.insulin < CORRECTION_MAX_UNITS
        and treatment.carbs == 0
    )


def analyze_correction_boluses(
    series: GlucoseSeries,
    treatments: Sequence[Treatment],
    isf_at: Callable[[datetime], float],
    meals: Sequence[Treatment],
    suspensions: Sequence[Treatment],
) -> list[CorrectionOutcome]:
    outcomes = []
    for correction in treatments:
        if not is_correction_bolus(correction):
            continue
        moment = correction.timestamp
        pre = _pre_glucose(series, moment)
        if pre is None or pre < CORRECTION_MIN_PRE_GLUCOSE:
            continue

        at_2h = _follow_up(series, moment, FOLLOW_UP_2H_WINDOW)
        at_3h = _follow_up(series, moment, FOLLOW_UP_3H_WINDOW)
        final = at_2h if at_2h is not None else at_3h
        current_isf = isf_at(moment)
        expected = correction.insulin * current_isf
        actual = pre - final if final is not None else None
        efficiency = actual / expected if actual is not None and expected > 0 else None

        if (
            efficiency is not None
            and efficiency < MISTAGGED_MEAL_EFFICIENCY
            and correction.insulin > MISTAGGED_MEAL_MIN_UNITS
        ):
            continue

        nearby_meal = _has_meal_near(meals, moment, CORRECTION_MEAL_WINDOW_MINUTES)
        min_drop = min(expected * MIN_DROP_SHARE_OF_EXPECTED, MIN_DROP_CAP_MGDL)
        success = (
            final is not None
            and final >= LOW_GLUCOSE_MGDL
            and final < pre
            and (actual or 0) > min_drop
            and efficiency is not None
            and EFFICIENCY_RANGE[0] < efficiency < EFFICIENCY_RANGE[1]
            and not nearby_meal
        )
        outcomes.append(
            CorrectionOutcome(
                timestamp=moment,
                source="bolus",
                insulin=correction.insulin,
                current_isf=current_isf,
                pre_glucose=pre,
                glucose_at_2h=at_2h,
                glucose_at_3h=at_3h,
                expected_drop=expected,
                actual_drop=actual,
                efficiency=efficiency,
                success=success,
                nearby_meal=nearby_meal,
                suspended=_is_suspended(suspensions, moment),
            )
        )
    return outcomes


def analyze_temp_basal_corrections(
    series: GlucoseSeries,
    temp_basals: Sequence[Treatment],
    isf_at: Callable[[datetime], float],
    meals: Sequence[Treatment],
    suspensions: Sequence[Treatment],
) -> list[CorrectionOutcome]:
    """Treat markedly elevated temp basals during highs as implicit corrections."""
    active = [t for t in temp_basals if (t.rate_per_hour or 0) > 0]
    if not active:
        return []

    avg_rate = sum(t.rate_per_hour for t in active) / len(active)
    threshold = max(avg_rate * TEMP_BASAL_RATE_FACTOR, TEMP_BASAL_MIN_RATE)
    baseline = avg_rate * TEMP_BASAL_BASELINE_FACTOR

    outcomes = []
    for temp_basal in active:
        if temp_basal.rate_per_hour <= threshold:
            continue
        moment = temp_basal.timestamp
        pre = _pre_glucose(series, moment)
        if pre is None or pre < TEMP_BASAL_MIN_PRE_GLUCOSE:
            continue

        duration_hours = (temp_basal.duration_minutes or TEMP_BASAL_DEFAULT_MINUTES) / 60
        insulin = max(0.0, temp_basal.rate_per_hour - baseline) * duration_hours
        if insulin < TEMP_BASAL_MIN_UNITS:
            continue

        at_2h = _follow_up(series, moment, FOLLOW_UP_2H_WINDOW)
        at_3h = _follow_up(series, moment, FOLLOW_UP_3H_WINDOW)
        final = at_2h if at_2h is not None else at_3h
        if final is None:
            continue

        current_isf = isf_at(moment)
        expected = insulin * current_isf
        actual = pre - final
        efficiency = actual / expected if expected > 0 else 0.0
        success = (
            actual > TEMP_BASAL_SUCCESS_DROP_MGDL
            and efficiency > TEMP_BASAL_SUCCESS_EFFICIENCY
            and final < pre * TEMP_BASAL_SUCCESS_FINAL_SHARE
        )
        outcomes.append(
            CorrectionOutcome(
                timestamp=moment,
                source="temp_basal",
                insulin=insulin,
                current_isf=current_isf,
                pre_glucose=pre,
                glucose_at_2h=at_2h,
                glucose_at_3h=at_3h,
                expected_drop=expected,
                actual_drop=actual,
                efficiency=efficiency,
                success=success,
                nearby_meal=_has_meal_near(meals, moment, TEMP_BASAL_MEAL_WINDOW_MINUTES),
                suspended=_is_suspended(suspensions, moment),
            )
        )
    return outcomes


def suggest_isf(
    current: float, avg_efficiency: float, block_reduction: bool
) -> tuple[float, int]:
    """Suggested ISF and integer percent change.

    The suggestion follows the efficiency ratio against a 0.9 target, is
    never reduced below 10 mg/dL/U and stays within +/-30% of current.
    """
    if avg_efficiency <= 0 or current <= 0:
        return current, 0
    theoretical = current * avg_efficiency / TARGET_EFFICIENCY
    if block_reduction and theoretical < current:
        return current, 0
    floored = max(MIN_ISF, theoretical)
    pct = (floored - current) / current * 100
    pct = max(-MAX_ISF_CHANGE_PCT, min(MAX_ISF_CHANGE_PCT, pct))
    suggested = current * (1 + pct / 100)
    return round_half_up(suggested, 1), round_int(pct)


def _bucket_adjustment(
    hour: int,
    time: str,
    current: float,
    corrections: Sequence[CorrectionOutcome],
    log: StructuredLogger,
) -> HourlyAdjustment:
    valid = [c for c in corrections if c.efficiency is not None]
    block_reduction = any(c.had_low or c.insulin <= 0 or c.suspended for c in valid)
    common = {
        "hour": hour,
        "time": time,
        "current_value": current,
        "affected_hours": sorted({c.hour for c in corrections}) or [hour],
        "reduction_blocked": block_reduction,
    }
    if len(valid) < MIN_CORRECTIONS_PER_SLOT:
        return HourlyAdjustment(
            suggested_value=current,
            adjustment_pct=0.0,
            confidence=0.0,
            sample_count=len(valid),
            is_profile_compliant=True,
            **common,
        )

    avg_efficiency = sum(c.efficiency for c in valid) / len(valid)
    success_rate = sum(1 for c in valid if c.success) / len(valid)
    suggested, pct = suggest_isf(current, avg_efficiency, block_reduction)
    if block_reduction:
        log.info("ISF reduction guard active", time=time, corrections=len(valid))

    return HourlyAdjustment(
        suggested_value=suggested,
        adjustment_pct=float(pct),
        confidence=min(1.0, len(valid) / FULL_CONFIDENCE_CORRECTIONS),
        sample_count=len(valid),
        success_rate=round_half_up(success_rate, 2),
        avg_efficiency=round_half_up(avg_efficiency, 2),
        is_profile_compliant=abs(pct) < ISF_SIGNIFICANT_CHANGE_PCT,
        **common,
    )


def analyze_hourly_isf(
    entries: Sequence[GlucoseEntry],
    treatments: Sequence[Treatment],
    isf_slots: Sequence[ProfileSlot],
    granularity: SlotGranularity = SlotGranularity.hour,
    policy: SlotPolicy | None = None,
    log: StructuredLogger | None = None,
) -> SlotRecommendations:
    """Analyze correction outcomes per ISF slot.

    Args:
        entries: Glucose entries.
        treatments: Treatments (boluses, temp basals, meals).
        isf_slots: Current ISF slots sorted by start time. When empty, a
            single all-day slot at the fallback ISF is used.
        granularity: ``hour`` analyzes each hour of day and lets the
            optimizer pool hours per slot; ``minute`` attributes
            corrections straight to their slot at minute precision.
        policy: Slot optimizer policy (defaults to the ISF policy at the
            given granularity).
        log: Structured logger for breadcrumbs.

    Returns:
        SlotRecommendations for the ISF schedule.
    """
    log = (log or logger).bind(analyzer="isf")
    policy = policy or isf_policy(granularity)
    slots = [slot for slot in isf_slots if slot.value > 0]
    if not slots:
        log.warning("No usable ISF slots, using fallback", fallback_isf=DEFAULT_ISF)
        slots = [ProfileSlot(time="00:00", value=DEFAULT_ISF)]

    series = GlucoseSeries(entries)
    isf_at = _IsfLookup(slots, granularity)
    meals = [t for t in treatments if t.carbs >= NEARBY_MEAL_MIN_CARBS]
    temp_basals = [t for t in treatments if t.type == TreatmentType.temp_basal]
    suspensions = [t for t in temp_basals if t.rate_per_hour == 0]

    corrections = analyze_correction_boluses(series, treatments, isf_at, meals, suspensions)
    corrections += analyze_temp_basal_corrections(series, temp_basals, isf_at, meals, suspensions)
    clean = [c for c in corrections if not c.nearby_meal]
    log.info(
        "Corrections identified",
        total=len(corrections),
        clean=len(clean),
        bolus=sum(1 for c in corrections if c.source == "bolus"),
        temp_basal=sum(1 for c in corrections if c.source == "temp_basal"),
    )

    buckets: list[HourlyAdjustment] = []
    if granularity == SlotGranularity.minute:
        per_slot: list[list[CorrectionOutcome]] = [[] for _ in slots]
        for correction in clean:
            per_slot[slot_for_minute(slots, correction.minute_of_day)].append(correction)
        for slot, group in zip(slots, per_slot):
            buckets.append(_bucket_adjustment(slot.hour, slot.time, slot.value, group, log))
    else:
        hourly_isf = expand_to_24_hours(slots, DEFAULT_ISF)
        per_hour: list[list[CorrectionOutcome]] = [[] for _ in range(HOURS_PER_DAY)]
        for correction in clean:
            per_hour[correction.hour].append(correction)
        for hour, group in enumerate(per_hour):
            buckets.append(
                _bucket_adjustment(hour, format_clock(hour * 60), hourly_isf[hour], group, log)
            )

    # Under-sampled buckets still carry the reduction guard to their slot
    candidates = [b for b in buckets if b.confidence > 0 or b.reduction_blocked]
    for candidate in candidates:
        log.debug(
            "ISF candidate",
            time=candidate.time,
            corrections=candidate.sample_count,
            avg_efficiency=candidate.avg_efficiency,
            pct=candidate.adjustment_pct,
            compliant=candidate.is_profile_compliant,
        )
    return optimize_slots(candidates, slots, policy, log=log)
