"""Meal outcome analysis for carb ratio (ICR) tuning.

Every meal is scored against size-dependent peak and 2-hour targets.
Meals are attributed to the carb ratio slot that owns the meal's hour;
slots whose meals repeatedly overshoot get a lower (stronger) ratio
suggestion.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import timedelta

from profile_tuner.core.tuning.constants import (
    DEFAULT_ICR,
    FULL_CONFIDENCE_MEALS,
    MAX_READING_STALENESS_MINUTES,
    MEAL_2H_OFFSET_HOURS,
    MEAL_MIN_CARBS,
    MEAL_ONLY_INSULIN_UNITS,
    MEAL_PEAK_WINDOW_HOURS,
    MEAL_TARGET_TIERS,
    MIN_MEALS_PER_SLOT,
    PEAK_EXCESS_BASELINE_MGDL,
    PRE_MEAL_HIGH_MGDL,
    PRE_MEAL_HIGH_PEAK_BONUS,
    PRE_MEAL_OFFSET_MINUTES,
    TWO_HOUR_EXCESS_BASELINE_MGDL,
)
from profile_tuner.core.tuning.rounding import round_half_up
from profile_tuner.core.tuning.timeslots import slot_for_hour
from profile_tuner.logging_config import StructuredLogger, get_logger
from profile_tuner.schemas.analysis import HourlyAdjustment, SlotRecommendations
from profile_tuner.schemas.glucose import GlucoseEntry, Treatment
from profile_tuner.schemas.profile import ProfileSlot
from profile_tuner.services.glucose_lookup import GlucoseSeries
from profile_tuner.services.slot_optimizer import ICR_POLICY, SlotPolicy, optimize_slots

logger = get_logger(__name__)


@dataclass(frozen=True)
class MealOutcome:
    """Glucose response to one meal."""

    hour: int
    carbs: float
    insulin: float
    pre_glucose: float | None
    peak_glucose: float | None
    glucose_at_2h: float | None
    peak_target: float
    two_hour_target: float

    @property
    def is_complete(self) -> bool:
        return (
            self.pre_glucose is not None
            and self.peak_glucose is not None
            and self.glucose_at_2h is not None
        )

    @property
    def success(self) -> bool:
        return (
            self.peak_glucose is not None
            and self.glucose_at_2h is not None
            and self.peak_glucose < self.peak_target
            and self.glucose_at_2h < self.two_hour_target
        )


def is_meal(treatment: Treatment) -> bool:
    """Whether a treatment counts as a meal event."""
    carbs, insulin = treatment.carbs, treatment.insulin
    return (
        carbs > MEAL_MIN_CARBS
        or (insulin > 0 and carbs > 0)
        or (insulin > MEAL_ONLY_INSULIN_UNITS and carbs >= 0)
    )


def meal_targets(carbs: float, pre_glucose: float | None) -> tuple[float, float]:
    """Peak and 2-hour targets for a meal of the given size.

    A high starting glucose raises the peak target, since the excursion
    begins from an elevated baseline.
    """
    for max_carbs, peak, two_hour in MEAL_TARGET_TIERS:
        if carbs <= max_carbs:
            break
    if pre_glucose is not None and pre_glucose > PRE_MEAL_HIGH_MGDL:
        peak += PRE_MEAL_HIGH_PEAK_BONUS
    return peak, two_hour


def evaluate_meal(meal: Treatment, series: GlucoseSeries) -> MealOutcome:
    staleness = timedelta(minutes=MAX_READING_STALENESS_MINUTES)
    pre = series.nearest(meal.timestamp - timedelta(minutes=PRE_MEAL_OFFSET_MINUTES), staleness)
    peak = series.max_in_window(
        meal.timestamp, meal.timestamp + timedelta(hours=MEAL_PEAK_WINDOW_HOURS)
    )
    at_2h = series.nearest(meal.timestamp + timedelta(hours=MEAL_2H_OFFSET_HOURS), staleness)

    pre_value = pre.value if pre else None
    peak_target, two_hour_target = meal_targets(meal.carbs, pre_value)
    return MealOutcome(
        hour=meal.timestamp.hour,
        carbs=meal.carbs,
        insulin=meal.insulin,
        pre_glucose=pre_value,
        peak_glucose=peak,
        glucose_at_2h=at_2h.value if at_2h else None,
        peak_target=peak_target,
        two_hour_target=two_hour_target,
    )


def icr_adjustment_pct(success_rate: float, peak_excess: float, two_hour_excess: float) -> float:
    """Ratio reduction (%) by success-rate tier, scaled from the excesses."""
    if success_rate < 0.3:
        return min(20.0, max(peak_excess / 8, two_hour_excess / 5))
    if success_rate < 0.5:
        return min(15.0, max(peak_excess / 10, two_hour_excess / 7))
    if success_rate < 0.7:
        return min(10.0, max(peak_excess / 12, two_hour_excess / 10))
    if peak_excess > 20 or two_hour_excess > 15:
        return min(5.0, max(peak_excess / 20, two_hour_excess / 15))
    return 0.0


def _slot_adjustment(slot: ProfileSlot, outcomes: Sequence[MealOutcome]) -> HourlyAdjustment:
    valid = [outcome for outcome in outcomes if outcome.is_complete]
    hours = sorted({outcome.hour for outcome in outcomes})
    common = {
        "hour": slot.hour,
        "time": slot.time,
        "current_value": slot.value,
        "sample_count": len(valid),
        "affected_hours": hours or [slot.hour],
    }
    if len(valid) < MIN_MEALS_PER_SLOT:
        return HourlyAdjustment(
            suggested_value=slot.value, adjustment_pct=0.0, confidence=0.0, **common
        )

    success_rate = sum(1 for outcome in valid if outcome.success) / len(valid)
    peak_excess = sum(
        max(0.0, o.peak_glucose - PEAK_EXCESS_BASELINE_MGDL) for o in valid
    ) / len(valid)
    two_hour_excess = sum(
        max(0.0, o.glucose_at_2h - TWO_HOUR_EXCESS_BASELINE_MGDL) for o in valid
    ) / len(valid)
    pct = icr_adjustment_pct(success_rate, peak_excess, two_hour_excess)
    confidence = min(len(valid) / FULL_CONFIDENCE_MEALS, 1.0) * (1.0 if success_rate > 0.1 else 0.5)

    return HourlyAdjustment(
        suggested_value=round_half_up(slot.value * (1 - pct / 100), 2),
        # Positive pct means more insulin per gram, i.e. a lower ratio
        adjustment_pct=-round_half_up(pct, 1) if pct else 0.0,
        confidence=confidence,
        success_rate=success_rate,
        **common,
    )


def analyze_hourly_icr(
    entries: Sequence[GlucoseEntry],
    treatments: Sequence[Treatment],
    icr_slots: Sequence[ProfileSlot],
    policy: SlotPolicy = ICR_POLICY,
    log: StructuredLogger | None = None,
) -> SlotRecommendations:
    """Analyze meal outcomes per carb ratio slot.

    Args:
        entries: Glucose entries.
        treatments: Treatments; meals are identified among them.
        icr_slots: Current carb ratio slots sorted by start time. When
            empty, a single all-day slot at the fallback ratio is used.
        policy: Slot optimizer policy.
        log: Structured logger for breadcrumbs.

    Returns:
        SlotRecommendations for the carb ratio schedule.
    """
    log = (log or logger).bind(analyzer="icr")
    slots = [slot for slot in icr_slots if slot.value > 0]
    if not slots:
        log.warning("No usable carb ratio slots, using fallback", fallback_icr=DEFAULT_ICR)
        slots = [ProfileSlot(time="00:00", value=DEFAULT_ICR)]

    series = GlucoseSeries(entries)
    meals = [t for t in treatments if is_meal(t) and t.carbs > 0]
    per_slot: list[list[MealOutcome]] = [[] for _ in slots]
    for meal in meals:
        outcome = evaluate_meal(meal, series)
        per_slot[slot_for_hour(slots, outcome.hour)].append(outcome)

    candidates = []
    for slot, outcomes in zip(slots, per_slot):
        adjustment = _slot_adjustment(slot, outcomes)
        log.debug(
            "ICR slot analyzed",
            slot=slot.time,
            meals=len(outcomes),
            valid_meals=adjustment.sample_count,
            pct=adjustment.adjustment_pct,
            confidence=round(adjustment.confidence, 2),
        )
        candidates.append(adjustment)

    log.info("Meal analysis complete", meals=len(meals), slots=len(slots))
    return optimize_slots(candidates, slots, policy, log=log)
