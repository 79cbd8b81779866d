"""Suggested profile assembly.

Applies the surfaced basal, ICR and ISF suggestions to the current
profile so the result can be compared side by side with it.
"""

from collections.abc import Sequence

from profile_tuner.core.tuning.constants import CARB_EXCHANGE_GRAMS
from profile_tuner.core.tuning.rounding import round_half_up, round_to_step
from profile_tuner.core.tuning.timeslots import format_clock
from profile_tuner.schemas.analysis import (
    BasalHourlyAdjustment,
    SlotRecommendations,
    SuggestedProfile,
    SuggestedSlot,
)
from profile_tuner.schemas.profile import Profile, ProfileSlot


def _units_per_exchange(ratio: float) -> float | None:
    if ratio <= 0:
        return None
    return round_half_up(CARB_EXCHANGE_GRAMS / ratio, 2)


def _apply(
    slots: Sequence[ProfileSlot], recommendations: SlotRecommendations
) -> list[tuple[ProfileSlot, float, float]]:
    """(slot, new value, pct) for every slot; unmodified slots keep their value."""
    by_time = {adj.time: adj for adj in recommendations.modifications}
    applied = []
    for slot in slots:
        modification = by_time.get(slot.time)
        if modification is None:
            applied.append((slot, slot.value, 0.0))
        else:
            applied.append((slot, modification.suggested_value, modification.adjustment_pct))
    return applied


def build_suggested_profile(
    profile: Profile | None,
    basal_changes: Sequence[BasalHourlyAdjustment],
    icr: SlotRecommendations,
    isf: SlotRecommendations,
    basal_step: float,
) -> SuggestedProfile:
    """Build the suggested basal, ICR and ISF schedules.

    Basal is expanded to 24 hourly slots; ICR and ISF keep the existing
    slot boundaries. Without a profile there is nothing to apply to and
    all schedules are empty.
    """
    if profile is None:
        return SuggestedProfile()

    basal: list[SuggestedSlot] = []
    if profile.basal:
        for hour, current in enumerate(profile.hourly_basal()):
            pct = basal_changes[hour].adjustment_pct if hour < len(basal_changes) else 0.0
            basal.append(
                SuggestedSlot(
                    time=format_clock(hour * 60),
                    old=current,
                    new=round_to_step(current * (1 + pct / 100), basal_step),
                    pct=pct,
                )
            )

    icr_slots = [
        SuggestedSlot(
            time=slot.time,
            old=slot.value,
            new=new,
            pct=pct,
            old_units_per_exchange=_units_per_exchange(slot.value),
            new_units_per_exchange=_units_per_exchange(new),
        )
        for slot, new, pct in _apply(Profile.positive_slots(profile.carb_ratio), icr)
    ]
    isf_slots = [
        SuggestedSlot(time=slot.time, old=slot.value, new=new, pct=pct)
        for slot, new, pct in _apply(Profile.positive_slots(profile.sensitivity), isf)
    ]
    return SuggestedProfile(basal=basal, icr=icr_slots, isf=isf_slots)
