"""Slot optimizer shared by the ICR and ISF analyzers.

Classifies hourly (or per-slot) findings against the existing profile
slots:

- modification: an existing slot whose pooled findings warrant a change
- new_slots: findings no existing slot owns, or (when enabled) findings
  strong enough to justify splitting a slot
- profile_compliant: existing slots whose findings do not warrant a change

Slot i owns the range [start_i, start_i+1); the last slot wraps past
midnight up to the first start.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace

from profile_tuner.core.tuning.constants import (
    ICR_MIN_CONFIDENCE,
    ICR_SIGNIFICANT_CHANGE_PCT,
    ICR_SIMILARITY_THRESHOLD,
    NEW_SLOT_MIN_CHANGE_PCT,
    NEW_SLOT_MIN_CONFIDENCE,
)
from profile_tuner.core.tuning.enums import SlotGranularity
from profile_tuner.core.tuning.rounding import round_half_up
from profile_tuner.core.tuning.timeslots import owning_index, parse_clock
from profile_tuner.logging_config import StructuredLogger, get_logger
from profile_tuner.schemas.analysis import HourlyAdjustment, SlotRecommendations
from profile_tuner.schemas.profile import ProfileSlot

logger = get_logger(__name__)


def is_icr_significant(candidate: HourlyAdjustment) -> bool:
    return (
        abs(candidate.adjustment_pct) >= ICR_SIGNIFICANT_CHANGE_PCT
        and candidate.confidence >= ICR_MIN_CONFIDENCE
    )


def is_isf_significant(candidate: HourlyAdjustment) -> bool:
    return not candidate.is_profile_compliant


@dataclass(frozen=True)
class SlotPolicy:
    """How candidates are attributed to slots and which ones count.

    Attributes:
        name: Label used in log breadcrumbs.
        is_significant: Whether a pooled candidate warrants a modification.
        granularity: ``hour`` compares hour-floored slot starts with the
            candidate hour; ``minute`` compares exact start minutes.
        pct_digits: Decimal places of recomputed percentages.
        wrap_around: Let the last slot own times before the first start.
        propose_new_slots: Emit strong unaligned candidates as new slots.
        group_similar: Merge adjacent new slots with similar values.
        similarity_threshold: Maximum value distance for grouping.
    """

    name: str
    is_significant: Callable[[HourlyAdjustment], bool]
    granularity: SlotGranularity = SlotGranularity.hour
    pct_digits: int = 0
    wrap_around: bool = True
    propose_new_slots: bool = False
    group_similar: bool = False
    similarity_threshold: float = ICR_SIMILARITY_THRESHOLD
    new_slot_min_confidence: float = NEW_SLOT_MIN_CONFIDENCE
    new_slot_min_change_pct: float = NEW_SLOT_MIN_CHANGE_PCT


ICR_POLICY = SlotPolicy(
    name="icr",
    is_significant=is_icr_significant,
    granularity=SlotGranularity.minute,
    pct_digits=1,
)

ISF_POLICY = SlotPolicy(name="isf", is_significant=is_isf_significant)


def isf_policy(granularity: SlotGranularity) -> SlotPolicy:
    return replace(ISF_POLICY, granularity=granularity)


def _candidate_minute(candidate: HourlyAdjustment) -> int:
    minute = parse_clock(candidate.time)
    return minute if minute is not None else candidate.hour * 60


def _owner(
    candidate: HourlyAdjustment, slots: Sequence[ProfileSlot], policy: SlotPolicy
) -> int | None:
    if policy.granularity == SlotGranularity.minute:
        starts = [slot.minute_of_day for slot in slots]
        position = _candidate_minute(candidate)
    else:
        starts = [slot.hour for slot in slots]
        position = candidate.hour
    owner = owning_index(starts, position)
    if owner is not None and not policy.wrap_around and position < starts[0]:
        return None
    return owner


def _is_aligned(candidate: HourlyAdjustment, slot: ProfileSlot, policy: SlotPolicy) -> bool:
    if policy.granularity == SlotGranularity.minute:
        return _candidate_minute(candidate) == slot.minute_of_day
    return candidate.hour == slot.hour


def _clears_new_slot_bar(candidate: HourlyAdjustment, policy: SlotPolicy) -> bool:
    return (
        candidate.confidence >= policy.new_slot_min_confidence
        and abs(candidate.adjustment_pct) >= policy.new_slot_min_change_pct
    )


def _pct(current: float, suggested: float, digits: int) -> float:
    if current == 0:
        return 0.0
    return round_half_up((suggested - current) / current * 100, digits)


def _mean(values: Sequence[float]) -> float | None:
    return sum(values) / len(values) if values else None


def _pooled_fields(pool: Sequence[HourlyAdjustment]) -> dict:
    efficiencies = [c.avg_efficiency for c in pool if c.avg_efficiency is not None]
    return {
        "sample_count": sum(c.sample_count for c in pool),
        "success_rate": _mean([c.success_rate for c in pool]) or 0.0,
        "avg_efficiency": _mean(efficiencies),
        "affected_hours": sorted({hour for c in pool for hour in c.affected_hours or [c.hour]}),
    }


def _best(pool: Sequence[HourlyAdjustment]) -> HourlyAdjustment:
    """Highest confidence candidate; the earliest one wins ties."""
    ordered = sorted(pool, key=_candidate_minute)
    best = ordered[0]
    for candidate in ordered[1:]:
        if candidate.confidence > best.confidence:
            best = candidate
    return best


def _modification(
    slot: ProfileSlot,
    significant: Sequence[HourlyAdjustment],
    policy: SlotPolicy,
    reduction_blocked: bool,
) -> HourlyAdjustment:
    best = _best(significant)
    return HourlyAdjustment(
        hour=slot.hour,
        time=slot.time,
        current_value=slot.value,
        suggested_value=best.suggested_value,
        adjustment_pct=_pct(slot.value, best.suggested_value, policy.pct_digits),
        confidence=best.confidence,
        is_grouped_recommendation=len(significant) > 1,
        reduction_blocked=reduction_blocked,
        **_pooled_fields(significant),
    )


def _compliant(
    slot: ProfileSlot, pool: Sequence[HourlyAdjustment], reduction_blocked: bool
) -> HourlyAdjustment:
    confidence = max((c.confidence for c in pool), default=1.0)
    return HourlyAdjustment(
        hour=slot.hour,
        time=slot.time,
        current_value=slot.value,
        suggested_value=slot.value,
        adjustment_pct=0.0,
        confidence=confidence,
        is_profile_compliant=True,
        reduction_blocked=reduction_blocked,
        **_pooled_fields(pool),
    )


def _as_new_slot(candidate: HourlyAdjustment) -> HourlyAdjustment:
    return candidate.model_copy(
        update={
            "is_new_slot": True,
            "is_profile_compliant": False,
            "affected_hours": candidate.affected_hours or [candidate.hour],
        }
    )


def _group_similar(
    new_slots: list[HourlyAdjustment], policy: SlotPolicy
) -> list[HourlyAdjustment]:
    """Merge runs of adjacent-hour new slots whose values are close."""
    groups: list[list[HourlyAdjustment]] = []
    for slot in sorted(new_slots, key=_candidate_minute):
        if groups:
            last = groups[-1][-1]
            if (
                slot.hour - last.hour == 1
                and abs(slot.suggested_value - last.suggested_value) < policy.similarity_threshold
            ):
                groups[-1].append(slot)
                continue
        groups.append([slot])

    merged = []
    for group in groups:
        if len(group) == 1:
            merged.append(group[0])
            continue
        first = group[0]
        suggested = round_half_up(sum(c.suggested_value for c in group) / len(group), 1)
        merged.append(
            first.model_copy(
                update={
                    "suggested_value": suggested,
                    "adjustment_pct": _pct(first.current_value, suggested, policy.pct_digits),
                    "confidence": sum(c.confidence for c in group) / len(group),
                    "is_grouped_recommendation": True,
                    **_pooled_fields(group),
                }
            )
        )
    return merged


def optimize_slots(
    candidates: Sequence[HourlyAdjustment],
    slots: Sequence[ProfileSlot],
    policy: SlotPolicy,
    log: StructuredLogger | None = None,
) -> SlotRecommendations:
    """Classify candidates as modifications, new slots or profile-compliant.

    Args:
        candidates: Findings from an analyzer, one per hour or per slot.
        slots: Existing profile slots sorted by start time.
        policy: Attribution and significance rules.
        log: Structured logger for breadcrumbs.

    Returns:
        SlotRecommendations with one entry per existing slot across
        ``modifications`` and ``profile_compliant``, plus any new slots.
    """
    log = (log or logger).bind(analyzer=policy.name)
    pools: list[list[HourlyAdjustment]] = [[] for _ in slots]
    new_slots: list[HourlyAdjustment] = []

    for candidate in candidates:
        owner = _owner(candidate, slots, policy)
        if owner is None:
            if _clears_new_slot_bar(candidate, policy):
                new_slots.append(_as_new_slot(candidate))
            else:
                log.debug("Dropped unowned candidate", hour=candidate.hour)
            continue
        if (
            policy.propose_new_slots
            and not _is_aligned(candidate, slots[owner], policy)
            and _clears_new_slot_bar(candidate, policy)
        ):
            new_slots.append(_as_new_slot(candidate))
            continue
        pools[owner].append(candidate)

    result = SlotRecommendations()
    for slot, pool in zip(slots, pools):
        significant = [c for c in pool if policy.is_significant(c)]
        blocked = any(c.reduction_blocked for c in pool)
        if blocked:
            # A low anywhere in the slot forbids lowering the slot value
            lowering = [c for c in significant if c.suggested_value < slot.value]
            if lowering:
                log.info(
                    "Slot reduction blocked",
                    slot=slot.time,
                    dropped_hours=[c.hour for c in lowering],
                )
            significant = [c for c in significant if c.suggested_value >= slot.value]
        if significant:
            result.modifications.append(_modification(slot, significant, policy, blocked))
        else:
            result.profile_compliant.append(_compliant(slot, pool, blocked))
        log.debug(
            "Slot classified",
            slot=slot.time,
            pooled=len(pool),
            significant=len(significant),
        )

    if policy.group_similar:
        new_slots = _group_similar(new_slots, policy)
    result.new_slots.extend(sorted(new_slots, key=_candidate_minute))

    log.info(
        "Slot optimization complete",
        candidates=len(candidates),
        modifications=len(result.modifications),
        new_slots=len(result.new_slots),
        profile_compliant=len(result.profile_compliant),
    )
    return result
