"""Cross-validation of basal and carb ratio suggestions.

Basal and ICR suggestions are derived independently. During a
persistently high (or low) hour they should agree on the direction of
insulin delivery; when one loosens while the other tightens, the pair is
flagged for review.
"""

from collections.abc import Sequence

from profile_tuner.core.tuning.constants import (
    LARGE_CHANGE_PCT,
    STRONG_SIGNAL_PCT,
    VALIDATION_DEFAULT_GLUCOSE,
    VALIDATION_HIGH_GLUCOSE,
    VALIDATION_LOW_GLUCOSE,
)
from profile_tuner.core.tuning.enums import ConflictSeverity
from profile_tuner.core.tuning.rounding import round_int
from profile_tuner.logging_config import StructuredLogger, get_logger
from profile_tuner.schemas.analysis import Conflict, HourlyAdjustment, ValidationResult

logger = get_logger(__name__)


def is_non_meal_hour(hour: int) -> bool:
    """Overnight and mid-afternoon hours where basal dominates."""
    return hour >= 23 or hour <= 5 or 14 <= hour <= 16


def classify_conflict(
    avg_glucose: float, basal_change: float, icr_change: float
) -> tuple[ConflictSeverity, str]:
    """Severity of a basal/ICR pair given the hour's average glucose.

    A lower basal or a higher ICR both mean less insulin.
    """
    if avg_glucose > VALIDATION_HIGH_GLUCOSE:
        if basal_change < -STRONG_SIGNAL_PCT and icr_change > STRONG_SIGNAL_PCT:
            return (
                ConflictSeverity.high,
                "High glucose but both basal and ICR reduce insulin - "
                "consider prioritizing a basal increase",
            )
        if basal_change < 0 and icr_change > 0:
            return ConflictSeverity.medium, "Mild conflict - high glucose with mixed signals"
    elif avg_glucose < VALIDATION_LOW_GLUCOSE:
        if basal_change > STRONG_SIGNAL_PCT and icr_change < -STRONG_SIGNAL_PCT:
            return (
                ConflictSeverity.high,
                "Low glucose but both basal and ICR increase insulin - "
                "consider prioritizing a basal decrease",
            )
        if basal_change > 0 and icr_change < 0:
            return ConflictSeverity.medium, "Mild conflict - low glucose with mixed signals"
    return ConflictSeverity.low, ""


def validate_profile_recommendations(
    basal_pct: Sequence[float],
    icr_adjustments: Sequence[HourlyAdjustment],
    hourly_avg: Sequence[float | None],
    log: StructuredLogger | None = None,
) -> ValidationResult:
    """Flag hours where basal and ICR suggestions contradict each other.

    Args:
        basal_pct: 24 basal changes in percent (index == hour).
        icr_adjustments: ICR adjustments (modifications and compliant slots).
        hourly_avg: 24 hourly glucose averages.
        log: Structured logger for breadcrumbs.

    Returns:
        ValidationResult with the recorded conflicts and a coherence score.
    """
    log = (log or logger).bind(analyzer="cross_validation")
    conflicts: list[Conflict] = []

    for icr in icr_adjustments:
        hour = icr.hour
        basal_change = basal_pct[hour] if hour < len(basal_pct) else 0.0
        icr_change = (
            (icr.suggested_value - icr.current_value) / icr.current_value * 100
            if icr.current_value
            else 0.0
        )
        avg = hourly_avg[hour] if hour < len(hourly_avg) else None
        avg_glucose = avg if avg is not None else VALIDATION_DEFAULT_GLUCOSE

        severity, recommendation = classify_conflict(avg_glucose, basal_change, icr_change)
        large = abs(basal_change) > LARGE_CHANGE_PCT or abs(icr_change) > LARGE_CHANGE_PCT
        if severity == ConflictSeverity.low and not large:
            continue

        basal_only = abs(basal_change) > LARGE_CHANGE_PCT and abs(icr_change) < STRONG_SIGNAL_PCT
        if is_non_meal_hour(hour) and basal_only:
            severity = ConflictSeverity.low
            recommendation = (
                recommendation
                or "Significant basal adjustment during non-meal period - likely appropriate"
            )

        conflicts.append(
            Conflict(
                hour=hour,
                basal_change=round_int(basal_change),
                icr_change=round_int(icr_change),
                avg_glucose=round_int(avg_glucose),
                severity=severity,
                recommendation=recommendation
                or (
                    f"Large adjustments detected - basal: {round_int(basal_change)}%, "
                    f"ICR: {round_int(icr_change)}%"
                ),
            )
        )

    total = len(icr_adjustments)
    coherence = max(0.0, 1 - len(conflicts) / total) if total else 1.0
    has_significant = any(c.severity == ConflictSeverity.high for c in conflicts)
    log.info(
        "Cross-validation complete",
        checked=total,
        conflicts=len(conflicts),
        coherence=round(coherence, 2),
        significant=has_significant,
    )
    return ValidationResult(
        conflicts=conflicts,
        overall_coherence=coherence,
        has_significant_conflicts=has_significant,
    )
