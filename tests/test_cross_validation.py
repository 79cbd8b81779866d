"""Tests for basal/ICR cross-validation."""

import pytest

from profile_tuner.core.tuning.enums import ConflictSeverity
from profile_tuner.schemas.analysis import HourlyAdjustment
from profile_tuner.services.cross_validation import (
    classify_conflict,
    is_non_meal_hour,
    validate_profile_recommendations,
)


def icr_at(hour: int, current: float, suggested: float) -> HourlyAdjustment:
    return HourlyAdjustment(
        hour=hour,
        time=f"{hour:02d}:00",
        current_value=current,
        suggested_value=suggested,
        adjustment_pct=(suggested - current) / current * 100,
        confidence=0.5,
    )


def basal_with(hour: int, pct: float) -> list[float]:
    basal = [0.0] * 24
    basal[hour] = pct
    return basal


def glucose_with(hour: int, value: float | None) -> list[float | None]:
    hourly = [None] * 24
    hourly[hour] = value
    return hourly


class TestClassifyConflict:
    """Tests for classify_conflict."""

    @pytest.mark.parametrize(
        "avg,basal,icr,expected",
        [
            (160, -10, 10, ConflictSeverity.high),
            (160, -3, 3, ConflictSeverity.medium),
            (60, 10, -10, ConflictSeverity.high),
            (60, 3, -3, ConflictSeverity.medium),
            (120, -10, 10, ConflictSeverity.low),
            (160, 10, -10, ConflictSeverity.low),
        ],
    )
    def test_severity(self, avg, basal, icr, expected):
        severity, _ = classify_conflict(avg, basal, icr)
        assert severity == expected

    def test_non_meal_hours(self):
        assert [h for h in range(24) if is_non_meal_hour(h)] == [0, 1, 2, 3, 4, 5, 14, 15, 16, 23]


class TestValidateProfileRecommendations:
    """Tests for validate_profile_recommendations."""

    def test_high_glucose_with_both_loosening(self):
        result = validate_profile_recommendations(
            basal_with(8, -10), [icr_at(8, 10, 11)], glucose_with(8, 160)
        )

        assert len(result.conflicts) == 1
        conflict = result.conflicts[0]
        assert conflict.severity == ConflictSeverity.high
        assert conflict.basal_change == -10
        assert conflict.icr_change == 10
        assert conflict.avg_glucose == 160
        assert result.has_significant_conflicts is True
        assert result.overall_coherence == 0.0

    def test_large_basal_change_at_night_is_benign(self):
        """Test a basal-only change overnight is recorded as low severity."""
        result = validate_profile_recommendations(
            basal_with(3, 20), [icr_at(3, 10, 10)], glucose_with(3, 100)
        )

        conflict = result.conflicts[0]
        assert conflict.severity == ConflictSeverity.low
        assert "non-meal" in conflict.recommendation
        assert result.has_significant_conflicts is False

    def test_large_change_at_meal_hour(self):
        result = validate_profile_recommendations(
            basal_with(12, 20), [icr_at(12, 10, 10)], glucose_with(12, 100)
        )

        assert result.conflicts[0].recommendation == (
            "Large adjustments detected - basal: 20%, ICR: 0%"
        )

    def test_coherent_suggestions(self):
        result = validate_profile_recommendations(
            [0.0] * 24, [icr_at(12, 10, 9.6), icr_at(18, 12, 12)], glucose_with(12, 130)
        )

        assert result.conflicts == []
        assert result.overall_coherence == 1.0

    def test_missing_average_uses_neutral_glucose(self):
        result = validate_profile_recommendations(
            basal_with(8, -10), [icr_at(8, 10, 11)], [None] * 24
        )

        assert result.conflicts == []

    def test_coherence_counts_every_checked_slot(self):
        """Test one conflict among four ICR slots leaves coherence at 0.75."""
        adjustments = [
            icr_at(0, 10, 10),
            icr_at(8, 10, 11),
            icr_at(12, 10, 10),
            icr_at(18, 10, 10),
        ]

        result = validate_profile_recommendations(
            basal_with(8, -10), adjustments, glucose_with(8, 160)
        )

        assert [c.hour for c in result.conflicts] == [8]
        assert result.overall_coherence == pytest.approx(0.75)
        assert result.has_significant_conflicts is True

    def test_nothing_to_check(self):
        result = validate_profile_recommendations([0.0] * 24, [], [None] * 24)

        assert result.overall_coherence == 1.0
        assert result.has_significant_conflicts is False
