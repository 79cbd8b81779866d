"""Tests for the end-to-end analysis pipeline."""

from datetime import timedelta

from factories import at, entry, make_profile, meal
from profile_tuner.core.tuning.enums import BasalMode, ChangeStrategy
from profile_tuner.logging_config import analysis_run_ctx
from profile_tuner.services.analysis_engine import run_analysis, run_analysis_from_raw

# 2024-03-04T08:00:00Z in epoch milliseconds
EPOCH_MS = 1709539200000


def high_hour_8():
    return [entry(at(0, 8, minute * 6), 140) for minute in range(10)]


class TestRunAnalysis:
    """Tests for run_analysis."""

    def test_empty_data_gives_complete_result(self):
        """Test every hour-indexed list is populated even without data."""
        result = run_analysis([], [], None)

        assert result.hourly_avg == [None] * 24
        assert result.basal_mode == BasalMode.simple
        assert len(result.basal_change) == 24
        assert all(adj.confidence == 0.0 for adj in result.basal_change)
        assert result.validation is None
        assert result.suggested_profile.basal == []
        assert result.profile_change_analysis.has_changes is False
        assert result.basal_step == 0.05
        assert result.run_id

    def test_high_hour_flows_into_suggested_profile(self):
        result = run_analysis(high_hour_8(), [], make_profile())

        assert result.entry_count == 10
        assert result.hourly_avg[8] == 140
        assert result.basal_change[8].adjustment_pct == 15
        assert result.suggested_profile.basal[8].new == 1.15
        assert len(result.suggested_profile.icr) == 1
        assert len(result.suggested_profile.isf) == 1

    def test_basal_step_override(self):
        result = run_analysis([], [], make_profile(), basal_step=0.1)
        assert result.basal_step == 0.1

    def test_run_id_is_scoped_to_the_run(self):
        result = run_analysis([], [], None, run_id="abc123")

        assert result.run_id == "abc123"
        assert analysis_run_ctx.get() is None

    def test_icr_modifications_trigger_validation(self):
        entries, treatments = [], []
        for day in range(2):
            treatments.append(meal(at(day, 8), 40, insulin=4.0))
            entries += [
                entry(at(day, 7, 30), 120),
                entry(at(day, 9), 260),
                entry(at(day, 10), 220),
            ]

        result = run_analysis(entries, treatments, make_profile())

        assert len(result.hourly_icr_adjustments.modifications) == 1
        assert result.validation is not None
        assert result.suggested_profile.icr[0].new == 8.4

    def test_unchanged_icr_slots_are_validated(self):
        """Test a large basal change at an unchanged 08:00 ratio is flagged."""
        entries = [entry(at(0, 8, minute * 6), 180) for minute in range(10)]
        profile = make_profile(icr=[("00:00", 10.0), ("08:00", 10.0)])

        result = run_analysis(entries, [], profile)

        assert result.hourly_icr_adjustments.modifications == []
        assert result.basal_change[8].adjustment_pct == 25
        assert [c.hour for c in result.validation.conflicts] == [8]
        assert result.validation.overall_coherence == 0.5

    def test_no_validation_without_carb_ratios(self):
        result = run_analysis(high_hour_8(), [], None)
        assert result.validation is None


class TestProfileChangeSegmentation:
    """Tests for profile change handling in the pipeline."""

    def history(self):
        return [
            make_profile(basal=[("00:00", 1.0)], effective_from=at(0, 0)),
            make_profile(basal=[("00:00", 1.2)], effective_from=at(2, 9)),
        ]

    def entries(self):
        return [entry(at(day, 8), 120) for day in range(4)]

    def test_segment_trims_data_before_change(self):
        result = run_analysis(
            self.entries(),
            [],
            make_profile(),
            profile_history=self.history(),
            lookback_days=3,
            now=at(3, 12),
            strategy=ChangeStrategy.segment,
        )

        assert result.profile_change_analysis.segment_start == at(2, 0)
        assert result.entry_count == 2

    def test_warn_only_keeps_all_data(self):
        result = run_analysis(
            self.entries(),
            [],
            make_profile(),
            profile_history=self.history(),
            lookback_days=3,
            now=at(3, 12),
            strategy=ChangeStrategy.warn_only,
        )

        assert result.profile_change_analysis.has_changes is True
        assert result.entry_count == 4

    def test_change_outside_lookback_is_ignored(self):
        result = run_analysis(
            self.entries(),
            [],
            make_profile(),
            profile_history=self.history(),
            lookback_days=1,
            now=at(2, 0) + timedelta(days=3),
            strategy=ChangeStrategy.segment,
        )

        assert result.profile_change_analysis.has_changes is False
        assert result.entry_count == 4


class TestRunAnalysisFromRaw:
    """Tests for run_analysis_from_raw."""

    def raw_entries(self):
        return [{"date": EPOCH_MS + minute * 6 * 60_000, "sgv": 140} for minute in range(10)]

    def raw_profile(self):
        return {
            "defaultProfile": "Default",
            "store": {
                "Default": {
                    "basal": [{"time": "00:00", "value": 1.0}],
                    "carbratio": [{"time": "00:00", "value": 10}],
                    "sens": [{"time": "00:00", "value": 50}],
                }
            },
        }

    def test_nightscout_payload(self):
        treatments = [
            {"created_at": "2024-03-04T12:00:00Z", "eventType": "Correction Bolus", "insulin": 1}
        ]

        result = run_analysis_from_raw(
            self.raw_entries() + [{"sgv": 100}], treatments, self.raw_profile()
        )

        assert result.entry_count == 10
        assert result.treatment_count == 1
        assert result.basal_change[8].adjustment_pct == 15
        assert result.suggested_profile.basal[8].new == 1.15

    def test_timezone_shifts_hour_of_day(self):
        result = run_analysis_from_raw(
            self.raw_entries(), [], self.raw_profile(), tz="Europe/Warsaw"
        )

        assert result.basal_change[9].adjustment_pct == 15
        assert result.basal_change[8].adjustment_pct == 0

    def test_unusable_profile_degrades_to_none(self):
        result = run_analysis_from_raw(self.raw_entries(), [], "not-a-profile")

        assert result.suggested_profile.basal == []
        assert result.basal_change[8].current_value == 0.0
