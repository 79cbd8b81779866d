"""Tests for profile change detection."""

from factories import at, make_profile
from profile_tuner.core.tuning.enums import ChangeStrategy, ChangeType
from profile_tuner.services.profile_changes import ProfileChangeDetector, slots_equal


def snapshot(day: int, basal: float = 1.0, hour: int = 0, isf=None):
    return make_profile(basal=[("00:00", basal)], isf=isf, effective_from=at(day, hour))


class TestDetectChanges:
    """Tests for ProfileChangeDetector.detect_changes."""

    def test_identical_snapshots(self):
        detector = ProfileChangeDetector([snapshot(0), snapshot(1)])

        assert detector.detect_changes() == []

    def test_basal_edit_is_reported(self):
        history = [snapshot(0), snapshot(1), snapshot(2, basal=1.1)]

        changes = ProfileChangeDetector(history).detect_changes()

        assert len(changes) == 1
        assert changes[0].change_type == ChangeType.basal
        assert changes[0].day == at(2, 0).date()
        assert changes[0].prev[0].value == 1.0
        assert changes[0].curr[0].value == 1.1

    def test_last_snapshot_of_the_day_wins(self):
        """Test an edit reverted the same day is not a change."""
        history = [snapshot(0), snapshot(1, basal=1.5, hour=8), snapshot(1, basal=1.0, hour=20)]

        assert ProfileChangeDetector(history).detect_changes() == []

    def test_slot_count_change(self):
        history = [
            snapshot(0, isf=[("00:00", 50)]),
            snapshot(1, isf=[("00:00", 50), ("12:00", 40)]),
        ]

        changes = ProfileChangeDetector(history).detect_changes()

        assert [c.change_type for c in changes] == [ChangeType.isf]

    def test_lookback_skips_old_changes(self):
        history = [snapshot(0), snapshot(2, basal=1.1), snapshot(9, basal=1.2)]

        changes = ProfileChangeDetector(history, days=3, now=at(10, 12)).detect_changes()

        assert [c.day for c in changes] == [at(9, 0).date()]

    def test_undated_snapshots_are_ignored(self):
        history = [snapshot(0), make_profile(basal=[("00:00", 2.0)])]

        assert ProfileChangeDetector(history).detect_changes() == []


class TestAnalyze:
    """Tests for ProfileChangeDetector.analyze."""

    def test_segment_strategy_starts_at_latest_change_day(self):
        history = [snapshot(0), snapshot(1, basal=1.1, hour=15), snapshot(2, basal=1.2, hour=9)]

        analysis = ProfileChangeDetector(history, strategy=ChangeStrategy.segment).analyze()

        assert analysis.has_changes is True
        assert analysis.segment_start == at(2, 0)
        assert analysis.strategy == ChangeStrategy.segment

    def test_warn_only_does_not_segment(self):
        history = [snapshot(0), snapshot(1, basal=1.1)]

        analysis = ProfileChangeDetector(history).analyze()

        assert analysis.has_changes is True
        assert analysis.segment_start is None

    def test_no_history(self):
        analysis = ProfileChangeDetector([], strategy=ChangeStrategy.segment).analyze()

        assert analysis.has_changes is False
        assert analysis.segment_start is None


class TestSlotsEqual:
    """Tests for slots_equal."""

    def test_value_and_time_must_match(self):
        base = make_profile(basal=[("00:00", 1.0)]).basal

        assert slots_equal(base, make_profile(basal=[("00:00", 1.0)]).basal)
        assert not slots_equal(base, make_profile(basal=[("01:00", 1.0)]).basal)
        assert not slots_equal(base, make_profile(basal=[("00:00", 1.05)]).basal)
