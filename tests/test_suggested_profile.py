"""Tests for suggested profile assembly."""

from factories import make_profile
from profile_tuner.schemas.analysis import (
    BasalHourlyAdjustment,
    HourlyAdjustment,
    SlotRecommendations,
)
from profile_tuner.schemas.profile import Profile
from profile_tuner.services.suggested_profile import build_suggested_profile


def basal_changes(pct_by_hour: dict[int, float], current: float = 1.0):
    return [
        BasalHourlyAdjustment(
            hour=hour,
            time=f"{hour:02d}:00",
            current_value=current,
            suggested_value=current,
            adjustment_pct=pct_by_hour.get(hour, 0.0),
            confidence=1.0,
        )
        for hour in range(24)
    ]


def icr_modification(time: str, current: float, suggested: float) -> SlotRecommendations:
    return SlotRecommendations(
        modifications=[
            HourlyAdjustment(
                hour=int(time[:2]),
                time=time,
                current_value=current,
                suggested_value=suggested,
                adjustment_pct=-16.0,
                confidence=0.5,
            )
        ]
    )


class TestBuildSuggestedProfile:
    """Tests for build_suggested_profile."""

    def test_applies_all_changes(self):
        profile = make_profile()

        suggested = build_suggested_profile(
            profile,
            basal_changes({8: 15}),
            icr_modification("00:00", 10, 8.4),
            SlotRecommendations(),
            0.05,
        )

        assert len(suggested.basal) == 24
        assert suggested.basal[8].new == 1.15
        assert suggested.basal[8].pct == 15
        assert suggested.basal[7].new == 1.0

        icr = suggested.icr[0]
        assert icr.old == 10
        assert icr.new == 8.4
        assert icr.pct == -16.0
        assert icr.old_units_per_exchange == 1.0
        assert icr.new_units_per_exchange == 1.19

        assert [(s.old, s.new, s.pct) for s in suggested.isf] == [(50, 50, 0.0)]

    def test_basal_is_rounded_to_step(self):
        profile = make_profile(basal=[("00:00", 0.83)])

        suggested = build_suggested_profile(
            profile, basal_changes({}), SlotRecommendations(), SlotRecommendations(), 0.05
        )

        assert suggested.basal[0].old == 0.83
        assert suggested.basal[0].new == 0.85

    def test_no_profile(self):
        suggested = build_suggested_profile(
            None, basal_changes({}), SlotRecommendations(), SlotRecommendations(), 0.05
        )

        assert suggested.basal == []
        assert suggested.icr == []
        assert suggested.isf == []

    def test_zero_ratio_slots_are_skipped(self):
        profile = Profile(
            carb_ratio=make_profile(icr=[("00:00", 0), ("12:00", 12)]).carb_ratio
        )

        suggested = build_suggested_profile(
            profile, basal_changes({}), SlotRecommendations(), SlotRecommendations(), 0.05
        )

        assert suggested.basal == []
        assert [s.time for s in suggested.icr] == ["12:00"]
