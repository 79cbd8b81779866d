"""Tests for application settings."""

import pytest
from pydantic import ValidationError

from profile_tuner.config import Settings
from profile_tuner.core.tuning.enums import ChangeStrategy, SlotGranularity


class TestSettings:
    """Tests for Settings defaults and validation."""

    def test_engine_defaults(self):
        settings = Settings()

        assert settings.default_basal_step == 0.05
        assert settings.default_lookback_days == 3
        assert settings.basal_target_glucose == 100.0
        assert settings.detailed_basal_min_entries == 100
        assert settings.profile_change_strategy == ChangeStrategy.warn_only
        assert settings.isf_granularity == SlotGranularity.hour
        assert settings.analysis_timezone is None

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("DEFAULT_BASAL_STEP", "0.1")
        monkeypatch.setenv("PROFILE_CHANGE_STRATEGY", "segment")

        settings = Settings()

        assert settings.default_basal_step == 0.1
        assert settings.profile_change_strategy == ChangeStrategy.segment

    @pytest.mark.parametrize("step", [0, -0.05, 1.5])
    def test_invalid_basal_step(self, step):
        with pytest.raises(ValidationError):
            Settings(default_basal_step=step)

    @pytest.mark.parametrize("days", [0, 31])
    def test_invalid_lookback_days(self, days):
        with pytest.raises(ValidationError):
            Settings(default_lookback_days=days)
