"""Application configuration using Pydantic Settings."""

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from profile_tuner.core.tuning.enums import ChangeStrategy, SlotGranularity


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Logging
    log_format: str = "json"  # 'json' or 'text'
    log_level: str = "INFO"
    service_name: str = "profile-tuner"

    # CORS
    cors_origins: list[str] = ["http://localhost:3000"]

    # Engine defaults (overridable per request)
    default_basal_step: float = 0.05  # U/h pump rounding granularity
    default_lookback_days: int = 3
    basal_target_glucose: float = 100.0  # mg/dL
    detailed_basal_min_entries: int = 100
    profile_change_strategy: ChangeStrategy = ChangeStrategy.warn_only
    isf_granularity: SlotGranularity = SlotGranularity.hour
    # IANA zone used to derive hour-of-day from timezone-aware timestamps.
    # None keeps each timestamp's own wall clock.
    analysis_timezone: str | None = None

    @field_validator("default_basal_step")
    @classmethod
    def check_basal_step(cls, value: float) -> float:
        if value <= 0 or value > 1:
            raise ValueError("basal step must be within (0, 1] U/h")
        return value

    @field_validator("default_lookback_days")
    @classmethod
    def check_lookback_days(cls, value: int) -> int:
        if value < 1 or value > 30:
            raise ValueError("lookback days must be between 1 and 30")
        return value


settings = Settings()
