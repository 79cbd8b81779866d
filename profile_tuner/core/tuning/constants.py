"""Profile tuning clinical constants.

Thresholds used by the analyzers, with their rationale. Values that a
deployment may reasonably want to change (basal target, basal step,
lookback window) live in ``profile_tuner.config`` instead.
"""

from typing import Final

HOURS_PER_DAY: Final[int] = 24

# ---------------------------------------------------------------------------
# Glucose thresholds (mg/dL)
# ---------------------------------------------------------------------------

# ADA hypoglycemia threshold. Any correction that reached this level is
# hard evidence against giving more insulin.
LOW_GLUCOSE_MGDL: Final[int] = 70

# Upper bound of the standard 70-180 mg/dL time-in-range band.
HIGH_GLUCOSE_MGDL: Final[int] = 180

# ---------------------------------------------------------------------------
# Fallback profile values when no usable slot exists
# ---------------------------------------------------------------------------

DEFAULT_ICR: Final[float] = 10.0  # g/U
DEFAULT_ISF: Final[float] = 30.0  # mg/dL per U
DEFAULT_BASAL: Final[float] = 0.0  # U/h

# Carbohydrate exchange used to express ICR as units per exchange.
CARB_EXCHANGE_GRAMS: Final[float] = 10.0

# ---------------------------------------------------------------------------
# Basal adjuster
# ---------------------------------------------------------------------------

DEFAULT_BASAL_TARGET_MGDL: Final[float] = 100.0
DEFAULT_BASAL_STEP: Final[float] = 0.05

# Below this many glucose entries the per-hour statistics are too thin and
# the simple deviation-only algorithm is used.
DETAILED_BASAL_MIN_ENTRIES: Final[int] = 100

SIMPLE_DEADBAND_MGDL: Final[float] = 20.0
SIMPLE_MAX_PCT: Final[int] = 30

MIN_HOUR_READINGS: Final[int] = 3
FALLBACK_MIN_TOTAL_READINGS: Final[int] = 10
FULL_CONFIDENCE_READINGS: Final[int] = 10
CLEAN_SHARE_FOR_NO_ACTIVITY: Final[float] = 0.7

# Boluses below this size do not contaminate basal-only readings.
ACTIVE_INSULIN_MIN_UNITS: Final[float] = 0.5
FALLBACK_INSULIN_WINDOW_HOURS: Final[float] = 2.0
# Night hours get a shorter exclusion window (basal-only periods are the
# most diagnostic at night).
NIGHT_WINDOW_FACTOR: Final[float] = 0.75

TREND_STEP_MGDL: Final[float] = 5.0
# Standard deviation that maps to zero stability.
STABILITY_ZERO_SD: Final[float] = 60.0
LOW_STABILITY: Final[float] = 0.7
DAY_STABILITY_PENALTY: Final[float] = 0.6
NIGHT_STABILITY_PENALTY: Final[float] = 0.8
NIGHT_CONSERVATISM: Final[float] = 0.8
# Severe night highs are relaxed to this factor so they are not under-corrected.
SEVERE_NIGHT_HIGH_DELTA: Final[float] = 40.0
SEVERE_NIGHT_CONSERVATISM: Final[float] = 0.9
INSULIN_ACTIVITY_PENALTY: Final[float] = 0.7

# ---------------------------------------------------------------------------
# Meal / ICR analyzer
# ---------------------------------------------------------------------------

MEAL_MIN_CARBS: Final[float] = 5.0
MEAL_ONLY_INSULIN_UNITS: Final[float] = 1.0
PRE_MEAL_OFFSET_MINUTES: Final[int] = 30
MEAL_PEAK_WINDOW_HOURS: Final[float] = 3.0
MEAL_2H_OFFSET_HOURS: Final[float] = 2.0
# Maximum distance between a target time and the reading used for it.
MAX_READING_STALENESS_MINUTES: Final[int] = 30

PRE_MEAL_HIGH_MGDL: Final[float] = 140.0
PRE_MEAL_HIGH_PEAK_BONUS: Final[float] = 20.0
# (max carbs, peak target, 2h target); the last tier covers everything else
MEAL_TARGET_TIERS: Final[tuple[tuple[float, float, float], ...]] = (
    (15.0, 180.0, 140.0),
    (30.0, 190.0, 150.0),
    (float("inf"), 200.0, 160.0),
)
PEAK_EXCESS_BASELINE_MGDL: Final[float] = 160.0
TWO_HOUR_EXCESS_BASELINE_MGDL: Final[float] = 140.0
MIN_MEALS_PER_SLOT: Final[int] = 2
FULL_CONFIDENCE_MEALS: Final[int] = 3

# ---------------------------------------------------------------------------
# Correction / ISF analyzer
# ---------------------------------------------------------------------------

CORRECTION_MIN_UNITS: Final[float] = 0.3
# Larger carb-free boluses are usually unlogged meal boluses.
CORRECTION_MAX_UNITS: Final[float] = 1.5
CORRECTION_MIN_PRE_GLUCOSE: Final[float] = 150.0
CORRECTION_MEAL_WINDOW_MINUTES: Final[int] = 30
NEARBY_MEAL_MIN_CARBS: Final[float] = 5.0
# Minute offsets of the 2h / 3h follow-up windows
FOLLOW_UP_2H_WINDOW: Final[tuple[int, int]] = (110, 130)
FOLLOW_UP_3H_WINDOW: Final[tuple[int, int]] = (170, 190)
OBSERVATION_WINDOW_HOURS: Final[float] = 3.0
MISTAGGED_MEAL_EFFICIENCY: Final[float] = 0.1
MISTAGGED_MEAL_MIN_UNITS: Final[float] = 1.0
MIN_DROP_SHARE_OF_EXPECTED: Final[float] = 0.3
MIN_DROP_CAP_MGDL: Final[float] = 30.0
EFFICIENCY_RANGE: Final[tuple[float, float]] = (0.2, 3.0)

TEMP_BASAL_MIN_PRE_GLUCOSE: Final[float] = 120.0
TEMP_BASAL_RATE_FACTOR: Final[float] = 1.5
TEMP_BASAL_MIN_RATE: Final[float] = 0.6  # U/h
TEMP_BASAL_BASELINE_FACTOR: Final[float] = 0.8
TEMP_BASAL_DEFAULT_MINUTES: Final[int] = 30
TEMP_BASAL_MIN_UNITS: Final[float] = 0.05
TEMP_BASAL_MEAL_WINDOW_MINUTES: Final[int] = 120
TEMP_BASAL_SUCCESS_DROP_MGDL: Final[float] = 20.0
TEMP_BASAL_SUCCESS_EFFICIENCY: Final[float] = 0.5
TEMP_BASAL_SUCCESS_FINAL_SHARE: Final[float] = 0.9

MIN_CORRECTIONS_PER_SLOT: Final[int] = 2
FULL_CONFIDENCE_CORRECTIONS: Final[int] = 5
# Aim slightly below 1.0 to avoid systematic over-correction.
TARGET_EFFICIENCY: Final[float] = 0.9
MAX_ISF_CHANGE_PCT: Final[float] = 30.0
MIN_ISF: Final[float] = 10.0
ISF_SIGNIFICANT_CHANGE_PCT: Final[float] = 10.0

# ---------------------------------------------------------------------------
# Slot optimizer
# ---------------------------------------------------------------------------

ICR_SIGNIFICANT_CHANGE_PCT: Final[float] = 5.0
ICR_MIN_CONFIDENCE: Final[float] = 0.3
NEW_SLOT_MIN_CONFIDENCE: Final[float] = 0.3
NEW_SLOT_MIN_CHANGE_PCT: Final[float] = 10.0
ICR_SIMILARITY_THRESHOLD: Final[float] = 0.5  # g/U

# ---------------------------------------------------------------------------
# Cross-validator
# ---------------------------------------------------------------------------

VALIDATION_HIGH_GLUCOSE: Final[float] = 140.0
VALIDATION_LOW_GLUCOSE: Final[float] = 80.0
VALIDATION_DEFAULT_GLUCOSE: Final[float] = 100.0
STRONG_SIGNAL_PCT: Final[float] = 5.0
LARGE_CHANGE_PCT: Final[float] = 15.0
