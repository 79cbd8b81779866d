"""Profile tuning core.

Pure building blocks shared by the analyzers: enums, clinical
thresholds, rounding and time-slot arithmetic. No I/O, no FastAPI.

IMPORTANT: every suggestion derived from these helpers is a candidate
for human review. The engine never changes a pump profile on its own.
"""

from profile_tuner.core.tuning.enums import (
    BasalMode,
    ChangeStrategy,
    ChangeType,
    ConflictSeverity,
    SlotGranularity,
    TreatmentType,
)
from profile_tuner.core.tuning.rounding import round_half_up, round_int, round_to_step
from profile_tuner.core.tuning.timeslots import (
    expand_to_24_hours,
    format_clock,
    parse_clock,
    to_wall_clock,
)

__all__ = [
    "BasalMode",
    "ChangeStrategy",
    "ChangeType",
    "ConflictSeverity",
    "SlotGranularity",
    "TreatmentType",
    "expand_to_24_hours",
    "format_clock",
    "parse_clock",
    "round_half_up",
    "round_int",
    "round_to_step",
    "to_wall_clock",
]
