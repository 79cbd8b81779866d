"""Profile tuning enums.

Shared vocabulary between the analyzers, the result schemas and the
HTTP surface.
"""

from enum import StrEnum, auto


class TreatmentType(StrEnum):
    """Normalised treatment event types."""

    bolus = auto()
    meal_bolus = auto()
    correction_bolus = auto()
    carb_correction = auto()
    temp_basal = auto()
    profile_switch = auto()
    other = auto()


class BasalMode(StrEnum):
    """Which basal algorithm produced the hourly suggestions.

    ``simple`` is used when there are too few glucose entries for the
    per-hour statistics of ``detailed`` to be meaningful.
    """

    simple = auto()
    detailed = auto()


class ChangeType(StrEnum):
    """Profile field that changed between two consecutive days."""

    basal = auto()
    icr = auto()
    isf = auto()


class ChangeStrategy(StrEnum):
    """How a recent profile change affects the analyzed data.

    ``warn_only``: report the change, analyze all data.
    ``segment``: analyze only data recorded since the most recent change.
    """

    warn_only = auto()
    segment = auto()


class SlotGranularity(StrEnum):
    """Resolution used to attribute events to profile slots."""

    hour = auto()
    minute = auto()


class ConflictSeverity(StrEnum):
    """Severity of a basal/ICR contradiction."""

    low = auto()
    medium = auto()
    high = auto()
