"""Profile change detection.

Glucose recorded under a profile that has since been replaced says
little about the current profile. The detector finds days on which the
active basal, carb ratio or sensitivity schedule changed so the caller
can warn about (or drop) data from before the change.
"""

from collections.abc import Sequence
from datetime import date, datetime, time

from profile_tuner.core.tuning.enums import ChangeStrategy, ChangeType
from profile_tuner.logging_config import StructuredLogger, get_logger
from profile_tuner.schemas.analysis import ProfileChange, ProfileChangeAnalysis
from profile_tuner.schemas.profile import Profile, ProfileSlot

logger = get_logger(__name__)

_FIELDS: tuple[tuple[ChangeType, str], ...] = (
    (ChangeType.basal, "basal"),
    (ChangeType.icr, "carb_ratio"),
    (ChangeType.isf, "sensitivity"),
)


def slots_equal(a: Sequence[ProfileSlot], b: Sequence[ProfileSlot]) -> bool:
    """Same slot count, and each slot has the same start time and value."""
    if len(a) != len(b):
        return False
    return all(x.time == y.time and x.value == y.value for x, y in zip(a, b))


class ProfileChangeDetector:
    """Detect day-to-day changes in a profile history.

    Args:
        profiles: Profile snapshots with ``effective_from`` set.
        days: Only report changes at most this many days before ``now``.
            None reports every change.
        now: Reference time for ``days`` (defaults to the current time).
        strategy: How the caller should treat data from before a change.
    """

    def __init__(
        self,
        profiles: Sequence[Profile],
        days: int | None = None,
        now: datetime | None = None,
        strategy: ChangeStrategy = ChangeStrategy.warn_only,
        log: StructuredLogger | None = None,
    ):
        self.profiles = [p for p in profiles if p.effective_from is not None]
        self.days = days
        self.now = now or datetime.now()
        self.strategy = strategy
        self.log = (log or logger).bind(analyzer="profile_changes")

    def _active_by_day(self) -> list[tuple[date, Profile]]:
        """The last snapshot of each calendar day, in day order."""
        by_day: dict[date, Profile] = {}
        for profile in sorted(self.profiles, key=lambda p: p.effective_from):
            by_day[profile.effective_from.date()] = profile
        return sorted(by_day.items())

    def _within_window(self, day: date) -> bool:
        if self.days is None:
            return True
        age = self.now - datetime.combine(day, time.min)
        return age.total_seconds() / 86400 <= self.days

    def detect_changes(self) -> list[ProfileChange]:
        changes: list[ProfileChange] = []
        active = self._active_by_day()
        for (_, prev), (day, curr) in zip(active, active[1:]):
            if not self._within_window(day):
                continue
            for change_type, field in _FIELDS:
                prev_slots = getattr(prev, field)
                curr_slots = getattr(curr, field)
                if not slots_equal(prev_slots, curr_slots):
                    changes.append(
                        ProfileChange(
                            day=day, change_type=change_type, prev=prev_slots, curr=curr_slots
                        )
                    )

        self.log.info(
            "Profile change detection complete",
            snapshots=len(self.profiles),
            days_compared=max(0, len(active) - 1),
            changes=len(changes),
            lookback_days=self.days,
        )
        return changes

    def analyze(self) -> ProfileChangeAnalysis:
        """Detect changes and resolve the data segment start for the strategy.

        With ``segment``, data before midnight of the most recent change day
        should be excluded; with ``warn_only`` the data is left untouched.
        """
        changes = self.detect_changes()
        segment_start = None
        if changes and self.strategy == ChangeStrategy.segment:
            latest = max(change.day for change in changes)
            segment_start = datetime.combine(latest, time.min)
            self.log.warning(
                "Analyzing only data since the latest profile change",
                segment_start=segment_start.isoformat(),
            )
        return ProfileChangeAnalysis(
            has_changes=bool(changes),
            changes=changes,
            strategy=self.strategy,
            segment_start=segment_start,
        )
