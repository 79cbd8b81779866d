"""Profile parsing and normalization.

Accepts the profile shapes produced by Nightscout and similar uploaders
and returns one canonical Profile:

- a profile document ``{defaultProfile, store: {name: {...}}, startDate}``
- a list of such documents (newest first, as the profile API returns it)
- a bare store dict ``{basal, carbratio, sens, target_low, ...}``

Malformed input never raises into the pipeline. Unusable slots are
dropped; an unusable document yields None.
"""

from datetime import datetime
from typing import Any

from pydantic import TypeAdapter, ValidationError

from profile_tuner.core.tuning.timeslots import (
    expand_to_24_hours,
    format_clock,
    parse_clock,
    to_wall_clock,
)
from profile_tuner.logging_config import StructuredLogger, get_logger
from profile_tuner.schemas.profile import Profile, ProfileSlot, TargetRange

logger = get_logger(__name__)

__all__ = [
    "expand_to_24_hours",
    "parse_profile",
    "parse_profile_history",
]

BASAL_KEYS = ("basal", "basals")
ICR_KEYS = ("carbratio", "icr", "carbRatio", "carb_ratio")
ISF_KEYS = ("sens", "sensitivity", "isf")
EFFECTIVE_FROM_KEYS = ("startDate", "mills", "created_at", "effective_from")

SLOT_TIME_KEYS = ("time", "start")
SLOT_VALUE_KEYS = ("value", "rate")
ISF_VALUE_KEYS = ("value", "sensitivity", "rate")

_datetime_adapter = TypeAdapter(datetime)


def _first_present(raw: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        if raw.get(key) is not None:
            return raw[key]
    return None


def _slot_minute(raw: dict[str, Any]) -> int | None:
    time_value = _first_present(raw, SLOT_TIME_KEYS)
    if isinstance(time_value, str):
        minute = parse_clock(time_value)
        if minute is not None:
            return minute
    seconds = raw.get("timeAsSeconds")
    if isinstance(seconds, int | float) and 0 <= seconds < 86400:
        return int(seconds) // 60
    return None


def _parse_slots(
    raw_slots: Any, value_keys: tuple[str, ...], log: StructuredLogger, field: str
) -> list[ProfileSlot]:
    """Parse a schedule, dropping slots without a usable time or value."""
    if isinstance(raw_slots, int | float) and not isinstance(raw_slots, bool):
        # A scalar schedule is a single all-day slot
        raw_slots = [{"time": "00:00", "value": raw_slots}]
    if not isinstance(raw_slots, list):
        return []

    slots: dict[int, ProfileSlot] = {}
    dropped = 0
    for item in raw_slots:
        if not isinstance(item, dict):
            dropped += 1
            continue
        minute = _slot_minute(item)
        value = _first_present(item, value_keys)
        if minute is None or value is None:
            dropped += 1
            continue
        try:
            slot = ProfileSlot(time=format_clock(minute), value=value)
        except ValidationError:
            dropped += 1
            continue
        # Later duplicates of the same start time win
        slots[minute] = slot

    if dropped:
        log.warning("Dropped malformed profile slots", field=field, dropped=dropped)
    return [slots[minute] for minute in sorted(slots)]


def _parse_targets(store: dict[str, Any], log: StructuredLogger) -> list[TargetRange]:
    """Pair target_low / target_high schedules by start time."""
    combined = store.get("target")
    if isinstance(combined, list):
        targets = []
        for item in combined:
            try:
                targets.append(TargetRange.model_validate(item))
            except ValidationError:
                log.warning("Dropped malformed target range")
        return targets

    lows = _parse_slots(store.get("target_low"), SLOT_VALUE_KEYS, log, "target_low")
    highs = {
        slot.minute_of_day: slot.value
        for slot in _parse_slots(store.get("target_high"), SLOT_VALUE_KEYS, log, "target_high")
    }
    return [
        TargetRange(time=low.time, low=low.value, high=highs.get(low.minute_of_day, low.value))
        for low in lows
    ]


def _parse_effective_from(raw: dict[str, Any], tz: str | None) -> datetime | None:
    value = _first_present(raw, EFFECTIVE_FROM_KEYS)
    if value is None:
        return None
    try:
        return to_wall_clock(_datetime_adapter.validate_python(value), tz)
    except ValidationError:
        return None


def parse_profile(
    raw: Any,
    tz: str | None = None,
    log: StructuredLogger | None = None,
) -> Profile | None:
    """Normalize a raw profile document.

    Args:
        raw: Profile document, list of documents, bare store dict or an
            already parsed Profile.
        tz: Optional IANA zone for converting an aware start date.
        log: Logger for malformed-input warnings.

    Returns:
        The normalized Profile, or None when nothing usable was found.
    """
    log = log or logger
    if isinstance(raw, Profile):
        return raw
    if isinstance(raw, list):
        if not raw:
            log.warning("Empty profile list")
            return None
        raw = raw[0]
    if not isinstance(raw, dict) or not raw:
        if raw is not None:
            log.warning("Unsupported profile payload", payload_type=type(raw).__name__)
        return None

    name = None
    store = raw
    stores = raw.get("store")
    if isinstance(stores, dict):
        if not stores:
            log.warning("Profile document has an empty store")
            return None
        name = raw.get("defaultProfile")
        if name not in stores:
            name = next(iter(stores))
        store = stores[name]
        if not isinstance(store, dict):
            log.warning("Profile store entry is not an object", profile_name=name)
            return None

    dia = store.get("dia")
    timezone = store.get("timezone")
    profile = Profile(
        effective_from=_parse_effective_from(raw, tz),
        name=name,
        basal=_parse_slots(_first_present(store, BASAL_KEYS), SLOT_VALUE_KEYS, log, "basal"),
        carb_ratio=_parse_slots(
            _first_present(store, ICR_KEYS), SLOT_VALUE_KEYS, log, "carb_ratio"
        ),
        sensitivity=_parse_slots(
            _first_present(store, ISF_KEYS), ISF_VALUE_KEYS, log, "sensitivity"
        ),
        target=_parse_targets(store, log),
        dia=float(dia) if isinstance(dia, int | float) else None,
        timezone=timezone if isinstance(timezone, str) else None,
    )

    if not (profile.basal or profile.carb_ratio or profile.sensitivity):
        log.warning("Profile has no usable schedules", profile_name=name)
        return None

    log.debug(
        "Parsed profile",
        profile_name=name,
        basal_slots=len(profile.basal),
        icr_slots=len(profile.carb_ratio),
        isf_slots=len(profile.sensitivity),
    )
    return profile


def parse_profile_history(
    raw_list: Any,
    tz: str | None = None,
    log: StructuredLogger | None = None,
) -> list[Profile]:
    """Parse a list of profile documents into snapshots ordered by effective_from.

    Documents without a start date cannot be placed in time and are skipped.
    """
    log = log or logger
    if not isinstance(raw_list, list):
        return []

    snapshots = []
    undated = 0
    for item in raw_list:
        profile = parse_profile(item, tz=tz, log=log)
        if profile is None:
            continue
        if profile.effective_from is None:
            undated += 1
            continue
        snapshots.append(profile)

    if undated:
        log.warning("Skipped undated profile snapshots", skipped=undated)
    snapshots.sort(key=lambda profile: profile.effective_from)
    return snapshots
