"""Raw payload normalization.

Turns vendor-shaped entry and treatment dicts into validated, sorted
GlucoseEntry / Treatment models. A single bad record never fails the
run: it is skipped and counted.
"""

from collections.abc import Iterable
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from profile_tuner.core.tuning.timeslots import to_wall_clock
from profile_tuner.logging_config import StructuredLogger, get_logger
from profile_tuner.schemas.glucose import GlucoseEntry, Treatment

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", GlucoseEntry, Treatment)


def _ingest(
    raw: Iterable[Any],
    model: type[ModelT],
    tz: str | None,
    log: StructuredLogger,
) -> list[ModelT]:
    records: list[ModelT] = []
    skipped = 0
    for item in raw:
        if isinstance(item, model):
            if tz and item.timestamp.tzinfo is not None:
                item = item.model_copy(update={"timestamp": to_wall_clock(item.timestamp, tz)})
            records.append(item)
            continue
        if isinstance(item, BaseModel):
            item = item.model_dump()
        if not isinstance(item, dict):
            skipped += 1
            continue
        try:
            records.append(model.model_validate(item, context={"tz": tz}))
        except ValidationError:
            skipped += 1

    records.sort(key=lambda record: record.timestamp)
    log.info(
        "Ingested records",
        kind=model.__name__,
        accepted=len(records),
        skipped=skipped,
    )
    return records


def ingest_entries(
    raw: Iterable[Any],
    tz: str | None = None,
    log: StructuredLogger | None = None,
) -> list[GlucoseEntry]:
    """Validate raw CGM entries.

    Args:
        raw: Entry dicts (any supported alias shape) or GlucoseEntry models.
        tz: Optional IANA zone for converting aware timestamps.
        log: Logger for the accepted/skipped breadcrumb.

    Returns:
        Entries sorted by timestamp. Records without a value or with an
        unparsable timestamp are skipped.
    """
    return _ingest(raw or [], GlucoseEntry, tz, log or logger)


def ingest_treatments(
    raw: Iterable[Any],
    tz: str | None = None,
    log: StructuredLogger | None = None,
) -> list[Treatment]:
    """Validate raw treatments.

    Args:
        raw: Treatment dicts (any supported alias shape) or Treatment models.
        tz: Optional IANA zone for converting aware timestamps.
        log: Logger for the accepted/skipped breadcrumb.

    Returns:
        Treatments sorted by timestamp.
    """
    return _ingest(raw or [], Treatment, tz, log or logger)
