"""Profile tuning analysis pipeline.

Runs every analyzer over one data set and assembles the AnalysisResult:

1. profile change detection (optionally trimming pre-change data)
2. hourly averages and basal suggestions
3. meal (ICR) and correction (ISF) analysis, classified per slot
4. basal/ICR cross-validation
5. the suggested profile with all surfaced changes applied

The pipeline is synchronous and pure apart from logging. Each run gets a
run id that is attached to every log record emitted while it runs.
"""

import uuid
from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any

from profile_tuner.config import settings
from profile_tuner.core.tuning.enums import ChangeStrategy, SlotGranularity
from profile_tuner.core.tuning.timeslots import to_wall_clock
from profile_tuner.logging_config import StructuredLogger, analysis_run_ctx, get_logger
from profile_tuner.schemas.analysis import AnalysisResult
from profile_tuner.schemas.glucose import GlucoseEntry, Treatment
from profile_tuner.schemas.profile import Profile
from profile_tuner.services.basal_adjuster import compute_basal_adjustments
from profile_tuner.services.correction_analysis import analyze_hourly_isf
from profile_tuner.services.cross_validation import validate_profile_recommendations
from profile_tuner.services.hourly_aggregator import hourly_average
from profile_tuner.services.ingest import ingest_entries, ingest_treatments
from profile_tuner.services.meal_analysis import analyze_hourly_icr
from profile_tuner.services.profile_changes import ProfileChangeDetector
from profile_tuner.services.profile_parser import parse_profile, parse_profile_history
from profile_tuner.services.suggested_profile import build_suggested_profile

logger = get_logger(__name__)


def _new_run_id() -> str:
    return uuid.uuid4().hex[:12]


def run_analysis(
    entries: Sequence[GlucoseEntry],
    treatments: Sequence[Treatment],
    profile: Profile | None,
    profile_history: Sequence[Profile] = (),
    basal_step: float | None = None,
    lookback_days: int | None = None,
    now: datetime | None = None,
    strategy: ChangeStrategy | None = None,
    isf_granularity: SlotGranularity | None = None,
    tz: str | None = None,
    run_id: str | None = None,
    log: StructuredLogger | None = None,
) -> AnalysisResult:
    """Run the full analysis over normalized data.

    Args:
        entries: Glucose entries.
        treatments: Treatments.
        profile: Current profile, or None.
        profile_history: Profile snapshots for change detection.
        basal_step: Basal rounding step (defaults to configuration).
        lookback_days: Profile change lookback (defaults to configuration).
        now: Reference time for the lookback window.
        strategy: Profile change strategy (defaults to configuration).
        isf_granularity: ISF slot attribution (defaults to configuration).
        tz: Zone used to normalize an aware ``now``.
        run_id: Identifier attached to all log records of this run.
        log: Structured logger for breadcrumbs.

    Returns:
        AnalysisResult with all 24-hour lists fully populated.
    """
    run_id = run_id or _new_run_id()
    token = analysis_run_ctx.set(run_id)
    try:
        return _run(
            list(entries),
            list(treatments),
            profile,
            list(profile_history),
            basal_step=basal_step or settings.default_basal_step,
            lookback_days=lookback_days or settings.default_lookback_days,
            now=to_wall_clock(now, tz or settings.analysis_timezone) if now else None,
            strategy=strategy or settings.profile_change_strategy,
            isf_granularity=isf_granularity or settings.isf_granularity,
            run_id=run_id,
            log=log or logger,
        )
    finally:
        analysis_run_ctx.reset(token)


def _run(
    entries: list[GlucoseEntry],
    treatments: list[Treatment],
    profile: Profile | None,
    profile_history: list[Profile],
    *,
    basal_step: float,
    lookback_days: int,
    now: datetime | None,
    strategy: ChangeStrategy,
    isf_granularity: SlotGranularity,
    run_id: str,
    log: StructuredLogger,
) -> AnalysisResult:
    log.info(
        "Analysis started",
        entries=len(entries),
        treatments=len(treatments),
        has_profile=profile is not None,
        history_snapshots=len(profile_history),
        strategy=strategy.value,
    )

    change_analysis = ProfileChangeDetector(
        profile_history, days=lookback_days, now=now, strategy=strategy, log=log
    ).analyze()
    if change_analysis.segment_start is not None:
        start = change_analysis.segment_start
        entries = [entry for entry in entries if entry.timestamp >= start]
        treatments = [treatment for treatment in treatments if treatment.timestamp >= start]
        log.info("Data segmented", entries=len(entries), treatments=len(treatments))

    hourly_avg = hourly_average(entries)
    basal_mode, basal_change = compute_basal_adjustments(
        hourly_avg,
        entries,
        treatments,
        profile,
        target=settings.basal_target_glucose,
        basal_step=basal_step,
        detailed_min_entries=settings.detailed_basal_min_entries,
        log=log,
    )
    icr = analyze_hourly_icr(entries, treatments, profile.carb_ratio if profile else [], log=log)
    isf = analyze_hourly_isf(
        entries,
        treatments,
        profile.sensitivity if profile else [],
        granularity=isf_granularity,
        log=log,
    )

    validation = None
    if profile is not None and Profile.positive_slots(profile.carb_ratio):
        validation = validate_profile_recommendations(
            [adj.adjustment_pct for adj in basal_change],
            icr.modifications + icr.new_slots + icr.profile_compliant,
            hourly_avg,
            log=log,
        )

    result = AnalysisResult(
        run_id=run_id,
        entry_count=len(entries),
        treatment_count=len(treatments),
        hourly_avg=hourly_avg,
        basal_mode=basal_mode,
        basal_change=basal_change,
        hourly_icr_adjustments=icr,
        hourly_isf_adjustments=isf,
        profile_change_analysis=change_analysis,
        validation=validation,
        suggested_profile=build_suggested_profile(profile, basal_change, icr, isf, basal_step),
        basal_step=basal_step,
    )
    log.info(
        "Analysis complete",
        basal_mode=basal_mode.value,
        icr_modifications=len(icr.modifications),
        isf_modifications=len(isf.modifications),
        profile_changes=len(change_analysis.changes),
        conflicts=len(validation.conflicts) if validation else 0,
    )
    return result


def run_analysis_from_raw(
    entries: Iterable[Any],
    treatments: Iterable[Any],
    profile: Any,
    profile_history: Any = (),
    basal_step: float | None = None,
    lookback_days: int | None = None,
    now: datetime | None = None,
    strategy: ChangeStrategy | None = None,
    isf_granularity: SlotGranularity | None = None,
    tz: str | None = None,
    run_id: str | None = None,
    log: StructuredLogger | None = None,
) -> AnalysisResult:
    """Normalize vendor-shaped payloads, then run the analysis.

    Invalid records are skipped and an unusable profile degrades to None,
    so partial data still produces a (lower confidence) result.
    """
    run_id = run_id or _new_run_id()
    tz = tz or settings.analysis_timezone
    log = log or logger
    token = analysis_run_ctx.set(run_id)
    try:
        parsed_entries = ingest_entries(entries, tz=tz, log=log)
        parsed_treatments = ingest_treatments(treatments, tz=tz, log=log)
        parsed_profile = parse_profile(profile, tz=tz, log=log)
        history = parse_profile_history(list(profile_history or []), tz=tz, log=log)
    finally:
        analysis_run_ctx.reset(token)

    return run_analysis(
        parsed_entries,
        parsed_treatments,
        parsed_profile,
        history,
        basal_step=basal_step,
        lookback_days=lookback_days,
        now=now,
        strategy=strategy,
        isf_granularity=isf_granularity,
        tz=tz,
        run_id=run_id,
        log=log,
    )
