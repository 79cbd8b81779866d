# Analysis services
from profile_tuner.services.analysis_engine import run_analysis, run_analysis_from_raw
from profile_tuner.services.basal_adjuster import compute_basal_adjustments
from profile_tuner.services.correction_analysis import analyze_hourly_isf
from profile_tuner.services.cross_validation import validate_profile_recommendations
from profile_tuner.services.hourly_aggregator import hourly_average, hourly_buckets
from profile_tuner.services.ingest import ingest_entries, ingest_treatments
from profile_tuner.services.meal_analysis import analyze_hourly_icr
from profile_tuner.services.profile_changes import ProfileChangeDetector
from profile_tuner.services.profile_parser import (
    expand_to_24_hours,
    parse_profile,
    parse_profile_history,
)
from profile_tuner.services.slot_optimizer import (
    ICR_POLICY,
    ISF_POLICY,
    SlotPolicy,
    optimize_slots,
)
from profile_tuner.services.suggested_profile import build_suggested_profile

__all__ = [
    "run_analysis",
    "run_analysis_from_raw",
    "compute_basal_adjustments",
    "analyze_hourly_isf",
    "validate_profile_recommendations",
    "hourly_average",
    "hourly_buckets",
    "ingest_entries",
    "ingest_treatments",
    "analyze_hourly_icr",
    "ProfileChangeDetector",
    "expand_to_24_hours",
    "parse_profile",
    "parse_profile_history",
    "ICR_POLICY",
    "ISF_POLICY",
    "SlotPolicy",
    "optimize_slots",
    "build_suggested_profile",
]
