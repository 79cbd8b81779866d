"""Profile tuning analysis router.

Runs the analysis engine over the glucose, treatment and profile data
posted by the client. Nothing is stored; the result is returned as is.
"""

from fastapi import APIRouter

from profile_tuner.logging_config import analysis_run_ctx
from profile_tuner.schemas.analysis import AnalysisResult, AnalyzeRequest
from profile_tuner.services.analysis_engine import run_analysis_from_raw

router = APIRouter(prefix="/api/analysis", tags=["analysis"])


@router.post(
    "",
    response_model=AnalysisResult,
    responses={
        200: {"description": "Analysis completed"},
        422: {"description": "Invalid request payload"},
    },
)
def analyze(request: AnalyzeRequest) -> AnalysisResult:
    """Analyze CGM and treatment data and suggest profile adjustments.

    Records that cannot be parsed are skipped; missing data lowers the
    confidence of the affected suggestions instead of failing the request.
    """
    return run_analysis_from_raw(
        request.entries,
        request.treatments,
        request.profile,
        request.profile_history,
        basal_step=request.basal_step,
        lookback_days=request.lookback_days,
        now=request.now,
        strategy=request.change_strategy,
        isf_granularity=request.isf_granularity,
        tz=request.timezone,
        run_id=analysis_run_ctx.get(),
    )
