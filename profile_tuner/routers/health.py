"""Health check endpoints for container orchestration."""

from typing import Any

from fastapi import APIRouter

router = APIRouter(tags=["Health"])


@router.get("/health/live")
async def liveness_probe() -> dict[str, Any]:
    """
    Liveness probe.

    Returns success if the application process is running. The engine
    has no external dependencies, so liveness is also readiness.
    """
    return {"status": "alive"}
