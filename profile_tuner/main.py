"""Profile Tuner FastAPI Application."""

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from profile_tuner.config import settings
from profile_tuner.logging_config import get_logger, setup_logging
from profile_tuner.middleware import RunIdMiddleware
from profile_tuner.routers import analysis, health

setup_logging(
    log_format=settings.log_format,
    log_level=settings.log_level,
    service_name=settings.service_name,
)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info(
        "Profile Tuner API started",
        default_basal_step=settings.default_basal_step,
        default_lookback_days=settings.default_lookback_days,
        change_strategy=settings.profile_change_strategy.value,
    )
    yield
    logger.info("Profile Tuner API shutdown complete")


app = FastAPI(
    title="Profile Tuner API",
    description="Basal, carb ratio and insulin sensitivity tuning suggestions",
    version="0.1.0",
    lifespan=lifespan,
)

# Middleware (order matters: first added = last executed)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RunIdMiddleware)

app.include_router(health.router)
app.include_router(analysis.router)


@app.get("/")
async def root() -> dict[str, Any]:
    """Root endpoint."""
    return {
        "name": "Profile Tuner API",
        "version": "0.1.0",
        "docs": "/docs",
    }
