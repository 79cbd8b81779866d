"""Middleware package for the profile tuner API."""

from profile_tuner.middleware.run_id import RUN_ID_HEADER, RunIdMiddleware

__all__ = ["RunIdMiddleware", "RUN_ID_HEADER"]
