"""Structured logging for the tuning engine.

Every analysis run gets a run id held in a context variable so that the
breadcrumbs emitted by the individual analyzers (counts, thresholds,
per-hour decisions) can be correlated in the JSON output.
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

# Identifier of the analysis run currently executing in this context
analysis_run_ctx: ContextVar[str | None] = ContextVar("analysis_run_id", default=None)


class JsonFormatter(logging.Formatter):
    """Render log records as single-line JSON documents.

    Keys: timestamp, level, service, logger, message, run_id (when an
    analysis is in progress) and any structured fields passed by the
    caller.
    """

    def __init__(self, service_name: str = "profile-tuner"):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "service": self.service_name,
            "logger": record.name,
            "message": record.getMessage(),
        }

        run_id = analysis_run_ctx.get()
        if run_id:
            payload["run_id"] = run_id

        if hasattr(record, "fields"):
            payload.update(record.fields)

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable formatter for local runs.

    Format: timestamp - service - level - [run_id] - message key=value ...
    """

    def __init__(self, service_name: str = "profile-tuner"):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        run_id = analysis_run_ctx.get() or "-"

        line = (
            f"{timestamp} - {self.service_name} - {record.levelname} - "
            f"[{run_id}] - {record.getMessage()}"
        )
        fields = getattr(record, "fields", None)
        if fields:
            line += " " + " ".join(f"{key}={value}" for key, value in fields.items())

        if record.exc_info:
            line += f"\n{self.formatException(record.exc_info)}"

        return line


def setup_logging(
    log_format: str = "json",
    log_level: str = "INFO",
    service_name: str = "profile-tuner",
) -> None:
    """Configure the root logger.

    Args:
        log_format: 'json' for structured output, 'text' for human-readable
        log_level: Logging level name (DEBUG, INFO, ...)
        service_name: Service name stamped on every record
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    if log_format.lower() == "json":
        handler.setFormatter(JsonFormatter(service_name=service_name))
    else:
        handler.setFormatter(TextFormatter(service_name=service_name))
    root_logger.addHandler(handler)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


class StructuredLogger:
    """Logger wrapper that carries structured fields.

    Fields bound with ``bind`` are attached to every record emitted by the
    returned logger, which lets an analyzer tag its breadcrumbs once
    (``analyzer="isf"``) instead of on every call.
    """

    def __init__(self, name: str, bound: dict[str, Any] | None = None):
        self._logger = logging.getLogger(name)
        self._bound = dict(bound or {})

    @property
    def name(self) -> str:
        return self._logger.name

    def bind(self, **fields: Any) -> "StructuredLogger":
        """Return a child logger with extra fixed fields."""
        return StructuredLogger(self._logger.name, {**self._bound, **fields})

    def _log(self, level: int, msg: str, fields: dict[str, Any]) -> None:
        if not self._logger.isEnabledFor(level):
            return
        merged = {**self._bound, **fields}
        extra = {"fields": merged} if merged else {}
        self._logger.log(level, msg, extra=extra)

    def debug(self, msg: str, **fields: Any) -> None:
        self._log(logging.DEBUG, msg, fields)

    def info(self, msg: str, **fields: Any) -> None:
        self._log(logging.INFO, msg, fields)

    def warning(self, msg: str, **fields: Any) -> None:
        self._log(logging.WARNING, msg, fields)

    def error(self, msg: str, **fields: Any) -> None:
        self._log(logging.ERROR, msg, fields)

    def exception(self, msg: str, **fields: Any) -> None:
        merged = {**self._bound, **fields}
        extra = {"fields": merged} if merged else {}
        self._logger.exception(msg, extra=extra)


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        StructuredLogger instance
    """
    return StructuredLogger(name)
