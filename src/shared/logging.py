"""
Structured logging using structlog with:
- JSON/console switchable format
- Correlation ID + outbox event context
- Safe defaults for Uvicorn/SQLAlchemy/botocore
- Tiny helper for perf timing

"""

from __future__ import annotations

import contextlib
import datetime
import logging
import logging.config
import sys
import time
from typing import Any, Dict, Iterable, Optional

import structlog

from src.shared.config import Settings

# ---------------------------------------------------------------------
# Context processors
# ---------------------------------------------------------------------


def add_timestamp(logger, method_name, event_dict):
    # UTC ISO8601 Z
    now = datetime.datetime.now(datetime.timezone.utc)
    event_dict["timestamp"] = now.strftime("%Y-%m-%dT%H:%M:%SZ")
    return event_dict


# ---------------------------------------------------------------------
# Public helpers to use from worker/hub code
# ---------------------------------------------------------------------


def bind_event_context(
    *,
    event_id: Optional[str] = None,
    event_type: Optional[str] = None,
    correlation_id: Optional[str] = None,
    extras: Optional[Dict[str, Any]] = None,
) -> None:
    """Bind the outbox record being processed (call per record)."""
    payload = {
        k: v
        for k, v in dict(
            event_id=event_id,
            event_type=event_type,
            correlation_id=correlation_id,
        ).items()
        if v is not None
    }
    if extras:
        payload.update(extras)
    if payload:
        structlog.contextvars.bind_contextvars(**payload)


def clear_event_context() -> None:
    """Drop the per-record keys bound by `bind_event_context`."""
    structlog.contextvars.unbind_contextvars("event_id", "event_type", "correlation_id")


@contextlib.contextmanager
def time_block(name: str, *, logger: Optional[structlog.stdlib.BoundLogger] = None, labels: Optional[Dict[str, str]] = None):
    """
    Context manager to time a block and log as a performance metric.
    Usage:
        with time_block("outbox.batch", logger=log, labels={"size": "100"}):
            await worker.process_batch()
    """
    _log = logger or structlog.get_logger("performance")
    t0 = time.perf_counter()
    try:
        yield
    finally:
        ms = (time.perf_counter() - t0) * 1000.0
        _log.debug("Performance metric", metric_name=name, value=ms, unit="ms", labels=labels or {})


# ---------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------

def _ensure_log_format(settings: Settings) -> str:
    """
    Determine output format:
      - If settings has .log_format, use it ("json"|"console").
      - Else default: "console" for local/dev, "json" for staging/prod.
    """
    fmt = settings.log_format
    if fmt in ("json", "console"):
        return fmt
    return "console" if settings.is_local or settings.is_dev else "json"


def _level_name_to_int(level: str) -> int:
    return getattr(logging, level.upper(), logging.INFO)


def setup_logging(settings: Settings) -> None:
    """Idempotent structured logging configuration."""
    log_format = _ensure_log_format(settings)
    is_prod_like = settings.is_prod or settings.is_staging

    # Python stdlib logging config
    logging_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
                "format": "%(asctime)s %(name)s %(levelname)s %(message)s",
                "datefmt": "%Y-%m-%dT%H:%M:%S",
            },
            "console": {
                "format": "%(message)s",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "json" if log_format == "json" else "console",
                "stream": sys.stdout,
            },
        },
        "root": {
            "level": _level_name_to_int(settings.log_level),
            "handlers": ["console"],
        },
        "loggers": {
            # Quiet noisy libs, but keep errors
            "uvicorn.error": {"level": "INFO", "handlers": ["console"], "propagate": False},
            "uvicorn.access": {"level": "WARNING", "handlers": ["console"], "propagate": False},
            "sqlalchemy.engine": {
                "level": "WARNING" if is_prod_like else "INFO" if settings.debug else "WARNING",
                "handlers": ["console"],
                "propagate": False,
            },
            "botocore": {"level": "WARNING", "handlers": ["console"], "propagate": False},
            "alembic": {"level": "INFO", "handlers": ["console"], "propagate": False},
        },
    }
    logging.config.dictConfig(logging_config)

    # structlog processors pipeline
    processors: Iterable[Any] = [
        structlog.contextvars.merge_contextvars,
        add_timestamp,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        # Renderer
        (structlog.processors.JSONRenderer() if log_format == "json" else structlog.dev.ConsoleRenderer()),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    # Clear any inherited context
    structlog.contextvars.clear_contextvars()


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
