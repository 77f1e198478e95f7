from __future__ import annotations

import logging
import os
from typing import Any

import structlog


def _resolve_level(level: str | None) -> int:
    name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    return getattr(logging, name, logging.INFO)


def _resolve_format(app_env: str | None) -> str:
    if "LOG_FORMAT" in os.environ:
        return os.environ["LOG_FORMAT"].lower()
    # Human-readable output for local development, JSON lines everywhere else
    return "console" if (app_env or os.getenv("APP_ENV")) == "dev" else "json"


def setup_logging(*, app_env: str | None = None, level: str | None = None) -> None:
    """Configure structlog on top of stdlib logging.

    Every record carries an ISO/UTC timestamp, the level, the event name and any bound
    fields. Context variables (request_id, path, method) are merged in so service logs
    emitted while handling a request can be correlated with the access log line.
    """

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=shared_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        # capture_logs needs uncached loggers under test
        cache_logger_on_first_use=(app_env or os.getenv("APP_ENV")) != "test",
    )

    if _resolve_format(app_env) == "console":
        renderer: Any = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    logging.basicConfig(level=_resolve_level(level), handlers=[handler], force=True)
