"""
Structured logging using structlog.
Outputs JSON in production, colored console in development.

Every audit binds its target URL and mode into the structlog contextvars so
that log lines from concurrently running engines can be told apart.
"""

import logging
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from structlog.types import EventDict

from seoaudit.core.config import get_settings

# Libraries that log every request at INFO; an audit issues dozens
NOISY_LOGGERS = ("asyncio", "httpx", "httpcore", "uvicorn.access")

SEVERITY = {
    "debug": "DEBUG",
    "info": "INFO",
    "warning": "WARNING",
    "error": "ERROR",
    "critical": "CRITICAL",
}


def add_severity(logger: Any, method: str, event_dict: EventDict) -> EventDict:
    """Map structlog levels to GCP/Datadog severity levels."""
    event_dict["severity"] = SEVERITY.get(method, "INFO")
    return event_dict


def configure_logging() -> None:
    settings = get_settings()
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        add_severity,
    ]

    if settings.LOG_FORMAT == "json":
        renderer = structlog.processors.JSONRenderer()
        processors = shared_processors + [structlog.processors.format_exc_info, renderer]
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)
        processors = shared_processors + [renderer]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    # stdlib records (uvicorn, httpx) go through the same renderer
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=shared_processors,
    ))
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)

    if settings.ENV == "production":
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


@contextmanager
def audit_log_context(url: str, mode: str) -> Iterator[str]:
    """
    Bind audit_id, url and mode to every log line emitted inside the block.
    Yields the generated audit_id.
    """
    audit_id = uuid.uuid4().hex[:12]
    tokens = structlog.contextvars.bind_contextvars(audit_id=audit_id, audit_url=url, audit_mode=mode)
    try:
        yield audit_id
    finally:
        structlog.contextvars.reset_contextvars(**tokens)
