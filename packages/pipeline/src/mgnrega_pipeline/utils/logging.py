"""
utils/logging.py — structlog setup for the sync workers.

Log lines are rendered as JSON (log shipping) or console text depending on
settings.log_format. Run-scoped context lives in contextvars: everything
logged while a sync run is in flight carries its run_id and trigger,
including lines from the source, normalizer, and reconciler modules that
never see the run object.

Usage:
    from mgnrega_pipeline.utils.logging import configure_logging, get_logger, sync_run_context

    configure_logging()
    log = get_logger(__name__, component="scheduler")

    with sync_run_context(run_id, "scheduled"):
        log.info("data_sync_start")       # ... run_id=… trigger=scheduled
"""

from __future__ import annotations

import contextlib
import logging
import sys
from collections.abc import Iterator
from typing import Any

import structlog

from mgnrega_shared.config import settings


def configure_logging(
    log_level: str | None = None,
    log_format: str | None = None,
) -> None:
    """
    Configure structlog for the worker process. Idempotent.

    Args:
        log_level:  Override settings.log_level ("DEBUG", "INFO", …).
        log_format: Override settings.log_format ("json" | "console").
    """
    level = getattr(logging, (log_level or settings.log_level).upper(), logging.INFO)
    fmt = log_format or settings.log_format

    # APScheduler and httpx log through stdlib; route them to the same stream
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    logging.getLogger("apscheduler").setLevel(max(level, logging.WARNING))
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.format_exc_info,
    ]
    if fmt == "json":
        processors.append(structlog.processors.JSONRenderer(default=str))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


@contextlib.contextmanager
def sync_run_context(run_id: str, trigger: str) -> Iterator[None]:
    """Bind run_id/trigger to every log line emitted inside the block."""
    with structlog.contextvars.bound_contextvars(run_id=run_id, trigger=trigger):
        yield


def get_logger(name: str, **initial_values: Any) -> structlog.BoundLogger:
    """Module logger with optional static context (e.g. component="scheduler")."""
    logger = structlog.get_logger(name)
    if initial_values:
        logger = logger.bind(**initial_values)
    return logger  # type: ignore[return-value]
