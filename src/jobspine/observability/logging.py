"""
Logging configuration.

Provides a single entry point for configuring structured logging in the
scheduler process and the CLI. Library modules log through the stdlib
``logging.getLogger(__name__)``; :func:`configure_logging` routes those
records and structlog events through one renderer.

Configuration is read from arguments or environment variables:
- JOBSPINE_LOG_LEVEL: DEBUG | INFO | WARNING | ERROR (default: INFO)
- JOBSPINE_LOG_FORMAT: json | console (default: console)

Usage:
    from jobspine.observability.logging import configure_logging, get_logger

    configure_logging(level="DEBUG", format="json")
    log = get_logger(__name__)
    log.info("scheduler_tick", promoted=3)
"""

import logging
import os
import sys
from typing import Any, Literal

import structlog
from structlog.types import Processor

# Track if logging has been configured
_configured = False


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | None = None,
    format: Literal["json", "console"] | None = None,
    force: bool = False,
) -> None:
    """
    Configure structured logging for the application.

    Should be called once at process startup (CLI entry, scheduler process).
    Subsequent calls are no-ops unless force=True.

    Args:
        level: Log level (overrides JOBSPINE_LOG_LEVEL env var)
        format: Output format (overrides JOBSPINE_LOG_FORMAT env var)
        force: Reconfigure even if already configured
    """
    global _configured

    if _configured and not force:
        return

    log_level = (level or os.environ.get("JOBSPINE_LOG_LEVEL", "INFO")).upper()
    log_format = (format or os.environ.get("JOBSPINE_LOG_FORMAT", "console")).lower()

    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        # UTC ISO-8601 timestamps
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=sys.stderr.isatty(),
                exception_formatter=structlog.dev.plain_traceback,
            )
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # stdlib loggers used by library modules
    logging.basicConfig(
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level),
        force=True,
    )
    logging.getLogger("jobspine").setLevel(getattr(logging, log_level))

    _configured = True


def get_logger(name: str | None = None) -> Any:
    """Get a structlog logger bound to *name* (typically ``__name__``)."""
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Attach key/value pairs to every event logged from the current context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Drop all values bound with :func:`bind_context`."""
    structlog.contextvars.clear_contextvars()

