"""
Structured logging setup.

Configures structlog once per process. Every module obtains its logger with
``structlog.get_logger(__name__)``; run-scoped context (``run_id``) is bound
through ``structlog.contextvars`` by the run state machine.
"""

import logging
import sys

import structlog

from run_orchestrator.config import Settings


def configure_logging(settings: Settings) -> None:
    """
    Configure structlog processors and the stdlib root logger.

    Args:
        settings: Application settings (log level and renderer choice)
    """
    level = logging.getLevelName(settings.log_level)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=level,
    )

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.log_json:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        # The console renderer formats exceptions itself
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
