"""structlog setup for the CLI process. Modules log through structlog.get_logger(__name__)."""

import logging
import sys

import structlog

LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _level(name: str) -> int:
    name = name.upper()
    if name not in LEVELS:
        logging.warning("unknown log level %r, using INFO", name)
        name = "INFO"
    return getattr(logging, name)


def configure_logging(log_level: str = "INFO", json_output: bool = False) -> None:
    level = _level(log_level)
    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        # stdout carries command output (tables, JSON results)
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
