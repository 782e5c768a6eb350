"""Structured logging for the Clippy server.

Every event carries a ``component`` field (the module path below
``clippy``), so request, model and tool events can be told apart in one
stream. ``logging.format: json`` is meant for deployments; ``console`` for
local runs.
"""

import logging
import sys

import structlog

from clippy.config import Config, get_config


def configure_logging(config: Config | None = None) -> None:
    """Configure structlog from the ``logging`` config section."""
    config = config or get_config()

    log_level = getattr(logging, config.logging.level.upper(), logging.INFO)

    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    if config.logging.format == "console":
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    else:
        processors.extend([
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ])

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Return a lazy logger tagged with its component.

    ``clippy.tools.weather`` becomes ``component="tools.weather"``.
    """
    if not name:
        return structlog.get_logger()
    component = name.removeprefix("clippy.") or name
    return structlog.get_logger(component=component)


log = get_logger(__name__)
