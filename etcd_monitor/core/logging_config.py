"""Structured logging for the etcd monitor.

Configuration is generated as plain data and applied in one place:

    - `get_logging_config`: Build the `logging.config.dictConfig` dictionary
      (handler, renderer, per-library levels) from agent settings.
    - `configure_structlog_wrapper`: Install structlog's processor chain on
      top of the stdlib handlers.
    - `configure_logging`: Apply both, stdlib first.

Per-tick metadata (the tick sequence number) travels through
`structlog.contextvars`, so it also reaches lines logged from the worker
thread that talks to CloudWatch.
"""

import logging.config
from typing import Any

import structlog
from structlog.types import Processor

from etcd_monitor.config import Settings


# =============================================================================
# CONFIGURATION GENERATORS
# =============================================================================


def get_common_processors() -> list[Processor]:
    """Processors shared by structlog events and foreign stdlib records.

    Returns:
        list[Processor]: Context merge, logger name, level, ISO UTC timestamp
            and exception formatting, in that order.
    """
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def _get_renderer(settings: Settings) -> Processor:
    if settings.LOG_FORMAT == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=True)


def get_logging_config(settings: Settings) -> dict[str, Any]:
    """Build the dictConfig dictionary for the agent.

    `LOG_FORMAT=json` emits one JSON object per line for log shippers
    (CloudWatch Logs agent, fluent-bit); `console` emits colored lines for a
    terminal. Libraries listed in LOGGING_NOISY_MODULES only pass warnings.

    Note:
        Pure function; nothing is applied until `configure_logging` runs.

    Args:
        settings: Agent settings providing LOG_LEVEL, LOG_FORMAT and
            LOGGING_NOISY_MODULES.

    Returns:
        dict[str, Any]: Configuration dictionary compatible with dictConfig.
    """
    log_level = settings.LOG_LEVEL.upper()
    library_levels = {
        lib: {"level": "WARNING", "propagate": True}
        for lib in settings.LOGGING_NOISY_MODULES
    }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "()": "structlog.stdlib.ProcessorFormatter",
                "processor": _get_renderer(settings),
                "foreign_pre_chain": get_common_processors(),
            },
        },
        "handlers": {
            "console": {
                "level": log_level,
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            "": {"handlers": ["console"], "level": log_level, "propagate": True},
            **library_levels,
        },
    }


def configure_structlog_wrapper(settings: Settings) -> None:
    """Route structlog events through the stdlib handler set up by dictConfig.

    Args:
        settings: Agent settings (unused; kept for a uniform signature).
    """
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *get_common_processors(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def configure_logging(settings: Settings) -> None:
    """Apply the stdlib configuration, then the structlog front end."""
    logging.config.dictConfig(get_logging_config(settings))
    configure_structlog_wrapper(settings)


# =============================================================================
# LOGGER RETRIEVAL
# =============================================================================


def get_logger(name: str | None = None) -> Any:
    """Return a structlog logger, named when `name` is given."""
    if name:
        return structlog.get_logger(name)
    return structlog.get_logger()


# Context helpers for per-tick correlation.
bind_contextvars = structlog.contextvars.bind_contextvars
unbind_contextvars = structlog.contextvars.unbind_contextvars
