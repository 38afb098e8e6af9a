"""Structured logging configuration for pipeline-studio.

Logging goes through structlog on top of the standard library so that
messages emitted by the expander, the template resolver and the CLI share
one pipeline:

- pretty console output on stderr (default)
- JSON lines when ``PIPELINE_STUDIO_LOG_FORMAT=json``
- level taken from ``PIPELINE_STUDIO_LOG_LEVEL`` unless overridden

Usage:
    from pipeline_studio.logging import configure_logging, get_logger

    configure_logging()

    log = get_logger(__name__).bind(document="azure-pipelines.yml")
    log.info("expansion_started")
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO, Any

import structlog
from structlog.types import Processor

__all__ = [
    "get_logger",
    "configure_logging",
    "bind_context",
    "clear_context",
]

LOG_FORMAT_ENV_VAR = "PIPELINE_STUDIO_LOG_FORMAT"
LOG_LEVEL_ENV_VAR = "PIPELINE_STUDIO_LOG_LEVEL"
DEFAULT_LOG_LEVEL = "WARNING"


def _level_from_env() -> int:
    level_name = os.environ.get(LOG_LEVEL_ENV_VAR, DEFAULT_LOG_LEVEL).upper()
    level = logging.getLevelName(level_name)
    return level if isinstance(level, int) else logging.WARNING


def _json_requested() -> bool:
    return os.environ.get(LOG_FORMAT_ENV_VAR, "").lower() == "json"


def _shared_processors() -> list[Processor]:
    """Processors applied to both structlog and foreign stdlib records."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _renderer(use_json: bool) -> Processor:
    if use_json:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(
        colors=False,
        exception_formatter=structlog.dev.plain_traceback,
    )


def configure_logging(
    *,
    force_json: bool = False,
    level: int | None = None,
    stream: IO[str] | None = None,
) -> None:
    """Configure structlog and the root stdlib logger.

    Safe to call more than once; each call replaces the previous handlers.

    Args:
        force_json: Emit JSON regardless of ``PIPELINE_STUDIO_LOG_FORMAT``.
        level: Explicit log level. Defaults to ``PIPELINE_STUDIO_LOG_LEVEL``
            (WARNING when unset).
        stream: Destination stream. Defaults to ``sys.stderr`` so that
            expanded YAML written to stdout stays clean.
    """
    use_json = force_json or _json_requested()
    log_level = level if level is not None else _level_from_env()

    structlog.configure(
        processors=[
            *_shared_processors(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.dict_tracebacks
            if use_json
            else structlog.processors.format_exc_info,
            _renderer(use_json),
        ],
        foreign_pre_chain=_shared_processors(),
    )

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(log_level)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger bound to ``name``.

    Args:
        name: Logger name, usually ``__name__``.

    Returns:
        A bound structlog logger.
    """
    log: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return log


def bind_context(**context: Any) -> None:
    """Bind key/value pairs included in every subsequent log message.

    Example:
        bind_context(document="azure-pipelines.yml")
        log.info("template_resolved")  # includes document=...
    """
    structlog.contextvars.bind_contextvars(**context)


def clear_context() -> None:
    """Clear all context bound with :func:`bind_context`."""
    structlog.contextvars.clear_contextvars()
