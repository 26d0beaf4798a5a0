"""Structured logging for dialogue_recall.

Sessions log through structlog, rendered for the console by default or as
JSON lines. The active session id is carried in contextvars and merged
into every event logged while a turn is processed.
"""

import logging
import sys
from typing import Any

import structlog

__all__ = [
    "bind_session_context",
    "clear_session_context",
    "configure_logging",
    "get_logger",
]

# Provider SDKs and the mongo driver are chatty at INFO
_QUIET_LOGGERS = ("httpx", "httpcore", "motor", "pymongo", "openai", "anthropic")

_configured = False


def _renderer(json_output: bool) -> list[Any]:
    if json_output:
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [
        structlog.dev.ConsoleRenderer(
            colors=sys.stdout.isatty(),
            exception_formatter=structlog.dev.plain_traceback,
        )
    ]


def configure_logging(
    level: int | str = logging.INFO,
    json_output: bool = False,
    add_timestamp: bool = True,
) -> None:
    """Configure structlog over the standard library logging module.

    Args:
        level: Logging level, either numeric or a name such as "DEBUG"
        json_output: Render JSON lines instead of console output
        add_timestamp: Prefix events with an ISO-8601 UTC timestamp
    """
    global _configured
    if isinstance(level, str):
        level = logging.getLevelNamesMapping().get(level.upper(), logging.INFO)

    processors: list[Any] = []
    if add_timestamp:
        processors.append(structlog.processors.TimeStamper(fmt="iso", utc=True))
    processors += [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        *_renderer(json_output),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    _configured = True


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger, usually ``get_logger(__name__)``."""
    return structlog.get_logger(name)


def bind_session_context(session_id: str, recall_set_id: str | None = None) -> None:
    """Attach session identifiers to every subsequent log event in this context."""
    context: dict[str, Any] = {"session_id": session_id}
    if recall_set_id is not None:
        context["recall_set_id"] = recall_set_id
    structlog.contextvars.bind_contextvars(**context)


def clear_session_context() -> None:
    """Drop session identifiers bound by bind_session_context."""
    structlog.contextvars.unbind_contextvars("session_id", "recall_set_id")


def _ensure_configured() -> None:
    """Configure with defaults unless the application already did."""
    if not _configured:
        configure_logging()


_ensure_configured()
