"""Structured logging configuration for pubsub-lite.

Publisher, consumer and store records go through structlog. Each record is
one JSON line carrying message ids, idempotency keys, publish attempts or
retry delays as keys.

Components accept an injected ``logger`` (anything with structlog-style
``debug/info/warning/error(event, **kw)`` methods) and default to the
loggers returned by :func:`get_logger`.

Examples:
    Configure logging::

        from pubsub_lite.observability.logging import configure_logging

        configure_logging(level="INFO", json_output=True)

    Use the logger::

        from pubsub_lite.observability.logging import get_logger

        logger = get_logger(__name__)
        logger.warning(
            "publish.retry",
            topic="orders",
            attempt=2,
            delay_ms=230,
        )

    Output (JSON)::

        {
            "event": "publish.retry",
            "logger_name": "pubsub_lite.publisher",
            "topic": "orders",
            "attempt": 2,
            "delay_ms": 230,
            "timestamp": "2024-01-01T00:00:00.000000Z",
            "level": "warning"
        }
"""

import logging
import sys
from typing import IO, Any

import structlog

LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
    stream: IO[str] | None = None,
) -> None:
    """Configure structured logging for the host process.

    Call once at startup, before creating publishers or consumers.

    Args:
        level: Minimum level, one of DEBUG, INFO, WARNING, ERROR, CRITICAL
        json_output: Emit one JSON object per line; otherwise use the
            colored console renderer
        stream: Destination for log lines (default stdout)

    Raises:
        ValueError: If the level name is unknown

    Examples:
        >>> configure_logging(level="DEBUG", json_output=True)
        >>> configure_logging(level="warning", json_output=False, stream=sys.stderr)
    """
    level_name = level.upper()
    if level_name not in LEVELS:
        raise ValueError(f"Unknown log level {level!r}; expected one of {LEVELS}")
    level_no = logging.getLevelName(level_name)
    stream = stream or sys.stdout

    logging.basicConfig(format="%(message)s", stream=stream, level=level_no)

    processors: list[object] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=stream.isatty()))

    structlog.configure(
        processors=processors,  # type: ignore[arg-type]
        wrapper_class=structlog.make_filtering_bound_logger(level_no),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> Any:
    """Get a structured logger whose records carry ``logger_name=name``.

    The logger is resolved lazily, so module-level loggers pick up a
    configure_logging() call made after import. The key is not ``logger``
    because structlog.get_logger() reserves that keyword.

    Examples:
        >>> logger = get_logger(__name__)
        >>> logger.info("consumer.started", subscription="orders-sub")
    """
    return structlog.get_logger(name, logger_name=name)
