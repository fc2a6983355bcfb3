"""Logging setup and helpers for fanout."""

from __future__ import annotations

import logging
import socket
import sys
from pathlib import Path
from typing import Any

import structlog
from structlog.typing import EventDict, WrappedLogger

__all__ = [
    "LOG_LEVELS",
    "configure_logging",
    "get_logger",
    "parse_log_level",
]

LOG_LEVELS: dict[str, int] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def _add_hostname(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add the local hostname to log context if not already present.

    Log records about remote hosts carry a ``host`` key, ``hostname`` is
    always the machine running fanout.
    """
    if "hostname" not in event_dict:
        event_dict["hostname"] = socket.gethostname()
    return event_dict


def parse_log_level(value: str | int) -> int:
    """Parse a level name (case-insensitive) or numeric level."""
    if isinstance(value, int):
        return value
    try:
        return LOG_LEVELS[value.upper()]
    except KeyError as e:
        valid_levels = ", ".join(LOG_LEVELS)
        raise ValueError(f"Invalid log level: {value}. Valid levels: {valid_levels}") from e


def configure_logging(level: str | int = logging.INFO, log_file: Path | None = None) -> None:
    """Configure structlog with console output and an optional JSON-lines file.

    Args:
        level: Minimum level, as a name or a stdlib logging level
        log_file: If given, every record is also written there as JSON
    """
    numeric_level = parse_log_level(level)

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _add_hostname,
        structlog.processors.StackInfoRenderer(),
    ]

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
            foreign_pre_chain=shared_processors,
        )
    )
    handlers: list[logging.Handler] = [console_handler]

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                processor=structlog.processors.JSONRenderer(),
                foreign_pre_chain=shared_processors,
            )
        )
        handlers.append(file_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    for handler in handlers:
        root_logger.addHandler(handler)
    root_logger.setLevel(numeric_level)

    # asyncio debug chatter is never useful next to per-host output
    logging.getLogger("asyncio").setLevel(max(numeric_level, logging.WARNING))


def get_logger(name: str, **context: Any) -> structlog.stdlib.BoundLogger:
    """Get a logger with bound context.

    Args:
        name: Logger name (typically "fanout.<module>")
        **context: Additional context to bind (e.g., host, command_id)

    Returns:
        BoundLogger with context
    """
    logger = structlog.get_logger(name)
    if context:
        logger = logger.bind(**context)
    return logger
