"""Structured logging configuration for Review Digest.

This module configures structlog with support for:
- JSON and console output formats
- File rotation based on size
- Tick context binding, so every event of one digest run shares a tick_id

The logging system integrates structlog with Python's stdlib logging
for handlers (file rotation), while using structlog exclusively for
actual log emission.

Example usage:
    >>> from reviewdigest.config import LoggingConfig
    >>> from reviewdigest.logging import setup_logging, get_logger, bind_tick_context
    >>>
    >>> setup_logging(LoggingConfig(level="INFO", format="console"))
    >>> logger = get_logger(__name__)
    >>> bind_tick_context(tick_id="5f0c...")
    >>> logger.info("digest_tick_started", project_id="group/project")
"""

from __future__ import annotations

import logging
import logging.handlers
import sys

import structlog

from reviewdigest.config import LoggingConfig


def bind_tick_context(tick_id: str) -> None:
    """Bind the tick identifier to all subsequent logs in this context.

    Args:
        tick_id: Identifier of the digest run in progress
    """
    structlog.contextvars.bind_contextvars(tick_id=tick_id)


def clear_tick_context() -> None:
    """Remove the tick identifier from the logging context."""
    structlog.contextvars.unbind_contextvars("tick_id")


def setup_logging(config: LoggingConfig) -> None:
    """Configure structlog with the given configuration.

    This function sets up the complete logging pipeline including:
    - JSON or console rendering based on config.format
    - File rotation if config.file is specified
    - Timestamp, log level, and logger name processors

    Args:
        config: Logging configuration

    Example:
        >>> from pathlib import Path
        >>> setup_logging(LoggingConfig(format="json", file=Path("/var/log/digest.log")))
    """
    log_level = getattr(logging, config.level)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    if config.file is not None:
        config.file.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.handlers.RotatingFileHandler(
            filename=config.file,
            maxBytes=config.rotation_size_mb * 1024 * 1024,
            backupCount=config.retention_count,
            encoding="utf-8",
        )
    else:
        handler = logging.StreamHandler(sys.stdout)

    if config.format == "json":
        renderer = structlog.processors.JSONRenderer(ensure_ascii=False)
    else:  # console
        renderer = structlog.dev.ConsoleRenderer()

    shared_processors: list[structlog.types.Processor] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        # tick_id from bind_tick_context
        structlog.contextvars.merge_contextvars,
        structlog.processors.StackInfoRenderer(),
    ]

    # Rendering happens in the handler's formatter, which also drops the
    # record's exc_info so a traceback never follows the rendered line.
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.format_exc_info,
                renderer,
            ],
        )
    )
    handler.setLevel(log_level)
    root_logger.addHandler(handler)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Configured structlog BoundLogger instance
    """
    return structlog.get_logger(name)
