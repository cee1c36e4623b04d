"""structlog setup for Composekit.

Log records are emitted through structlog and handed to a single stdlib
handler on the root logger: stdout by default, or a size-rotated file when
``LoggingConfig.file`` is set.

Every poll cycle runs with its own context. ``start_cycle_context`` binds
the trigger id and a fresh ``cycle_id``; ``bind_trigger_context`` adds the
resolved compose project once it is known.

    >>> setup_logging(LoggingConfig(level="DEBUG", format="console"))
    >>> start_cycle_context("poll-web")
    >>> get_logger(__name__).info("poll_cycle_started")
"""

from __future__ import annotations

import logging
import logging.handlers
import sys
import uuid

import structlog

from composekit.config import LoggingConfig


def start_cycle_context(trigger_id: str) -> str:
    """Replace the current log context with a new cycle of ``trigger_id``.

    Returns:
        The generated cycle id
    """
    cycle_id = uuid.uuid4().hex[:12]
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(trigger_id=trigger_id, cycle_id=cycle_id)
    return cycle_id


def get_cycle_id() -> str | None:
    return structlog.contextvars.get_contextvars().get("cycle_id")


def bind_trigger_context(trigger_id: str, project_name: str) -> None:
    """Bind trigger and compose project to all subsequent logs of this task."""
    structlog.contextvars.bind_contextvars(trigger_id=trigger_id, project_name=project_name)


def _build_handler(config: LoggingConfig) -> logging.Handler:
    if config.file is None:
        return logging.StreamHandler(sys.stdout)

    config.file.parent.mkdir(parents=True, exist_ok=True)
    return logging.handlers.RotatingFileHandler(
        filename=config.file,
        maxBytes=config.rotation_size_mb * 1024 * 1024,
        backupCount=config.retention_count,
        encoding="utf-8",
    )


def _build_renderer(config: LoggingConfig) -> structlog.types.Processor:
    if config.format == "json":
        return structlog.processors.JSONRenderer()
    # no colour codes in rotated files
    return structlog.dev.ConsoleRenderer(colors=config.file is None and sys.stdout.isatty())


def setup_logging(config: LoggingConfig) -> None:
    """Install the root handler and configure structlog.

    Calling it again replaces the previous handler.
    """
    level = getattr(logging, config.level)

    handler = _build_handler(config)
    handler.setLevel(level)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _build_renderer(config),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
