"""Structured logging for the SampleApp API.

This module is the process-wide diagnostics sink. It is configured once at
process start (`configure_logging`) and then only read from: the bring-up
stages receive a logger explicitly, and request handling reads the
request-scoped context bound by `RequestContextMiddleware`.

Usage:
    from sampleapp.observability.logging import configure_logging, get_logger

    configure_logging(level="INFO", format="json")

    logger = get_logger(__name__)
    logger.info("models_attached", tables=["users"])

Request-scoped fields (request_id, method, path) are merged into every
entry through `structlog.contextvars`, so they follow the asyncio task that
handles the request and never leak into a concurrent one.
"""

import logging
import logging.handlers
import re
import sys
import uuid
from pathlib import Path
from typing import Optional

import structlog
from structlog.types import EventDict, Processor

REQUEST_ID_HEADER = "X-Request-ID"

_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


def add_log_level(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add log level to event dictionary, normalising 'warn' to 'warning'."""
    if method_name == "warn":
        method_name = "warning"
    event_dict["level"] = method_name
    return event_dict


def configure_logging(
    level: str = "INFO",
    format: str = "console",
    log_file: Optional[Path] = None,
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
) -> None:
    """Configure structured logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: Output format ("json" or "console")
        log_file: Optional path for file logging with rotation
        max_bytes: Maximum size of log file before rotation
        backup_count: Number of backup files to keep

    Example:
        >>> configure_logging(level="DEBUG", format="console")
        >>> configure_logging(level="INFO", format="json", log_file=Path("logs/sampleapp.log"))
    """
    logging_level = getattr(logging, level.upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            logging.handlers.RotatingFileHandler(
                filename=str(log_file),
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
        )

    # Clear existing handlers to allow reconfiguration
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(logging_level)
    for handler in handlers:
        handler.setLevel(logging_level)
        handler.setFormatter(logging.Formatter("%(message)s"))
        root_logger.addHandler(handler)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    renderer: Processor
    if format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=shared_processors + [renderer],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog BoundLogger
    """
    return structlog.get_logger(name)


def new_request_id() -> str:
    """Generate a fresh request identifier."""
    return f"req-{uuid.uuid4().hex[:12]}"


def resolve_request_id(incoming: Optional[str]) -> str:
    """Reuse a well-formed client-supplied request ID or generate one."""
    if incoming and _VALID_REQUEST_ID.match(incoming):
        return incoming
    return new_request_id()


def get_request_id() -> Optional[str]:
    """Return the request ID bound to the current task, if any."""
    return structlog.contextvars.get_contextvars().get("request_id")


__all__ = [
    "REQUEST_ID_HEADER",
    "configure_logging",
    "get_logger",
    "get_request_id",
    "new_request_id",
    "resolve_request_id",
]
