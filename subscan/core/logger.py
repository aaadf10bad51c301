"""Structured logging using structlog."""

from __future__ import annotations

import logging
import sys
from typing import Any, Optional

import structlog
from structlog.typing import Processor


def setup_logging(
    level: str = "INFO",
    json_format: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """
    Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: If True, output logs in JSON format
        log_file: Optional file path for logging output
    """
    # Stdlib logging backs the optional file handler
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level.upper()),
    )

    # Shared by both renderers
    # add_logger_name is left out: PrintLoggerFactory loggers carry no name
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_format:
        # One JSON object per line for log shipping
        processors: list[Processor] = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        # Human-readable output for terminals
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.plain_traceback,
            ),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper())
        ),
        context_class=dict,
        # stdout is reserved for rendered reports
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    # Mirror records to a file when requested
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(getattr(logging, level.upper()))
        logging.getLogger().addHandler(file_handler)


def get_logger(name: Optional[str] = None, **initial_context: Any) -> structlog.BoundLogger:
    """
    Get a bound logger with optional initial context.

    Args:
        name: Logger name (optional)
        **initial_context: Initial context key-value pairs to bind

    Returns:
        A structlog bound logger instance
    """
    logger = structlog.get_logger(name)
    if initial_context:
        logger = logger.bind(**initial_context)
    return logger


def log_phase_start(phase_name: str, **context: Any) -> None:
    """Log the start of a scan phase."""
    logger = get_logger("phases")
    logger.info(
        f"Starting {phase_name}",
        phase_name=phase_name,
        action="phase_start",
        **context,
    )


def log_phase_complete(
    phase_name: str,
    success: bool,
    duration: float,
    **context: Any,
) -> None:
    """Log the completion of a scan phase."""
    logger = get_logger("phases")
    level = "info" if success else "error"
    getattr(logger, level)(
        f"{phase_name} {'completed' if success else 'failed'}",
        phase_name=phase_name,
        action="phase_complete",
        success=success,
        duration_seconds=round(duration, 2),
        **context,
    )


def log_finding(
    finding_kind: str,
    target: str,
    **details: Any,
) -> None:
    """Log a detected misconfiguration."""
    logger = get_logger("findings")
    logger.warning(
        f"[{finding_kind.upper()}] on {target}",
        finding_kind=finding_kind,
        target=target,
        **details,
    )
