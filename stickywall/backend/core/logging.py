"""
Centralized Logging Configuration.

All modules use this logging setup. Do not create standalone loggers.
Configuration is loaded from config/settings/logging.yaml through AppConfig.

Structured fields in every JSON log record:
    timestamp   - ISO 8601 UTC timestamp
    level       - Log level (debug, info, warning, error, critical)
    logger      - Module path (e.g., stickywall.backend.services.submission)
    event       - Log message
    func_name   - Function that emitted the log
    lineno      - Line number in source file
    source      - Origin context, set explicitly (web, admin, tasks, cli, internal)
    request_id  - Request correlation ID (when in HTTP request context)

Usage:
    from stickywall.backend.core.logging import get_logger, setup_logging

    setup_logging()
    logger = get_logger(__name__)
    logger.info("Note stored", extra={"visible_id": visible_id})
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Any

import structlog
from structlog.typing import Processor

from stickywall.backend.core.config import find_project_root, get_app_config

VALID_SOURCES = frozenset({
    "web",
    "admin",
    "api",
    "tasks",
    "cli",
    "internal",
    "unknown",
})
"""Recognized log source values. Source is always set explicitly by the caller."""


def setup_logging(
    level: str | None = None,
    format_type: str | None = None,
    enable_console: bool | None = None,
    enable_file_logging: bool | None = None,
) -> None:
    """
    Configure structured logging for the application.

    Parameters passed to this function override the YAML configuration.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        format_type: Output format ('json' or 'console').
        enable_console: Whether to enable console output.
        enable_file_logging: Whether to write to the JSONL file.
    """
    config = get_app_config().logging

    effective_level = level if level is not None else config.level
    effective_format = format_type if format_type is not None else config.format
    file_config = config.handlers.file

    console_enabled = (
        enable_console if enable_console is not None
        else config.handlers.console.enabled
    )
    file_enabled = (
        enable_file_logging if enable_file_logging is not None
        else file_config.enabled
    )

    log_level = getattr(logging, effective_level.upper())

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.FUNC_NAME,
                structlog.processors.CallsiteParameter.LINENO,
            ],
        ),
    ]

    json_formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.processors.JSONRenderer(),
        foreign_pre_chain=shared_processors,
    )

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    if effective_format == "console":
        console_formatter = structlog.stdlib.ProcessorFormatter(
            processor=structlog.dev.ConsoleRenderer(colors=True),
            foreign_pre_chain=shared_processors,
        )
    else:
        console_formatter = json_formatter

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if console_enabled:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(console_formatter)
        root_logger.addHandler(console_handler)

    if file_enabled:
        log_path = find_project_root() / file_config.path
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            filename=str(log_path),
            maxBytes=file_config.max_bytes,
            backupCount=file_config.backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(json_formatter)
        root_logger.addHandler(file_handler)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)


def get_logger(name: str) -> Any:
    """Get a structlog logger for the given name (typically __name__)."""
    return structlog.get_logger(name)


def log_with_source(logger: Any, source: str, level: str, message: str, **kwargs: Any) -> None:
    """
    Log a message with an explicit source.

    Use this outside of HTTP request context (background tasks, CLI commands).

    Example:
        log_with_source(logger, "tasks", "info", "Cleanup completed", deleted=12)
    """
    log_method = getattr(logger, level.lower())
    log_method(message, source=source, **kwargs)
