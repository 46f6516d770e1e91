"""
Structured logging configuration for CloudRecon.

Every module logs through a module-level ``logging.getLogger(__name__)``
below the "cloudrecon" logger. This module configures that logger's
handler and formatter, and provides AnalysisLogger for analysis
lifecycle events.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, TextIO

ROOT_LOGGER_NAME = "cloudrecon"

# LogRecord attributes that are not user-supplied extra fields
_RECORD_ATTRIBUTES = frozenset(
    (
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
    )
)


class StructuredFormatter(logging.Formatter):
    """
    Formatter that writes one JSON object per log record.

    Extra fields passed through ``extra=`` end up as top-level keys.
    """

    def __init__(
        self,
        include_location: bool = False,
        extra_fields: dict[str, Any] | None = None,
    ):
        """
        Initialize structured formatter.

        Args:
            include_location: Include file/line location
            extra_fields: Additional fields to include in every record
        """
        super().__init__()
        self.include_location = include_location
        self.extra_fields = extra_fields or {}

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }

        if self.include_location:
            log_data["location"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RECORD_ATTRIBUTES:
                log_data[key] = value

        log_data.update(self.extra_fields)
        return json.dumps(log_data, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    Formatter for terminal output.

    Colors are used only when the stream is a TTY.
    """

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True, stream: TextIO | None = None):
        super().__init__()
        stream = stream if stream is not None else sys.stderr
        self.use_colors = use_colors and hasattr(stream, "isatty") and stream.isatty()

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as human-readable text."""
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        level = record.levelname
        if self.use_colors and level in self.COLORS:
            level = f"{self.COLORS[level]}{level}{self.RESET}"

        output = (
            f"[{timestamp.strftime('%Y-%m-%d %H:%M:%S')}] {level:>8} "
            f"{record.name}: {record.getMessage()}"
        )
        if record.exc_info:
            output += "\n" + self.formatException(record.exc_info)
        return output


class AnalysisLogger:
    """
    Logger wrapper for analysis lifecycle events.

    Context set with set_context() is attached to every record as extra
    fields, which the StructuredFormatter emits as JSON keys.
    """

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)
        self._context: dict[str, Any] = {}

    def set_context(self, **kwargs: Any) -> None:
        """Set persistent context fields for all records."""
        self._context.update(kwargs)

    def clear_context(self) -> None:
        self._context.clear()

    def _log(self, level: int, message: str, exc_info: bool = False, **kwargs: Any) -> None:
        extra = {**self._context, **kwargs}
        self.logger.log(level, message, exc_info=exc_info, extra=extra)

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, exc_info: bool = False, **kwargs: Any) -> None:
        self._log(logging.ERROR, message, exc_info=exc_info, **kwargs)

    def analysis_started(self, analyzers: list[str], resource_count: int) -> None:
        """Log the start of a composite analysis."""
        self.info(
            "Analysis started",
            event_type="analysis.started",
            analyzers=analyzers,
            resource_count=resource_count,
        )

    def analysis_completed(
        self,
        resource_count: int,
        dependency_count: int,
        finding_count: int,
        duration_seconds: float,
        failed_analyzers: list[str] | None = None,
    ) -> None:
        """Log the end of a composite analysis."""
        self.info(
            "Analysis completed",
            event_type="analysis.completed",
            resource_count=resource_count,
            dependency_count=dependency_count,
            finding_count=finding_count,
            duration_seconds=duration_seconds,
            failed_analyzers=failed_analyzers or [],
        )

    def partition_failed(self, analyzer: str, partition: str, error: str) -> None:
        """Log a partition that contributed no results."""
        self.warning(
            "Partition failed",
            event_type="analysis.partition_failed",
            analyzer=analyzer,
            partition=partition,
            error=error,
        )


def configure_logging(
    level: str = "INFO",
    format: str = "human",
    output: str = "stderr",
    extra_fields: dict[str, Any] | None = None,
) -> logging.Logger:
    """
    Configure the "cloudrecon" logger.

    Existing handlers are replaced, so calling this again reconfigures
    logging rather than duplicating output.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: Output format (human, json)
        output: Output destination (stderr, stdout)
        extra_fields: Extra fields to include in structured logs

    Returns:
        The configured logger

    Raises:
        ValueError: If level is not a known log level
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {level}")

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    stream = sys.stdout if output == "stdout" else sys.stderr
    handler = logging.StreamHandler(stream)

    if format == "json":
        handler.setFormatter(StructuredFormatter(extra_fields=extra_fields))
    else:
        handler.setFormatter(HumanReadableFormatter(stream=stream))

    root_logger.addHandler(handler)
    return root_logger


def configure_logging_from_env(
    default_level: str = "WARNING", default_format: str = "human"
) -> logging.Logger:
    """
    Configure logging, letting CLOUDRECON_LOG_LEVEL and CLOUDRECON_LOG_FORMAT
    override the given defaults.
    """
    return configure_logging(
        level=os.getenv("CLOUDRECON_LOG_LEVEL", default_level),
        format=os.getenv("CLOUDRECON_LOG_FORMAT", default_format),
    )


def get_logger(name: str) -> AnalysisLogger:
    """
    Get an AnalysisLogger below the "cloudrecon" logger.

    Args:
        name: Logger name, with or without the "cloudrecon." prefix

    Returns:
        AnalysisLogger instance
    """
    if name != ROOT_LOGGER_NAME and not name.startswith(f"{ROOT_LOGGER_NAME}."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return AnalysisLogger(name)
