"""
Logging setup and structured logging.

configure_logging() installs handlers on the package logger according to
LoggingConfig: rich console output by default, JSON lines when requested,
plus an optional log file. StructuredLogger emits one JSON record per
event with persistent context and a correlation id, used for analysis
run events.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any, TextIO

from rich.console import Console
from rich.logging import RichHandler

from fitstream.config.models import LoggingConfig

PACKAGE_LOGGER = "fitstream"

# Attribute marking handlers installed by configure_logging
_HANDLER_MARK = "_fitstream_handler"


class JsonFormatter(logging.Formatter):
    """Formats records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(
    config: LoggingConfig | None = None,
    console: Console | None = None,
) -> logging.Logger:
    """Configure the package logger.

    Safe to call repeatedly; handlers from earlier calls are replaced.

    Args:
        config: Logging configuration (defaults apply when None)
        console: Rich console to log to (stderr when None)

    Returns:
        The configured package logger
    """
    config = config or LoggingConfig()
    level = getattr(logging, config.level.value)

    logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_MARK, False):
            logger.removeHandler(handler)
            handler.close()

    handlers: list[logging.Handler] = []
    if config.json_format:
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(JsonFormatter())
        handlers.append(stream_handler)
    else:
        rich_handler = RichHandler(
            console=console or Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
        )
        rich_handler.setFormatter(logging.Formatter("%(message)s"))
        handlers.append(rich_handler)

    if config.file:
        file_handler = logging.FileHandler(config.file, encoding="utf-8")
        file_handler.setFormatter(
            JsonFormatter()
            if config.json_format
            else logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        handlers.append(file_handler)

    for handler in handlers:
        setattr(handler, _HANDLER_MARK, True)
        handler.setLevel(level)
        logger.addHandler(handler)

    logger.setLevel(level)
    logger.propagate = False
    return logger


class StructuredLogger:
    """JSON-formatted structured logger.

    Provides consistent JSON logging with context and correlation IDs.

    Usage:
        logger = StructuredLogger("fitstream.pipeline")
        logger.set_correlation_id(run_id)
        logger.info("Analysis started", input_chars=1200)
        logger.error("Analysis failed", error_type="timeout")
    """

    def __init__(
        self,
        name: str,
        level: int = logging.INFO,
        output: TextIO | None = None,
        json_format: bool = True,
    ) -> None:
        """Initialize the structured logger.

        Args:
            name: Logger name
            level: Logging level
            output: Output stream; when given a dedicated handler is added,
                otherwise records go to the configured package handlers
            json_format: Whether to use JSON format
        """
        self._logger = logging.getLogger(name)
        self._json_format = json_format
        self._context: dict[str, Any] = {}
        self._correlation_id: str | None = None

        if output is not None:
            self._logger.setLevel(level)
            handler = logging.StreamHandler(output)
            handler.setLevel(level)
            handler.setFormatter(logging.Formatter("%(message)s"))
            self._logger.addHandler(handler)

    @property
    def name(self) -> str:
        return self._logger.name

    @property
    def correlation_id(self) -> str | None:
        return self._correlation_id

    def set_context(self, **kwargs: Any) -> None:
        """Set persistent context fields."""
        self._context.update(kwargs)

    def clear_context(self) -> None:
        """Clear all context fields."""
        self._context.clear()

    def set_correlation_id(self, correlation_id: str | None) -> None:
        self._correlation_id = correlation_id

    def _format_message(self, level: str, message: str, **kwargs: Any) -> str:
        if self._json_format:
            record: dict[str, Any] = {
                "timestamp": datetime.now(UTC).isoformat(),
                "level": level,
                "message": message,
                "logger": self._logger.name,
            }
            if self._correlation_id:
                record["correlation_id"] = self._correlation_id
            record.update(self._context)
            record.update(kwargs)
            return json.dumps(record, default=str)

        fields = {**self._context, **kwargs}
        extra = " ".join(f"{k}={v}" for k, v in fields.items())
        return f"{message} {extra}".strip()

    def debug(self, message: str, **kwargs: Any) -> None:
        if self._logger.isEnabledFor(logging.DEBUG):
            self._logger.debug(self._format_message("DEBUG", message, **kwargs))

    def info(self, message: str, **kwargs: Any) -> None:
        if self._logger.isEnabledFor(logging.INFO):
            self._logger.info(self._format_message("INFO", message, **kwargs))

    def warning(self, message: str, **kwargs: Any) -> None:
        if self._logger.isEnabledFor(logging.WARNING):
            self._logger.warning(self._format_message("WARNING", message, **kwargs))

    def error(self, message: str, **kwargs: Any) -> None:
        self._logger.error(self._format_message("ERROR", message, **kwargs))


def get_structured_logger(name: str, json_format: bool = True) -> StructuredLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name
        json_format: Whether to use JSON format

    Returns:
        StructuredLogger instance
    """
    return StructuredLogger(name, json_format=json_format)
