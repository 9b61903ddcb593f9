"""
Logging Module - Structured logging setup with Rich console support.
====================================================================

Provides centralized logging configuration for the scraping core.
Supports Rich console output, optional file logging, and a redacting
filter so login form fields never reach a log sink.
"""

import logging
import re
import sys
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

# Global state for logging configuration
_logging_configured = False
_console = Console()

_SECRET_PATTERN = re.compile(r"(password|passwd|_csrf)(['\"]?\s*[:=]\s*['\"]?)([^\s&'\",}]+)", re.IGNORECASE)


class RedactingFilter(logging.Filter):
    """Mask password and CSRF values in formatted log messages."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = _SECRET_PATTERN.sub(r"\1\2***", message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def setup_logging(
    level: str = "INFO",
    use_rich: bool = True,
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
    force: bool = False,
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        use_rich: Whether to use Rich console handler for pretty output
        log_file: Optional path to log file
        log_format: Optional custom log format string
        force: Replace an existing configuration instead of keeping it

    Note:
        This function should be called once at application startup.
        Subsequent calls without force are ignored to prevent duplicate
        handlers. Handlers carry no level of their own, so LogContext can
        raise the verbosity of one logger tree.
    """
    global _logging_configured

    if _logging_configured and not force:
        return

    numeric_level = getattr(logging, level.upper(), logging.INFO)

    if log_format is None:
        log_format = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    redactor = RedactingFilter()

    if use_rich:
        handler: logging.Handler = RichHandler(
            console=_console,
            show_time=True,
            show_level=True,
            show_path=False,
            rich_tracebacks=True,
            tracebacks_show_locals=False,
            markup=False,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(log_format))
    handler.addFilter(redactor)
    root_logger.addHandler(handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(log_format))
        file_handler.addFilter(redactor)
        root_logger.addHandler(file_handler)

    # httpx logs every request line at INFO, including query strings
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    _logging_configured = True

    logger = get_logger(__name__)
    logger.debug(f"Logging configured: level={level}, rich={use_rich}, file={log_file}")


def get_logger(name: str) -> logging.Logger:
    """
    Get a named logger instance.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Configured logger instance

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("Aggregation started")
    """
    if not _logging_configured:
        setup_logging()

    return logging.getLogger(name)


class LogContext:
    """
    Context manager for temporary log level changes.

    Example:
        >>> with LogContext("DEBUG", "campusbot.scraping"):
        ...     logger.debug("This will be shown")
    """

    def __init__(self, level: str, logger_name: Optional[str] = None):
        self.level = getattr(logging, level.upper(), logging.INFO)
        self.logger_name = logger_name
        self.original_level: Optional[int] = None

    def __enter__(self) -> "LogContext":
        logger = logging.getLogger(self.logger_name)
        self.original_level = logger.level
        logger.setLevel(self.level)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        if self.original_level is not None:
            logger = logging.getLogger(self.logger_name)
            logger.setLevel(self.original_level)
