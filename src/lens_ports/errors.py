"""Error handling utilities for lens-ports."""

import logging
from enum import Enum
from typing import Any, Optional, Union

from pythonjsonlogger import jsonlogger


class ErrorCategory(str, Enum):
    """Categories for error codes."""

    PORT = "PORT"
    PROBE = "PROBE"
    CONFIG = "CONFIG"
    GENERAL = "GEN"


class PortError(Exception):
    """Base class for caller-visible port allocation failures."""

    category = ErrorCategory.PORT


class InvalidPortError(PortError, ValueError):
    """Raised when a port fails the syntactic check or the privileged floor."""

    def __init__(self, port: Any, reason: str = "must be an integer between 1 and 65535"):
        self.port = port
        self.reason = reason
        super().__init__(f"Invalid port {port!r}: {reason}")


class PortExhaustedError(PortError):
    """Raised when no free port is found within the search budget."""

    def __init__(self, start_port: int, attempts: int):
        self.start_port = start_port
        self.attempts = attempts
        super().__init__(
            f"No available port found starting from {start_port} "
            f"({attempts} attempts)"
        )


def setup_logger(
    name: str = "lens_ports",
    log_file: Optional[str] = None,
    level: int = logging.INFO,
) -> logging.Logger:
    """Set up and configure the package logger.

    Console output uses a plain format. When ``log_file`` is given, ERROR
    records are also written there as JSON lines.

    Args:
        name: Logger name
        log_file: Optional path for the structured error log
        level: Console log level

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Avoid adding handlers multiple times
    if logger.handlers:
        return logger

    logger.setLevel(logging.DEBUG)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
    )
    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    if log_file:
        try:
            file_handler = logging.FileHandler(log_file, mode="a")
            file_handler.setLevel(logging.ERROR)
            json_formatter = jsonlogger.JsonFormatter(
                "%(asctime)s %(name)s %(levelname)s %(message)s",
                datefmt="%Y-%m-%dT%H:%M:%S%z",
            )
            file_handler.setFormatter(json_formatter)
            logger.addHandler(file_handler)
        except OSError as e:
            # If we can't write to the log file, just use console
            logger.warning(f"Cannot open log file {log_file}: {e}")

    return logger


logger = logging.getLogger("lens_ports.errors")


def error_code(function_name: str, category: Optional[Union[ErrorCategory, str]] = None) -> str:
    """Build a stable error code such as ``PORT-ERR-042``."""
    if category is None:
        prefix_str = ErrorCategory.GENERAL.value
    elif isinstance(category, ErrorCategory):
        prefix_str = category.value
    else:
        prefix_str = str(category)

    # Sum of code points is stable across interpreter runs, unlike hash()
    checksum = sum(ord(c) for c in function_name) % 1000
    return f"{prefix_str}-ERR-{checksum:03d}"


def log_and_format_error(
    function_name: str,
    error: Exception,
    category: Optional[Union[ErrorCategory, str]] = None,
    user_message: Optional[str] = None,
    **context: Any,
) -> str:
    """Centralized error handling function.

    Logs the error with full context and returns a user-friendly message.

    Args:
        function_name: Name of the function where error occurred
        error: The exception that was raised
        category: Error category for the error code
        user_message: Optional custom user-facing message
        **context: Additional context to log (e.g., port=3000)

    Returns:
        User-friendly error message with error code
    """
    if category is None and isinstance(error, PortError):
        category = error.category
    code = error_code(function_name, category)

    context_str = ", ".join(f"{k}={v}" for k, v in context.items())

    log_message = f"Error in {function_name}"
    if context_str:
        log_message += f" ({context_str})"
    log_message += f" - Code: {code}: {error}"

    logger.error(log_message, exc_info=error)

    if user_message:
        return f"{user_message} (code: {code})"

    if isinstance(error, PortError):
        return f"{error} (code: {code})"

    return f"An error occurred (code: {code}). Check logs for details."
