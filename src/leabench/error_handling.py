"""Standardized Error Handling Utilities

Provides the LeaBench exception hierarchy and consistent logging helpers.
Filesystem failures keep using the builtin ``OSError``; a fidelity mismatch
is a recorded outcome, not an exception.
"""

from __future__ import annotations

import logging
import re
import traceback
from collections.abc import Iterator
from contextlib import contextmanager
from enum import Enum


class ErrorLevel(Enum):
    """Error severity levels for consistent logging."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class LeaBenchError(Exception):
    """Base exception class for all LeaBench errors."""

    def __init__(
        self, message: str, cause: Exception | None = None, context: dict | None = None
    ):
        super().__init__(message)
        self.cause = cause
        self.context = context or {}

    def __str__(self) -> str:
        base_msg = super().__str__()
        if self.cause:
            return f"{base_msg} (caused by: {self.cause})"
        return base_msg


class ToolchainError(LeaBenchError):
    """Raised when a required external dependency is missing. Fatal for the run."""

    pass


class ConversionError(LeaBenchError):
    """Raised when an input image cannot be normalized to the canonical format."""

    pass


class ToolInvocationError(LeaBenchError):
    """Raised when a compressor or decompressor exits non-zero, times out or can't start."""

    pass


class NonDeterministicOutputError(ToolInvocationError):
    """Raised when repeated compressor runs produce different artifacts."""

    pass


class ConfigurationError(LeaBenchError, ValueError):
    """Raised when configuration is invalid."""

    pass


class RunLockedError(LeaBenchError):
    """Raised when another run already owns the working directory."""

    pass


def handle_error(
    error: Exception,
    operation: str,
    error_type: type[LeaBenchError] = ToolInvocationError,
    level: ErrorLevel = ErrorLevel.ERROR,
    context: dict | None = None,
    logger: logging.Logger | None = None,
    reraise: bool = True,
) -> LeaBenchError | None:
    """Log *error* and transform it into a :class:`LeaBenchError`.

    Args:
        error: Original exception that occurred
        operation: Description of operation that failed
        error_type: Type of LeaBenchError to raise
        level: Logging level for the error
        context: Additional context information
        logger: Logger to use (defaults to module logger)
        reraise: Whether to reraise the transformed exception

    Returns:
        The transformed error if reraise=False, otherwise None

    Raises:
        LeaBenchError: Transformed error if reraise=True
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    message = f"Failed to {operation}: {error}"

    error_context = dict(context or {})
    error_context.update(
        {
            "operation": operation,
            "original_error_type": type(error).__name__,
        }
    )

    transformed_error = error_type(message, cause=error, context=error_context)

    log_message = f"{operation.capitalize()} failed: {error}"
    context_str = ", ".join(
        f"{k}={v}" for k, v in error_context.items() if k != "operation"
    )
    if context_str:
        log_message += f" (context: {context_str})"

    log_func = getattr(logger, level.value)
    log_func(log_message)

    if level in (ErrorLevel.ERROR, ErrorLevel.CRITICAL):
        logger.debug(f"Traceback for {operation}: {traceback.format_exc()}")

    if reraise:
        raise transformed_error from error
    return transformed_error


@contextmanager
def error_context(
    operation: str,
    error_type: type[LeaBenchError] = ToolInvocationError,
    level: ErrorLevel = ErrorLevel.ERROR,
    context: dict | None = None,
    logger: logging.Logger | None = None,
) -> Iterator[None]:
    """Context manager for standardized error handling.

    Usage:
        with error_context("convert image", ConversionError, context={"file": "a.png"}):
            risky_operation()
    """
    try:
        yield
    except LeaBenchError:
        raise
    except Exception as e:
        handle_error(e, operation, error_type, level, context, logger, reraise=True)


def log_warning_with_context(
    message: str, context: dict | None = None, logger: logging.Logger | None = None
) -> None:
    """Log a warning with standardized context formatting."""
    if logger is None:
        logger = logging.getLogger(__name__)

    warning_msg = message
    if context:
        context_str = ", ".join(f"{k}={v}" for k, v in context.items())
        warning_msg += f" (context: {context_str})"

    logger.warning(warning_msg)


def clean_error_message(error_msg: object, max_length: int = 500) -> str:
    """Collapse an error message onto one line so it is safe for reports and CSV.

    Args:
        error_msg: Raw error message (or exception)
        max_length: Upper bound for the returned string

    Returns:
        Single-line message with control characters removed
    """
    cleaned = str(error_msg)

    cleaned = cleaned.replace("\n", " ").replace("\r", " ").replace("\t", " ")
    cleaned = cleaned.replace('"', "'").replace("`", "'")
    cleaned = cleaned.replace(",", ";")

    # Remove null bytes and other control characters
    cleaned = re.sub(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]", "", cleaned)
    cleaned = re.sub(r"\s+", " ", cleaned).strip()

    if len(cleaned) > max_length:
        cleaned = cleaned[: max_length - 3] + "..."

    return cleaned
