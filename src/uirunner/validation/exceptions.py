"""
Exception types and error handling helpers.

This module provides the error taxonomy of a test run together with the
small set of logging helpers used throughout the application. Every failure
that aborts a run derives from RunFailure so the CLI can treat them uniformly.
"""

import logging
import sys
from enum import Enum
from typing import Any, Optional, Union

logger = logging.getLogger(__name__)


class ErrorSeverity(Enum):
    """Severity levels for error handling."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ValidationError(Exception):
    """
    Exception raised when validation fails.

    This is the main exception type used for configuration and argument
    validation.
    """

    def __init__(self, message: str, field_name: Optional[str] = None,
                 value: Any = None, severity: ErrorSeverity = ErrorSeverity.ERROR):
        super().__init__(message)
        self.field_name = field_name
        self.value = value
        self.severity = severity


class RunFailure(Exception):
    """
    Unrecoverable failure of a test run.

    Carries enough context (suite, platform, project, step) for a human to
    re-run only the failing portion.
    """

    def __init__(self, message: str, suite: Optional[str] = None,
                 platform: Optional[str] = None, project: Optional[str] = None,
                 step: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.suite = suite
        self.platform = platform
        self.project = project
        self.step = step

    def context(self) -> str:
        parts = []
        for label in ("step", "suite", "platform", "project"):
            value = getattr(self, label)
            if value:
                parts.append(f"{label}={value}")
        return ", ".join(parts)

    def __str__(self) -> str:
        context = self.context()
        if context:
            return f"{self.message} [{context}]"
        return self.message


class ResolutionError(RunFailure, ValidationError):
    """A suite file, platform token or device could not be resolved."""

    def __init__(self, message: str, field_name: Optional[str] = None,
                 value: Any = None, **context: Any):
        RunFailure.__init__(self, message, **context)
        self.field_name = field_name
        self.value = value
        self.severity = ErrorSeverity.ERROR


class DeviceNotRegisteredError(ResolutionError):
    """The requested emulator is unknown to the virtualization host."""


class DescriptorPatchError(RunFailure):
    """A project descriptor does not contain a replaceable SDK version."""


class ProcessStepError(RunFailure):
    """An external process failed to spawn or exited unsuccessfully."""

    def __init__(self, message: str, returncode: Optional[int] = None, **context: Any):
        super().__init__(message, **context)
        self.returncode = returncode


class WatchTimeoutError(RunFailure):
    """A readiness watch did not complete before its deadline."""


def handle_error(
    error: Exception,
    context: str,
    severity: Union[ErrorSeverity, str] = ErrorSeverity.ERROR,
    reraise: bool = True,
    logger: Optional[logging.Logger] = None
) -> None:
    """
    Handle errors with consistent logging and optional re-raising.

    Args:
        error: The exception that occurred
        context: Context description of where the error occurred
        severity: Severity level for logging
        reraise: Whether to re-raise the exception after logging
        logger: Logger instance to use (defaults to module logger)
    """
    effective_logger = logger or globals()['logger']

    error_msg = f"Error in {context}: {error}"

    if isinstance(severity, str):
        severity_str = severity.lower()
    else:
        severity_str = severity.value

    if severity_str == "debug":
        effective_logger.debug(error_msg, exc_info=True)
    elif severity_str == "info":
        effective_logger.info(error_msg)
    elif severity_str == "warning":
        effective_logger.warning(error_msg)
    elif severity_str == "error":
        effective_logger.error(error_msg)
    elif severity_str == "critical":
        effective_logger.critical(error_msg, exc_info=True)

    if reraise:
        raise error


def handle_config_error(error: Exception, context: str, **kwargs) -> None:
    """Handle configuration-related errors."""
    handle_error(error, f"config {context}", **kwargs)


def handle_cli_error(error: Exception, context: str, **kwargs) -> None:
    """Log a fatal CLI error and exit the interpreter."""
    exit_code = kwargs.pop('exit_code', 1)
    kwargs.pop('include_traceback', None)

    severity = kwargs.pop('severity', ErrorSeverity.ERROR)
    handle_error(error, f"CLI {context}", severity=severity, reraise=False, **kwargs)

    sys.exit(exit_code)
