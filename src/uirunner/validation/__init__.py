"""
Validation and error handling for the uirunner package.

This module provides input validation, the run failure taxonomy and
error handling helpers with consistent error reporting across the application.
"""

from .exceptions import (
    DescriptorPatchError,
    DeviceNotRegisteredError,
    ErrorSeverity,
    ProcessStepError,
    ResolutionError,
    RunFailure,
    ValidationError,
    WatchTimeoutError,
    handle_cli_error,
    handle_config_error,
    handle_error,
)

from .validators import (
    validate_enum_choice,
    validate_non_empty_string,
    validate_positive_float,
    validate_positive_integer,
    validate_string_list,
    validate_suite_list,
)

__all__ = [
    # Errors
    "ErrorSeverity",
    "ValidationError",
    "RunFailure",
    "ResolutionError",
    "DeviceNotRegisteredError",
    "DescriptorPatchError",
    "ProcessStepError",
    "WatchTimeoutError",
    "handle_error",
    "handle_config_error",
    "handle_cli_error",
    # Validators
    "validate_enum_choice",
    "validate_non_empty_string",
    "validate_positive_float",
    "validate_positive_integer",
    "validate_string_list",
    "validate_suite_list",
]
