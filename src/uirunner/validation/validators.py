"""
Simplified validation functions.

This module provides the validation functions used by the configuration
loaders and the command-line interface.
"""

from typing import Any, List, Optional, Union

from .exceptions import ValidationError


def validate_positive_integer(
    value: Any,
    min_value: int = 1,
    max_value: Optional[int] = None,
    field_name: str = "value"
) -> int:
    """
    Validate that a value is a positive integer.

    Args:
        value: Value to validate
        min_value: Minimum allowed value (inclusive)
        max_value: Maximum allowed value (inclusive), None for no limit
        field_name: Name of the field being validated

    Returns:
        Validated integer value

    Raises:
        ValidationError: If validation fails
    """
    if isinstance(value, bool):
        raise ValidationError(
            f"{field_name} must be a valid integer, got {value}",
            field_name=field_name,
            value=value
        )
    try:
        int_value = int(value)
    except (ValueError, TypeError):
        raise ValidationError(
            f"{field_name} must be a valid integer, got {value}",
            field_name=field_name,
            value=value
        )
    if int_value < min_value:
        raise ValidationError(
            f"{field_name} must be >= {min_value}, got {int_value}",
            field_name=field_name,
            value=value
        )
    if max_value is not None and int_value > max_value:
        raise ValidationError(
            f"{field_name} must be <= {max_value}, got {int_value}",
            field_name=field_name,
            value=value
        )
    return int_value


def validate_positive_float(
    value: Any,
    min_value: float = 0.0,
    max_value: Optional[float] = None,
    field_name: str = "value"
) -> float:
    """
    Validate that a value is a float within the given bounds.

    Raises:
        ValidationError: If validation fails
    """
    try:
        float_value = float(value)
    except (ValueError, TypeError):
        raise ValidationError(
            f"{field_name} must be a valid number, got {value}",
            field_name=field_name,
            value=value
        )
    if float_value < min_value:
        raise ValidationError(
            f"{field_name} must be >= {min_value}, got {float_value}",
            field_name=field_name,
            value=value
        )
    if max_value is not None and float_value > max_value:
        raise ValidationError(
            f"{field_name} must be <= {max_value}, got {float_value}",
            field_name=field_name,
            value=value
        )
    return float_value


def validate_non_empty_string(value: Any, field_name: str = "value") -> str:
    """Validate that a value is a string with visible content."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(
            f"{field_name} must be a non-empty string",
            field_name=field_name,
            value=value
        )
    return value.strip()


def validate_string_list(value: Any, field_name: str = "value", allow_empty: bool = True) -> List[str]:
    """Validate that a value is a list of strings."""
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValidationError(
            f"{field_name} must be a list of strings",
            field_name=field_name,
            value=value
        )
    if not allow_empty and not value:
        raise ValidationError(
            f"{field_name} must not be empty",
            field_name=field_name,
            value=value
        )
    return list(value)


def validate_suite_list(suites: Union[str, List[str], None], field_name: str = "suites") -> List[str]:
    """
    Parse a comma-delimited suite selection into a list.

    Accepts either bare suite names ("login") or suite file references
    ("login/android.py"). Empty entries are discarded.

    Raises:
        ValidationError: If an entry contains characters that cannot form a path
    """
    if suites is None:
        return []
    if isinstance(suites, str):
        entries = suites.split(",")
    elif isinstance(suites, list):
        entries = suites
    else:
        raise ValidationError(
            f"{field_name} must be a comma separated string or list",
            field_name=field_name,
            value=suites
        )

    result = []
    for entry in entries:
        entry = str(entry).strip()
        if not entry:
            continue
        # normalise windows separators so references are portable
        entry = entry.replace("\\", "/")
        if entry.startswith("/") or ".." in entry.split("/"):
            raise ValidationError(
                f"{field_name} entry must be relative to the app test directory: {entry}",
                field_name=field_name,
                value=entry
            )
        result.append(entry)
    return result


def validate_enum_choice(
    value: Any,
    choices: List[str],
    field_name: str = "value",
    case_sensitive: bool = True
) -> str:
    """
    Validate that a value is one of the allowed choices.

    Args:
        value: Value to validate
        choices: List of allowed choices
        field_name: Name of the field being validated
        case_sensitive: Whether the comparison should be case-sensitive

    Returns:
        Validated choice, in the spelling used by ``choices``

    Raises:
        ValidationError: If value is not in choices
    """
    str_value = str(value)

    if case_sensitive:
        if str_value not in choices:
            raise ValidationError(
                f"{field_name} must be one of {choices}, got {value}",
                field_name=field_name,
                value=value
            )
        return str_value

    lower_choices = [choice.lower() for choice in choices]
    lower_value = str_value.lower()
    if lower_value not in lower_choices:
        raise ValidationError(
            f"{field_name} must be one of {choices}, got {value}",
            field_name=field_name,
            value=value
        )
    return choices[lower_choices.index(lower_value)]
