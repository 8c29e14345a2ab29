"""
Configuration validation utilities.

Small helpers that read environment variables and fail with a
``ConfigurationError`` that names the offending variable.
"""

import os
from typing import List, Optional


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


def require_env(name: str, description: Optional[str] = None) -> str:
    """
    Require an environment variable to be set.

    Raises:
        ConfigurationError: If the environment variable is not set or empty
    """
    value = os.getenv(name)

    if not value:
        desc_msg = f" ({description})" if description else ""
        raise ConfigurationError(
            f"Missing required environment variable: {name}{desc_msg}\n"
            f"Please set {name} in your .env file or environment."
        )

    return value


def validate_int_env(name: str, default: Optional[int] = None, min_value: Optional[int] = None,
                     max_value: Optional[int] = None) -> int:
    """
    Validate an integer environment variable.

    Args:
        name: Environment variable name
        default: Default value if not set
        min_value: Minimum allowed value
        max_value: Maximum allowed value

    Returns:
        The validated integer value

    Raises:
        ConfigurationError: If the value is missing without default, not an
            integer, or outside the allowed range
    """
    value_str = os.getenv(name)

    if not value_str:
        if default is None:
            raise ConfigurationError(f"Missing required integer environment variable: {name}")
        return default

    try:
        value = int(value_str)
    except ValueError:
        raise ConfigurationError(
            f"Invalid integer value for {name}: '{value_str}'\n"
            f"Expected an integer value."
        )

    _check_range(name, value, min_value, max_value)
    return value


def validate_float_env(name: str, default: float, min_value: Optional[float] = None,
                       max_value: Optional[float] = None) -> float:
    """Validate a floating point environment variable."""
    value_str = os.getenv(name)

    if not value_str:
        return default

    try:
        value = float(value_str)
    except ValueError:
        raise ConfigurationError(
            f"Invalid number for {name}: '{value_str}'\n"
            f"Expected a decimal value."
        )

    _check_range(name, value, min_value, max_value)
    return value


def validate_bool_env(name: str, default: bool = False) -> bool:
    """
    Validate a boolean environment variable.

    Accepts: true, false, yes, no, on, off, 1, 0 (case-insensitive)
    """
    value_str = os.getenv(name)

    if not value_str:
        return default

    value_lower = value_str.strip().lower()

    if value_lower in ("true", "yes", "on", "1"):
        return True
    if value_lower in ("false", "no", "off", "0"):
        return False
    raise ConfigurationError(
        f"Invalid boolean value for {name}: '{value_str}'\n"
        f"Expected one of: true, false, yes, no, on, off, 1, 0"
    )


def validate_choice_env(name: str, choices: List[str], default: Optional[str] = None,
                        case_sensitive: bool = False) -> str:
    """
    Validate an environment variable against a list of allowed choices.

    Returns:
        The validated value, lower-cased unless ``case_sensitive``

    Raises:
        ConfigurationError: If the value is not in choices
    """
    value = os.getenv(name)

    if not value:
        if default is None:
            raise ConfigurationError(f"Missing required environment variable: {name}")
        return default

    compare_value = value if case_sensitive else value.lower()
    compare_choices = choices if case_sensitive else [c.lower() for c in choices]

    if compare_value not in compare_choices:
        raise ConfigurationError(
            f"Invalid value for {name}: '{value}'\n"
            f"Allowed values: {', '.join(choices)}"
        )

    return compare_value


def _check_range(name, value, min_value, max_value) -> None:
    if min_value is not None and value < min_value:
        raise ConfigurationError(
            f"Value for {name} ({value}) is below minimum allowed value ({min_value})"
        )

    if max_value is not None and value > max_value:
        raise ConfigurationError(
            f"Value for {name} ({value}) exceeds maximum allowed value ({max_value})"
        )
