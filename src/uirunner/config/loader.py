"""
Configuration file loading utilities.

This module handles the low-level loading and parsing of TOML configuration
files: the main config.toml and the per-app suite configuration found next
to each app's test suites.
"""

import logging
import tomllib
from pathlib import Path
from typing import Any, Dict

from ..validation import ErrorSeverity, handle_config_error

logger = logging.getLogger(__name__)

# File name of the per-app suite configuration inside `<tests_root>/<app>/`.
SUITES_CONFIG_NAME = "config.toml"


def load_toml_file(file_path: Path, description: str = "configuration file") -> Dict[str, Any]:
    """
    Load and parse a TOML file with error handling.

    Args:
        file_path: Path to the TOML file to load
        description: Human-readable description for error messages

    Returns:
        Parsed TOML data as a dictionary

    Raises:
        FileNotFoundError: If the file doesn't exist
        tomllib.TOMLDecodeError: If the file is malformed
    """
    logger.info(f"Loading {description} from: {file_path}")

    if not file_path.exists():
        logger.error(f"{description} not found: {file_path}")
        raise FileNotFoundError(f"{description} not found: {file_path}")

    try:
        with open(file_path, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        handle_config_error(
            error=e,
            context=f"parsing {description}",
            severity=ErrorSeverity.CRITICAL,
            reraise=True,
            logger=logger
        )
        raise


def load_main_config(config_path: Path) -> Dict[str, Any]:
    """
    Load the main configuration file (config.toml).

    Args:
        config_path: Path to the main config.toml file

    Returns:
        Parsed configuration data
    """
    return load_toml_file(config_path, "main configuration file")


def get_suites_config_path(tests_root: Path, app: str) -> Path:
    """Return the location of an app's suite configuration."""
    return tests_root / app / SUITES_CONFIG_NAME


def load_suites_data(tests_root: Path, app: str) -> Dict[str, Any]:
    """
    Load the raw suite configuration of one app.

    Args:
        tests_root: Directory holding one sub-directory per app
        app: Name of the app whose suites are loaded

    Returns:
        Parsed mapping of platform -> suite name -> suite table
    """
    return load_toml_file(
        get_suites_config_path(tests_root, app), f"suite configuration for '{app}'"
    )
