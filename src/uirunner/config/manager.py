"""
Configuration management and singleton pattern.

This module provides the main configuration loading and management interface,
implementing a singleton pattern to ensure configuration is loaded only once.
"""

import logging
from pathlib import Path
from typing import Dict, Optional

from ..models.config import AppConfig, SuitesConfig
from ..validation import ErrorSeverity, handle_config_error
from .loader import load_main_config, load_suites_data
from .validators import validate_app_config, validate_suites_config

logger = logging.getLogger(__name__)

# --- Global Singleton for Configuration ---

_CONFIG: Optional[AppConfig] = None
_SUITES: Dict[str, SuitesConfig] = {}

# Default path to the main configuration file, relative to this script's location.
# Overridden by the CLI --config option and by tests.
_CONFIG_FILE_PATH = Path(__file__).parent.parent.parent.parent / "conf" / "config.toml"


def set_config_path(config_path: Path) -> None:
    """
    Set a custom configuration file path.

    Clears any cached configuration so the next access reloads from the
    new location.

    Args:
        config_path: Path to the main config.toml file
    """
    global _CONFIG_FILE_PATH
    _CONFIG_FILE_PATH = config_path
    clear_config_cache()
    logger.info(f"Configuration path set to: {config_path}")


def clear_config_cache() -> None:
    """Clear the cached configuration, forcing a reload on next access."""
    global _CONFIG
    _CONFIG = None
    _SUITES.clear()
    logger.debug("Configuration cache cleared")


def _load_config(config_path: Path) -> AppConfig:
    """
    Load the complete application configuration from the main TOML file.

    Raises:
        FileNotFoundError: If the configuration file is missing
        ValidationError: If configuration validation fails
        KeyError: If required configuration keys are missing
    """
    try:
        main_config_data = load_main_config(config_path)
        app_config = validate_app_config(main_config_data, config_path.parent)
        logger.info(f"Successfully loaded configuration; test suites live in {app_config.tests_root}")
        return app_config
    except Exception as e:
        handle_config_error(
            error=e,
            context="processing configuration",
            severity=ErrorSeverity.CRITICAL,
            reraise=True,
            logger=logger
        )
        raise


def get_config() -> AppConfig:
    """
    Get the global application configuration, loading it if necessary.

    Returns:
        The singleton AppConfig instance
    """
    global _CONFIG
    if _CONFIG is None:
        _CONFIG = _load_config(_CONFIG_FILE_PATH)
    return _CONFIG


def get_suites_config(app: str, tests_root: Optional[Path] = None) -> SuitesConfig:
    """
    Get the validated suite configuration of an app, loading it once.

    Args:
        app: Name of the app directory under the tests root
        tests_root: Override for the configured tests root

    Returns:
        The app's SuitesConfig
    """
    if app not in _SUITES:
        root = tests_root or get_config().tests_root
        try:
            _SUITES[app] = validate_suites_config(app, load_suites_data(root, app))
        except Exception as e:
            handle_config_error(
                error=e,
                context=f"loading suites for app '{app}'",
                severity=ErrorSeverity.ERROR,
                reraise=True,
                logger=logger
            )
            raise
    return _SUITES[app]


def is_config_loaded() -> bool:
    """Check if the main configuration has been loaded and cached."""
    return _CONFIG is not None
