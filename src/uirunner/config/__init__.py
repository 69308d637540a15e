"""
Configuration management for the uirunner package.

This module provides a clean interface for loading, validating, and accessing
configuration data from TOML files with singleton pattern management.
"""

from .manager import (
    clear_config_cache,
    get_config,
    get_suites_config,
    is_config_loaded,
    set_config_path,
)

from .loader import (
    get_suites_config_path,
    load_main_config,
    load_suites_data,
    load_toml_file,
)
from .validators import (
    validate_app_config,
    validate_suites_config,
)

__all__ = [
    # Main interface
    "get_config",
    "get_suites_config",
    "set_config_path",
    "clear_config_cache",
    "is_config_loaded",
    # Advanced interface
    "load_toml_file",
    "load_main_config",
    "load_suites_data",
    "get_suites_config_path",
    "validate_app_config",
    "validate_suites_config",
]
