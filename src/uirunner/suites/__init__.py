"""
Suite resolution, test tree layout and capability matrix construction.
"""

from .capabilities import build_test_matrix, platform_capabilities
from .layout import app_binary_path, project_dir, project_for, suite_file, suite_reference
from .resolver import parse_platform, resolve_targets

__all__ = [
    "build_test_matrix",
    "platform_capabilities",
    "app_binary_path",
    "project_dir",
    "project_for",
    "suite_file",
    "suite_reference",
    "parse_platform",
    "resolve_targets",
]
