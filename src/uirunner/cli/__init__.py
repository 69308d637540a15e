"""
Command-line interface for the uirunner package.

This module provides the main CLI entry point for the test run orchestrator.
"""

from .main import main_cli

__all__ = [
    "main_cli",
]
