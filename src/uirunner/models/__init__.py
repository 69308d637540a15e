"""
Data models for the test run orchestration.

Configuration Models:
- Server, toolchain, emulator and runner settings
- Per-app suite definitions and test devices

Runtime Models:
- Platforms and resolved targets
- Build projects shared between targets
- Suite/capability test pairs
"""

from .config import (
    CAPABILITY_DEFAULTS_KEY,
    AppConfig,
    EmulatorConfig,
    RunnerConfig,
    ServerConfig,
    SuiteDefinition,
    SuitesConfig,
    TestDevice,
    ToolchainConfig,
)
from .runtime import Platform, Project, Target, TestPair

__all__ = [
    # Configuration
    "CAPABILITY_DEFAULTS_KEY",
    "AppConfig",
    "EmulatorConfig",
    "RunnerConfig",
    "ServerConfig",
    "SuiteDefinition",
    "SuitesConfig",
    "TestDevice",
    "ToolchainConfig",
    # Runtime
    "Platform",
    "Project",
    "Target",
    "TestPair",
]
