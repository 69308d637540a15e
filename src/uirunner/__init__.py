"""
uirunner: end-to-end mobile UI test run orchestration.

This package builds the mobile test apps of a UI test tree, manages the
Appium server and Genymotion emulator a run needs, and hands every
suite/capability pair to the test runner.

The package is organized into specialized modules:
- config: Configuration loading and validation
- models: Data structures and type definitions
- validation: Input validation and the run failure taxonomy
- system: Command invocation and process management
- suites: Suite resolution and capability matrix construction
- orchestration: Build pipeline, services, readiness detection and teardown
- cli: Command-line interface and run orchestration

Usage:
    From command line:
        uirunner --app kitchensink --platform android --use-sdk 7.0.0.GA

    Programmatically:
        from uirunner import RunOrchestrator, RunOptions, get_config
        report = asyncio.run(RunOrchestrator(get_config(), RunOptions(app="kitchensink")).run_async())
"""

# Main interfaces
from .config import clear_config_cache, get_config, get_suites_config, set_config_path
from .cli.orchestrator import RunOptions, RunOrchestrator, RunReport
from .cli import main_cli

# Model classes for external use
from .models import (
    AppConfig,
    Platform,
    Project,
    SuitesConfig,
    Target,
    TestPair,
)

# Run components
from .orchestration import AppiumServer, BuildPipeline, GenymotionEmulator, RunSession, TestDispatcher
from .suites import build_test_matrix, resolve_targets

# Errors
from .validation import (
    DescriptorPatchError,
    DeviceNotRegisteredError,
    ProcessStepError,
    ResolutionError,
    RunFailure,
    ValidationError,
    WatchTimeoutError,
)

__version__ = "1.0.0"

__all__ = [
    # Main interfaces
    "get_config",
    "get_suites_config",
    "clear_config_cache",
    "set_config_path",
    "RunOptions",
    "RunOrchestrator",
    "RunReport",
    "main_cli",
    # Models
    "AppConfig",
    "Platform",
    "Project",
    "SuitesConfig",
    "Target",
    "TestPair",
    # Components
    "AppiumServer",
    "BuildPipeline",
    "GenymotionEmulator",
    "RunSession",
    "TestDispatcher",
    "build_test_matrix",
    "resolve_targets",
    # Errors
    "RunFailure",
    "ResolutionError",
    "DeviceNotRegisteredError",
    "DescriptorPatchError",
    "ProcessStepError",
    "WatchTimeoutError",
    "ValidationError",
]
