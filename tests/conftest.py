"""
Pytest configuration and shared fixtures for the uirunner test suite.

This module provides a small on-disk UI test tree, matching configuration
objects and helpers for spawning short-lived Python child processes.
"""

import shutil
import sys
import tempfile
from pathlib import Path
from typing import List

import pytest

# Add src to Python path for testing
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from uirunner.config import clear_config_cache, set_config_path  # noqa: E402
from uirunner.config.validators import validate_suites_config  # noqa: E402
from uirunner.models.config import (  # noqa: E402
    AppConfig,
    EmulatorConfig,
    RunnerConfig,
    ServerConfig,
    ToolchainConfig,
)
from uirunner.system.commands import set_invoker  # noqa: E402

APP_NAME = "kitchensink"
ORIGINAL_SDK = "6.0.0.GA"


# ============================================================================
# Test Configuration
# ============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers and settings."""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "e2e: mark test as an end-to-end test")
    config.addinivalue_line("markers", "slow: mark test as slow running")


# ============================================================================
# Core Fixtures
# ============================================================================


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    temp_path = tempfile.mkdtemp()
    yield Path(temp_path)
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def suites_config_data():
    """Per-app suite configuration as it appears in `<tests_root>/<app>/config.toml`."""
    return {
        "android": {
            "desiredCapabilities": {"automationName": "UiAutomator2", "noReset": True},
            "login": {
                "proj": "LoginApp",
                "appPackage": "com.example.login",
                "appActivity": ".LoginActivity",
                "testDevices": [
                    {"deviceName": "Nexus 5", "platformVersion": "6.0"},
                    {"deviceName": "Pixel 2", "platformVersion": "8.1"},
                ],
            },
            "settings": {
                "proj": "SettingsApp",
                "appPackage": "com.example.settings",
                "appActivity": ".SettingsActivity",
                "testDevices": [{"deviceName": "Nexus 5", "platformVersion": "6.0"}],
            },
        },
        "ios": {
            "desiredCapabilities": {"automationName": "XCUITest"},
            "login": {
                "proj": "LoginApp",
                "testDevices": [{"deviceName": "iPhone 8", "platformVersion": "11.2"}],
            },
        },
    }


def _descriptor(sdk_version: str) -> str:
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        "<ti:app xmlns:ti=\"http://ti.appcelerator.org\">\n"
        "    <id>com.example.app</id>\n"
        f"    <sdk-version>{sdk_version}</sdk-version>\n"
        "</ti:app>\n"
    )


@pytest.fixture
def ui_tests_tree(temp_dir, suites_config_data):
    """
    Create a UI test tree for APP_NAME.

    Every configured suite gets a suite file per platform and a project
    directory with a descriptor pinned to ORIGINAL_SDK.
    """
    import toml

    tests_root = temp_dir / "ui-tests"
    app_root = tests_root / APP_NAME
    app_root.mkdir(parents=True)

    with open(app_root / "config.toml", "w") as f:
        toml.dump(suites_config_data, f)

    for platform, suites in suites_config_data.items():
        for suite, definition in suites.items():
            if suite == "desiredCapabilities":
                continue
            suite_dir = app_root / suite
            project = suite_dir / definition["proj"]
            project.mkdir(parents=True, exist_ok=True)
            (suite_dir / f"{platform}.py").write_text("def test_placeholder():\n    pass\n")
            (project / "tiapp.xml").write_text(_descriptor(ORIGINAL_SDK))

    return tests_root


@pytest.fixture
def suites_config(suites_config_data):
    """Validated SuitesConfig for APP_NAME."""
    return validate_suites_config(APP_NAME, suites_config_data)


@pytest.fixture
def app_config(ui_tests_tree):
    """AppConfig pointing at the UI test tree with default sections."""
    return AppConfig(
        tests_root=ui_tests_tree,
        server=ServerConfig(),
        toolchain=ToolchainConfig(),
        emulator=EmulatorConfig(poll_interval=0.01),
        runner=RunnerConfig(),
    )


@pytest.fixture
def main_config_file(temp_dir, ui_tests_tree):
    """Main config.toml pointing at the UI test tree."""
    import toml

    config_file = temp_dir / "config.toml"
    with open(config_file, "w") as f:
        toml.dump(
            {
                "paths": {"tests_root": "ui-tests"},
                "server": {"host": "127.0.0.1", "port": 4799, "startup_timeout": 5},
                "toolchain": {"executable": "appc", "strict_exit_codes": True},
                "emulator": {"genymobile_dir": "genymobile", "boot_timeout": 0, "poll_interval": 0.05},
                "runner": {"test_command": ["python", "-m", "pytest", "{suite}"]},
            },
            f,
        )
    return config_file


# ============================================================================
# Process Helpers
# ============================================================================


def python_argv(code: str) -> List[str]:
    """Program and arguments running `code` in a fresh interpreter."""
    return [sys.executable, "-c", code]


@pytest.fixture
def python_code():
    """Provide python_argv to tests."""
    return python_argv


@pytest.fixture(autouse=True)
def clear_config_after_test():
    """Automatically reset process-wide state after each test."""
    original_config_path = Path(__file__).parent.parent / "conf" / "config.toml"

    yield

    clear_config_cache()
    set_invoker(None)
    set_config_path(original_config_path)
