"""
Configuration data models.

This module contains the configuration data structures for the automation
server, the build toolchain, the emulator host, the test runner and the
per-app suite definitions.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .runtime import Platform

# Key inside a platform table that holds base capabilities, not a suite.
CAPABILITY_DEFAULTS_KEY = "desiredCapabilities"


@dataclass
class ServerConfig:
    """
    Configuration for the local Appium server, loaded from `[server]`.
    """

    host: str = "localhost"
    port: int = 4723
    # Program to spawn; '.cmd' is appended on Windows by the invoker.
    executable: str = "appium"
    args: List[str] = field(default_factory=list)
    # Seconds to wait for the "started on" line; None waits forever.
    startup_timeout: Optional[float] = 120.0

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}/wd/hub"


@dataclass
class ToolchainConfig:
    """
    Configuration for the mobile build toolchain, loaded from `[toolchain]`.
    """

    executable: str = "appc"
    # Appended to every toolchain invocation.
    common_args: List[str] = field(default_factory=lambda: ["--no-banner", "--no-services"])
    # Project descriptor holding the <sdk-version> element.
    descriptor_name: str = "tiapp.xml"
    # Abort the pipeline when a step exits non-zero.
    strict_exit_codes: bool = True


@dataclass
class EmulatorConfig:
    """
    Configuration for the Genymotion emulator host, loaded from `[emulator]`.

    Empty paths fall back to the host defaults in `uirunner.system.host`.
    """

    player_path: Optional[Path] = None
    vbox_manage_path: Optional[Path] = None
    genymobile_dir: Optional[Path] = None
    boot_timeout: Optional[float] = 300.0
    boot_max_age_seconds: float = 10.0
    poll_interval: float = 0.5


@dataclass
class RunnerConfig:
    """
    Configuration for test dispatch, loaded from `[runner]`.
    """

    # argv template; '{suite}' is replaced by the suite file path.
    test_command: List[str] = field(default_factory=list)
    suite_extension: str = ".py"


@dataclass
class AppConfig:
    """
    The root configuration object that aggregates all loaded settings.
    """

    tests_root: Path
    server: ServerConfig
    toolchain: ToolchainConfig
    emulator: EmulatorConfig
    runner: RunnerConfig


@dataclass(frozen=True)
class TestDevice:
    """One device a suite is executed against."""

    __test__ = False

    device_name: str
    platform_version: str


@dataclass
class SuiteDefinition:
    """
    A suite entry of a per-app `config.toml`.
    """

    name: str
    # Project directory name, relative to the suite directory.
    proj: str
    test_devices: List[TestDevice]
    app_package: Optional[str] = None
    app_activity: Optional[str] = None
    # Remaining keys are passed through as capabilities.
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SuitesConfig:
    """
    Per-app suite configuration: platform -> suite name -> definition.

    Base capabilities per platform are stored separately so that iterating
    suites never yields the reserved capability-defaults key.
    """

    app: str
    suites: Dict[Platform, Dict[str, SuiteDefinition]]
    base_capabilities: Dict[Platform, Dict[str, Any]] = field(default_factory=dict)

    def platforms(self) -> List[Platform]:
        return list(self.suites.keys())

    def suites_for(self, platform: Platform) -> List[str]:
        return list(self.suites.get(platform, {}).keys())

    def suite(self, platform: Platform, name: str) -> SuiteDefinition:
        try:
            return self.suites[platform][name]
        except KeyError:
            raise KeyError(f"Suite '{name}' is not declared for platform '{platform.value}'")

    def capabilities_for(self, platform: Platform) -> Dict[str, Any]:
        """Return a fresh copy of the platform's base capabilities."""
        return dict(self.base_capabilities.get(platform, {}))
