"""
Configuration validation utilities.

This module turns raw TOML data into validated configuration models for the
main settings file and for per-app suite definitions.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from ..models.config import (
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
from ..models.runtime import Platform
from ..validation import (
    ValidationError,
    validate_enum_choice,
    validate_non_empty_string,
    validate_positive_float,
    validate_positive_integer,
    validate_string_list,
)

logger = logging.getLogger(__name__)

# Suite table keys consumed by the runner; others pass through as capabilities.
_SUITE_KEYS = {"proj", "testDevices", "appPackage", "appActivity"}


def _optional_path(value: Any, field_name: str, base_dir: Path) -> Optional[Path]:
    if value in (None, ""):
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field_name} must be a string path", field_name=field_name, value=value)
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = base_dir / path
    return path


def _optional_timeout(value: Any, field_name: str) -> Optional[float]:
    # 0 disables the timeout
    if value is None:
        return None
    timeout = validate_positive_float(value, min_value=0.0, max_value=86400.0, field_name=field_name)
    return timeout or None


def _require_bool(value: Any, field_name: str) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a boolean", field_name=field_name, value=value)
    return value


def validate_server_config(server_data: Dict[str, Any]) -> ServerConfig:
    """Validate the `[server]` table."""
    defaults = ServerConfig()
    return ServerConfig(
        host=validate_non_empty_string(server_data.get("host", defaults.host), "server.host"),
        port=validate_positive_integer(
            server_data.get("port", defaults.port), min_value=1, max_value=65535,
            field_name="server.port",
        ),
        executable=validate_non_empty_string(
            server_data.get("executable", defaults.executable), "server.executable"
        ),
        args=validate_string_list(server_data.get("args", []), "server.args"),
        startup_timeout=_optional_timeout(
            server_data.get("startup_timeout", defaults.startup_timeout), "server.startup_timeout"
        ),
    )


def validate_toolchain_config(toolchain_data: Dict[str, Any]) -> ToolchainConfig:
    """Validate the `[toolchain]` table."""
    defaults = ToolchainConfig()
    return ToolchainConfig(
        executable=validate_non_empty_string(
            toolchain_data.get("executable", defaults.executable), "toolchain.executable"
        ),
        common_args=validate_string_list(
            toolchain_data.get("common_args", defaults.common_args), "toolchain.common_args"
        ),
        descriptor_name=validate_non_empty_string(
            toolchain_data.get("descriptor_name", defaults.descriptor_name),
            "toolchain.descriptor_name",
        ),
        strict_exit_codes=_require_bool(
            toolchain_data.get("strict_exit_codes", defaults.strict_exit_codes),
            "toolchain.strict_exit_codes",
        ),
    )


def validate_emulator_config(emulator_data: Dict[str, Any], base_dir: Path) -> EmulatorConfig:
    """Validate the `[emulator]` table."""
    defaults = EmulatorConfig()
    return EmulatorConfig(
        player_path=_optional_path(emulator_data.get("player_path"), "emulator.player_path", base_dir),
        vbox_manage_path=_optional_path(
            emulator_data.get("vbox_manage_path"), "emulator.vbox_manage_path", base_dir
        ),
        genymobile_dir=_optional_path(
            emulator_data.get("genymobile_dir"), "emulator.genymobile_dir", base_dir
        ),
        boot_timeout=_optional_timeout(
            emulator_data.get("boot_timeout", defaults.boot_timeout), "emulator.boot_timeout"
        ),
        boot_max_age_seconds=validate_positive_float(
            emulator_data.get("boot_max_age_seconds", defaults.boot_max_age_seconds),
            min_value=0.1, max_value=3600.0, field_name="emulator.boot_max_age_seconds",
        ),
        poll_interval=validate_positive_float(
            emulator_data.get("poll_interval", defaults.poll_interval),
            min_value=0.01, max_value=60.0, field_name="emulator.poll_interval",
        ),
    )


def validate_runner_config(runner_data: Dict[str, Any]) -> RunnerConfig:
    """Validate the `[runner]` table."""
    suite_extension = validate_non_empty_string(
        runner_data.get("suite_extension", ".py"), "runner.suite_extension"
    )
    if not suite_extension.startswith("."):
        raise ValidationError(
            "runner.suite_extension must start with '.'",
            field_name="runner.suite_extension",
            value=suite_extension,
        )
    return RunnerConfig(
        test_command=validate_string_list(runner_data.get("test_command", []), "runner.test_command"),
        suite_extension=suite_extension,
    )


def validate_app_config(main_config_data: Dict[str, Any], config_dir: Path) -> AppConfig:
    """
    Validate and create an AppConfig from raw configuration data.

    Args:
        main_config_data: Parsed main configuration file
        config_dir: Directory of the main config file; relative paths resolve against it

    Returns:
        Validated AppConfig instance

    Raises:
        ValidationError: If validation fails
        KeyError: If the tests root is not configured
    """
    paths_data = main_config_data.get("paths", {})
    tests_root = paths_data.get("tests_root")
    if not tests_root:
        raise KeyError("Missing 'tests_root' path in [paths] section of config.toml")

    return AppConfig(
        tests_root=_optional_path(tests_root, "paths.tests_root", config_dir),
        server=validate_server_config(main_config_data.get("server", {})),
        toolchain=validate_toolchain_config(main_config_data.get("toolchain", {})),
        emulator=validate_emulator_config(main_config_data.get("emulator", {}), config_dir),
        runner=validate_runner_config(main_config_data.get("runner", {})),
    )


def _validate_test_devices(devices: Any, field_name: str) -> list:
    if not isinstance(devices, list):
        raise ValidationError(f"{field_name} must be a list of tables", field_name=field_name, value=devices)

    validated = []
    for i, device in enumerate(devices):
        entry_name = f"{field_name}[{i}]"
        if not isinstance(device, dict):
            raise ValidationError(f"{entry_name} must be a table", field_name=entry_name, value=device)
        validated.append(TestDevice(
            device_name=validate_non_empty_string(device.get("deviceName"), f"{entry_name}.deviceName"),
            platform_version=str(device.get("platformVersion", "")).strip(),
        ))
    return validated


def validate_suite_definition(name: str, suite_data: Any, field_name: str) -> SuiteDefinition:
    """Validate a single suite table."""
    if not isinstance(suite_data, dict):
        raise ValidationError(f"{field_name} must be a table", field_name=field_name, value=suite_data)

    app_package = suite_data.get("appPackage")
    app_activity = suite_data.get("appActivity")

    return SuiteDefinition(
        name=name,
        proj=validate_non_empty_string(suite_data.get("proj"), f"{field_name}.proj"),
        test_devices=_validate_test_devices(suite_data.get("testDevices", []), f"{field_name}.testDevices"),
        app_package=str(app_package) if app_package is not None else None,
        app_activity=str(app_activity) if app_activity is not None else None,
        extra={k: v for k, v in suite_data.items() if k not in _SUITE_KEYS},
    )


def validate_suites_config(app: str, suites_data: Dict[str, Any]) -> SuitesConfig:
    """
    Validate an app's suite configuration.

    Platform tables keep their declaration order so that suite resolution
    without an explicit selection is stable.

    Raises:
        ValidationError: On unknown platforms or malformed suite tables
    """
    suites = {}
    base_capabilities = {}

    for platform_key, platform_data in suites_data.items():
        validate_enum_choice(platform_key, Platform.identifiers(), field_name=f"{app}.platform")
        platform = Platform(platform_key)

        if not isinstance(platform_data, dict):
            raise ValidationError(
                f"{app}.{platform_key} must be a table",
                field_name=f"{app}.{platform_key}",
                value=platform_data,
            )

        platform_suites = {}
        for suite_name, suite_data in platform_data.items():
            if suite_name == CAPABILITY_DEFAULTS_KEY:
                if not isinstance(suite_data, dict):
                    raise ValidationError(
                        f"{app}.{platform_key}.{CAPABILITY_DEFAULTS_KEY} must be a table",
                        field_name=f"{app}.{platform_key}.{CAPABILITY_DEFAULTS_KEY}",
                        value=suite_data,
                    )
                base_capabilities[platform] = dict(suite_data)
                continue
            platform_suites[suite_name] = validate_suite_definition(
                suite_name, suite_data, f"{app}.{platform_key}.{suite_name}"
            )
        suites[platform] = platform_suites

    logger.debug(
        f"Validated suite configuration for '{app}': "
        f"{sum(len(s) for s in suites.values())} suites on {len(suites)} platforms"
    )
    return SuitesConfig(app=app, suites=suites, base_capabilities=base_capabilities)
