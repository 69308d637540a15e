"""
Capability matrix construction.

Pairs each resolved suite with the Appium capabilities of every device the
suite is declared for.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List

from ..models.config import SuitesConfig
from ..models.runtime import Platform, Target, TestPair
from .layout import app_binary_path, project_dir

logger = logging.getLogger(__name__)


def platform_capabilities(suites_config: SuitesConfig, tests_root: Path, target: Target) -> Dict[str, Any]:
    """
    Base capabilities of a target, enriched with its platform specific keys.

    The configured base capabilities are copied, never modified.
    """
    definition = suites_config.suite(target.platform, target.suite)
    capabilities = suites_config.capabilities_for(target.platform)
    capabilities.update(definition.extra)
    capabilities["platformName"] = target.platform.display_name

    directory = project_dir(tests_root, suites_config.app, target.suite, definition.proj)
    binary = app_binary_path(target.platform, directory, definition.proj)
    if binary is not None:
        capabilities["app"] = str(binary)

    if target.platform is Platform.ANDROID:
        capabilities["appPackage"] = definition.app_package
        capabilities["appActivity"] = definition.app_activity

    return capabilities


def build_test_matrix(suites_config: SuitesConfig, targets: List[Target], tests_root: Path) -> List[TestPair]:
    """
    Build the (suite, capabilities) pairs for a run.

    One pair is produced per declared test device, in target order and then
    device order. Each pair owns its capability dict.

    Args:
        suites_config: The app's suite configuration
        targets: Resolved targets
        tests_root: Root of the UI test tree

    Returns:
        List of TestPair
    """
    pairs = []
    for target in targets:
        definition = suites_config.suite(target.platform, target.suite)
        base = platform_capabilities(suites_config, tests_root, target)

        if not definition.test_devices:
            logger.warning(f"Suite {target} declares no test devices; it will not be run")

        for device in definition.test_devices:
            capabilities = dict(base)
            capabilities["deviceName"] = device.device_name
            capabilities["platformVersion"] = device.platform_version
            pairs.append(TestPair(suite=target.source_path, capabilities=capabilities))

    logger.info(f"Built {len(pairs)} suite/capability pairs from {len(targets)} targets")
    return pairs
