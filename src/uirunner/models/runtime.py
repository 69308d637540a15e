"""
Runtime data models.

This module contains the data structures that exist only for the duration of
a run: resolved targets, build projects and test pairs.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict


class Platform(Enum):
    """Mobile platforms a suite can target."""

    IOS = "ios"
    ANDROID = "android"
    WINDOWS = "windows"

    @property
    def display_name(self) -> str:
        """Value expected by Appium's `platformName` capability."""
        return _DISPLAY_NAMES[self]

    @classmethod
    def identifiers(cls) -> list:
        return [member.value for member in cls]


_DISPLAY_NAMES = {
    Platform.IOS: "iOS",
    Platform.ANDROID: "Android",
    Platform.WINDOWS: "Windows",
}


@dataclass(frozen=True)
class Target:
    """
    One resolved (suite, platform) unit of work.
    """

    suite: str
    platform: Platform
    # Absolute path to the suite file.
    source_path: Path

    @property
    def key(self) -> tuple:
        return (self.suite, self.platform)

    def __str__(self) -> str:
        return f"{self.suite}/{self.platform.value}"


@dataclass(frozen=True)
class Project:
    """
    A buildable application project, possibly shared by several targets.
    """

    project_dir: Path
    descriptor_file: Path

    @property
    def name(self) -> str:
        return self.project_dir.name


@dataclass
class TestPair:
    """A suite file and the capabilities it is executed with."""

    __test__ = False

    suite: Path
    capabilities: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {"suite": str(self.suite), "cap": dict(self.capabilities)}
