"""
Orchestration of a test run.

Components:
- BuildPipeline: SDK selection, descriptor patching, clean and build steps
- AppiumServer / GenymotionEmulator: service lifecycle
- StreamWatch / LogFileWatch: readiness detection
- TestDispatcher: hands suite/capability pairs to the test runner
- RunSession / SignalHandler: resource ownership, teardown and cancellation
"""

from .build_pipeline import BuildPipeline, PipelineRun, StepRecord, patch_descriptor
from .readiness import (
    LogFileWatch,
    ReadinessRule,
    StreamWatch,
    WatchSource,
    output_rule,
    player_boot_rule,
    wait_for_file,
)
from .services import AppiumServer, GenymotionEmulator, is_device_registered
from .session import RunSession
from .signal_handler import SignalHandler
from .test_dispatch import DispatchResult, TestDispatcher

__all__ = [
    "BuildPipeline",
    "PipelineRun",
    "StepRecord",
    "patch_descriptor",
    "LogFileWatch",
    "ReadinessRule",
    "StreamWatch",
    "WatchSource",
    "output_rule",
    "player_boot_rule",
    "wait_for_file",
    "AppiumServer",
    "GenymotionEmulator",
    "is_device_registered",
    "RunSession",
    "SignalHandler",
    "DispatchResult",
    "TestDispatcher",
]
