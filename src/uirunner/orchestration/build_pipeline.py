"""
Build pipeline for the mobile test apps.

When an SDK version is requested, the pipeline:

1. selects that SDK in the toolchain (always, even if already selected),
2. for every target in resolution order:
   a. writes the SDK version into the project's descriptor, once per project,
   b. cleans the target's platform build output of its project,
   c. builds the app for the target's platform (build only, no launch).

Every step is an external process that must exit before the next starts.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Set

from ..models.config import SuitesConfig, ToolchainConfig
from ..models.runtime import Project, Target
from ..suites.layout import project_for
from ..system.commands import CommandInvoker, get_invoker
from ..system.processes import STDERR, STDOUT, ProcessExit, ProcessHandle
from ..validation import DescriptorPatchError, ProcessStepError
from .session import RunSession

logger = logging.getLogger(__name__)

SDK_VERSION_PATTERN = re.compile(r"<sdk-version>.+?</sdk-version>")


def patch_descriptor(descriptor_file: Path, sdk_version: str) -> None:
    """
    Replace the SDK version recorded in a project descriptor.

    The first `<sdk-version>` element is rewritten in place; the rest of the
    file is kept verbatim apart from surrounding whitespace.

    Raises:
        DescriptorPatchError: If the file is missing or has no version element
    """
    try:
        content = descriptor_file.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        raise DescriptorPatchError(
            f"Project descriptor {descriptor_file} does not exist",
            project=str(descriptor_file.parent),
            step="patch_descriptor",
        )

    match = SDK_VERSION_PATTERN.search(content)
    if match is None:
        raise DescriptorPatchError(
            f"No <sdk-version> element found in {descriptor_file}",
            project=str(descriptor_file.parent),
            step="patch_descriptor",
        )

    replacement = f"<sdk-version>{sdk_version}</sdk-version>"
    descriptor_file.write_text(content[:match.start()] + replacement + content[match.end():], encoding="utf-8")
    logger.info(f"Set {descriptor_file} to SDK {sdk_version}")


@dataclass
class StepRecord:
    """One executed toolchain step."""
    step: str
    argv: List[str]
    returncode: Optional[int]
    target: Optional[Target] = None
    project: Optional[Project] = None


@dataclass
class PipelineRun:
    """
    State of a single pipeline invocation; discarded afterwards.
    """
    targets: List[Target]
    sdk_version: Optional[str] = None
    patched_projects: Set[Path] = field(default_factory=set)
    steps: List[StepRecord] = field(default_factory=list)


class BuildPipeline:
    """
    Builds the apps of a list of targets with the configured toolchain.

    Steps run strictly one after another; shared build output directories are
    never touched concurrently.
    """

    def __init__(
        self,
        suites_config: SuitesConfig,
        tests_root: Path,
        toolchain: ToolchainConfig,
        sdk_version: Optional[str] = None,
        verbose: bool = False,
        session: Optional[RunSession] = None,
        invoker: Optional[CommandInvoker] = None,
    ):
        """
        Args:
            suites_config: The app's suite configuration
            tests_root: Root of the UI test tree
            toolchain: Toolchain settings
            sdk_version: SDK to build with; None turns the pipeline into a no-op
            verbose: Log the output of every toolchain step
            session: Session that tracks the running step for teardown
            invoker: Invocation strategy (defaults to the process-wide one)
        """
        self.suites_config = suites_config
        self.tests_root = tests_root
        self.toolchain = toolchain
        self.sdk_version = sdk_version
        self.verbose = verbose
        self.session = session
        self.invoker = invoker or get_invoker()

    async def run(self, targets: Sequence[Target]) -> PipelineRun:
        """
        Build every target.

        Returns:
            The finished PipelineRun

        Raises:
            DescriptorPatchError: If a project descriptor cannot be patched
            ProcessStepError: If a step cannot start, or exits non-zero in strict mode
        """
        run = PipelineRun(targets=list(targets), sdk_version=self.sdk_version)

        if not self.sdk_version:
            logger.debug("No SDK version requested; skipping app builds")
            return run

        logger.info(f"--- Building {len(run.targets)} test apps with SDK {self.sdk_version} ---")

        await self._run_step(run, "sdk_select", ["ti", "sdk", "select", self.sdk_version])

        for target in run.targets:
            project = project_for(self.suites_config, self.tests_root, target, self.toolchain.descriptor_name)

            # several suites can share one project; its descriptor is written once
            if project.project_dir not in run.patched_projects:
                run.patched_projects.add(project.project_dir)
                try:
                    patch_descriptor(project.descriptor_file, self.sdk_version)
                except DescriptorPatchError as e:
                    e.suite = target.suite
                    e.platform = target.platform.value
                    raise

            platform = target.platform.value
            project_dir = str(project.project_dir)

            # clean only this platform so sibling builds of the project stay valid
            await self._run_step(
                run, "clean",
                ["ti", "clean", "--platforms", platform, "--project-dir", project_dir],
                target, project,
            )
            await self._run_step(
                run, "build",
                ["run", "--platform", platform, "--project-dir", project_dir, "--build-only"],
                target, project,
            )

        logger.info("--- Finished building test apps ---")
        return run

    async def _run_step(self, run: PipelineRun, step: str, args: List[str],
                        target: Optional[Target] = None, project: Optional[Project] = None) -> StepRecord:
        handle = ProcessHandle(
            self.invoker.script_name(self.toolchain.executable),
            [*args, *self.toolchain.common_args],
            name=f"{self.toolchain.executable} {step}",
            invoker=self.invoker,
        )
        # the toolchain writes to both streams regardless of severity
        if self.verbose:
            handle.on_output(STDOUT, self._log_output)
            handle.on_output(STDERR, self._log_output)

        context = {
            "step": step,
            "suite": target.suite if target else None,
            "platform": target.platform.value if target else None,
            "project": str(project.project_dir) if project else None,
        }

        logger.info(f"Running: '{handle.command_line}' ...")
        exit_state = await self._execute(handle, context)

        record = StepRecord(step=step, argv=handle.argv, returncode=exit_state.code,
                            target=target, project=project)
        run.steps.append(record)

        if exit_state.code != 0:
            message = f"'{handle.command_line}' exited with code {exit_state.code}"
            if self.toolchain.strict_exit_codes:
                logger.error(message)
                raise ProcessStepError(message, returncode=exit_state.code, **context)
            logger.warning(f"{message}; continuing because strict_exit_codes is disabled")
        else:
            logger.info("done")
        return record

    async def _execute(self, handle: ProcessHandle, context: dict) -> ProcessExit:
        if self.session is not None:
            self.session.track(handle)
        try:
            try:
                await handle.start()
            except ProcessStepError as e:
                raise ProcessStepError(e.message, **context) from e
            return await handle.wait()
        except asyncio.CancelledError:
            await handle.terminate()
            raise
        finally:
            if self.session is not None:
                self.session.release(handle)

    @staticmethod
    def _log_output(text: str) -> None:
        text = text.strip()
        if text:
            logger.info(text)
