"""
Run orchestrator for CLI integration.

Drives one complete test run: resolve suites, build the apps, start the
Appium server, boot the emulator, hand the test matrix to the test runner,
and always tear everything down afterwards.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from ..config import get_suites_config
from ..models.config import AppConfig, SuitesConfig
from ..models.runtime import Target, TestPair
from ..orchestration import (
    AppiumServer,
    BuildPipeline,
    DispatchResult,
    GenymotionEmulator,
    RunSession,
    SignalHandler,
    TestDispatcher,
)
from ..suites import build_test_matrix, resolve_targets
from ..system.commands import CommandInvoker, get_invoker

logger = logging.getLogger(__name__)


@dataclass
class RunOptions:
    """Options of a single run, as given on the command line."""
    app: str
    suites: List[str] = field(default_factory=list)
    platform: Optional[str] = None
    sdk_version: Optional[str] = None
    more_logs: bool = False
    device: Optional[str] = None
    skip_server: bool = False
    matrix_out: Optional[Path] = None


@dataclass
class RunReport:
    """What a finished run produced."""
    targets: List[Target] = field(default_factory=list)
    pairs: List[TestPair] = field(default_factory=list)
    results: List[DispatchResult] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return all(result.passed for result in self.results)


class RunOrchestrator:
    """
    Coordinates the components of one run through a RunSession.

    Every resource the run starts is owned by `self.session`; `run_async()`
    closes the session on success, failure and cancellation alike.
    """

    def __init__(
        self,
        config: AppConfig,
        options: RunOptions,
        suites_config: Optional[SuitesConfig] = None,
        invoker: Optional[CommandInvoker] = None,
    ):
        self.config = config
        self.options = options
        self.suites_config = suites_config
        self.invoker = invoker or get_invoker()
        self.session = RunSession()

    async def run_async(self) -> RunReport:
        """
        Run the whole sequence.

        Raises:
            RunFailure: On any unrecoverable failure, after teardown
            asyncio.CancelledError: When the run is interrupted, after teardown
        """
        signal_handler = SignalHandler(self.session)
        signal_handler.setup_signal_handlers(asyncio.current_task())
        try:
            return await self._run()
        except asyncio.CancelledError:
            logger.warning("Run was cancelled")
            raise
        finally:
            self.session.shutdown_requested.set()
            try:
                await self._close_session()
            finally:
                signal_handler.cleanup_signal_handlers()

    async def _close_session(self) -> None:
        """
        Close the session to completion.

        Cancelling the run while teardown is in progress does not interrupt
        it; the cancellation is re-raised once everything is shut down.
        """
        teardown = asyncio.ensure_future(self.session.close())
        interrupted = False
        while not teardown.done():
            try:
                await asyncio.shield(teardown)
            except asyncio.CancelledError:
                if teardown.done():
                    break
                interrupted = True
                logger.warning("Teardown in progress; waiting for it to finish")
        teardown.result()
        if interrupted:
            raise asyncio.CancelledError()

    async def _run(self) -> RunReport:
        report = RunReport()
        suites_config = self.suites_config or get_suites_config(self.options.app, self.config.tests_root)

        report.targets = resolve_targets(
            self.options.app,
            suites_config,
            self.config.tests_root,
            suites=self.options.suites,
            platform=self.options.platform,
            suite_extension=self.config.runner.suite_extension,
        )
        if not report.targets:
            logger.warning("No test suites selected; nothing to do")
            return report
        logger.info(f"Selected suites: {', '.join(str(target) for target in report.targets)}")

        pipeline = BuildPipeline(
            suites_config,
            self.config.tests_root,
            self.config.toolchain,
            sdk_version=self.options.sdk_version,
            verbose=self.options.more_logs,
            session=self.session,
            invoker=self.invoker,
        )
        await pipeline.run(report.targets)

        report.pairs = build_test_matrix(suites_config, report.targets, self.config.tests_root)
        if self.options.matrix_out:
            write_matrix(report.pairs, self.options.matrix_out)

        if not self.options.skip_server:
            server = AppiumServer(self.config.server, invoker=self.invoker, session=self.session)
            await server.start()

        if self.options.device:
            emulator = GenymotionEmulator(self.config.emulator, invoker=self.invoker, session=self.session)
            await emulator.launch(self.options.device)

        if self.config.runner.test_command:
            dispatcher = TestDispatcher(
                self.config.runner.test_command,
                self.config.server.url,
                invoker=self.invoker,
                session=self.session,
            )
            report.results = await dispatcher.dispatch(report.pairs)
        else:
            logger.info("No test command configured; skipping test dispatch")

        return report


def write_matrix(pairs: List[TestPair], output_file: Path) -> None:
    """Write the suite/capability pairs as a JSON list."""
    output_file.parent.mkdir(parents=True, exist_ok=True)
    output_file.write_text(json.dumps([pair.to_dict() for pair in pairs], indent=2), encoding="utf-8")
    logger.info(f"Wrote {len(pairs)} test pairs to {output_file}")
