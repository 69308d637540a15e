"""
Hands suite/capability pairs to the external test runner.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from ..models.runtime import TestPair
from ..system.commands import CommandInvoker, get_invoker
from ..system.processes import STDERR, STDOUT, ProcessHandle, child_environment
from .session import RunSession

logger = logging.getLogger(__name__)

CAPABILITIES_ENV = "UIRUNNER_CAPABILITIES"
SERVER_URL_ENV = "UIRUNNER_SERVER_URL"
SUITE_PLACEHOLDER = "{suite}"


@dataclass
class DispatchResult:
    """Outcome of one test runner invocation."""
    pair: TestPair
    returncode: Optional[int]

    __test__ = False

    @property
    def passed(self) -> bool:
        return self.returncode == 0


def render_command(template: Sequence[str], pair: TestPair) -> List[str]:
    """Substitute the suite path into every argument of the command template."""
    return [part.replace(SUITE_PLACEHOLDER, str(pair.suite)) for part in template]


class TestDispatcher:
    """
    Runs the test runner once per pair, one pair at a time.

    The runner receives its capabilities as JSON in `UIRUNNER_CAPABILITIES`
    and the automation server address in `UIRUNNER_SERVER_URL`.
    """

    __test__ = False

    def __init__(self, command_template: Sequence[str], server_url: str,
                 invoker: Optional[CommandInvoker] = None, session: Optional[RunSession] = None):
        if not command_template:
            raise ValueError("Test command must not be empty")
        self.command_template = list(command_template)
        self.server_url = server_url
        self.invoker = invoker or get_invoker()
        self.session = session

    async def dispatch(self, pairs: Sequence[TestPair]) -> List[DispatchResult]:
        results = []
        for index, pair in enumerate(pairs, start=1):
            device = pair.capabilities.get("deviceName", "?")
            logger.info(f"--- [{index}/{len(pairs)}] {pair.suite} on {device} ---")
            results.append(await self._run_pair(pair))

        failed = [result for result in results if not result.passed]
        if failed:
            logger.warning(f"{len(failed)} of {len(results)} test runs failed")
        elif results:
            logger.info(f"All {len(results)} test runs passed")
        return results

    async def _run_pair(self, pair: TestPair) -> DispatchResult:
        argv = render_command(self.command_template, pair)
        env = child_environment({
            CAPABILITIES_ENV: json.dumps(pair.capabilities),
            SERVER_URL_ENV: self.server_url,
        })
        handle = ProcessHandle(argv[0], argv[1:], name="test runner", invoker=self.invoker, env=env)
        handle.on_output(STDOUT, _log_runner_output)
        handle.on_output(STDERR, _log_runner_output)

        if self.session is not None:
            self.session.track(handle)
        try:
            await handle.start()
            exit_state = await handle.wait()
        except asyncio.CancelledError:
            await handle.terminate()
            raise
        finally:
            if self.session is not None:
                self.session.release(handle)

        if exit_state.code != 0:
            logger.error(f"'{handle.command_line}' exited with code {exit_state.code}")
        return DispatchResult(pair=pair, returncode=exit_state.code)


def _log_runner_output(text: str) -> None:
    for line in text.splitlines():
        if line.strip():
            logger.info(line)
