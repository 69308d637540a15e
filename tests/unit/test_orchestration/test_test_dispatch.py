"""
Unit tests for handing test pairs to the external test runner.
"""

import json
import sys
from pathlib import Path

import pytest

from uirunner.models.runtime import TestPair
from uirunner.orchestration.session import RunSession
from uirunner.orchestration.test_dispatch import TestDispatcher, render_command
from uirunner.system.commands import DirectInvoker

# Echoes what the runner received into a JSON file next to the suite
RECORDING_RUNNER = """\
import json, os, sys
suite = sys.argv[1]
with open(suite + ".received.json", "w") as f:
    json.dump({
        "capabilities": json.loads(os.environ["UIRUNNER_CAPABILITIES"]),
        "server": os.environ["UIRUNNER_SERVER_URL"],
    }, f)
print("ran", suite)
sys.exit(1 if "fail" in suite else 0)
"""


def _pair(temp_dir, name, device):
    suite = temp_dir / f"{name}.py"
    suite.write_text("")
    return TestPair(suite=suite, capabilities={"platformName": "Android", "deviceName": device})


@pytest.mark.unit
class TestRenderCommand:
    def test_suite_placeholder(self):
        pair = TestPair(suite=Path("/tests/login/android.py"), capabilities={})

        argv = render_command(["python", "-m", "pytest", "{suite}", "--junitxml={suite}.xml"], pair)

        assert argv == [
            "python", "-m", "pytest", str(Path("/tests/login/android.py")), f"--junitxml={Path('/tests/login/android.py')}.xml"
        ]


@pytest.mark.unit
class TestTestDispatcher:
    """Sequential runner invocations with capabilities in the environment."""

    def _dispatcher(self, temp_dir, session=None):
        runner = temp_dir / "runner.py"
        runner.write_text(RECORDING_RUNNER)
        return TestDispatcher(
            [sys.executable, str(runner), "{suite}"],
            "http://localhost:4723/wd/hub",
            invoker=DirectInvoker(),
            session=session,
        )

    @pytest.mark.asyncio
    async def test_each_pair_gets_its_capabilities(self, temp_dir):
        pairs = [_pair(temp_dir, "login", "Nexus 5"), _pair(temp_dir, "settings", "Pixel 2")]
        session = RunSession()

        results = await self._dispatcher(temp_dir, session).dispatch(pairs)

        assert [r.returncode for r in results] == [0, 0]
        assert all(r.passed for r in results)
        for pair in pairs:
            received = json.loads(Path(f"{pair.suite}.received.json").read_text())
            assert received["capabilities"] == pair.capabilities
            assert received["server"] == "http://localhost:4723/wd/hub"
        assert session.handles == set()

    @pytest.mark.asyncio
    async def test_failures_are_reported_per_pair(self, temp_dir):
        pairs = [_pair(temp_dir, "fail_login", "Nexus 5"), _pair(temp_dir, "settings", "Nexus 5")]

        results = await self._dispatcher(temp_dir).dispatch(pairs)

        assert [r.returncode for r in results] == [1, 0]
        assert results[0].pair is pairs[0]

    @pytest.mark.asyncio
    async def test_no_pairs(self, temp_dir):
        assert await self._dispatcher(temp_dir).dispatch([]) == []

    def test_empty_command_is_rejected(self):
        with pytest.raises(ValueError):
            TestDispatcher([], "http://localhost:4723/wd/hub")
