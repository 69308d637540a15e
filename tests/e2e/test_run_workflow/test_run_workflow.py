"""
End-to-end tests for a complete run.

Drives RunOrchestrator against an on-disk UI test tree with a fake
toolchain and a recording test runner. No Appium server or emulator is
started.
"""

import json
import os
import stat
import sys
from dataclasses import replace
from pathlib import Path

import pytest

from uirunner.cli.orchestrator import RunOptions, RunOrchestrator
from uirunner.models.config import RunnerConfig, ToolchainConfig
from uirunner.system.commands import DirectInvoker
from uirunner.validation import ProcessStepError

APP_NAME = "kitchensink"
SDK = "7.1.0.GA"

RECORDING_RUNNER = """\
import json, os, sys
with open(sys.argv[1] + ".received.json", "w") as f:
    json.dump(json.loads(os.environ["UIRUNNER_CAPABILITIES"]), f)
"""

# Appends its arguments to calls.jsonl; exits with FAKE_APPC_EXIT on builds
FAKE_APPC = """\
#!{python}
import json, os, sys
with open({log!r}, "a") as f:
    f.write(json.dumps(sys.argv[1:]) + "\\n")
sys.exit(int(os.environ.get("FAKE_APPC_EXIT", "0")) if "--build-only" in sys.argv else 0)
"""


@pytest.fixture
def runner_config(temp_dir):
    runner = temp_dir / "runner.py"
    runner.write_text(RECORDING_RUNNER)
    return RunnerConfig(test_command=[sys.executable, str(runner), "{suite}"])


@pytest.fixture
def fake_appc(temp_dir):
    if os.name == "nt":
        pytest.skip("shebang scripts need a POSIX host")
    log = temp_dir / "calls.jsonl"
    script = temp_dir / "appc"
    script.write_text(FAKE_APPC.format(python=sys.executable, log=str(log)))
    script.chmod(script.stat().st_mode | stat.S_IXUSR)
    return script, log


def _calls(log: Path):
    return [json.loads(line) for line in log.read_text().splitlines()]


@pytest.mark.e2e
class TestRunWorkflow:
    """Resolve, build, pair and dispatch in one run."""

    @pytest.mark.asyncio
    async def test_matrix_and_dispatch_without_build(self, app_config, suites_config, runner_config, temp_dir):
        matrix_file = temp_dir / "out" / "matrix.json"
        config = replace(app_config, runner=runner_config)
        options = RunOptions(app=APP_NAME, suites=["login"], platform="android",
                             skip_server=True, matrix_out=matrix_file)

        orchestrator = RunOrchestrator(config, options, suites_config=suites_config, invoker=DirectInvoker())
        report = await orchestrator.run_async()

        assert [str(target) for target in report.targets] == ["login/android"]
        assert len(report.pairs) == 2
        assert report.succeeded and len(report.results) == 2

        matrix = json.loads(matrix_file.read_text())
        assert [entry["cap"]["deviceName"] for entry in matrix] == ["Nexus 5", "Pixel 2"]
        for entry in matrix:
            assert entry["suite"] == str(app_config.tests_root / APP_NAME / "login" / "android.py")
            assert entry["cap"]["platformName"] == "Android"
            assert entry["cap"]["app"].endswith(str(Path("login", "LoginApp", "build", "android", "bin", "LoginApp.apk")))

        received = json.loads(Path(f"{report.pairs[-1].suite}.received.json").read_text())
        assert received == report.pairs[-1].capabilities
        assert orchestrator.session.closed

    @pytest.mark.asyncio
    async def test_build_with_sdk(self, app_config, suites_config, runner_config, fake_appc):
        script, log = fake_appc
        config = replace(app_config, runner=runner_config, toolchain=ToolchainConfig(executable=str(script)))
        options = RunOptions(app=APP_NAME, platform="ios", sdk_version=SDK, skip_server=True)

        report = await RunOrchestrator(config, options, suites_config=suites_config,
                                       invoker=DirectInvoker()).run_async()

        project = str(app_config.tests_root / APP_NAME / "login" / "LoginApp")
        assert _calls(log) == [
            ["ti", "sdk", "select", SDK, "--no-banner", "--no-services"],
            ["ti", "clean", "--platforms", "ios", "--project-dir", project, "--no-banner", "--no-services"],
            ["run", "--platform", "ios", "--project-dir", project, "--build-only", "--no-banner", "--no-services"],
        ]
        descriptor = (Path(project) / "tiapp.xml").read_text()
        assert f"<sdk-version>{SDK}</sdk-version>" in descriptor
        assert [pair.capabilities["deviceName"] for pair in report.pairs] == ["iPhone 8"]
        assert report.succeeded

    @pytest.mark.asyncio
    async def test_failed_build_aborts_before_dispatch(self, app_config, suites_config, runner_config,
                                                      fake_appc, monkeypatch):
        script, log = fake_appc
        monkeypatch.setenv("FAKE_APPC_EXIT", "2")
        config = replace(app_config, runner=runner_config, toolchain=ToolchainConfig(executable=str(script)))
        options = RunOptions(app=APP_NAME, suites=["login/ios.py"], sdk_version=SDK, skip_server=True)
        orchestrator = RunOrchestrator(config, options, suites_config=suites_config, invoker=DirectInvoker())

        with pytest.raises(ProcessStepError) as exc_info:
            await orchestrator.run_async()

        assert exc_info.value.returncode == 2
        assert exc_info.value.suite == "login"
        assert exc_info.value.platform == "ios"
        assert len(_calls(log)) == 3
        assert not list(app_config.tests_root.rglob("*.received.json"))
        assert orchestrator.session.closed

    @pytest.mark.asyncio
    async def test_no_matching_suites(self, app_config, suites_config):
        options = RunOptions(app=APP_NAME, suites=["settings"], platform="ios", skip_server=True)

        report = await RunOrchestrator(app_config, options, suites_config=suites_config).run_async()

        assert report.targets == []
        assert report.pairs == []
        assert report.succeeded
