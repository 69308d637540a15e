"""
Lifecycle of the services a test run depends on.

AppiumServer starts the local automation server and reports it usable once
it announces its listening address. GenymotionEmulator boots a registered
Genymotion device, detects boot completion through the player's log file and
shuts the player down through the host's application-level quit mechanism.
"""

import asyncio
import logging
import re
import tempfile
from datetime import timedelta
from pathlib import Path
from typing import List, Optional

import psutil

from ..models.config import EmulatorConfig, ServerConfig
from ..system.commands import CommandInvoker, get_invoker
from ..system.host import (
    HostOS,
    current_host,
    default_genymobile_dir,
    default_player_path,
    default_vbox_manage_path,
    player_log_path,
)
from ..system.processes import STDERR, ProcessExit, ProcessHandle, run_and_capture
from ..validation import DeviceNotRegisteredError, ProcessStepError
from .readiness import Clock, LogFileWatch, StreamWatch, output_rule, player_boot_rule, utc_now
from .session import RunSession

logger = logging.getLogger(__name__)

SERVER_SHUTDOWN_NOTICE = re.compile(r"^\[Appium\] Received SIGTERM - shutting down$")

# Seconds the player gets to exit after a quit request
PLAYER_QUIT_TIMEOUT = 30.0

_QUIT_PLAYER_VBSCRIPT = """\
Set WshShell = WScript.CreateObject("WScript.Shell")
WshShell.AppActivate {pid}
WshShell.SendKeys "%{{F4}}"
"""


def server_ready_pattern(host: str, port: int) -> str:
    """
    Pattern of the server's "listening" line.

    The server reports either the wildcard address or the configured host,
    depending on how it was bound; both are accepted.
    """
    return rf"started on (0\.0\.0\.0|{re.escape(host)})\:{port}$"


def is_device_registered(vm_listing: str, device: str) -> bool:
    """Check `VBoxManage list vms` output for an exact quoted device name at line start."""
    return re.search(rf'^"{re.escape(device)}"', vm_listing.strip(), re.MULTILINE) is not None


class AppiumServer:
    """
    The local Appium server process.
    """

    def __init__(self, config: ServerConfig, invoker: Optional[CommandInvoker] = None,
                 session: Optional[RunSession] = None):
        self.config = config
        self.invoker = invoker or get_invoker()
        self.session = session
        self.handle: Optional[ProcessHandle] = None
        self.watch: Optional[StreamWatch] = None

    @property
    def url(self) -> str:
        return self.config.url

    async def start(self, timeout: Optional[float] = None) -> None:
        """
        Start the server and wait until it listens.

        Args:
            timeout: Seconds to wait; defaults to `startup_timeout`

        Raises:
            ProcessStepError: If the server cannot start or exits before listening
            WatchTimeoutError: If it does not listen in time
        """
        if self.handle is not None:
            raise RuntimeError("Appium server has already been started")

        handle = ProcessHandle(
            self.invoker.script_name(self.config.executable),
            self.config.args,
            name="appium",
            invoker=self.invoker,
        )
        handle.on_output(STDERR, lambda text: logger.error(text.strip()))
        handle.on_exit(lambda exit_state: logger.info(f"Appium server exited with code {exit_state.code}"))

        self.watch = StreamWatch(
            handle,
            output_rule(server_ready_pattern(self.config.host, self.config.port)),
            notice_pattern=SERVER_SHUTDOWN_NOTICE,
            on_notice=lambda line: logger.info("Appium server shutting down ..."),
            name="appium startup",
        ).start()

        self.handle = handle
        if self.session is not None:
            self.session.server = self

        await handle.start()
        logger.info(f"Waiting for Appium server on {self.config.host}:{self.config.port} ...")
        await self.watch.wait(timeout if timeout is not None else self.config.startup_timeout)
        logger.info(f"Local Appium server started on {self.config.host}:{self.config.port}")

    async def stop(self) -> None:
        """Terminate the server and its whole process subtree."""
        if self.handle is None:
            return
        logger.info("Stopping Appium server ...")
        await self.handle.terminate()
        if self.watch is not None:
            self.watch.cancel()


class GenymotionEmulator:
    """
    A Genymotion device launched through the Genymotion player.

    The player and VirtualBox processes must never be killed directly: doing
    so leaves VirtualBox processes and a stale adb device behind, which breaks
    the next launch. `quit()` therefore always asks the player to exit.
    """

    def __init__(
        self,
        config: EmulatorConfig,
        invoker: Optional[CommandInvoker] = None,
        session: Optional[RunSession] = None,
        host: Optional[HostOS] = None,
        clock: Clock = utc_now,
    ):
        self.config = config
        self.invoker = invoker or get_invoker()
        self.session = session
        self.host = host or current_host()
        self.clock = clock
        self.device: Optional[str] = None
        self.handle: Optional[ProcessHandle] = None
        self.watch: Optional[LogFileWatch] = None

    @property
    def player_path(self) -> Path:
        return self.config.player_path or default_player_path(self.host)

    @property
    def vbox_manage_path(self) -> Path:
        return self.config.vbox_manage_path or default_vbox_manage_path(self.host)

    @property
    def genymobile_dir(self) -> Path:
        return self.config.genymobile_dir or default_genymobile_dir(self.host)

    def log_path(self, device: str) -> Path:
        return player_log_path(self.genymobile_dir, device)

    async def ensure_registered(self, device: str) -> None:
        """
        Verify that VirtualBox knows the device.

        Raises:
            DeviceNotRegisteredError: If the device is not listed
            ProcessStepError: If VBoxManage cannot be run
        """
        exit_state, listing = await run_and_capture(
            str(self.vbox_manage_path), ["list", "vms"],
            name="VBoxManage", invoker=self.invoker, interpreted=False,
        )
        if exit_state.code != 0:
            logger.warning(f"VBoxManage exited with code {exit_state.code}")

        if not is_device_registered(listing, device):
            raise DeviceNotRegisteredError(
                f"\"{device}\" doesn't exist; make sure to add it in Genymotion.",
                field_name="device",
                value=device,
                step="list_vms",
            )

    async def launch(self, device: str, timeout: Optional[float] = None) -> None:
        """
        Boot a device and wait until the player logs a fresh boot.

        Args:
            device: Genymotion device (VirtualBox VM) name
            timeout: Seconds to wait for the boot; defaults to `boot_timeout`
        """
        if self.handle is not None:
            raise RuntimeError(f"Emulator '{self.device}' has already been launched")

        logger.info(f"Launching Genymotion emulator: {device} ...")
        await self.ensure_registered(device)

        handle = ProcessHandle(
            str(self.player_path), ["--vm-name", device],
            name="player", invoker=self.invoker, interpreted=False,
        )
        self.device = device
        self.handle = handle
        if self.session is not None:
            self.session.emulator = self
        await handle.start()

        # the player only logs to its own streams once it is killed
        self.watch = LogFileWatch(
            self.log_path(device),
            player_boot_rule(timedelta(seconds=self.config.boot_max_age_seconds)),
            poll_interval=self.config.poll_interval,
            clock=self.clock,
            name=f"{device} boot",
        )
        if self.session is not None:
            self.session.track_watch(self.watch)
        try:
            await self._wait_for_boot(device, timeout if timeout is not None else self.config.boot_timeout)
        finally:
            self.watch.cancel()
            if self.session is not None:
                self.session.release_watch(self.watch)
        logger.info(f"Genymotion emulator {device} is booted")

    async def _wait_for_boot(self, device: str, timeout: Optional[float]) -> None:
        """
        Wait for the boot line, failing early if the player exits first.

        Raises:
            WatchTimeoutError: If no fresh boot line appears within `timeout`
            ProcessStepError: If the player exits before the device booted
        """
        booted = asyncio.ensure_future(self.watch.wait(timeout))
        exited = asyncio.ensure_future(self.handle.wait())
        try:
            done, _ = await asyncio.wait({booted, exited}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (booted, exited):
                task.cancel()

        if booted in done:
            booted.result()
            return

        exit_state = exited.result()
        raise ProcessStepError(
            f"Genymotion player exited (code {exit_state.code}) before {device} booted",
            returncode=exit_state.code,
            step="launch_emulator",
        )

    def quit_command(self) -> Optional[List[str]]:
        """
        The application-level quit request for this host, or None when the
        host has none and the player is asked to exit by signal instead.
        """
        if self.host is HostOS.MACOS:
            return self.invoker.build_argv("osascript", ["-e", 'quit app "player"'], interpreted=False)
        if self.host is HostOS.WINDOWS:
            script = Path(tempfile.gettempdir()) / "uirunner_quit_player.vbs"
            script.write_text(_QUIT_PLAYER_VBSCRIPT.format(pid=self.handle.pid), encoding="utf-8")
            return self.invoker.build_argv(str(script), [])
        return None

    async def quit(self) -> None:
        """Ask the player to exit and wait for it."""
        if self.handle is None or self.handle.exit is not None:
            return

        logger.info(f"Quitting Genymotion emulator: {self.device} ...")
        argv = self.quit_command()
        if argv is None:
            self._request_player_exit()
        else:
            quitter = ProcessHandle(argv[0], argv[1:], name="quit player", invoker=self.invoker, interpreted=False)
            await quitter.start()
            exit_state: ProcessExit = await quitter.wait()
            if exit_state.code != 0:
                logger.warning(f"Quit request for the player exited with code {exit_state.code}")

        try:
            await asyncio.wait_for(self.handle.wait(), PLAYER_QUIT_TIMEOUT)
        except asyncio.TimeoutError:
            raise ProcessStepError(
                f"Genymotion player did not exit within {PLAYER_QUIT_TIMEOUT}s of the quit request",
                step="quit_emulator",
            )
        logger.info("Genymotion emulator closed")

    def _request_player_exit(self) -> None:
        # only the player itself; it shuts its VirtualBox children down on its own
        try:
            psutil.Process(self.handle.pid).terminate()
        except psutil.NoSuchProcess:
            logger.debug("Genymotion player already exited")
