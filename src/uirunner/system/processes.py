"""
External process handles.

This module wraps one spawned external program in a ProcessHandle: decoded
stdout/stderr chunks are delivered to subscribers as they arrive, exit and
spawn errors are published as events, and termination always covers the
whole process subtree.
"""

import asyncio
import codecs
import logging
import os
from collections import deque
from dataclasses import dataclass
from pathlib import Path, PurePath
from typing import Callable, Deque, Dict, List, Optional, Sequence, Tuple, Union

import psutil

from ..validation import ProcessStepError
from .commands import CommandInvoker, format_command, get_invoker

logger = logging.getLogger(__name__)

STDOUT = "stdout"
STDERR = "stderr"

OutputCallback = Callable[[str], None]


class ProcessConstants:
    """
    Centralized limits and timeouts for process handling.
    """
    # Bytes requested per pipe read
    READ_CHUNK_SIZE = 4096

    # Chunks kept per stream by handles that do not capture their output
    OUTPUT_HISTORY_CHUNKS = 256

    # Time left for pipes to drain after the process has exited
    OUTPUT_DRAIN_TIMEOUT = 2.0

    # Process termination timeouts
    TERMINATION_GRACEFUL_TIMEOUT = 3.0
    TERMINATION_FORCE_TIMEOUT = 2.0
    SUPERVISOR_JOIN_TIMEOUT = 5.0


@dataclass(frozen=True)
class ProcessExit:
    """Terminal state of a process: an exit code or a spawn/runtime error."""

    code: Optional[int] = None
    error: Optional[BaseException] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.code == 0


def _is_process_alive(process: psutil.Process) -> bool:
    """Safely check if a process is still alive and not a zombie."""
    try:
        if not process.is_running():
            return False
        return process.status() not in (psutil.STATUS_ZOMBIE, psutil.STATUS_DEAD)
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return False


def _get_process_children(parent: psutil.Process) -> List[psutil.Process]:
    """Safely get all live descendants of a process."""
    try:
        return [child for child in parent.children(recursive=True) if _is_process_alive(child)]
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return []


def terminate_process_tree(
    pid: int,
    name: str,
    graceful_timeout: float = ProcessConstants.TERMINATION_GRACEFUL_TIMEOUT,
    force_timeout: float = ProcessConstants.TERMINATION_FORCE_TIMEOUT,
) -> None:
    """
    Terminate a process and all of its descendants.

    Descendants are collected before the parent is signalled, since killing
    the parent first would orphan them. Processes that survive the graceful
    phase are killed.

    Args:
        pid: PID of the root process
        name: Human readable name for log messages
        graceful_timeout: Seconds to wait after the termination request
        force_timeout: Seconds to wait after the kill
    """
    if pid <= 0:
        logger.warning(f"Invalid PID {pid} for {name}, skipping termination")
        return

    try:
        parent = psutil.Process(pid)
    except psutil.NoSuchProcess:
        logger.debug(f"Process {name} (PID: {pid}) already terminated")
        return

    processes = [parent] + _get_process_children(parent)
    logger.info(f"Terminating {name} (PID: {pid}) and {len(processes) - 1} descendants")

    phases = [
        ("graceful", graceful_timeout, False),
        ("force_kill", force_timeout, True),
    ]
    remaining = processes
    for phase_name, timeout, force in phases:
        signalled = []
        for process in remaining:
            if not _is_process_alive(process):
                continue
            try:
                if force:
                    process.kill()
                else:
                    process.terminate()
                signalled.append(process)
            except psutil.NoSuchProcess:
                continue
            except psutil.AccessDenied:
                logger.warning(f"Access denied signalling PID {process.pid} during {phase_name}")

        if not signalled:
            break

        _, still_alive = psutil.wait_procs(signalled, timeout=timeout)
        remaining = [process for process in still_alive if _is_process_alive(process)]
        if not remaining:
            logger.debug(f"All processes of {name} terminated in phase {phase_name}")
            break
        logger.warning(f"Phase {phase_name}: {len(remaining)} processes of {name} still alive")

    for process in remaining:
        logger.error(f"Failed to terminate PID {process.pid} belonging to {name}")


class ProcessHandle:
    """
    Owns exactly one external process.

    Subscribers registered with `on_output` receive decoded text chunks in
    arrival order; chunks may contain partial lines. Every chunk is also
    appended to `output[stream]`, which keeps the complete output when the
    handle captures and only the most recent chunks otherwise. A handle is
    not reusable after it terminates.
    """

    def __init__(
        self,
        program: str,
        args: Sequence[str] = (),
        name: Optional[str] = None,
        invoker: Optional[CommandInvoker] = None,
        interpreted: bool = True,
        cwd: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
        encoding: str = "utf-8",
        capture: bool = False,
    ):
        """
        Args:
            program: Program name or path
            args: Program arguments
            name: Label used in logs and errors (defaults to the program name)
            invoker: Invocation strategy (defaults to the process-wide one)
            interpreted: Route through the host command interpreter if required
            cwd: Working directory
            env: Complete environment for the child
            encoding: Encoding of the child's output
            capture: Keep all output instead of a bounded history
        """
        self.invoker = invoker or get_invoker()
        self.argv = self.invoker.build_argv(program, args, interpreted=interpreted)
        self.name = name or PurePath(str(program)).name
        self.cwd = cwd
        self.env = env
        self.encoding = encoding
        self.capture = capture

        self.output: Dict[str, Union[List[str], Deque[str]]] = {
            stream: [] if capture else deque(maxlen=ProcessConstants.OUTPUT_HISTORY_CHUNKS)
            for stream in (STDOUT, STDERR)
        }
        self.exit: Optional[ProcessExit] = None
        self.process: Optional[asyncio.subprocess.Process] = None

        self._output_callbacks: Dict[str, List[OutputCallback]] = {STDOUT: [], STDERR: []}
        self._exit_callbacks: List[Callable[[ProcessExit], None]] = []
        self._error_callbacks: List[Callable[[BaseException], None]] = []
        self._done: Optional[asyncio.Future] = None
        self._supervisor: Optional[asyncio.Task] = None
        self._terminate_requested = False

    def __repr__(self) -> str:
        return f"ProcessHandle(name={self.name!r}, pid={self.pid})"

    @property
    def pid(self) -> Optional[int]:
        return self.process.pid if self.process else None

    @property
    def is_running(self) -> bool:
        return self.process is not None and self.exit is None

    @property
    def command_line(self) -> str:
        return format_command(self.argv)

    def on_output(self, stream: str, callback: OutputCallback) -> Callable[[], None]:
        """
        Subscribe to decoded output of `stream` ("stdout" or "stderr").

        Returns:
            A function that removes the subscription
        """
        if stream not in self._output_callbacks:
            raise ValueError(f"Unknown stream '{stream}'")
        self._output_callbacks[stream].append(callback)

        def unsubscribe() -> None:
            if callback in self._output_callbacks[stream]:
                self._output_callbacks[stream].remove(callback)

        return unsubscribe

    def on_exit(self, callback: Callable[[ProcessExit], None]) -> None:
        self._exit_callbacks.append(callback)

    def on_error(self, callback: Callable[[BaseException], None]) -> None:
        self._error_callbacks.append(callback)

    def text(self, stream: str = STDOUT) -> str:
        """Output received on `stream`; only the recent history unless capturing."""
        return "".join(self.output[stream])

    async def start(self) -> "ProcessHandle":
        """
        Spawn the process and start delivering its output.

        Raises:
            ProcessStepError: If the program could not be started
            RuntimeError: If the handle was already started
        """
        if self._done is not None:
            raise RuntimeError(f"{self!r} has already been started")

        loop = asyncio.get_running_loop()
        self._done = loop.create_future()

        logger.debug(f"Starting {self.name}: {self.command_line}")
        try:
            self.process = await asyncio.create_subprocess_exec(
                *self.argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.cwd,
                env=self.env,
            )
        except OSError as e:
            self._finish(ProcessExit(error=e))
            self._notify_error(e)
            raise ProcessStepError(f"Failed to start '{self.command_line}': {e}", step=self.name) from e

        logger.debug(f"{self.name} started with PID {self.process.pid}")
        self._supervisor = asyncio.create_task(self._supervise(), name=f"supervise-{self.name}")
        return self

    async def wait(self) -> ProcessExit:
        """Wait until the process has exited and its output is drained."""
        if self._done is None:
            raise RuntimeError(f"{self!r} has not been started")
        return await asyncio.shield(self._done)

    async def terminate(self) -> None:
        """
        Terminate the process and all of its descendants.

        Idempotent; does nothing for handles that were never started or have
        already exited.
        """
        if self._terminate_requested or self.process is None:
            return
        self._terminate_requested = True

        if self.exit is None and self.process.returncode is None:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, terminate_process_tree, self.process.pid, self.name)

        if self._supervisor is not None and not self._supervisor.done():
            done, _ = await asyncio.wait({self._supervisor}, timeout=ProcessConstants.SUPERVISOR_JOIN_TIMEOUT)
            if not done:
                logger.warning(f"{self.name} did not report its exit after termination")

    async def _supervise(self) -> None:
        pumps = [
            asyncio.create_task(self._pump(self.process.stdout, STDOUT)),
            asyncio.create_task(self._pump(self.process.stderr, STDERR)),
        ]
        try:
            code = await self.process.wait()
            # descendants may hold the pipes open after the process itself exits
            _, pending = await asyncio.wait(pumps, timeout=ProcessConstants.OUTPUT_DRAIN_TIMEOUT)
            for task in pending:
                task.cancel()
            await asyncio.gather(*pumps, return_exceptions=True)
        except asyncio.CancelledError:
            for task in pumps:
                task.cancel()
            self._finish(ProcessExit(error=asyncio.CancelledError()))
            raise
        except Exception as e:
            logger.error(f"Error supervising {self.name}: {e}", exc_info=True)
            self._finish(ProcessExit(error=e))
            self._notify_error(e)
            return

        exit_state = ProcessExit(code=code)
        self._finish(exit_state)
        logger.debug(f"{self.name} exited with code {code}")
        for callback in list(self._exit_callbacks):
            try:
                callback(exit_state)
            except Exception as e:
                logger.error(f"Exit callback of {self.name} failed: {e}", exc_info=True)

    async def _pump(self, stream: asyncio.StreamReader, stream_name: str) -> None:
        decoder = codecs.getincrementaldecoder(self.encoding)(errors="replace")
        while True:
            chunk = await stream.read(ProcessConstants.READ_CHUNK_SIZE)
            text = decoder.decode(chunk, final=not chunk)
            if text:
                self._deliver(stream_name, text)
            if not chunk:
                break

    def _deliver(self, stream_name: str, text: str) -> None:
        self.output[stream_name].append(text)
        for callback in list(self._output_callbacks[stream_name]):
            try:
                callback(text)
            except Exception as e:
                logger.error(f"Output callback of {self.name} failed: {e}", exc_info=True)

    def _notify_error(self, error: BaseException) -> None:
        for callback in list(self._error_callbacks):
            try:
                callback(error)
            except Exception as e:
                logger.error(f"Error callback of {self.name} failed: {e}", exc_info=True)

    def _finish(self, exit_state: ProcessExit) -> None:
        if self.exit is not None:
            return
        self.exit = exit_state
        if self._done is not None and not self._done.done():
            self._done.set_result(exit_state)


async def run_and_capture(
    program: str,
    args: Sequence[str] = (),
    name: Optional[str] = None,
    invoker: Optional[CommandInvoker] = None,
    interpreted: bool = True,
) -> Tuple[ProcessExit, str]:
    """
    Run a program to completion and collect its stdout.

    Stderr is logged at error level as it arrives.

    Returns:
        Tuple of (exit state, stdout text)
    """
    handle = ProcessHandle(program, args, name=name, invoker=invoker, interpreted=interpreted, capture=True)
    handle.on_output(STDERR, lambda text: logger.error(f"{handle.name}: {text.strip()}"))
    await handle.start()
    exit_state = await handle.wait()
    return exit_state, handle.text(STDOUT)


def child_environment(extra: Dict[str, str]) -> Dict[str, str]:
    """Return a copy of the current environment updated with `extra`."""
    env = os.environ.copy()
    env.update(extra)
    return env
