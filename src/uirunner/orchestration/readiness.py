"""
Readiness detection for external services.

A readiness watch turns an external signal into a single awaitable result.
Two sources are supported:

- process output: every line written by a ProcessHandle is tested against a
  pattern; the first match resolves the watch.
- log files: a file written by another program is polled; on every change the
  whole file is re-scanned and only the most recent matching line, if it is
  recent enough, resolves the watch.

Watches have no implicit deadline. Callers bound them with `wait(timeout=...)`
or cancel them explicitly.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Pattern, Tuple

from ..system.processes import STDOUT, ProcessExit, ProcessHandle
from ..validation import ProcessStepError, WatchTimeoutError

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

# ISO-8601 timestamp with UTC offset, e.g. 2019-10-21T14:03:11+02:00
LOG_TIMESTAMP_PATTERN = re.compile(r"\d+-\d+-\d+T\d+:\d+:\d+(?:\.\d+)?(?:[+-]\d+:\d+|Z)")
PLAYER_BOOT_LINE_PATTERN = re.compile(
    LOG_TIMESTAMP_PATTERN.pattern + r" \[[^\]]+:\d+\] \[\w+\] Device booted in \d+ ms"
)
PLAYER_BOOT_CONFIRM_PATTERN = re.compile(r"Device booted in .+")
DEFAULT_BOOT_MAX_AGE = timedelta(seconds=10)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_log_timestamp(value: str) -> datetime:
    """
    Parse a log timestamp into an aware datetime.

    Timestamps without an offset are taken as local time.

    Raises:
        ValueError: If the value is not an ISO-8601 timestamp
    """
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


class WatchSource(Enum):
    PROCESS_OUTPUT = "process_output"
    LOG_FILE = "log_file"


@dataclass(frozen=True)
class ReadinessRule:
    """
    Declares what "ready" means for one watch.

    For log files, only the last line matching `pattern` is considered. It
    must also match `confirm_pattern` (when given), and its embedded
    timestamp must be no older than `max_age` at the time of the check.
    """

    source: WatchSource
    pattern: Pattern[str]
    timestamp_pattern: Optional[Pattern[str]] = None
    max_age: Optional[timedelta] = None
    confirm_pattern: Optional[Pattern[str]] = None

    def matches_line(self, line: str) -> bool:
        return self.pattern.search(line) is not None

    def last_match(self, text: str) -> Optional[str]:
        matches = [match.group(0) for match in self.pattern.finditer(text)]
        return matches[-1] if matches else None

    def find_ready_line(self, text: str, now: datetime) -> Optional[str]:
        """
        Return the line that satisfies the rule, or None.

        Args:
            text: Full content to scan
            now: Time of the check (aware datetime)
        """
        last_line = self.last_match(text.strip())
        if last_line is None:
            return None

        if self.confirm_pattern is not None and not self.confirm_pattern.search(last_line):
            return None

        if self.timestamp_pattern is None:
            return last_line

        timestamp_match = self.timestamp_pattern.search(last_line)
        if timestamp_match is None:
            return None
        try:
            logged_at = parse_log_timestamp(timestamp_match.group(0))
        except ValueError:
            logger.debug(f"Unparseable timestamp in log line: {last_line}")
            return None

        if self.max_age is not None and now - logged_at > self.max_age:
            logger.debug(f"Ignoring stale line logged {now - logged_at} ago: {last_line}")
            return None
        return last_line

    def is_satisfied_by(self, text: str, now: datetime) -> bool:
        return self.find_ready_line(text, now) is not None


def output_rule(pattern: str) -> ReadinessRule:
    """Rule for a watch on process output."""
    return ReadinessRule(source=WatchSource.PROCESS_OUTPUT, pattern=re.compile(pattern))


def player_boot_rule(max_age: timedelta = DEFAULT_BOOT_MAX_AGE) -> ReadinessRule:
    """Rule recognising a fresh "Device booted" line in a Genymotion player log."""
    return ReadinessRule(
        source=WatchSource.LOG_FILE,
        pattern=PLAYER_BOOT_LINE_PATTERN,
        timestamp_pattern=LOG_TIMESTAMP_PATTERN,
        max_age=max_age,
        confirm_pattern=PLAYER_BOOT_CONFIRM_PATTERN,
    )


class LineAssembler:
    """Reassembles output chunks into complete lines."""

    def __init__(self):
        self._pending = ""

    @property
    def pending(self) -> str:
        """Text received after the last newline."""
        return self._pending

    def feed(self, chunk: str) -> List[str]:
        parts = (self._pending + chunk).split("\n")
        self._pending = parts.pop()
        return [part.rstrip("\r") for part in parts]


async def wait_for_file(path: Path, poll_interval: float, timeout: Optional[float] = None) -> None:
    """
    Poll until `path` exists.

    Raises:
        WatchTimeoutError: If the file does not appear within `timeout` seconds
    """
    loop = asyncio.get_running_loop()
    deadline = None if timeout is None else loop.time() + timeout
    while not path.exists():
        if deadline is not None and loop.time() >= deadline:
            raise WatchTimeoutError(f"{path} did not appear within {timeout}s", step="wait_for_file")
        await asyncio.sleep(poll_interval)


class StreamWatch:
    """
    Resolves once a line of a process's output matches the rule.

    An optional notice pattern is tested on every complete line for as long
    as the watch is active, including after it resolved; matches are passed to
    `on_notice` and never affect the result.
    """

    def __init__(
        self,
        handle: ProcessHandle,
        rule: ReadinessRule,
        stream: str = STDOUT,
        notice_pattern: Optional[Pattern[str]] = None,
        on_notice: Optional[Callable[[str], None]] = None,
        name: Optional[str] = None,
    ):
        self.handle = handle
        self.rule = rule
        self.stream = stream
        self.notice_pattern = notice_pattern
        self.on_notice = on_notice
        self.name = name or f"{handle.name} readiness"

        self._assembler = LineAssembler()
        self._future: Optional[asyncio.Future] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def resolved(self) -> bool:
        return self._future is not None and self._future.done() and not self._future.cancelled() \
            and self._future.exception() is None

    def start(self) -> "StreamWatch":
        """Subscribe to the handle. Output received before the call is replayed."""
        if self._future is not None:
            raise RuntimeError(f"{self.name} has already been started")
        self._future = asyncio.get_running_loop().create_future()

        for chunk in list(self.handle.output[self.stream]):
            self._on_chunk(chunk)
        self._unsubscribe = self.handle.on_output(self.stream, self._on_chunk)

        if self.handle.exit is not None:
            self._on_exit(self.handle.exit)
        else:
            self.handle.on_exit(self._on_exit)
        return self

    async def wait(self, timeout: Optional[float] = None) -> str:
        """
        Wait for the matching line.

        Raises:
            WatchTimeoutError: If nothing matched within `timeout` seconds
            ProcessStepError: If the process exited before a match
        """
        if self._future is None:
            self.start()
        try:
            return await asyncio.wait_for(asyncio.shield(self._future), timeout)
        except asyncio.TimeoutError:
            self.cancel()
            raise WatchTimeoutError(f"{self.name} not satisfied within {timeout}s", step=self.name)

    def cancel(self) -> None:
        """Stop observing the process. Safe to call repeatedly."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._future is not None and not self._future.done():
            self._future.cancel()

    def _on_chunk(self, text: str) -> None:
        lines = self._assembler.feed(text)

        if self.notice_pattern is not None and self.on_notice is not None:
            for line in lines:
                if self.notice_pattern.search(line.strip()):
                    self.on_notice(line.strip())

        if self._future.done():
            return

        candidates = lines + [self._assembler.pending]
        for line in candidates:
            line = line.strip()
            if line and self.rule.matches_line(line):
                logger.debug(f"{self.name} satisfied by: {line}")
                self._future.set_result(line)
                return

    def _on_exit(self, exit_state: ProcessExit) -> None:
        if self._future is None or self._future.done():
            return
        self._future.set_exception(ProcessStepError(
            f"{self.handle.name} exited (code {exit_state.code}) before becoming ready",
            returncode=exit_state.code,
            step=self.name,
        ))
        # consumed by wait(); avoid "exception never retrieved" if nobody waits
        self._future.exception()


class LogFileWatch:
    """
    Resolves once a log file contains a fresh line satisfying the rule.

    The file is polled for existence first. Afterwards its size and mtime are
    polled; on the first sighting and on every change the complete content is
    re-scanned with `ReadinessRule.find_ready_line`. Polling stops as soon as
    the watch resolves, times out or is cancelled.
    """

    def __init__(
        self,
        path: Path,
        rule: ReadinessRule,
        poll_interval: float = 0.5,
        clock: Clock = utc_now,
        name: Optional[str] = None,
    ):
        self.path = Path(path)
        self.rule = rule
        self.poll_interval = poll_interval
        self.clock = clock
        self.name = name or f"{self.path.name} readiness"
        self.checks = 0

        self._task: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> "LogFileWatch":
        if self._task is not None:
            raise RuntimeError(f"{self.name} has already been started")
        self._task = asyncio.create_task(self._run(), name=f"watch-{self.path.name}")
        return self

    async def wait(self, timeout: Optional[float] = None) -> str:
        """
        Wait for a fresh matching line.

        Raises:
            WatchTimeoutError: If nothing matched within `timeout` seconds
        """
        if self._task is None:
            self.start()
        try:
            return await asyncio.wait_for(asyncio.shield(self._task), timeout)
        except asyncio.TimeoutError:
            self.cancel()
            raise WatchTimeoutError(
                f"{self.name}: no fresh match in {self.path} within {timeout}s", step=self.name
            )

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def _run(self) -> str:
        if not self.path.exists():
            logger.info(f"Waiting for {self.path} to be created ...")
        await wait_for_file(self.path, self.poll_interval)

        last_signature = None
        while True:
            signature = self._signature()
            if signature is not None and signature != last_signature:
                last_signature = signature
                line = self._check()
                if line is not None:
                    logger.debug(f"{self.name} satisfied by: {line}")
                    return line
            await asyncio.sleep(self.poll_interval)

    def _signature(self) -> Optional[Tuple[int, int]]:
        try:
            stat = self.path.stat()
        except FileNotFoundError:
            return None
        return (stat.st_mtime_ns, stat.st_size)

    def _check(self) -> Optional[str]:
        self.checks += 1
        try:
            text = self.path.read_text(encoding="utf-8", errors="replace")
        except FileNotFoundError:
            return None
        return self.rule.find_ready_line(text, self.clock())
