"""
Run session state.

A RunSession is the single owner of everything a run starts: the automation
server, the emulator, and every process handle or readiness watch that is
still active. Closing the session tears all of it down.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional, Protocol, Set

from ..system.processes import ProcessHandle
from ..validation import ErrorSeverity, handle_error

if TYPE_CHECKING:
    from .services import AppiumServer, GenymotionEmulator

logger = logging.getLogger(__name__)


class Cancellable(Protocol):
    def cancel(self) -> None: ...


@dataclass(eq=False)
class RunSession:
    """
    Lifecycle owner of the external resources of one run.
    """
    server: Optional["AppiumServer"] = None
    emulator: Optional["GenymotionEmulator"] = None
    handles: Set[ProcessHandle] = field(default_factory=set)
    watches: Set[Cancellable] = field(default_factory=set)
    shutdown_requested: threading.Event = field(default_factory=threading.Event)
    closed: bool = False

    def track(self, handle: ProcessHandle) -> ProcessHandle:
        self.handles.add(handle)
        return handle

    def release(self, handle: ProcessHandle) -> None:
        self.handles.discard(handle)

    def track_watch(self, watch: Cancellable) -> Cancellable:
        self.watches.add(watch)
        return watch

    def release_watch(self, watch: Cancellable) -> None:
        self.watches.discard(watch)

    async def close(self) -> None:
        """
        Tear down everything the run started.

        Watches are cancelled first, then the emulator is asked to quit, the
        server is stopped and any remaining process is terminated with its
        subtree. Errors are logged so that every resource gets its turn.
        """
        if self.closed:
            return
        self.closed = True
        # later signals only log while teardown runs
        self.shutdown_requested.set()
        logger.info("Tearing down run session...")

        for watch in list(self.watches):
            watch.cancel()
        self.watches.clear()

        if self.emulator is not None:
            try:
                await self.emulator.quit()
            except Exception as e:
                handle_error(e, "quitting the emulator", severity=ErrorSeverity.ERROR,
                             reraise=False, logger=logger)

        if self.server is not None:
            try:
                await self.server.stop()
            except Exception as e:
                handle_error(e, "stopping the Appium server", severity=ErrorSeverity.ERROR,
                             reraise=False, logger=logger)

        for handle in list(self.handles):
            try:
                await handle.terminate()
            except Exception as e:
                handle_error(e, f"terminating {handle.name}", severity=ErrorSeverity.ERROR,
                             reraise=False, logger=logger)
        self.handles.clear()

        logger.info("Teardown complete.")
