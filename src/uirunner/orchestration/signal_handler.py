"""
Signal handling for a run.

SIGINT and SIGTERM request a shutdown of the active run: the session is
flagged and the run's main task is cancelled on the event loop, so that the
normal teardown path quits the emulator and stops the server.
"""

import asyncio
import logging
import signal
from typing import Any, Optional

from .session import RunSession

logger = logging.getLogger(__name__)


class SignalHandler:
    """
    Installs shutdown handlers for one run and restores the previous ones.
    """

    def __init__(self, session: RunSession):
        self.session = session
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._task: Optional[asyncio.Task] = None
        self._original_sigint_handler = None
        self._original_sigterm_handler = None
        self._signal_handlers_set = False

    def setup_signal_handlers(self, task: asyncio.Task) -> None:
        """
        Route SIGINT/SIGTERM to `task`.

        Must be called from the thread running the event loop.
        """
        self._loop = asyncio.get_running_loop()
        self._task = task
        try:
            self._original_sigint_handler = signal.signal(signal.SIGINT, self._handle_signal)
            self._original_sigterm_handler = signal.signal(signal.SIGTERM, self._handle_signal)
            self._signal_handlers_set = True
            logger.debug("Signal handlers installed for the run")
        except ValueError as e:
            # not on the main thread
            logger.warning(f"Failed to set up signal handlers: {e}")

    def cleanup_signal_handlers(self) -> None:
        """Restore the original signal handlers."""
        if not self._signal_handlers_set:
            return
        try:
            if self._original_sigint_handler is not None:
                signal.signal(signal.SIGINT, self._original_sigint_handler)
            if self._original_sigterm_handler is not None:
                signal.signal(signal.SIGTERM, self._original_sigterm_handler)
            logger.debug("Signal handlers restored")
        except ValueError as e:
            logger.warning(f"Failed to restore signal handlers: {e}")
        finally:
            self._signal_handlers_set = False

    def _handle_signal(self, signum: int, frame: Any) -> None:
        if self.session.shutdown_requested.is_set():
            logger.warning(f"Signal {signum} received again; teardown is already in progress")
            return
        logger.warning(f"Signal {signum} received. Shutting down the run...")
        self.session.shutdown_requested.set()
        if self._loop is not None and self._task is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._task.cancel)
