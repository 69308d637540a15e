"""
Unit tests for run session teardown and signal handling.
"""

import asyncio
import signal
from unittest.mock import AsyncMock, Mock

import pytest

from uirunner.orchestration.session import RunSession
from uirunner.orchestration.signal_handler import SignalHandler
from uirunner.system.processes import ProcessHandle


@pytest.mark.unit
class TestRunSessionClose:
    """Teardown order and error isolation."""

    @pytest.mark.asyncio
    async def test_everything_is_torn_down_in_order(self):
        calls = []
        watch = Mock(cancel=Mock(side_effect=lambda: calls.append("watch")))
        emulator = Mock(quit=AsyncMock(side_effect=lambda: calls.append("emulator")))
        server = Mock(stop=AsyncMock(side_effect=lambda: calls.append("server")))
        handle = Mock(terminate=AsyncMock(side_effect=lambda: calls.append("handle")))

        session = RunSession(server=server, emulator=emulator)
        session.track_watch(watch)
        session.track(handle)

        await session.close()

        assert calls == ["watch", "emulator", "server", "handle"]
        assert session.closed
        assert session.handles == set()
        assert session.watches == set()

    @pytest.mark.asyncio
    async def test_failures_do_not_stop_teardown(self):
        emulator = Mock(quit=AsyncMock(side_effect=RuntimeError("player hung")))
        server = Mock(stop=AsyncMock())

        session = RunSession(server=server, emulator=emulator)
        await session.close()

        server.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        server = Mock(stop=AsyncMock())
        session = RunSession(server=server)

        await session.close()
        await session.close()

        server.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_tracked_process_is_terminated(self, python_code):
        argv = python_code("import time\ntime.sleep(60)\n")
        handle = ProcessHandle(argv[0], argv[1:], name="sleeper")
        session = RunSession()
        session.track(handle)
        await handle.start()

        await session.close()

        assert handle.exit is not None
        assert not handle.is_running

    def test_release(self):
        session = RunSession()
        handle = Mock()
        session.track(handle)
        session.release(handle)
        session.release(handle)
        assert session.handles == set()


@pytest.mark.unit
class TestSignalHandler:
    """SIGINT/SIGTERM routing to the run task."""

    @pytest.mark.asyncio
    async def test_signal_cancels_the_task(self):
        session = RunSession()
        handler = SignalHandler(session)
        original = signal.getsignal(signal.SIGTERM)

        task = asyncio.create_task(asyncio.sleep(60))
        handler.setup_signal_handlers(task)
        try:
            signal.getsignal(signal.SIGTERM)(signal.SIGTERM, None)
            with pytest.raises(asyncio.CancelledError):
                await task
            assert session.shutdown_requested.is_set()
        finally:
            handler.cleanup_signal_handlers()

        assert signal.getsignal(signal.SIGTERM) == original

    @pytest.mark.asyncio
    async def test_repeated_signal_is_ignored(self):
        session = RunSession()
        handler = SignalHandler(session)
        task = Mock()
        handler.setup_signal_handlers(task)
        try:
            handler._handle_signal(signal.SIGINT, None)
            handler._handle_signal(signal.SIGINT, None)
            await asyncio.sleep(0)
        finally:
            handler.cleanup_signal_handlers()

        task.cancel.assert_called_once()

    @pytest.mark.asyncio
    async def test_signal_after_teardown_started_is_ignored(self):
        session = RunSession()
        handler = SignalHandler(session)
        task = Mock()
        handler.setup_signal_handlers(task)
        try:
            await session.close()
            handler._handle_signal(signal.SIGTERM, None)
            await asyncio.sleep(0)
        finally:
            handler.cleanup_signal_handlers()

        assert session.shutdown_requested.is_set()
        task.cancel.assert_not_called()
