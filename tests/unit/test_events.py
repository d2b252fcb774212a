"""Tests for lifecycle hooks."""

import asyncio

import pytest

from tinyagent.events import HookEmitter, HookEvent, HookPayload


class TestHookEmitter:
    """Tests for HookEmitter subscription and delivery."""

    def test_sync_handler_receives_payload(self):
        """Test a sync handler gets the event and data."""
        hooks = HookEmitter()
        received = []
        hooks.on(HookEvent.NODE_ENTERED, received.append)

        hooks.emit(HookEvent.NODE_ENTERED, node="A")

        assert len(received) == 1
        assert isinstance(received[0], HookPayload)
        assert received[0].event == HookEvent.NODE_ENTERED
        assert received[0].data == {"node": "A"}

    def test_only_subscribed_event_delivered(self):
        """Test handlers only see their own event."""
        hooks = HookEmitter()
        received = []
        hooks.on(HookEvent.NODE_COMPLETED, received.append)
        hooks.emit(HookEvent.NODE_ENTERED, node="A")
        assert received == []

    def test_off_unsubscribes(self):
        """Test off() removes a handler and ignores unknown ones."""
        hooks = HookEmitter()
        received = []
        hooks.on(HookEvent.MESSAGE_APPENDED, received.append)
        hooks.off(HookEvent.MESSAGE_APPENDED, received.append)
        hooks.off(HookEvent.MESSAGE_APPENDED, print)

        hooks.emit(HookEvent.MESSAGE_APPENDED, message=None)

        assert received == []
        assert not hooks.has_handlers(HookEvent.MESSAGE_APPENDED)

    def test_failing_handler_does_not_stop_others(self):
        """Test a raising handler is logged and the next handler still runs."""
        hooks = HookEmitter()
        received = []

        def broken(payload):
            raise RuntimeError("handler bug")

        hooks.on(HookEvent.TOOL_CALL_COMPLETED, broken)
        hooks.on(HookEvent.TOOL_CALL_COMPLETED, received.append)

        hooks.emit(HookEvent.TOOL_CALL_COMPLETED, record=None)

        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_async_handler_is_scheduled_not_awaited(self):
        """Test coroutine handlers run in the background."""
        hooks = HookEmitter()
        started = asyncio.Event()
        release = asyncio.Event()
        finished = []

        async def slow(payload):
            started.set()
            await release.wait()
            finished.append(payload.data["node"])

        hooks.on(HookEvent.NODE_COMPLETED, slow)
        hooks.emit(HookEvent.NODE_COMPLETED, node="A")

        assert len(hooks.pending()) == 1
        await asyncio.wait_for(started.wait(), timeout=1)
        assert finished == []

        release.set()
        await hooks.drain(timeout=1)
        assert finished == ["A"]
        assert hooks.pending() == []

    @pytest.mark.asyncio
    async def test_async_handler_failure_is_contained(self):
        """Test a failing coroutine handler does not propagate."""
        hooks = HookEmitter()

        async def broken(payload):
            raise RuntimeError("async handler bug")

        hooks.on(HookEvent.NODE_ENTERED, broken)
        hooks.emit(HookEvent.NODE_ENTERED, node="A")
        await hooks.drain(timeout=1)
        assert hooks.pending() == []
