"""Tests for cooperative cancellation tokens."""

import asyncio

import pytest

from tinyagent.cancellation import CancellationToken
from tinyagent.errors import AbortedError


class TestCancellationToken:
    """Tests for CancellationToken basics."""

    def test_starts_active(self):
        """Test a new token is not cancelled."""
        token = CancellationToken()
        assert not token.cancelled
        assert token.reason is None
        token.raise_if_cancelled()

    def test_cancel_is_idempotent(self):
        """Test the first reason wins and callbacks run once."""
        calls = []
        token = CancellationToken()
        token.add_callback(lambda t: calls.append(t.reason))

        token.cancel("first")
        token.cancel("second")

        assert token.cancelled
        assert token.reason == "first"
        assert calls == ["first"]

    def test_raise_if_cancelled(self):
        """Test a cancelled token raises AbortedError."""
        token = CancellationToken()
        token.cancel("stop")
        with pytest.raises(AbortedError):
            token.raise_if_cancelled()

    def test_callback_on_cancelled_token_runs_immediately(self):
        """Test late subscribers are notified at once."""
        token = CancellationToken()
        token.cancel()
        calls = []
        token.add_callback(lambda t: calls.append(True))
        assert calls == [True]

    def test_child_follows_parent(self):
        """Test cancelling the parent cancels the child with the same reason."""
        parent = CancellationToken()
        child = parent.child()
        parent.cancel("shutdown")
        assert child.cancelled
        assert child.reason == "shutdown"

    def test_child_cancel_does_not_touch_parent(self):
        """Test a child can be cancelled on its own."""
        parent = CancellationToken()
        child = parent.child()
        child.cancel()
        assert not parent.cancelled

    def test_repr(self):
        """Test repr shows the state."""
        token = CancellationToken()
        assert "active" in repr(token)
        token.cancel("x")
        assert "cancelled" in repr(token)


class TestCancellationTokenAsync:
    """Tests for the asyncio-aware parts of CancellationToken."""

    @pytest.mark.asyncio
    async def test_wait_returns_after_cancel(self):
        """Test wait() resumes once the token is cancelled."""
        token = CancellationToken()
        waiter = asyncio.create_task(token.wait())
        await asyncio.sleep(0)
        assert not waiter.done()

        token.cancel()
        await asyncio.wait_for(waiter, timeout=1)

    @pytest.mark.asyncio
    async def test_with_timeout_cancels_itself(self):
        """Test a timeout token cancels after the deadline."""
        parent = CancellationToken()
        token = parent.with_timeout(0.01)
        await asyncio.wait_for(token.wait(), timeout=1)
        assert token.cancelled
        assert token.reason.startswith("Timed out after")
        assert not parent.cancelled

    @pytest.mark.asyncio
    async def test_dispose_drops_deadline(self):
        """Test dispose() prevents the timeout from firing."""
        token = CancellationToken().with_timeout(0.01)
        token.dispose()
        await asyncio.sleep(0.03)
        assert not token.cancelled

    @pytest.mark.asyncio
    async def test_with_timeout_on_cancelled_parent(self):
        """Test a derived token of a cancelled parent is already cancelled."""
        parent = CancellationToken()
        parent.cancel("gone")
        token = parent.with_timeout(10)
        assert token.cancelled
        assert token.reason == "gone"


class TestChildDisposal:
    """Tests for detaching derived tokens from their parent."""

    def test_remove_callback(self):
        """Test a removed callback is not run on cancellation."""
        calls = []
        token = CancellationToken()

        def callback(t):
            calls.append(t.reason)

        token.add_callback(callback)
        token.remove_callback(callback)
        token.remove_callback(callback)
        token.cancel("stop")

        assert calls == []

    def test_disposed_child_detaches_from_parent(self):
        """Test a disposed child no longer follows, or is held by, its parent."""
        parent = CancellationToken()
        child = parent.child()
        child.dispose()

        parent.cancel("shutdown")

        assert not child.cancelled
        assert parent._callbacks == []

    @pytest.mark.asyncio
    async def test_repeated_timeouts_do_not_accumulate(self):
        """Test deriving and disposing timeout tokens leaves the parent clean."""
        parent = CancellationToken()
        for _ in range(20):
            parent.with_timeout(10).dispose()

        assert parent._callbacks == []
        assert not parent.cancelled
