"""Cooperative cancellation tokens.

A single token is threaded through one run: the reasoning loop, its tool
dispatches, and any enclosing workflow. Engines check it at well-defined
points (top of each iteration, before tool dispatch, at node entry); nothing
is interrupted preemptively.
"""

import asyncio
from typing import Callable, List, Optional

from tinyagent.errors import AbortedError


class CancellationToken:
    """Signal that tells an in-progress run to stop at its next checkpoint.

    Example:
        >>> token = CancellationToken()
        >>> result = await agent.run("hi", RunOptions(cancellation=token))
        >>> token.cancel("user pressed stop")
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._reason: Optional[str] = None
        self._event: Optional[asyncio.Event] = None
        self._callbacks: List[Callable[["CancellationToken"], None]] = []
        self._timer: Optional[asyncio.TimerHandle] = None
        self._parent: Optional["CancellationToken"] = None
        self._propagate: Optional[Callable[["CancellationToken"], None]] = None

    @classmethod
    def none(cls) -> "CancellationToken":
        """A fresh token nobody holds a reference to cancel."""
        return cls()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: Optional[str] = None) -> None:
        """Signal cancellation. Idempotent; the first reason wins."""
        if self._cancelled:
            return
        self._cancelled = True
        self._reason = reason
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._event is not None:
            self._event.set()
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback(self)

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise AbortedError(reason=self._reason)

    def add_callback(self, callback: Callable[["CancellationToken"], None]) -> None:
        """Run ``callback(token)`` on cancellation, immediately if already cancelled."""
        if self._cancelled:
            callback(self)
        else:
            self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[["CancellationToken"], None]) -> None:
        """Unregister a pending callback. Unknown callbacks are ignored."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    async def wait(self) -> None:
        """Suspend until the token is cancelled."""
        if self._cancelled:
            return
        if self._event is None:
            self._event = asyncio.Event()
        await self._event.wait()

    def child(self) -> "CancellationToken":
        """Derive a token cancelled with this one but cancellable on its own.

        The child stays registered on this token until it is disposed.
        """
        child = CancellationToken()

        def propagate(parent: "CancellationToken") -> None:
            child.cancel(parent.reason)

        child._parent = self
        child._propagate = propagate
        self.add_callback(propagate)
        return child

    def with_timeout(self, seconds: float) -> "CancellationToken":
        """Derive a child token that cancels itself after ``seconds``.

        Must be called from inside a running event loop.
        """
        child = self.child()
        if not child.cancelled:
            loop = asyncio.get_running_loop()
            child._timer = loop.call_later(
                seconds, child.cancel, f"Timed out after {seconds:g}s"
            )
        return child

    def dispose(self) -> None:
        """Drop a pending deadline and detach from the parent without cancelling."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._parent is not None and self._propagate is not None:
            self._parent.remove_callback(self._propagate)
        self._parent = None
        self._propagate = None

    def __repr__(self) -> str:
        state = f"cancelled, reason={self._reason!r}" if self._cancelled else "active"
        return f"CancellationToken({state})"
