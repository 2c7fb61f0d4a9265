"""
Wall-clock deadline for a single streaming request.

A Deadline is armed when it is created and owned by the caller. Every
suspension point of the request (opening it, each body read) is awaited
through guard(), so expiry or an explicit cancel() aborts the in-flight
operation instead of waiting for the next read to return.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable
from typing import TypeVar

T = TypeVar("T")


class RequestAborted(Exception):
    """Raised when a guarded operation is aborted by its deadline."""

    def __init__(self, reason: str = "deadline exceeded") -> None:
        super().__init__(reason)
        self.reason = reason


class Deadline:
    """Externally owned timer that aborts an in-flight request.

    Attributes:
        timeout: Total allowed duration in seconds
    """

    def __init__(self, timeout: float) -> None:
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self.timeout = timeout
        self._expires_at = time.monotonic() + timeout
        self._cancelled: asyncio.Event | None = None
        self._cancel_requested = False

    @property
    def expired(self) -> bool:
        """Whether the deadline has passed or was cancelled."""
        return self._cancel_requested or self.remaining() <= 0

    @property
    def cancelled(self) -> bool:
        return self._cancel_requested

    def remaining(self) -> float:
        """Seconds left before expiry (never negative)."""
        return max(0.0, self._expires_at - time.monotonic())

    def cancel(self) -> None:
        """Abort whatever is currently guarded, and everything after."""
        self._cancel_requested = True
        if self._cancelled is not None:
            self._cancelled.set()

    def _event(self) -> asyncio.Event:
        # Created lazily so the event binds to the running loop
        if self._cancelled is None:
            self._cancelled = asyncio.Event()
            if self._cancel_requested:
                self._cancelled.set()
        return self._cancelled

    async def guard(self, operation: Awaitable[T]) -> T:
        """Await an operation, aborting it on expiry or cancellation.

        Raises:
            RequestAborted: If the deadline passes or cancel() is called
                before the operation completes
        """
        task = asyncio.ensure_future(operation)
        if self.expired:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise RequestAborted("cancelled" if self._cancel_requested else "deadline exceeded")

        stopper = asyncio.ensure_future(self._event().wait())
        try:
            done, _ = await asyncio.wait(
                {task, stopper},
                timeout=self.remaining(),
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise
        finally:
            stopper.cancel()

        if task in done:
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise RequestAborted("cancelled" if self._cancel_requested else "deadline exceeded")
