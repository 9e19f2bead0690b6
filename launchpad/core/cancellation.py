"""Cancellation token with an optional deadline.

Threaded through readiness polling and the fleet loops; checked between poll
iterations and between tenants, never in the middle of a remote call.
"""

from __future__ import annotations

import asyncio
import time

from launchpad.core.errors import OperationCancelled


class CancelToken:
    __slots__ = ("_event", "deadline")

    def __init__(self, timeout: float | None = None) -> None:
        self._event = asyncio.Event()
        self.deadline = time.monotonic() + timeout if timeout is not None else None

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set() or self.expired

    @property
    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    def remaining(self) -> float | None:
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled("Operation was cancelled")
        if self.expired:
            raise OperationCancelled("Operation deadline exceeded")

    async def sleep(self, seconds: float) -> None:
        """Sleep up to *seconds*, waking early on cancel. Raises if cancelled."""
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except TimeoutError:
            pass
        self.raise_if_cancelled()


def never_cancelled() -> CancelToken:
    return CancelToken()
