"""Cooperative cancellation token threaded through every external call."""

import asyncio
from typing import Awaitable, Optional, TypeVar

from ..errors import TaskCancelledError

T = TypeVar("T")


class CancellationToken:
    """One-shot cancel switch backed by an ``asyncio.Event``.

    The execution loop checks it between phases; the retry layer, model
    backends and actions use :meth:`sleep` and :meth:`run` so an in-flight
    wait or call can return early instead of running to completion.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise TaskCancelledError(self.reason or "cancelled")

    async def sleep(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return True if cancelled meanwhile."""
        if seconds <= 0:
            return self._event.is_set()
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token fires first.

        Raises TaskCancelledError when cancellation wins; the inner call is
        cancelled so it does not keep running in the background.
        """
        if self._event.is_set():
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise TaskCancelledError(self.reason or "cancelled")
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            waiter.cancel()
        if work in done:
            return work.result()
        work.cancel()
        raise TaskCancelledError(self.reason or "cancelled")


async def sleep_or_cancel(seconds: float, token: Optional[CancellationToken]) -> bool:
    """Sleep honoring an optional token. Returns True if cancelled."""
    if token is None:
        await asyncio.sleep(seconds)
        return False
    return await token.sleep(seconds)
