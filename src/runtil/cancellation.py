"""One-shot cancellation signals.

A CancellationSignal is a broadcast flag that can be set once and never
cleared. Any number of coroutines may wait on it; setting it wakes all of
them. runtil keeps two independent instances, one per task, so stopping the
poll loop never stops the run supervisor and vice versa.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Awaitable, TypeVar

import anyio

__all__ = ["CancellationSignal"]

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationSignal:
    """One-shot, idempotent cancellation flag backed by anyio.Event.

    Must be created inside a running event loop.

    Example:
        cancel = CancellationSignal("poll")

        cancelled, returncode = await cancel.race(process.wait())
        if cancelled:
            ...

        # elsewhere
        cancel.cancel()
    """

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._event = anyio.Event()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> bool:
        """Set the signal.

        Returns:
            True if this call set it, False if it was already set
        """
        if self._event.is_set():
            return False
        self._event.set()
        logger.debug(f"Cancellation signal set: {self.name}")
        return True

    async def wait(self) -> None:
        """Block until the signal is set."""
        await self._event.wait()

    async def sleep(self, seconds: float) -> bool:
        """Sleep for up to `seconds`, waking early on cancellation.

        Returns:
            True if the signal was set before the time elapsed
        """
        if seconds > 0:
            with anyio.move_on_after(seconds):
                await self._event.wait()
        return self.is_cancelled

    async def race(self, awaitable: Awaitable[T]) -> tuple[bool, T | None]:
        """Run `awaitable` until it finishes or the signal is set.

        If both are ready at the same time, the finished awaitable wins.
        Exceptions raised by the awaitable propagate.

        Returns:
            (False, result) when the awaitable finished first,
            (True, None) when the signal was set first. The awaitable is
            cancelled in that case.
        """
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait(
                {work, waiter},
                return_when=asyncio.FIRST_COMPLETED,
            )
        except BaseException:
            work.cancel()
            raise
        finally:
            if not waiter.done():
                waiter.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await waiter

        if work.done():
            return False, work.result()

        work.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await work
        return True, None

    def __repr__(self) -> str:
        state = "cancelled" if self.is_cancelled else "pending"
        return f"CancellationSignal(name={self.name!r}, {state})"
