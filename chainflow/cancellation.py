"""Cooperative cancellation tokens threaded through every suspension point."""

import asyncio
import logging
from typing import AsyncIterator, Awaitable, Optional, TypeVar

from .errors import CancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """
    A single-shot cancellation signal for one in-flight stream.

    Awaiting through `run()` or iterating through `iterate()` races the
    operation against the token; when the token fires first the operation is
    cancelled and `chainflow.errors.CancelledError` is raised.
    """

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise CancelledError(self.reason or "cancelled")

    async def wait(self) -> None:
        await self._event.wait()

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Await `awaitable`, aborting it if the token fires first."""
        if self.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise CancelledError(self.reason or "cancelled")

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            # The caller itself was cancelled: take the wrapped operation down with it
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task.done():
            return task.result()

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.debug(f"Operation failed while being cancelled: {e}")
        raise CancelledError(self.reason or "cancelled")

    async def iterate(self, iterator: AsyncIterator[T]) -> AsyncIterator[T]:
        """Yield from an async iterator, aborting the pending read on cancellation."""
        it = iterator.__aiter__()
        while True:
            try:
                item = await self.run(it.__anext__())
            except StopAsyncIteration:
                return
            yield item

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled}, reason={self.reason!r})"


def ensure_token(token: Optional[CancellationToken]) -> CancellationToken:
    return token if token is not None else CancellationToken()


