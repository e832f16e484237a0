"""
Cooperative cancellation for in-flight transfers
"""

import asyncio
from typing import Awaitable, Optional, TypeVar

from video_uploader.errors import TransferCancelled

T = TypeVar("T")


class CancellationToken:
    """Handed to a transfer and checked at each suspension point"""

    def __init__(self):
        self._event: Optional[asyncio.Event] = None
        self._cancelled = False

    def _get_event(self) -> asyncio.Event:
        # Created lazily so tokens can be built outside a running loop
        if self._event is None:
            self._event = asyncio.Event()
            if self._cancelled:
                self._event.set()
        return self._event

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self):
        self._cancelled = True
        if self._event is not None:
            self._event.set()

    def raise_if_cancelled(self):
        if self._cancelled:
            raise TransferCancelled()

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Await the operation unless cancellation wins the race, in which case it is aborted"""
        if self._cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise TransferCancelled()

        operation = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._get_event().wait())
        try:
            await asyncio.wait({operation, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            operation.cancel()
            raise
        finally:
            waiter.cancel()

        if operation.done():
            # A finished operation wins over a late cancel; the caller checks the token next
            return operation.result()

        operation.cancel()
        try:
            await operation
        except asyncio.CancelledError:
            pass
        raise TransferCancelled()
