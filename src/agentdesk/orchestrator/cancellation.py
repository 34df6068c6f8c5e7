"""
Cancellation Token.

Single-use cancellation signal scoped to one turn. The orchestrator
checks it at loop-top and before each tool call, and races it against
every suspension point (model round, approval wait) with :meth:`race`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Optional, TypeVar

from ..domain.errors import TurnCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """Flag plus notification; cancelling twice is the same as once.

    ``cancel()`` may be called from any thread. Waiting happens on the
    event loop that first awaits the token.

    Usage:
        token = CancellationToken()

        # In the turn
        response = await token.race(provider.complete(...))

        # From the observer
        token.cancel()
    """

    def __init__(self):
        self._cancelled = False
        self._event = asyncio.Event()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> bool:
        """Signal cancellation.

        Returns:
            True if this call fired the token, False if it already had
        """
        if self._cancelled:
            return False
        self._cancelled = True

        loop = self._loop
        if loop is None or loop.is_closed():
            self._event.set()
            return True

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._event.set()
        else:
            loop.call_soon_threadsafe(self._event.set)
        return True

    def raise_if_cancelled(self) -> None:
        """Raise TurnCancelled if the token has fired."""
        if self._cancelled:
            raise TurnCancelled()

    async def wait(self) -> None:
        """Block until the token fires."""
        self._bind()
        if self._cancelled:
            return
        await self._event.wait()

    async def race(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token fires first.

        Cancellation takes precedence: if the token has fired by the time
        either side completes, the awaitable's result is discarded and
        TurnCancelled is raised.

        Raises:
            TurnCancelled: The token fired before or while waiting
        """
        self._bind()
        task = asyncio.ensure_future(awaitable)
        if self._cancelled:
            task.cancel()
            raise TurnCancelled()

        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except BaseException:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if self._cancelled:
            if task.done():
                # Retrieve so a discarded failure is not reported as unhandled
                if not task.cancelled():
                    task.exception()
            else:
                task.cancel()
            raise TurnCancelled()

        return task.result()

    def _bind(self) -> None:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
