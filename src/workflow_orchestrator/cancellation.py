"""Cooperative cancellation for suspend points."""

import asyncio
import logging
from typing import Awaitable, Optional, TypeVar

from .errors import OrchestrationCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """Signals cancellation to every awaiting branch of an orchestration."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "Orchestration cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            logger.info("Cancellation requested: %s", reason)
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise OrchestrationCancelledError(self.reason or "Orchestration cancelled")

    async def guard(self, awaitable: Awaitable[T], timeout: Optional[float] = None) -> T:
        """Await ``awaitable`` unless the token fires or ``timeout`` elapses first.

        Raises:
            OrchestrationCancelledError: the token was cancelled before completion.
            asyncio.TimeoutError: the timeout elapsed.
        """
        if self.cancelled and asyncio.iscoroutine(awaitable):
            awaitable.close()
        self.raise_if_cancelled()
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {work, waiter},
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
            if work in done:
                return work.result()
            work.cancel()
            if waiter in done:
                raise OrchestrationCancelledError(self.reason or "Orchestration cancelled")
            raise asyncio.TimeoutError(f"Operation timed out after {timeout}s")
        finally:
            waiter.cancel()
            if not work.done():
                work.cancel()


async def guarded(
    awaitable: Awaitable[T],
    token: Optional[CancellationToken],
    timeout: Optional[float] = None,
) -> T:
    """Await through ``token`` when given, else apply only ``timeout``."""
    if token is not None:
        return await token.guard(awaitable, timeout=timeout)
    if timeout is not None:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    return await awaitable
