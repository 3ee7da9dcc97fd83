from __future__ import annotations

import asyncio
import inspect
from contextlib import suppress
from typing import Awaitable, TypeVar

T = TypeVar("T")


class ResearchCancelled(Exception):
    """Raised when a run's cancellation token fires."""


class CancellationToken:
    """Cooperative cancellation handle owned by one research run.

    Polled between passes with `is_cancelled`, and raced against in-flight
    generation calls with `guard`.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ResearchCancelled("Research cancelled")

    async def wait(self) -> None:
        await self._event.wait()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await `awaitable` unless the token fires first.

        On cancellation the underlying task is cancelled and
        `ResearchCancelled` is raised.
        """
        if self.is_cancelled:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            raise ResearchCancelled("Research cancelled")
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task not in done:
            task.cancel()
            with suppress(asyncio.CancelledError, Exception):
                await task
            raise ResearchCancelled("Research cancelled")
        return task.result()
