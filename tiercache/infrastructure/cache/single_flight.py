"""
Per-key call coalescing.

``SingleFlight.do(key, fn)`` runs ``fn`` at most once at a time for a given
key. Callers that arrive while a call is in flight wait on the same result
(or exception) instead of starting their own.

The call runs in its own task and callers await it through
``asyncio.shield``: a caller that is cancelled or times out stops waiting,
but the shared call carries on for everyone else.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

T = TypeVar("T")


class SingleFlight:
    """
    Group of in-flight calls keyed by string.

    Usage:
        flights = SingleFlight()
        value = await flights.do("user:42", lambda: load_user(42))
    """

    def __init__(self, name: str = "default"):
        self.name = name
        self._calls: dict[str, asyncio.Task] = {}
        self._detached: set[asyncio.Task] = set()

    async def do(self, key: str, fn: Callable[[], Awaitable[T]]) -> T:
        """
        Run ``fn`` for ``key`` unless a call for ``key`` is already running,
        and return that call's result.

        Args:
            key: Coalescing key
            fn: Zero-argument coroutine function

        Returns:
            Result of the (possibly shared) call

        Raises:
            Whatever the shared call raised
        """
        task = self._calls.get(key)
        if task is None:
            task = asyncio.create_task(fn())
            self._calls[key] = task
            task.add_done_callback(lambda t, k=key: self._on_done(k, t))
        return await asyncio.shield(task)

    def _on_done(self, key: str, task: asyncio.Task) -> None:
        if self._calls.get(key) is task:
            del self._calls[key]
        # Mark the exception retrieved even if every waiter went away
        if not task.cancelled():
            task.exception()

    def forget(self, key: str) -> None:
        """
        Detach the running call for ``key``.

        Current waiters still get its result; later callers start a new call.
        """
        task = self._calls.pop(key, None)
        if task is not None and not task.done():
            self._detached.add(task)
            task.add_done_callback(self._detached.discard)

    def in_flight(self, key: str) -> bool:
        """Whether a call for ``key`` is currently running."""
        return key in self._calls

    def __len__(self) -> int:
        return len(self._calls)

    async def cancel_all(self) -> None:
        """Cancel every running call and wait for them to finish."""
        tasks: list[Any] = [*self._calls.values(), *self._detached]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._calls.clear()
        self._detached.clear()
