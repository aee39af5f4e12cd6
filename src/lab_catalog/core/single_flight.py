"""
Single-flight memoized cache.

One cache instance memoizes one value produced by an async loader. Concurrent
callers arriving while the loader runs attach to the same pending future
instead of starting a second load. The cached reference is only ever replaced
whole (settle, set, invalidate); the value itself is expected to be immutable.

Lifecycle:
    EMPTY    -> nothing loaded yet
    PENDING  -> a load is in flight; callers share it
    SETTLED  -> a value is memoized
    INVALID  -> explicitly invalidated; next get() reloads

A failed load leaves the cache without a value, so the next get() starts over.
"""

import asyncio
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Generic, TypeVar, cast

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class CacheState(Enum):
    """Observable lifecycle of a SingleFlightCache."""

    EMPTY = "empty"
    PENDING = "pending"
    SETTLED = "settled"
    INVALID = "invalid"


class SingleFlightCache(Generic[T]):
    """
    Memoizes the result of an async loader behind one in-flight request.

    Not thread-safe: meant to be used from a single event loop, where nothing
    can interleave between checking and using the cached future.
    """

    def __init__(self, name: str, loader: Callable[[], Awaitable[T]]) -> None:
        """
        Initialize cache.

        Args:
            name: Cache name used in log events
            loader: Coroutine function producing a fresh value
        """
        self.name = name
        self._loader = loader
        self._future: asyncio.Future[T] | None = None
        self._value: T | None = None
        self._settled = False
        self._invalidated = False
        self.load_count = 0

    @property
    def state(self) -> CacheState:
        if self._settled:
            return CacheState.SETTLED
        if self._future is None:
            return CacheState.INVALID if self._invalidated else CacheState.EMPTY
        # A finished load settles in its done callback
        return CacheState.PENDING

    async def get(self) -> T:
        """
        Return the memoized value, loading it if needed.

        Callers that arrive while a load is pending share that load. Cancelling
        one caller does not cancel the shared load.
        """
        if self._settled:
            return cast(T, self._value)
        future = self._future
        if future is None:
            future = self._start_load()
        return await asyncio.shield(future)

    def peek(self) -> T | None:
        """Return the settled value without triggering a load."""
        return self._value if self._settled else None

    def set(self, value: T) -> None:
        """
        Replace the memoized value wholesale with an already-computed one.

        Needs no running event loop. A load still in flight is detached: its
        waiters get the loaded value, but it no longer replaces this one.
        """
        self._value = value
        self._settled = True
        self._future = None
        self._invalidated = False
        logger.debug("cache_set", cache=self.name)

    def invalidate(self) -> None:
        """Drop the memoized handle unconditionally. Pending waiters still get their result."""
        previous = self.state
        self._future = None
        self._value = None
        self._settled = False
        self._invalidated = True
        logger.debug("cache_invalidated", cache=self.name, previous_state=previous.value)

    async def refresh(self) -> T:
        """Invalidate and load again."""
        self.invalidate()
        return await self.get()

    def _start_load(self) -> "asyncio.Future[T]":
        self.load_count += 1
        logger.debug("cache_fetch_started", cache=self.name, load_count=self.load_count)
        task = asyncio.ensure_future(self._loader())
        task.add_done_callback(self._on_load_done)
        self._future = task
        self._invalidated = False
        return task

    def _on_load_done(self, task: "asyncio.Future[T]") -> None:
        if task.cancelled():
            error: BaseException | None = asyncio.CancelledError()
        else:
            error = task.exception()

        if error is None:
            logger.debug("cache_settled", cache=self.name)
            if self._future is task:
                self._value = task.result()
                self._settled = True
                self._future = None
            return

        logger.debug("cache_fetch_failed", cache=self.name, error=str(error))
        # Only touch our own handle; an invalidate/set may already have replaced it
        if self._future is task:
            self._future = None
