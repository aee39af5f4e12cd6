"""
Settle-all concurrency helper.

Runs N awaitables concurrently and records a result or an error for every
slot. A failing slot never cancels its siblings and never short-circuits the
batch; callers inspect the outcomes once everything has settled.
"""

import asyncio
from collections.abc import Awaitable, Iterable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result of one slot: exactly one of value/error is meaningful."""

    key: Any
    value: T | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def gather_settled(operations: Iterable[tuple[Any, Awaitable[T]]]) -> list[Outcome[T]]:
    """
    Await every operation and capture per-slot errors.

    Args:
        operations: (key, awaitable) pairs; the key identifies the slot in the outcome

    Returns:
        Outcomes in the same order as the input pairs
    """
    pairs = list(operations)
    if not pairs:
        return []

    results = await asyncio.gather(*(awaitable for _, awaitable in pairs), return_exceptions=True)

    outcomes: list[Outcome[T]] = []
    for (key, _), result in zip(pairs, results, strict=True):
        # CancelledError and friends are BaseException: propagate, never record
        if isinstance(result, BaseException) and not isinstance(result, Exception):
            raise result
        if isinstance(result, Exception):
            outcomes.append(Outcome(key=key, error=result))
        else:
            outcomes.append(Outcome(key=key, value=result))
    return outcomes
