"""Concurrency — bounded fan-out of independent build steps.

Provides ``ConcurrencyLimiter`` (an async context manager wrapping
``asyncio.Semaphore``) and ``run_steps``, which runs labelled step
coroutines under a limiter and joins them.  Tool failures come back as
``StepOutcome`` values rather than exceptions, so the caller decides
what a failed sibling means once every step has finished.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Generic, Sequence, TypeVar

from binforge.errors import ExternalToolFailure

T = TypeVar("T")


class ConcurrencyLimiter:
    """Caps how many platform steps of one unit run at the same time.

    ``async with limiter:`` holds one slot for the duration of the block.
    ``peak`` records the most slots ever held at once.
    """

    __slots__ = ("max_concurrent", "active", "peak", "_slots")

    def __init__(self, max_concurrent: int = 3) -> None:
        if max_concurrent < 1:
            raise ValueError(f"max_concurrent must be positive, got {max_concurrent}")
        self.max_concurrent = max_concurrent
        self.active = 0
        self.peak = 0
        self._slots = asyncio.Semaphore(max_concurrent)

    async def __aenter__(self) -> "ConcurrencyLimiter":
        await self._slots.acquire()
        self.active += 1
        if self.active > self.peak:
            self.peak = self.active
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.active -= 1
        self._slots.release()


@dataclass(frozen=True)
class StepOutcome(Generic[T]):
    """Result of one step: a value, or the tool failure that stopped it."""

    label: str
    value: T | None = None
    failure: ExternalToolFailure | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None


async def run_steps(
    steps: Sequence[tuple[str, Awaitable[T]]],
    *,
    max_concurrent: int,
) -> list[StepOutcome[T]]:
    """Run *steps* concurrently (at most *max_concurrent* at once) and join.

    Returns one outcome per step, in input order.  Every step is drained
    before returning; an unexpected (non-tool) exception is re-raised
    only after that.
    """
    limiter = ConcurrencyLimiter(max(1, min(max_concurrent, len(steps) or 1)))

    async def _one(label: str, step: Awaitable[T]) -> StepOutcome[T]:
        async with limiter:
            try:
                return StepOutcome(label=label, value=await step)
            except ExternalToolFailure as exc:
                return StepOutcome(label=label, failure=exc)

    results = await asyncio.gather(
        *(_one(label, step) for label, step in steps),
        return_exceptions=True,
    )
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return list(results)


__all__ = ["ConcurrencyLimiter", "StepOutcome", "run_steps"]
