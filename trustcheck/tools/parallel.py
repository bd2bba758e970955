"""
Bounded parallel map — the fan-out primitive every pipeline stage uses.

Pattern: asyncio.gather + Semaphore. One task per item, at most
`max_concurrency` in flight, results collected into an id-keyed mapping only
after every task has finished (write-once, barrier, then read). A failing
item never aborts its siblings: its exception is captured in its outcome.

Usage:
    outcomes = await parallel_map(profiles, check.check, key=lambda p: p.id)
    for pid, outcome in outcomes.items():
        if outcome.error: ...
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Generic, Hashable, Iterable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')
K = TypeVar('K', bound=Hashable)
V = TypeVar('V')


@dataclass(frozen=True)
class ParallelOutcome(Generic[V]):
    """Result of one item: either a value or the exception it raised."""
    value: Optional[V] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def parallel_map(
    items: Iterable[T],
    fn: Callable[[T], Awaitable[V]],
    key: Callable[[T], K],
    max_concurrency: int = 10,
) -> Dict[K, ParallelOutcome[V]]:
    """Run `fn` over `items` concurrently and return outcomes keyed by `key`.

    Duplicate keys are processed once (first occurrence wins). Cancellation
    is not captured; it propagates to the caller.
    """
    unique: Dict[K, T] = {}
    for item in items:
        unique.setdefault(key(item), item)

    if not unique:
        return {}

    semaphore = asyncio.Semaphore(max(1, max_concurrency))

    async def _run_one(k: K, item: T):
        async with semaphore:
            try:
                return k, ParallelOutcome(value=await fn(item))
            except Exception as e:
                return k, ParallelOutcome(error=e)

    pairs = await asyncio.gather(*[_run_one(k, item) for k, item in unique.items()])

    # Barrier passed: every task is done, safe to build the mapping
    results = dict(pairs)
    failed = sum(1 for o in results.values() if not o.ok)
    if failed:
        logger.debug(f"parallel_map: {failed}/{len(results)} items raised")
    return results
