"""
Batched concurrent queries with per-item error tracking.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from loguru import logger

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class BatchResult(Generic[R]):
    """Results and errors keyed by the index of the input item"""

    total: int
    results: dict[int, R] = field(default_factory=dict)
    errors: dict[int, Exception] = field(default_factory=dict)

    @property
    def succeeded(self) -> int:
        return len(self.results)

    @property
    def failed(self) -> int:
        return len(self.errors)

    def ordered_results(self) -> list[R | None]:
        return [self.results.get(i) for i in range(self.total)]


async def batch_query(
    items: Sequence[T],
    fetch: Callable[[T], Awaitable[R]],
    batch_size: int = 50,
    concurrency: int = 5,
    on_progress: Callable[[int, int], None] | None = None,
) -> BatchResult[R]:
    """
    Run fetch over items in batches with at most `concurrency` in flight.

    A failing item is recorded in BatchResult.errors and does not stop the
    other items. on_progress receives (completed, total) after each batch.
    """
    if batch_size < 1 or concurrency < 1:
        raise ValueError("batch_size and concurrency must be at least 1")

    result: BatchResult[R] = BatchResult(total=len(items))
    semaphore = asyncio.Semaphore(concurrency)

    async def run(index: int, item: T) -> None:
        async with semaphore:
            try:
                result.results[index] = await fetch(item)
            except Exception as e:
                logger.debug(f"Batch item {index} failed: {e}")
                result.errors[index] = e

    for start in range(0, len(items), batch_size):
        chunk = items[start : start + batch_size]
        await asyncio.gather(*(run(start + i, item) for i, item in enumerate(chunk)))
        if on_progress is not None:
            on_progress(min(start + batch_size, len(items)), len(items))

    if result.errors:
        logger.warning(f"Batch query: {result.failed}/{result.total} items failed")
    return result
