"""Bounded-concurrency execution of one layer's node tasks."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Sequence

logger = logging.getLogger(__name__)

Task = Callable[[], Awaitable[Any]]

FULFILLED = "fulfilled"
REJECTED = "rejected"


@dataclass
class SettledResult:
    """Outcome of one task: its submission index plus a value or the exception it raised."""

    index: int
    status: str
    value: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.status == FULFILLED


async def execute_layer_with_concurrency(tasks: Sequence[Task], limit: int = 5) -> List[SettledResult]:
    """
    Run task thunks with at most `limit` active at once.

    Exceptions are captured as rejected results, never propagated. Returns
    once every task has settled; results are in completion order.

    Raises:
        ValueError: If limit < 1
    """
    if limit < 1:
        raise ValueError(f"Concurrency limit must be at least 1, got {limit}")

    results: List[SettledResult] = []
    pending = iter(enumerate(tasks))

    async def worker() -> None:
        for index, task in pending:
            try:
                value = await task()
            except Exception as e:
                logger.debug(f"Task {index} rejected: {e}")
                results.append(SettledResult(index, REJECTED, error=e))
            else:
                results.append(SettledResult(index, FULFILLED, value=value))

    await asyncio.gather(*(worker() for _ in range(min(limit, len(tasks)))))
    return results
