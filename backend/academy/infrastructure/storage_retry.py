"""Storage Retry — bounded exponential backoff for transient storage failures.

Invariants:
    - Only DatabaseError(transient=True) is retried; domain errors propagate immediately
    - At most max_retries extra attempts; the last failure is re-raised unchanged
    - Retried operations must be idempotent — approve/reject and start/end are,
      thanks to the AlreadyResolved / InvalidTransition guards

Design Decisions:
    - ±25% jitter on backoff: prevents thundering herd when the DB comes back
    - Operation passed as a zero-arg coroutine factory: every attempt opens a fresh
      DB session (a failed session is never reused)
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from academy.core.errors import DatabaseError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delay_ms(attempt: int, base_delay_ms: int, max_delay_ms: int) -> float:
    """Exponential delay with ±25% jitter, capped at max_delay_ms."""
    delay = min(base_delay_ms * (2 ** attempt), max_delay_ms)
    return delay * random.uniform(0.75, 1.25)


async def with_storage_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    max_retries: int = 3,
    base_delay_ms: int = 100,
    max_delay_ms: int = 2_000,
) -> T:
    """Run operation, retrying transient DatabaseError with backoff."""
    for attempt in range(max_retries + 1):
        try:
            return await operation()
        except DatabaseError as e:
            if not e.transient or attempt >= max_retries:
                raise
            delay = backoff_delay_ms(attempt, base_delay_ms, max_delay_ms)
            logger.warning(
                f"Transient storage failure, retrying in {delay:.0f}ms",
                extra={"attempt": attempt + 1, "operation": e.operation},
            )
            await asyncio.sleep(delay / 1000)
    raise RuntimeError("unreachable")  # pragma: no cover
