"""Background Signals — fire-and-forget tasks for collaborator side effects.

Invariants:
    - spawn() never blocks the caller and never raises the task's failure into it
    - Task failures are logged, then discarded (no retry, no dead-letter queue)
    - Strong references kept until completion so tasks are not garbage-collected

Design Decisions:
    - Used for RTC open/close and chat fan-out, scheduled after commit so no
      entity lock is ever held across an external call
    - drain() exists for shutdown and tests
"""

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

logger = logging.getLogger(__name__)


class BackgroundSignals:
    """Tracks fire-and-forget tasks."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], description: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=description)
        self._tasks.add(task)
        task.add_done_callback(self._finished)
        return task

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: float | None = 5.0) -> None:
        """Wait for in-flight signals (shutdown / tests)."""
        if not self._tasks:
            return
        await asyncio.wait(set(self._tasks), timeout=timeout)

    def _finished(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                f"Background signal '{task.get_name()}' failed: {error}",
                exc_info=error,
            )


background_signals = BackgroundSignals()
