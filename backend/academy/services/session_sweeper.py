"""Session Sweeper — periodic expiry of scheduled sessions nobody started in time.

Invariants:
    - The only time-driven transition: scheduled -> cancelled once now >= scheduled_at + grace
    - Each expiry goes through SessionLifecycle.expire(), i.e. the same per-session lock
      as caller-driven start/cancel; a late start that wins the lock wins the race
    - Each session expired in its own DB session: one failure never aborts the sweep
    - Transient storage failures retried with backoff; anything else logged and skipped
    - The loop survives any failed sweep and keeps its interval; only stop() ends it

Design Decisions:
    - asyncio task owned by the FastAPI lifespan (start/stop), no external scheduler
    - sweep_once() is public so tests drive the clock explicitly instead of sleeping
"""

import asyncio
import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from academy.core.clock import Clock, utc_now
from academy.core.domain_types import LiveSessionId
from academy.core.errors import AcademyError
from academy.infrastructure.storage_retry import with_storage_retry
from academy.services.session_lifecycle import SessionLifecycle

logger = logging.getLogger(__name__)

SessionScope = Callable[[], AbstractAsyncContextManager[AsyncSession]]
LifecycleFactory = Callable[[AsyncSession], SessionLifecycle]


class SessionSweeper:
    """Background loop that expires overdue scheduled sessions."""

    def __init__(
        self,
        session_scope: SessionScope,
        make_lifecycle: LifecycleFactory,
        interval_seconds: float = 60.0,
        clock: Clock = utc_now,
        max_retries: int = 3,
        base_delay_ms: int = 100,
        max_delay_ms: int = 2_000,
    ):
        self.session_scope = session_scope
        self.make_lifecycle = make_lifecycle
        self.interval_seconds = interval_seconds
        self.clock = clock
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms
        self._task: asyncio.Task | None = None

    async def sweep_once(self, now: datetime | None = None) -> list[LiveSessionId]:
        """Expire every overdue session. Returns the ids actually cancelled."""
        now = now or self.clock()
        async with self.session_scope() as db:
            candidates = await self.make_lifecycle(db).list_overdue(now)

        expired: list[LiveSessionId] = []
        for session_id in candidates:
            try:
                session = await with_storage_retry(
                    lambda sid=session_id: self._expire(sid, now),
                    max_retries=self.max_retries,
                    base_delay_ms=self.base_delay_ms,
                    max_delay_ms=self.max_delay_ms,
                )
            except AcademyError as e:
                logger.error(
                    f"Sweep failed to expire session: {e.message}",
                    extra={"session_id": session_id, "error_code": e.code},
                )
                continue
            except Exception:
                logger.exception(
                    "Sweep failed to expire session", extra={"session_id": session_id},
                )
                continue
            if session is not None:
                expired.append(session_id)

        if expired:
            logger.info(f"Sweep expired {len(expired)} session(s)")
        return expired

    async def _expire(self, session_id: LiveSessionId, now: datetime):
        async with self.session_scope() as db:
            return await self.make_lifecycle(db).expire(session_id, now)

    # --- Loop ---------------------------------------------------------------------

    def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self._run(), name="session-sweeper")
        logger.info(f"Session sweeper started (every {self.interval_seconds}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("Session sweeper had already died")
        self._task = None
        logger.info("Session sweeper stopped")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run(self) -> None:
        while True:
            try:
                await self.sweep_once()
            except AcademyError as e:
                logger.error(
                    f"Session sweep aborted: {e.message}", extra={"error_code": e.code},
                )
            except Exception:
                # driver-level failures (refused connections, DNS) are not translated
                logger.exception("Session sweep aborted by an unexpected error")
            await asyncio.sleep(self.interval_seconds)
