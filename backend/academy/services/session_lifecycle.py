"""Session Lifecycle — schedule/start/join/leave/end/cancel/expire for live sessions.

Invariants:
    - Every mutation of a session runs under its entity lock: load FOR UPDATE ->
      check -> mutate -> commit. Admission check and participant insert are ONE step
    - Active participants (left_at IS NULL) never exceed max_participants
    - RTC open/close and broadcast happen AFTER commit as background signals,
      never awaited while the lock is held
    - Session events reach only the participants admitted when the event happened;
      a closing event reaches those admitted just before the close
    - Closing a session (end/cancel/expire) closes every active participant row
    - expire() re-checks overdue-ness under the lock: a start that won the race wins

Design Decisions:
    - One _transition() for start/end/cancel/expire: the table in core/enforce_sessions
      decides legality, this module only stamps timestamps and schedules signals
    - join() while already admitted returns the existing row (no error, no new row);
      re-join after leave inserts a new row so attendance history is kept
    - Any resolved caller may join an open session; classroom membership gates
      visibility in the UI, not admission
"""

import logging
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from academy.core.clock import Clock, utc_now
from academy.core.domain_types import (
    LiveSessionId, SessionOperation, SessionStatus, TERMINAL_SESSION_STATUSES, UserId,
)
from academy.core.enforce_sessions import (
    check_admission, check_manager, check_schedule, check_transition,
    is_start_overdue, next_status, participant_role_for,
)
from academy.core.errors import ErrorContext, NotAuthorized, NotFound, NotParticipant
from academy.core.repository_protocols import RoomTransport, SessionBroadcaster
from academy.core.role_context import RoleContext
from academy.infrastructure.background import BackgroundSignals, background_signals
from academy.infrastructure.broadcast import session_connections
from academy.infrastructure.entity_locks import EntityLocks, entity_locks, session_key
from academy.infrastructure.rtc_transport import LoggingRoomTransport
from academy.models import LiveSession, SessionParticipant
from academy.services.classroom_directory import ClassroomDirectory

logger = logging.getLogger(__name__)

EXPIRED_REASON = "not started within the grace period"


class SessionLifecycle:
    """Live session state machine plus participant admission."""

    def __init__(
        self,
        db: AsyncSession,
        locks: EntityLocks = entity_locks,
        signals: BackgroundSignals = background_signals,
        transport: RoomTransport | None = None,
        broadcaster: SessionBroadcaster = session_connections,
        clock: Clock = utc_now,
        grace: timedelta = timedelta(minutes=15),
    ):
        self.db = db
        self.locks = locks
        self.signals = signals
        self.transport = transport or LoggingRoomTransport()
        self.broadcaster = broadcaster
        self.clock = clock
        self.grace = grace
        self.directory = ClassroomDirectory(db)

    # --- Commands -------------------------------------------------------------------

    async def schedule(
        self,
        ctx: RoleContext,
        *,
        title: str,
        scheduled_at: datetime,
        duration_minutes: int,
        max_participants: int,
        classroom_id: UUID | None = None,
        description: str | None = None,
    ) -> LiveSession:
        """Create a session in scheduled status, hosted by the caller."""
        is_staff = False
        if classroom_id is not None:
            await self.directory.require_classroom(classroom_id)
            is_staff = await self.directory.is_staff_or_master(classroom_id, ctx.user_id)
        if not ctx.can_host_sessions(classroom_id, is_staff):
            raise NotAuthorized(
                "schedule session",
                "caller is not classroom staff" if classroom_id else "caller is not a mentor",
                ErrorContext(user_id=ctx.user_id, classroom_id=str(classroom_id)),
            )
        error = check_schedule(scheduled_at, duration_minutes, max_participants, self.clock())
        if error:
            raise error

        session = LiveSession(
            classroom_id=classroom_id,
            host_id=ctx.user_id,
            title=title,
            description=description,
            scheduled_at=scheduled_at,
            duration_minutes=duration_minutes,
            max_participants=max_participants,
            status=SessionStatus.SCHEDULED.value,
            last_chat_sequence=0,
            created_at=self.clock(),
        )
        self.db.add(session)
        await self.db.commit()

        logger.info(
            "Session scheduled",
            extra={"session_id": session.id, "user_id": ctx.user_id,
                   "classroom_id": classroom_id},
        )
        return session

    async def start(self, ctx: RoleContext, session_id: UUID) -> LiveSession:
        """scheduled -> live; opens the RTC room."""
        return await self._transition(ctx, session_id, SessionOperation.START)

    async def end(self, ctx: RoleContext, session_id: UUID) -> LiveSession:
        """live -> completed; closes the RTC room."""
        return await self._transition(ctx, session_id, SessionOperation.END)

    async def cancel(
        self, ctx: RoleContext, session_id: UUID, reason: str | None = None,
    ) -> LiveSession:
        """scheduled|live -> cancelled; closes the RTC room if one was opened."""
        return await self._transition(ctx, session_id, SessionOperation.CANCEL, reason)

    async def expire(
        self, session_id: UUID, now: datetime | None = None,
    ) -> LiveSession | None:
        """Sweep-driven cancel. Returns None when the session is no longer overdue."""
        now = now or self.clock()
        async with self.locks.hold(session_key(session_id)):
            session = await self._load_for_update(session_id)
            if not is_start_overdue(session, now, self.grace):
                return None
            recipients = await self.active_participant_ids(session.id)
            self._apply(session, SessionOperation.EXPIRE, now, EXPIRED_REASON)
            await self._close_participants(session.id, now)
            await self.db.commit()

        logger.info(
            "Session expired before start",
            extra={"session_id": session.id, "status": session.status},
        )
        self._signal_status(session, SessionStatus.SCHEDULED, recipients)
        return session

    async def join(self, ctx: RoleContext, session_id: UUID) -> SessionParticipant:
        """Admit the caller; at capacity -> SessionFull, closed -> SessionClosed."""
        async with self.locks.hold(session_key(session_id)):
            session = await self._load_for_update(session_id)
            existing = await self._active_participant(session.id, ctx.user_id)
            if existing is not None:
                return existing

            active = await self.count_active_participants(session.id)
            error = check_admission(session, active)
            if error:
                raise error
            is_staff = await self.directory.is_staff_or_master(
                session.classroom_id, ctx.user_id,
            )
            participant = SessionParticipant(
                session_id=session.id,
                user_id=ctx.user_id,
                role=participant_role_for(ctx.user_id, session, is_staff).value,
                joined_at=self.clock(),
            )
            self.db.add(participant)
            recipients = await self.active_participant_ids(session.id)
            await self.db.commit()

        logger.info(
            "Participant admitted",
            extra={"session_id": session.id, "user_id": ctx.user_id},
        )
        self._spawn_publish(session.id, {
            "type": "participant_joined",
            "data": {"user_id": ctx.user_id, "role": participant.role},
        }, recipients)
        return participant

    async def leave(self, ctx: RoleContext, session_id: UUID) -> SessionParticipant:
        """Close the caller's admission. Leaving twice returns the closed row."""
        async with self.locks.hold(session_key(session_id)):
            session = await self._require_session(session_id)
            participant = await self._active_participant(session.id, ctx.user_id)
            if participant is None:
                latest = await self._latest_participant(session.id, ctx.user_id)
                if latest is None:
                    raise NotParticipant(str(session_id), ctx.user_id)
                return latest
            participant.left_at = self.clock()
            recipients = await self.active_participant_ids(session.id)
            await self.db.commit()

        logger.info(
            "Participant left",
            extra={"session_id": session.id, "user_id": ctx.user_id},
        )
        self._spawn_publish(session.id, {
            "type": "participant_left", "data": {"user_id": ctx.user_id},
        }, recipients)
        return participant

    # --- Queries --------------------------------------------------------------------

    async def get_session(self, session_id: UUID) -> LiveSession:
        return await self._require_session(session_id)

    async def list_sessions(
        self,
        classroom_id: UUID | None = None,
        status: SessionStatus | None = None,
    ) -> list[LiveSession]:
        """Sessions ordered by scheduled time; empty list for unknown classrooms."""
        query = select(LiveSession).order_by(LiveSession.scheduled_at)
        if classroom_id is not None:
            query = query.where(LiveSession.classroom_id == classroom_id)
        if status is not None:
            query = query.where(LiveSession.status == status.value)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def list_overdue(self, now: datetime) -> list[LiveSessionId]:
        """Ids of scheduled sessions whose start deadline has passed (sweep input)."""
        result = await self.db.execute(
            select(LiveSession.id).where(
                LiveSession.status == SessionStatus.SCHEDULED.value,
                LiveSession.scheduled_at <= now - self.grace,
            ),
        )
        return [LiveSessionId(row) for row in result.scalars().all()]

    async def list_participants(
        self, session_id: UUID, active_only: bool = True,
    ) -> list[SessionParticipant]:
        query = (
            select(SessionParticipant)
            .where(SessionParticipant.session_id == session_id)
            .order_by(SessionParticipant.joined_at)
        )
        if active_only:
            query = query.where(SessionParticipant.left_at.is_(None))
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def count_active_participants(self, session_id: UUID) -> int:
        result = await self.db.execute(
            select(func.count()).select_from(SessionParticipant).where(
                SessionParticipant.session_id == session_id,
                SessionParticipant.left_at.is_(None),
            ),
        )
        return result.scalar_one()

    async def is_active_participant(self, session_id: UUID, user_id: str) -> bool:
        return await self._active_participant(session_id, user_id) is not None

    async def active_participant_ids(self, session_id: UUID) -> set[UserId]:
        """Users currently admitted; the audience of every session event."""
        result = await self.db.execute(
            select(SessionParticipant.user_id).where(
                SessionParticipant.session_id == session_id,
                SessionParticipant.left_at.is_(None),
            ),
        )
        return {UserId(u) for u in result.scalars().all()}

    # --- Internals ------------------------------------------------------------------

    async def _transition(
        self,
        ctx: RoleContext,
        session_id: UUID,
        operation: SessionOperation,
        reason: str | None = None,
    ) -> LiveSession:
        async with self.locks.hold(session_key(session_id)):
            session = await self._load_for_update(session_id)
            is_staff = await self.directory.is_staff_or_master(
                session.classroom_id, ctx.user_id,
            )
            error = (
                check_manager(ctx, session, is_staff, operation)
                or check_transition(session, operation)
            )
            if error:
                raise error

            previous = SessionStatus(session.status)
            recipients = await self.active_participant_ids(session.id)
            now = self.clock()
            self._apply(session, operation, now, reason)
            if SessionStatus(session.status) in TERMINAL_SESSION_STATUSES:
                await self._close_participants(session.id, now)
            await self.db.commit()

        logger.info(
            f"Session {operation.value}: {previous.value} -> {session.status}",
            extra={"session_id": session.id, "user_id": ctx.user_id,
                   "operation": operation.value},
        )
        self._signal_status(session, previous, recipients)
        return session

    def _apply(
        self, session: LiveSession, operation: SessionOperation, now: datetime,
        reason: str | None,
    ) -> None:
        target = next_status(SessionStatus(session.status), operation)
        session.status = target.value
        if target == SessionStatus.LIVE:
            session.started_at = now
        else:
            session.ended_at = now
        if target == SessionStatus.CANCELLED:
            session.cancel_reason = reason

    async def _close_participants(self, session_id: UUID, now: datetime) -> None:
        for participant in await self.list_participants(session_id, active_only=True):
            participant.left_at = now

    def _signal_status(
        self, session: LiveSession, previous: SessionStatus, recipients: set[UserId],
    ) -> None:
        """Fire-and-forget RTC room signal plus status broadcast."""
        status = SessionStatus(session.status)
        session_id = LiveSessionId(session.id)
        event = {
            "type": "session_status",
            "data": {"session_id": str(session_id), "status": status.value},
        }
        if status == SessionStatus.LIVE:
            self.signals.spawn(self.transport.open_room(session_id), f"open_room:{session_id}")
            self._spawn_publish(session_id, event, recipients)
            return
        # a session cancelled before start never had a room
        if previous == SessionStatus.LIVE:
            self.signals.spawn(
                self.transport.close_room(session_id), f"close_room:{session_id}",
            )
        self.signals.spawn(
            self._announce_closed(session_id, event, recipients), f"closed:{session_id}",
        )

    async def _announce_closed(
        self, session_id: LiveSessionId, event: dict, recipients: set[UserId],
    ) -> None:
        await self.broadcaster.publish(session_id, event, recipients)
        await self.broadcaster.close_session(session_id)

    def _spawn_publish(self, session_id: UUID, event: dict, recipients: set[UserId]) -> None:
        self.signals.spawn(
            self.broadcaster.publish(LiveSessionId(session_id), event, recipients),
            f"{event['type']}:{session_id}",
        )

    async def _require_session(self, session_id: UUID) -> LiveSession:
        session = await self.db.get(LiveSession, session_id)
        if session is None:
            raise NotFound("Session", str(session_id))
        return session

    async def _load_for_update(self, session_id: UUID) -> LiveSession:
        result = await self.db.execute(
            select(LiveSession)
            .where(LiveSession.id == session_id)
            .with_for_update()
            .execution_options(populate_existing=True),
        )
        session = result.scalar_one_or_none()
        if session is None:
            raise NotFound("Session", str(session_id))
        return session

    async def _active_participant(
        self, session_id: UUID, user_id: str,
    ) -> SessionParticipant | None:
        result = await self.db.execute(
            select(SessionParticipant).where(
                SessionParticipant.session_id == session_id,
                SessionParticipant.user_id == user_id,
                SessionParticipant.left_at.is_(None),
            ),
        )
        return result.scalar_one_or_none()

    async def _latest_participant(
        self, session_id: UUID, user_id: str,
    ) -> SessionParticipant | None:
        result = await self.db.execute(
            select(SessionParticipant)
            .where(
                SessionParticipant.session_id == session_id,
                SessionParticipant.user_id == user_id,
            )
            .order_by(SessionParticipant.joined_at.desc())
            .limit(1),
        )
        return result.scalar_one_or_none()
