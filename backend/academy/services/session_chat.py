"""Session Chat — sequenced append-only chat per live session, plus paged history.

Invariants:
    - post() runs under the session's entity lock: sequence = last_chat_sequence + 1,
      message insert and counter bump committed together -> gap-free, strictly increasing
    - Sender must be an active participant of an open (scheduled/live) session
    - Broadcast happens after commit, at-most-once per connected participant
    - History is ordered by sequence and bounded by the last sequence seen when the
      iteration started, so a reader never chases a busy room forever

Design Decisions:
    - iter_history() is an async generator fetching fixed-size pages: lazy, finite,
      restartable from any sequence (ADR: reconnecting clients resume from their
      last seen sequence instead of relying on redelivery)
    - Readers: anyone who ever participated, the host, or classroom staff/master
"""

import logging
from collections.abc import AsyncIterator
from uuid import UUID

from sqlalchemy import exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from academy.core.clock import Clock, utc_now
from academy.core.domain_types import LiveSessionId, UserId
from academy.core.enforce_chat import check_can_post, next_sequence, normalize_body
from academy.core.errors import ErrorContext, NotAuthorized, NotFound
from academy.core.repository_protocols import SessionBroadcaster
from academy.core.role_context import RoleContext
from academy.infrastructure.background import BackgroundSignals, background_signals
from academy.infrastructure.broadcast import session_connections
from academy.infrastructure.entity_locks import EntityLocks, entity_locks, session_key
from academy.models import ChatMessage, LiveSession, SessionParticipant
from academy.services.classroom_directory import ClassroomDirectory

logger = logging.getLogger(__name__)


def message_event(message: ChatMessage) -> dict:
    """WebSocket frame for one accepted chat message."""
    return {
        "type": "chat_message",
        "data": {
            "session_id": str(message.session_id),
            "sequence": message.sequence,
            "sender_id": message.sender_id,
            "body": message.body,
            "sent_at": message.sent_at.isoformat(),
        },
    }


class SessionChat:
    """Post and read chat messages for one session at a time."""

    def __init__(
        self,
        db: AsyncSession,
        locks: EntityLocks = entity_locks,
        signals: BackgroundSignals = background_signals,
        broadcaster: SessionBroadcaster = session_connections,
        clock: Clock = utc_now,
        max_body_length: int = 2000,
        page_size: int = 100,
    ):
        self.db = db
        self.locks = locks
        self.signals = signals
        self.broadcaster = broadcaster
        self.clock = clock
        self.max_body_length = max_body_length
        self.page_size = page_size
        self.directory = ClassroomDirectory(db)

    async def post(self, ctx: RoleContext, session_id: UUID, body: str) -> ChatMessage:
        text, error = normalize_body(body, self.max_body_length)
        if error:
            raise error

        async with self.locks.hold(session_key(session_id)):
            result = await self.db.execute(
                select(LiveSession)
                .where(LiveSession.id == session_id)
                .with_for_update()
                .execution_options(populate_existing=True),
            )
            session = result.scalar_one_or_none()
            if session is None:
                raise NotFound("Session", str(session_id))
            recipients = await self._active_participant_ids(session.id)
            error = check_can_post(session, ctx.user_id, ctx.user_id in recipients)
            if error:
                raise error

            sequence = next_sequence(session.last_chat_sequence)
            session.last_chat_sequence = sequence
            message = ChatMessage(
                session_id=session.id,
                sender_id=ctx.user_id,
                body=text,
                sequence=sequence,
                sent_at=self.clock(),
            )
            self.db.add(message)
            await self.db.commit()

        logger.debug(
            f"Chat message #{sequence} accepted",
            extra={"session_id": session.id, "user_id": ctx.user_id},
        )
        self.signals.spawn(
            self.broadcaster.publish(
                LiveSessionId(session.id), message_event(message), recipients,
            ),
            f"chat:{session.id}:{sequence}",
        )
        return message

    async def iter_history(
        self, session_id: UUID, after_sequence: int = 0,
    ) -> AsyncIterator[ChatMessage]:
        """Yield messages with sequence > after_sequence, oldest first."""
        session = await self.db.get(LiveSession, session_id)
        if session is None:
            return
        ceiling = session.last_chat_sequence
        cursor = after_sequence
        while cursor < ceiling:
            page = await self._page(session_id, cursor, ceiling, self.page_size)
            if not page:
                return
            for message in page:
                yield message
            cursor = page[-1].sequence

    async def get_history(
        self,
        ctx: RoleContext,
        session_id: UUID,
        after_sequence: int = 0,
        limit: int | None = None,
    ) -> list[ChatMessage]:
        """One page of history for an authorized reader."""
        await self.check_can_read(ctx, session_id)
        limit = min(limit or self.page_size, self.page_size)
        messages: list[ChatMessage] = []
        async for message in self.iter_history(session_id, after_sequence):
            messages.append(message)
            if len(messages) >= limit:
                break
        return messages

    async def check_can_read(self, ctx: RoleContext, session_id: UUID) -> LiveSession:
        session = await self.db.get(LiveSession, session_id)
        if session is None:
            raise NotFound("Session", str(session_id))
        if session.host_id == ctx.user_id:
            return session
        if await self._ever_participated(session.id, ctx.user_id):
            return session
        if await self.directory.is_staff_or_master(session.classroom_id, ctx.user_id):
            return session
        raise NotAuthorized(
            "read chat history", "caller never participated in the session",
            ErrorContext(session_id=str(session_id), user_id=ctx.user_id),
        )

    async def _page(
        self, session_id: UUID, after: int, ceiling: int, size: int,
    ) -> list[ChatMessage]:
        result = await self.db.execute(
            select(ChatMessage)
            .where(
                ChatMessage.session_id == session_id,
                ChatMessage.sequence > after,
                ChatMessage.sequence <= ceiling,
            )
            .order_by(ChatMessage.sequence)
            .limit(size),
        )
        return list(result.scalars().all())

    async def _active_participant_ids(self, session_id: UUID) -> set[UserId]:
        result = await self.db.execute(
            select(SessionParticipant.user_id).where(
                SessionParticipant.session_id == session_id,
                SessionParticipant.left_at.is_(None),
            ),
        )
        return {UserId(u) for u in result.scalars().all()}

    async def _ever_participated(self, session_id: UUID, user_id: str) -> bool:
        result = await self.db.execute(
            select(exists().where(
                SessionParticipant.session_id == session_id,
                SessionParticipant.user_id == user_id,
            )),
        )
        return bool(result.scalar())
