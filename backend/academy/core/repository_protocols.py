"""Boundary Protocols — contracts between core and shell.

Invariants:
    - Core NEVER imports from shell — dependency arrows point inward only
    - External collaborators (identity, RTC transport, broadcast) accessed through Protocol types
    - Implementations provided by shell via dependency injection

Design Decisions:
    - Protocol over ABC: structural subtyping, ORM models satisfy *Like protocols
      without inheriting from them
    - Async in collaborator Protocols: implementations do IO, but core pure functions
      that consume the *Like protocols are never async themselves
"""

from datetime import datetime
from typing import Protocol
from uuid import UUID

from academy.core.domain_types import LiveSessionId, UserId
from academy.core.role_context import RoleContext


class ClassroomLike(Protocol):
    """Structural contract for Classroom rows passed to pure checks."""
    id: UUID
    master_id: str
    max_students: int
    is_active: bool


class ApprovalRequestLike(Protocol):
    """Structural contract for ApprovalRequest rows."""
    id: UUID
    kind: str
    requester_id: str
    target_classroom_id: UUID | None
    status: str


class LiveSessionLike(Protocol):
    """Structural contract for LiveSession rows."""
    id: UUID
    classroom_id: UUID | None
    host_id: str
    status: str
    scheduled_at: datetime
    duration_minutes: int
    max_participants: int
    started_at: datetime | None
    ended_at: datetime | None


class IdentityProvider(Protocol):
    """Consumed collaborator — resolves an opaque caller token.

    Returns None when the token does not resolve. The core never issues or
    validates credentials itself.
    """
    async def resolve_caller(self, token: str) -> RoleContext | None: ...


class RoomTransport(Protocol):
    """Consumed collaborator — RTC media rooms keyed by session id.

    Invoked as fire-and-forget side effects of start/end/cancel; callers never
    await acknowledgement while holding a session lock.
    """
    async def open_room(self, session_id: LiveSessionId) -> None: ...
    async def close_room(self, session_id: LiveSessionId) -> None: ...


class SessionBroadcaster(Protocol):
    """Fan-out of session events to currently connected participants."""
    async def publish(
        self, session_id: LiveSessionId, event: dict,
        recipients: set[UserId] | None = None,
    ) -> int: ...
    async def close_session(self, session_id: LiveSessionId) -> int: ...
