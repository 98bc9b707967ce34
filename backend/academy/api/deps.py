"""API Dependencies — caller resolution and service wiring for route handlers.

Invariants:
    - Every command/query route resolves the caller ONCE into a RoleContext and passes it
      explicitly into the service; no ambient current-user state
    - Identity provider roles are merged with roles granted by approved requests
    - Collaborators (identity, RTC transport) live on app.state, set by the lifespan;
      tests replace them through dependency_overrides

Design Decisions:
    - Bearer token is opaque to the API: only the IdentityProvider interprets it
"""

from datetime import timedelta

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from academy.config import Settings, get_settings
from academy.core.errors import Unauthenticated
from academy.core.repository_protocols import IdentityProvider, RoomTransport
from academy.core.role_context import RoleContext
from academy.infrastructure.database import get_db
from academy.infrastructure.rtc_transport import LoggingRoomTransport
from academy.services.classroom_directory import ClassroomDirectory
from academy.services.classroom_registry import ClassroomRegistry
from academy.services.request_workflow import RequestWorkflow
from academy.services.session_chat import SessionChat
from academy.services.session_lifecycle import SessionLifecycle


def get_identity_provider(request: Request) -> IdentityProvider:
    provider = getattr(request.app.state, "identity_provider", None)
    if provider is None:
        raise RuntimeError("Identity provider not initialized")
    return provider


def get_room_transport(request: Request) -> RoomTransport:
    return getattr(request.app.state, "room_transport", None) or LoggingRoomTransport()


def bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def resolve_role_context(
    token: str | None, identity: IdentityProvider, db: AsyncSession,
) -> RoleContext:
    """Token -> RoleContext with workflow-granted roles merged in."""
    if token is None:
        raise Unauthenticated("Missing bearer token")
    ctx = await identity.resolve_caller(token)
    if ctx is None:
        raise Unauthenticated()
    granted = await ClassroomDirectory(db).granted_roles(ctx.user_id)
    return ctx.with_roles(*granted) if granted else ctx


async def get_caller(
    request: Request,
    identity: IdentityProvider = Depends(get_identity_provider),
    db: AsyncSession = Depends(get_db),
) -> RoleContext:
    return await resolve_role_context(
        bearer_token(request.headers.get("authorization")), identity, db,
    )


# --- Service factories ----------------------------------------------------------


def get_classroom_directory(db: AsyncSession = Depends(get_db)) -> ClassroomDirectory:
    return ClassroomDirectory(db)


def get_classroom_registry(db: AsyncSession = Depends(get_db)) -> ClassroomRegistry:
    return ClassroomRegistry(db)


def get_request_workflow(db: AsyncSession = Depends(get_db)) -> RequestWorkflow:
    return RequestWorkflow(db)


def get_session_lifecycle(
    db: AsyncSession = Depends(get_db),
    transport: RoomTransport = Depends(get_room_transport),
    settings: Settings = Depends(get_settings),
) -> SessionLifecycle:
    return SessionLifecycle(
        db,
        transport=transport,
        grace=timedelta(minutes=settings.session_start_grace_minutes),
    )


def get_session_chat(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> SessionChat:
    return SessionChat(
        db,
        max_body_length=settings.chat_max_body_length,
        page_size=settings.chat_history_page_size,
    )
