"""Session Chat Routes — post, paged history and the per-session WebSocket.

Invariants:
    - WebSocket admits only active participants; the socket is registered for
      broadcast once admitted, announced with a "connected" frame carrying the
      last chat sequence, and unregistered on disconnect
    - No database session outlives a step: admission and every chat frame open
      their own and release it before the socket waits again
    - Errors on an open socket are sent as error frames, the socket stays open
    - History is the recovery path: a client that missed frames re-reads from its
      last seen sequence

Design Decisions:
    - Token passed as ?token= query param: browsers cannot set headers on WebSocket
    - Rejected sockets are accepted, then closed with 4000 + the HTTP status of the
      rejecting error (4401/4403/4404); a close before accept would surface to
      browsers as a bare handshake failure
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status

from academy.api.deps import get_caller, get_session_chat, resolve_role_context
from academy.config import get_settings
from academy.core.domain_types import LiveSessionId
from academy.core.errors import AcademyError, InvalidMessage, NotParticipant
from academy.core.role_context import RoleContext
from academy.infrastructure import database
from academy.infrastructure.broadcast import session_connections
from academy.schemas.chat import ChatHistoryResponse, ChatMessageResponse, ChatPost
from academy.services.session_chat import SessionChat
from academy.services.session_lifecycle import SessionLifecycle

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/live-sessions", tags=["chat"])


@router.post(
    "/{session_id}/chat", response_model=ChatMessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def post_chat_message(
    session_id: UUID,
    body: ChatPost,
    caller: RoleContext = Depends(get_caller),
    chat: SessionChat = Depends(get_session_chat),
):
    message = await chat.post(caller, session_id, body.body)
    return ChatMessageResponse.model_validate(message)


@router.get("/{session_id}/chat", response_model=ChatHistoryResponse)
async def get_chat_history(
    session_id: UUID,
    after_sequence: int = Query(0, ge=0),
    limit: int | None = Query(None, ge=1),
    caller: RoleContext = Depends(get_caller),
    chat: SessionChat = Depends(get_session_chat),
):
    """Messages with sequence > after_sequence, oldest first, one page."""
    messages = await chat.get_history(caller, session_id, after_sequence, limit)
    return ChatHistoryResponse(
        session_id=session_id,
        messages=[ChatMessageResponse.model_validate(m) for m in messages],
        next_after_sequence=messages[-1].sequence if messages else after_sequence,
    )


@router.websocket("/{session_id}/ws")
async def session_socket(
    websocket: WebSocket,
    session_id: UUID,
    token: str | None = Query(None),
):
    """Live channel: receives broadcasts, accepts {"type": "chat", "body": ...} frames."""
    await websocket.accept()
    try:
        ctx, last_sequence = await _admit(websocket, session_id, token)
    except AcademyError as e:
        await websocket.close(code=4000 + e.http_status, reason=e.code)
        return

    live_id = LiveSessionId(session_id)
    session_connections.register(live_id, ctx.user_id, websocket)
    logger.info(
        "Participant connected", extra={"session_id": session_id, "user_id": ctx.user_id},
    )
    try:
        await websocket.send_json({
            "type": "connected",
            "data": {"session_id": str(session_id), "user_id": ctx.user_id,
                     "last_sequence": last_sequence},
        })
        while True:
            frame = await websocket.receive_json()
            if not isinstance(frame, dict) or frame.get("type") != "chat":
                await websocket.send_json(InvalidMessage("unsupported frame type").to_event())
                continue
            try:
                await _post_frame(ctx, session_id, str(frame.get("body", "")))
            except AcademyError as e:
                await websocket.send_json(e.to_event())
    except WebSocketDisconnect:
        pass
    finally:
        session_connections.unregister(live_id, ctx.user_id, websocket)
        logger.info(
            "Participant disconnected",
            extra={"session_id": session_id, "user_id": ctx.user_id},
        )


async def _admit(
    websocket: WebSocket, session_id: UUID, token: str | None,
) -> tuple[RoleContext, int]:
    """Caller and last chat sequence, checked in a session released before returning."""
    identity = websocket.app.state.identity_provider
    async with database.get_db_manager().session() as db:
        ctx = await resolve_role_context(token, identity, db)
        lifecycle = SessionLifecycle(db)
        session = await lifecycle.get_session(session_id)
        if not await lifecycle.is_active_participant(session.id, ctx.user_id):
            raise NotParticipant(str(session_id), ctx.user_id)
        return ctx, session.last_chat_sequence


async def _post_frame(ctx: RoleContext, session_id: UUID, body: str) -> None:
    settings = get_settings()
    async with database.get_db_manager().session() as db:
        chat = SessionChat(
            db,
            max_body_length=settings.chat_max_body_length,
            page_size=settings.chat_history_page_size,
        )
        await chat.post(ctx, session_id, body)
