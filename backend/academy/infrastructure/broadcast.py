"""Session Broadcast — fan-out of chat and lifecycle events to connected participants.

Invariants:
    - Delivery is at-most-once per event per connection: no buffering, no redelivery
    - A connection whose send fails is dropped; the client recovers via chat history
    - recipients filter restricts delivery to currently admitted participants
    - Closing a session closes its sockets server-side with a normal closure code

Design Decisions:
    - In-memory registry keyed by session id then user id (ADR: single-process
      uvicorn; multi-worker fan-out would need a pub/sub backend)
    - Sends happen after commit and outside any entity lock
"""

import logging
from typing import Protocol

from academy.core.domain_types import LiveSessionId, UserId

logger = logging.getLogger(__name__)

# normal closure: the session ended, there is nothing left to reconnect to
SESSION_CLOSED_CODE = 1000


class JsonConnection(Protocol):
    """Anything that can push a JSON frame — a FastAPI WebSocket in production."""
    async def send_json(self, data: dict) -> None: ...
    async def close(self, code: int = 1000) -> None: ...


class SessionConnectionManager:
    """session_id -> user_id -> set of live connections."""

    def __init__(self) -> None:
        self._connections: dict[LiveSessionId, dict[UserId, set[JsonConnection]]] = {}

    def register(
        self, session_id: LiveSessionId, user_id: UserId, connection: JsonConnection,
    ) -> None:
        self._connections.setdefault(session_id, {}).setdefault(user_id, set()).add(connection)

    def unregister(
        self, session_id: LiveSessionId, user_id: UserId, connection: JsonConnection,
    ) -> None:
        users = self._connections.get(session_id)
        if not users:
            return
        sockets = users.get(user_id)
        if sockets is not None:
            sockets.discard(connection)
            if not sockets:
                del users[user_id]
        if not users:
            del self._connections[session_id]

    def connected_users(self, session_id: LiveSessionId) -> set[UserId]:
        return set(self._connections.get(session_id, {}))

    async def close_session(self, session_id: LiveSessionId) -> int:
        """Close and forget every connection of a closed session. Returns sockets closed."""
        users = self._connections.pop(session_id, {})
        closed = 0
        for user_id, sockets in users.items():
            for connection in sockets:
                try:
                    await connection.close(code=SESSION_CLOSED_CODE)
                    closed += 1
                except Exception as e:
                    logger.debug(
                        f"Connection already gone on session close: {e}",
                        extra={"session_id": session_id, "user_id": user_id},
                    )
        return closed

    async def publish(
        self, session_id: LiveSessionId, event: dict,
        recipients: set[UserId] | None = None,
    ) -> int:
        """Send event once to each matching connection. Returns deliveries made."""
        delivered = 0
        users = self._connections.get(session_id, {})
        for user_id, sockets in list(users.items()):
            if recipients is not None and user_id not in recipients:
                continue
            for connection in list(sockets):
                try:
                    await connection.send_json(event)
                    delivered += 1
                except Exception as e:
                    logger.warning(
                        f"Dropping connection after failed send: {e}",
                        extra={"session_id": session_id, "user_id": user_id},
                    )
                    self.unregister(session_id, user_id, connection)
        return delivered


session_connections = SessionConnectionManager()
