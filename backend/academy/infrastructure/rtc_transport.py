"""RTC Transport Clients — open/close media rooms on the external RTC provider.

Invariants:
    - Media never flows through this service; only room lifecycle signals do
    - Calls are made from background tasks, never under an entity lock
    - Failures raise CollaboratorError; BackgroundSignals logs and drops them

Design Decisions:
    - LoggingRoomTransport when no provider URL is configured: local development
      keeps the same call path without a media server
"""

import logging

import httpx

from academy.core.domain_types import LiveSessionId
from academy.core.errors import CollaboratorError

logger = logging.getLogger(__name__)


class LoggingRoomTransport:
    """No-op transport that records signals in the log."""

    async def open_room(self, session_id: LiveSessionId) -> None:
        logger.info("RTC room open requested", extra={"session_id": session_id})

    async def close_room(self, session_id: LiveSessionId) -> None:
        logger.info("RTC room close requested", extra={"session_id": session_id})

    async def aclose(self) -> None:
        return None


class HttpRoomTransport:
    """POST/DELETE {base_url}/rooms/{session_id} on the RTC provider."""

    def __init__(self, base_url: str, timeout_seconds: float = 5.0,
                 client: httpx.AsyncClient | None = None):
        self._client = client or httpx.AsyncClient(
            base_url=base_url, timeout=timeout_seconds,
        )

    async def open_room(self, session_id: LiveSessionId) -> None:
        await self._send("POST", session_id)

    async def close_room(self, session_id: LiveSessionId) -> None:
        await self._send("DELETE", session_id)

    async def _send(self, method: str, session_id: LiveSessionId) -> None:
        try:
            response = await self._client.request(method, f"/rooms/{session_id}")
        except httpx.HTTPError as e:
            raise CollaboratorError("rtc transport", str(e))
        # 404 on close means the room is already gone
        if response.status_code >= 400 and not (
            method == "DELETE" and response.status_code == 404
        ):
            raise CollaboratorError(
                "rtc transport", f"{method} room returned {response.status_code}",
            )
        logger.info(
            f"RTC room {method} acknowledged", extra={"session_id": session_id},
        )

    async def aclose(self) -> None:
        await self._client.aclose()
