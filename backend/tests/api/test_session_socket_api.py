"""Session WebSocket — admission close codes, live broadcast, chat frames, session close.

Runs through Starlette's TestClient with the app lifespan swapped for one that
wires a single-connection SQLite pool, so HTTP calls, sockets and background
broadcasts share one event loop and any connection held by an idle socket
starves the next request.
"""

from contextlib import asynccontextmanager
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import AsyncAdaptedQueuePool
from starlette.websockets import WebSocketDisconnect

from academy.core.role_context import RoleContext
from academy.db.base import Base
from academy.infrastructure import database
from academy.infrastructure.background import background_signals
from academy.infrastructure.database import DatabaseSessionManager
from academy.infrastructure.identity import TrustedTokenIdentityProvider
from academy.main import app
from tests.fakes import MENTOR, FakeRoomTransport, auth, in_one_hour, student


@pytest.fixture
def live(tmp_path, monkeypatch):
    """(client, engine) with the lifespan replaced; the engine pool holds one connection."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'socket.db'}"
    engines = []

    @asynccontextmanager
    async def lifespan(application):
        engine = create_async_engine(
            url, poolclass=AsyncAdaptedQueuePool, pool_size=1, max_overflow=0,
            pool_timeout=2,
        )
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        manager = DatabaseSessionManager.__new__(DatabaseSessionManager)
        manager.engine = engine
        manager._session_factory = async_sessionmaker(
            engine, class_=AsyncSession, expire_on_commit=False,
        )
        monkeypatch.setattr(database, "db_manager", manager)
        engines.append(engine)
        yield
        await background_signals.drain()
        await engine.dispose()

    monkeypatch.setattr(app.router, "lifespan_context", lifespan)
    monkeypatch.setattr(
        app.state, "identity_provider", TrustedTokenIdentityProvider(), raising=False,
    )
    monkeypatch.setattr(app.state, "room_transport", FakeRoomTransport(), raising=False)

    with TestClient(app) as client:
        yield client, engines[0]


def socket_url(base: str, ctx: RoleContext | None) -> str:
    if ctx is None:
        return f"{base}/ws"
    token = auth(ctx)["Authorization"].removeprefix("Bearer ")
    return f"{base}/ws?token={token}"


def open_room(client: TestClient) -> str:
    """A live session with the mentor host and student 1 admitted."""
    res = client.post(
        "/api/v1/live-sessions",
        json={"title": "Office hours", "scheduled_at": in_one_hour(),
              "duration_minutes": 45, "max_participants": 5},
        headers=auth(MENTOR),
    )
    assert res.status_code == 201, res.text
    base = f"/api/v1/live-sessions/{res.json()['id']}"
    for path, caller in (("start", MENTOR), ("join", MENTOR), ("join", student(1))):
        assert client.post(f"{base}/{path}", headers=auth(caller)).status_code == 200
    return base


def test_participant_receives_chat_and_posts_frames(live):
    client, _ = live
    base = open_room(client)

    with client.websocket_connect(socket_url(base, student(1))) as ws:
        connected = ws.receive_json()
        assert connected["type"] == "connected"
        assert connected["data"]["last_sequence"] == 0

        res = client.post(f"{base}/chat", json={"body": "welcome"}, headers=auth(MENTOR))
        assert res.status_code == 201
        message = ws.receive_json()
        assert message["type"] == "chat_message"
        assert message["data"]["sender_id"] == MENTOR.user_id
        assert (message["data"]["sequence"], message["data"]["body"]) == (1, "welcome")

        ws.send_json({"type": "chat", "body": "thanks"})
        echoed = ws.receive_json()
        assert echoed["data"]["sender_id"] == student(1).user_id
        assert (echoed["data"]["sequence"], echoed["data"]["body"]) == (2, "thanks")

    history = client.get(f"{base}/chat", headers=auth(MENTOR)).json()
    assert [m["body"] for m in history["messages"]] == ["welcome", "thanks"]


def test_participant_sees_others_join(live):
    client, _ = live
    base = open_room(client)

    with client.websocket_connect(socket_url(base, student(1))) as ws:
        ws.receive_json()
        assert client.post(f"{base}/join", headers=auth(student(2))).status_code == 200

        event = ws.receive_json()
        assert event["type"] == "participant_joined"
        assert event["data"]["user_id"] == student(2).user_id


def test_unsupported_frame_answered_with_error(live):
    client, _ = live
    base = open_room(client)

    with client.websocket_connect(socket_url(base, student(1))) as ws:
        ws.receive_json()
        ws.send_json({"type": "typing"})
        error = ws.receive_json()

    assert error["type"] == "error"
    assert error["data"]["code"] == "INVALID_MESSAGE"


def test_frames_after_leave_rejected_and_events_stop(live):
    client, _ = live
    base = open_room(client)

    with client.websocket_connect(socket_url(base, student(1))) as ws:
        ws.receive_json()
        assert client.post(f"{base}/leave", headers=auth(student(1))).status_code == 200

        # participant_left is not delivered to the leaver: the next frame is the rejection
        ws.send_json({"type": "chat", "body": "still here?"})
        error = ws.receive_json()

    assert error["type"] == "error"
    assert error["data"]["code"] == "NOT_PARTICIPANT"


def test_ending_session_announces_and_closes_sockets(live):
    client, _ = live
    base = open_room(client)

    with client.websocket_connect(socket_url(base, student(1))) as ws:
        ws.receive_json()
        assert client.post(f"{base}/end", headers=auth(MENTOR)).status_code == 200

        event = ws.receive_json()
        assert event["type"] == "session_status"
        assert event["data"]["status"] == "completed"
        with pytest.raises(WebSocketDisconnect) as exc_info:
            ws.receive_json()

    assert exc_info.value.code == 1000


def test_idle_socket_holds_no_database_connection(live):
    client, engine = live
    base = open_room(client)

    with client.websocket_connect(socket_url(base, student(1))) as ws:
        ws.receive_json()
        assert engine.sync_engine.pool.checkedout() == 0

        res = client.get(base, headers=auth(MENTOR))
        assert res.status_code == 200


@pytest.mark.parametrize("caller,known_session,code", [
    (None, True, 4401),
    (student(9), True, 4403),
    (student(1), False, 4404),
])
def test_rejected_socket_closed_with_status_code(live, caller, known_session, code):
    client, _ = live
    base = open_room(client) if known_session else f"/api/v1/live-sessions/{uuid4()}"

    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect(socket_url(base, caller)) as ws:
            ws.receive_json()

    assert exc_info.value.code == code
