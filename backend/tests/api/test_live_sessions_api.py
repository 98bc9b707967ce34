"""Live session routes — lifecycle transitions, admission and participants over HTTP."""

from uuid import uuid4

from academy.infrastructure.background import background_signals
from tests.fakes import MASTER, MENTOR, auth, in_one_hour, student


async def test_schedule_and_fetch(client, schedule_session):
    session = await schedule_session(MENTOR)
    assert session["status"] == "scheduled"
    assert session["host_id"] == MENTOR.user_id

    res = await client.get(f"/api/v1/live-sessions/{session['id']}", headers=auth(student(1)))
    assert res.json()["title"] == "Office hours"


async def test_schedule_rejects_naive_datetime(client):
    res = await client.post(
        "/api/v1/live-sessions",
        json={"title": "t", "scheduled_at": "2030-01-01T10:00:00"},
        headers=auth(MENTOR),
    )
    assert res.status_code == 400


async def test_schedule_in_past_is_400(client):
    res = await client.post(
        "/api/v1/live-sessions",
        json={"title": "t", "scheduled_at": "2001-01-01T10:00:00+00:00"},
        headers=auth(MENTOR),
    )
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "INVALID_SCHEDULE"


async def test_student_cannot_schedule(client):
    res = await client.post(
        "/api/v1/live-sessions",
        json={"title": "t", "scheduled_at": in_one_hour()},
        headers=auth(student(1)),
    )
    assert res.status_code == 403


async def test_full_lifecycle_signals_rtc(client, schedule_session, transport):
    session = await schedule_session(MENTOR)
    base = f"/api/v1/live-sessions/{session['id']}"

    started = await client.post(f"{base}/start", headers=auth(MENTOR))
    assert started.json()["status"] == "live"
    assert started.json()["started_at"] is not None

    ended = await client.post(f"{base}/end", headers=auth(MENTOR))
    assert ended.json()["status"] == "completed"

    await background_signals.drain()
    assert [call for call, _ in transport.calls] == ["open", "close"]

    again = await client.post(f"{base}/start", headers=auth(MENTOR))
    assert again.status_code == 409
    assert again.json()["error"]["code"] == "INVALID_TRANSITION"


async def test_cancel_with_reason(client, schedule_session, transport):
    session = await schedule_session(MENTOR)
    res = await client.post(
        f"/api/v1/live-sessions/{session['id']}/cancel",
        json={"reason": "snow day"}, headers=auth(MENTOR),
    )
    assert res.json()["status"] == "cancelled"
    assert res.json()["cancel_reason"] == "snow day"
    await background_signals.drain()
    assert transport.calls == []


async def test_non_host_cannot_start(client, schedule_session):
    session = await schedule_session(MENTOR)
    res = await client.post(
        f"/api/v1/live-sessions/{session['id']}/start", headers=auth(student(1)),
    )
    assert res.status_code == 403


async def test_join_until_full_then_leave(client, schedule_session):
    session = await schedule_session(MENTOR, max_participants=2)
    base = f"/api/v1/live-sessions/{session['id']}"

    first = await client.post(f"{base}/join", headers=auth(student(1)))
    await client.post(f"{base}/join", headers=auth(student(2)))
    third = await client.post(f"{base}/join", headers=auth(student(3)))

    assert first.status_code == 200
    assert first.json()["role"] == "attendee"
    assert third.status_code == 409
    assert third.json()["error"]["code"] == "SESSION_FULL"

    left = await client.post(f"{base}/leave", headers=auth(student(1)))
    assert left.json()["left_at"] is not None
    assert (await client.post(f"{base}/join", headers=auth(student(3)))).status_code == 200

    active = await client.get(f"{base}/participants", headers=auth(MENTOR))
    everyone = await client.get(
        f"{base}/participants", params={"active_only": "false"}, headers=auth(MENTOR),
    )
    assert {p["user_id"] for p in active.json()} == {"student-2", "student-3"}
    assert len(everyone.json()) == 3


async def test_leave_without_join_is_403(client, schedule_session):
    session = await schedule_session(MENTOR)
    res = await client.post(
        f"/api/v1/live-sessions/{session['id']}/leave", headers=auth(student(1)),
    )
    assert res.status_code == 403
    assert res.json()["error"]["code"] == "NOT_PARTICIPANT"


async def test_join_closed_session_is_409(client, schedule_session):
    session = await schedule_session(MENTOR)
    await client.post(f"/api/v1/live-sessions/{session['id']}/cancel", headers=auth(MENTOR))
    res = await client.post(
        f"/api/v1/live-sessions/{session['id']}/join", headers=auth(student(1)),
    )
    assert res.json()["error"]["code"] == "SESSION_CLOSED"


async def test_list_by_classroom_and_status(client, create_classroom, schedule_session):
    classroom = await create_classroom(MASTER)
    in_class = await schedule_session(MASTER, classroom_id=classroom["id"])
    await schedule_session(MENTOR)

    scoped = await client.get(
        "/api/v1/live-sessions", params={"classroom_id": classroom["id"]}, headers=auth(MENTOR),
    )
    live = await client.get(
        "/api/v1/live-sessions", params={"status": "live"}, headers=auth(MENTOR),
    )
    assert [s["id"] for s in scoped.json()] == [in_class["id"]]
    assert live.json() == []


async def test_unknown_session_is_404(client):
    res = await client.get(f"/api/v1/live-sessions/{uuid4()}", headers=auth(MENTOR))
    assert res.status_code == 404
