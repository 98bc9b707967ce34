"""Classroom routes — creation, lookup, capacity and member removal over HTTP."""

from uuid import uuid4

from tests.fakes import MASTER, MENTOR, auth, student


async def test_create_classroom_returns_201(client):
    res = await client.post(
        "/api/v1/classrooms",
        json={"title": "  Physics  ", "subject": "physics", "custom_slug": "Phys-1"},
        headers=auth(MASTER),
    )
    assert res.status_code == 201
    body = res.json()
    assert body["title"] == "Physics"
    assert body["custom_slug"] == "phys-1"
    assert body["master_id"] == MASTER.user_id
    assert body["max_students"] == 50


async def test_missing_token_is_401(client):
    res = await client.get("/api/v1/classrooms")
    assert res.status_code == 401
    assert res.json()["error"]["code"] == "UNAUTHENTICATED"


async def test_non_master_create_is_403(client):
    res = await client.post(
        "/api/v1/classrooms",
        json={"title": "T", "subject": "s", "custom_slug": "mentor-room"},
        headers=auth(MENTOR),
    )
    assert res.status_code == 403
    assert res.json()["error"]["code"] == "NOT_AUTHORIZED"


async def test_invalid_slug_is_400(client):
    res = await client.post(
        "/api/v1/classrooms",
        json={"title": "T", "subject": "s", "custom_slug": "no spaces"},
        headers=auth(MASTER),
    )
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "INVALID_SLUG"


async def test_validation_error_envelope(client):
    res = await client.post(
        "/api/v1/classrooms", json={"title": "T"}, headers=auth(MASTER),
    )
    assert res.status_code == 400
    error = res.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert any(d["field"].endswith("subject") for d in error["details"])


async def test_duplicate_slug_is_409(client, create_classroom):
    await create_classroom(MASTER, slug="taken")
    res = await client.post(
        "/api/v1/classrooms",
        json={"title": "T", "subject": "s", "custom_slug": "taken"},
        headers=auth(MASTER),
    )
    assert res.status_code == 409
    assert res.json()["error"]["code"] == "SLUG_TAKEN"


async def test_lookup_by_id_and_slug(client, create_classroom):
    classroom = await create_classroom(MASTER, slug="bio-1")

    by_id = await client.get(f"/api/v1/classrooms/{classroom['id']}", headers=auth(student(1)))
    by_slug = await client.get("/api/v1/classrooms/by-slug/BIO-1", headers=auth(student(1)))
    missing = await client.get(f"/api/v1/classrooms/{uuid4()}", headers=auth(student(1)))

    assert by_id.json()["id"] == classroom["id"]
    assert by_slug.json()["id"] == classroom["id"]
    assert missing.status_code == 404


async def test_list_filters_by_master(client, create_classroom):
    await create_classroom(MASTER, slug="one-room")
    mine = await client.get(
        "/api/v1/classrooms", params={"master_id": MASTER.user_id}, headers=auth(MASTER),
    )
    nobody = await client.get(
        "/api/v1/classrooms", params={"master_id": "nobody"}, headers=auth(MASTER),
    )
    assert [c["custom_slug"] for c in mine.json()] == ["one-room"]
    assert nobody.json() == []


async def test_capacity_and_member_removal(client, create_classroom):
    classroom = await create_classroom(MASTER, max_students=2)
    submitted = await client.post(
        "/api/v1/requests/join", json={"classroom_id": classroom["id"]},
        headers=auth(student(1)),
    )
    await client.post(
        f"/api/v1/requests/{submitted.json()['id']}/approve", headers=auth(MASTER),
    )

    capacity = await client.get(
        f"/api/v1/classrooms/{classroom['id']}/capacity", headers=auth(MASTER),
    )
    assert capacity.json() == {
        "classroom_id": classroom["id"], "max_students": 2,
        "active_students": 1, "capacity_remaining": 1,
    }

    removed = await client.delete(
        f"/api/v1/classrooms/{classroom['id']}/members/{student(1).user_id}",
        headers=auth(MASTER),
    )
    assert removed.status_code == 200
    assert removed.json()["status"] == "removed"

    active = await client.get(f"/api/v1/classrooms/{classroom['id']}/members", headers=auth(MASTER))
    history = await client.get(
        f"/api/v1/classrooms/{classroom['id']}/members",
        params={"include_removed": "true"}, headers=auth(MASTER),
    )
    assert active.json() == []
    assert len(history.json()) == 1


async def test_student_cannot_remove_members(client, create_classroom):
    classroom = await create_classroom(MASTER)
    res = await client.delete(
        f"/api/v1/classrooms/{classroom['id']}/members/{student(2).user_id}",
        headers=auth(student(1)),
    )
    assert res.status_code == 403
