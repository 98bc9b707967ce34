"""API test fixtures — ASGI client over a file-backed SQLite database.

Invariants:
    - Identity resolved by the trusted-token provider: "user_id:role,role" bearer tokens
    - RTC signals recorded by FakeRoomTransport, never sent
    - Background signals drained before the event loop closes
"""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

import academy.infrastructure.database as db_module
from academy.api.deps import get_room_transport
from academy.core.role_context import RoleContext
from academy.db.base import Base
from academy.infrastructure.background import background_signals
from academy.infrastructure.database import DatabaseSessionManager, get_db
from academy.infrastructure.identity import TrustedTokenIdentityProvider
from academy.main import app
from tests.fakes import FakeRoomTransport, auth, in_one_hour


@pytest.fixture
async def test_engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'api.db'}", echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def transport():
    return FakeRoomTransport()


@pytest.fixture
async def client(test_engine, transport):
    """FastAPI test client with DB, identity and RTC collaborators replaced."""
    fake_manager = DatabaseSessionManager.__new__(DatabaseSessionManager)
    fake_manager.engine = test_engine
    fake_manager._session_factory = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False,
    )

    async def override_get_db():
        async with fake_manager.session() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_room_transport] = lambda: transport
    original_manager = db_module.db_manager
    db_module.db_manager = fake_manager
    app.state.identity_provider = TrustedTokenIdentityProvider()

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c

    await background_signals.drain()
    app.dependency_overrides.clear()
    db_module.db_manager = original_manager
    del app.state.identity_provider


@pytest.fixture
def create_classroom(client):
    async def _create(master: RoleContext, slug: str = "math-101", max_students: int = 2):
        res = await client.post(
            "/api/v1/classrooms",
            json={"title": "Math", "subject": "math", "custom_slug": slug,
                  "max_students": max_students},
            headers=auth(master),
        )
        assert res.status_code == 201, res.text
        return res.json()
    return _create


@pytest.fixture
def schedule_session(client):
    async def _schedule(host: RoleContext, max_participants: int = 2, **extra):
        res = await client.post(
            "/api/v1/live-sessions",
            json={"title": "Office hours", "scheduled_at": in_one_hour(),
                  "duration_minutes": 45, "max_participants": max_participants, **extra},
            headers=auth(host),
        )
        assert res.status_code == 201, res.text
        return res.json()
    return _schedule
