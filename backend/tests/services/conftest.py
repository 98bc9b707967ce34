"""Service test fixtures — file-backed async SQLite, fakes and service factories.

Invariants:
    - Every test gets a fresh SQLite database file under tmp_path
    - Every service gets its OWN EntityLocks / BackgroundSignals (no cross-test state)
    - Concurrency tests open one AsyncSession per coroutine via test_session_factory

Design Decisions:
    - File database over :memory: -- concurrent sessions need separate connections;
      an in-memory database only exists on one connection
    - Clock injected (FakeClock): schedule/expiry tests never sleep
"""

from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncSession, create_async_engine, async_sessionmaker,
)

from academy.core.domain_types import MembershipRole, MembershipStatus
from academy.db.base import Base
from academy.infrastructure.background import BackgroundSignals
from academy.infrastructure.entity_locks import EntityLocks
from academy.models import Classroom, ClassroomMembership
from academy.services.request_workflow import RequestWorkflow
from academy.services.session_chat import SessionChat
from academy.services.session_lifecycle import SessionLifecycle
from tests.fakes import MASTER, MENTOR, FakeBroadcaster, FakeClock, FakeRoomTransport

GRACE = timedelta(minutes=15)


@pytest.fixture
async def test_engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'academy.db'}", echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def test_session_factory(test_engine):
    return async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False,
    )


@pytest.fixture
async def test_db(test_session_factory):
    async with test_session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def locks():
    return EntityLocks()


@pytest.fixture
async def signals():
    signals = BackgroundSignals()
    yield signals
    await signals.drain()


@pytest.fixture
def transport():
    return FakeRoomTransport()


@pytest.fixture
def broadcaster():
    return FakeBroadcaster()


@pytest.fixture
def make_workflow(locks, clock):
    def _make(db: AsyncSession) -> RequestWorkflow:
        return RequestWorkflow(db, locks=locks, clock=clock)
    return _make


@pytest.fixture
def make_lifecycle(locks, signals, transport, broadcaster, clock):
    def _make(db: AsyncSession) -> SessionLifecycle:
        return SessionLifecycle(
            db, locks=locks, signals=signals, transport=transport,
            broadcaster=broadcaster, clock=clock, grace=GRACE,
        )
    return _make


@pytest.fixture
def make_chat(locks, signals, broadcaster, clock):
    def _make(db: AsyncSession, page_size: int = 100) -> SessionChat:
        return SessionChat(
            db, locks=locks, signals=signals, broadcaster=broadcaster,
            clock=clock, max_body_length=200, page_size=page_size,
        )
    return _make


@pytest.fixture
def workflow(test_db, make_workflow):
    return make_workflow(test_db)


@pytest.fixture
def lifecycle(test_db, make_lifecycle):
    return make_lifecycle(test_db)


@pytest.fixture
def chat(test_db, make_chat):
    return make_chat(test_db)


@pytest.fixture
def seed_classroom(test_db):
    """Insert a classroom owned by MASTER (bypasses the registry)."""
    async def _seed(max_students: int = 2, slug: str = "math-101",
                    master_id: str = MASTER.user_id, is_active: bool = True):
        classroom = Classroom(
            master_id=master_id, title="Math", subject="math",
            max_students=max_students, custom_slug=slug, is_active=is_active,
        )
        test_db.add(classroom)
        await test_db.commit()
        return classroom
    return _seed


@pytest.fixture
def seed_staff(test_db):
    """Give a user an active staff seat directly."""
    async def _seed(classroom: Classroom, user_id: str = MENTOR.user_id):
        membership = ClassroomMembership(
            classroom_id=classroom.id, user_id=user_id,
            role=MembershipRole.STAFF.value, status=MembershipStatus.ACTIVE.value,
        )
        test_db.add(membership)
        await test_db.commit()
        return membership
    return _seed
