"""Session Lifecycle — state machine, admission and side-effect signals on SQLite.

Invariants:
    - Active participants never exceed max_participants, even under concurrent joins
    - start/end/cancel authorized for host or classroom staff/master only
    - RTC open on start, close on end/cancel-from-live; fired after commit
    - Closing a session closes every active participant row
    - A session expired by the sweep cannot be started afterwards
"""

import asyncio
from datetime import timedelta
from uuid import uuid4

import pytest

from academy.core.domain_types import ParticipantRole, Role, SessionStatus
from academy.core.errors import (
    InvalidSchedule, InvalidTransition, NotAuthorized, NotFound, NotParticipant,
    SessionClosed, SessionFull,
)
from academy.core.role_context import RoleContext
from academy.infrastructure.background import BackgroundSignals
from academy.services.session_lifecycle import EXPIRED_REASON, SessionLifecycle
from tests.fakes import MASTER, MENTOR, FakeRoomTransport, student
from tests.services.conftest import GRACE


@pytest.fixture
def schedule(lifecycle, clock):
    async def _schedule(host=MENTOR, max_participants=2, classroom_id=None,
                        starts_in=timedelta(hours=1)):
        return await lifecycle.schedule(
            host,
            title="Algebra office hours",
            scheduled_at=clock.now + starts_in,
            duration_minutes=60,
            max_participants=max_participants,
            classroom_id=classroom_id,
        )
    return _schedule


# --- schedule --------------------------------------------------------------------

async def test_schedule_creates_scheduled_session(schedule):
    session = await schedule()
    assert session.status == SessionStatus.SCHEDULED.value
    assert session.host_id == MENTOR.user_id
    assert session.last_chat_sequence == 0
    assert session.started_at is None


async def test_schedule_in_the_past_is_invalid(lifecycle, clock):
    with pytest.raises(InvalidSchedule):
        await lifecycle.schedule(
            MENTOR, title="late", scheduled_at=clock.now - timedelta(minutes=5),
            duration_minutes=30, max_participants=5,
        )


async def test_schedule_zero_duration_is_invalid(lifecycle, clock):
    with pytest.raises(InvalidSchedule):
        await lifecycle.schedule(
            MENTOR, title="empty", scheduled_at=clock.now + timedelta(hours=1),
            duration_minutes=0, max_participants=5,
        )


async def test_student_cannot_schedule_platform_session(schedule):
    with pytest.raises(NotAuthorized):
        await schedule(host=student(1))


async def test_classroom_session_requires_staff(schedule, seed_classroom, seed_staff):
    classroom = await seed_classroom()
    outsider = RoleContext.of("mentor-2", Role.MENTOR)
    with pytest.raises(NotAuthorized):
        await schedule(host=outsider, classroom_id=classroom.id)

    await seed_staff(classroom)
    session = await schedule(host=MENTOR, classroom_id=classroom.id)
    assert session.classroom_id == classroom.id


async def test_classroom_session_unknown_classroom(schedule):
    with pytest.raises(NotFound):
        await schedule(classroom_id=uuid4())


# --- start / end / cancel ----------------------------------------------------------

async def test_start_goes_live_and_opens_room(
    schedule, lifecycle, clock, signals, transport, broadcaster,
):
    session = await schedule()
    clock.advance(minutes=55)

    started = await lifecycle.start(MENTOR, session.id)
    await signals.drain()

    assert started.status == SessionStatus.LIVE.value
    assert started.started_at == clock.now
    assert transport.calls == [("open", session.id)]
    statuses = [e["data"]["status"] for e in broadcaster.of_type("session_status")]
    assert statuses == ["live"]


async def test_outsider_cannot_start(schedule, lifecycle):
    session = await schedule()
    with pytest.raises(NotAuthorized):
        await lifecycle.start(student(1), session.id)


async def test_classroom_staff_may_start_someone_elses_session(
    schedule, lifecycle, seed_classroom, seed_staff,
):
    classroom = await seed_classroom()
    await seed_staff(classroom)
    session = await schedule(host=MENTOR, classroom_id=classroom.id)

    started = await lifecycle.start(MASTER, session.id)

    assert started.status == SessionStatus.LIVE.value


async def test_start_twice_is_invalid_transition(schedule, lifecycle):
    session = await schedule()
    await lifecycle.start(MENTOR, session.id)
    with pytest.raises(InvalidTransition):
        await lifecycle.start(MENTOR, session.id)


async def test_end_scheduled_is_invalid_transition(schedule, lifecycle):
    session = await schedule()
    with pytest.raises(InvalidTransition):
        await lifecycle.end(MENTOR, session.id)


async def test_end_completes_and_closes_everything(
    schedule, lifecycle, clock, signals, transport, broadcaster,
):
    session = await schedule(max_participants=5)
    await lifecycle.start(MENTOR, session.id)
    await lifecycle.join(student(1), session.id)
    clock.advance(minutes=45)

    ended = await lifecycle.end(MENTOR, session.id)
    await signals.drain()

    assert ended.status == SessionStatus.COMPLETED.value
    assert ended.ended_at == clock.now
    assert await lifecycle.list_participants(session.id) == []
    assert transport.calls == [("open", session.id), ("close", session.id)]
    assert broadcaster.closed == [session.id]


async def test_cancel_scheduled_never_touches_rtc(
    schedule, lifecycle, signals, transport, broadcaster,
):
    session = await schedule()
    cancelled = await lifecycle.cancel(MENTOR, session.id, reason="host unwell")
    await signals.drain()

    assert cancelled.status == SessionStatus.CANCELLED.value
    assert cancelled.cancel_reason == "host unwell"
    assert transport.calls == []
    assert broadcaster.closed == [session.id]


async def test_cancel_live_keeps_started_at_and_closes_room(
    schedule, lifecycle, signals, transport,
):
    session = await schedule()
    await lifecycle.start(MENTOR, session.id)
    cancelled = await lifecycle.cancel(MENTOR, session.id)
    await signals.drain()

    assert cancelled.status == SessionStatus.CANCELLED.value
    assert cancelled.started_at is not None
    assert ("close", session.id) in transport.calls


@pytest.mark.parametrize("terminal", ["end", "cancel"])
async def test_nothing_leaves_a_terminal_status(schedule, lifecycle, terminal):
    session = await schedule()
    await lifecycle.start(MENTOR, session.id)
    await getattr(lifecycle, terminal)(MENTOR, session.id)
    for operation in (lifecycle.start, lifecycle.end, lifecycle.cancel):
        with pytest.raises(InvalidTransition):
            await operation(MENTOR, session.id)


async def test_rtc_failure_does_not_undo_start(
    test_db, locks, broadcaster, clock, schedule,
):
    failing = FakeRoomTransport(fail=True)
    signals = BackgroundSignals()
    lifecycle = SessionLifecycle(
        test_db, locks=locks, signals=signals, transport=failing,
        broadcaster=broadcaster, clock=clock, grace=GRACE,
    )
    session = await schedule()

    started = await lifecycle.start(MENTOR, session.id)
    await signals.drain()

    assert started.status == SessionStatus.LIVE.value
    assert failing.calls == [("open", session.id)]


async def test_unknown_session_not_found(lifecycle):
    with pytest.raises(NotFound):
        await lifecycle.start(MENTOR, uuid4())
    with pytest.raises(NotFound):
        await lifecycle.get_session(uuid4())


# --- join / leave --------------------------------------------------------------------

async def test_join_admits_with_role(schedule, lifecycle):
    session = await schedule(max_participants=3)
    host = await lifecycle.join(MENTOR, session.id)
    attendee = await lifecycle.join(student(1), session.id)

    assert host.role == ParticipantRole.HOST.value
    assert attendee.role == ParticipantRole.ATTENDEE.value
    assert attendee.left_at is None


async def test_staff_join_as_co_host(schedule, lifecycle, seed_classroom, seed_staff):
    classroom = await seed_classroom()
    await seed_staff(classroom)
    session = await schedule(host=MASTER, classroom_id=classroom.id)
    participant = await lifecycle.join(MENTOR, session.id)
    assert participant.role == ParticipantRole.CO_HOST.value


async def test_join_at_capacity_is_session_full(schedule, lifecycle):
    session = await schedule(max_participants=2)
    await lifecycle.join(student(1), session.id)
    await lifecycle.join(student(2), session.id)
    with pytest.raises(SessionFull):
        await lifecycle.join(student(3), session.id)
    assert await lifecycle.count_active_participants(session.id) == 2


async def test_join_closed_session_is_session_closed(schedule, lifecycle):
    session = await schedule()
    await lifecycle.cancel(MENTOR, session.id)
    with pytest.raises(SessionClosed):
        await lifecycle.join(student(1), session.id)


async def test_join_twice_returns_same_admission(schedule, lifecycle):
    session = await schedule()
    first = await lifecycle.join(student(1), session.id)
    second = await lifecycle.join(student(1), session.id)
    assert first.id == second.id
    assert await lifecycle.count_active_participants(session.id) == 1


async def test_leave_frees_a_seat_and_is_idempotent(schedule, lifecycle, clock):
    session = await schedule(max_participants=1)
    await lifecycle.join(student(1), session.id)

    left = await lifecycle.leave(student(1), session.id)
    again = await lifecycle.leave(student(1), session.id)

    assert left.left_at == clock.now
    assert again.id == left.id
    await lifecycle.join(student(2), session.id)


async def test_leave_without_joining_is_not_participant(schedule, lifecycle):
    session = await schedule()
    with pytest.raises(NotParticipant):
        await lifecycle.leave(student(1), session.id)


async def test_rejoin_after_leave_creates_new_row(schedule, lifecycle):
    session = await schedule()
    first = await lifecycle.join(student(1), session.id)
    await lifecycle.leave(student(1), session.id)
    second = await lifecycle.join(student(1), session.id)

    assert second.id != first.id
    history = await lifecycle.list_participants(session.id, active_only=False)
    assert len(history) == 2


async def test_join_and_leave_are_broadcast(schedule, lifecycle, signals, broadcaster):
    session = await schedule()
    await lifecycle.join(student(1), session.id)
    await lifecycle.leave(student(1), session.id)
    await signals.drain()

    assert [e["data"]["user_id"] for e in broadcaster.of_type("participant_joined")] == ["student-1"]
    assert len(broadcaster.of_type("participant_left")) == 1


async def test_events_reach_only_admitted_participants(
    schedule, lifecycle, signals, broadcaster,
):
    session = await schedule(max_participants=5)
    await lifecycle.join(student(1), session.id)
    await lifecycle.join(student(2), session.id)
    await lifecycle.leave(student(1), session.id)
    await lifecycle.start(MENTOR, session.id)
    await lifecycle.end(MENTOR, session.id)
    await signals.drain()

    assert broadcaster.recipients_of("participant_joined") == [
        {"student-1"}, {"student-1", "student-2"},
    ]
    assert broadcaster.recipients_of("participant_left") == [{"student-2"}]
    assert broadcaster.recipients_of("session_status") == [{"student-2"}, {"student-2"}]


async def test_concurrent_joins_never_exceed_capacity(
    schedule, make_lifecycle, test_session_factory,
):
    """N > capacity simultaneous joins: exactly max_participants succeed."""
    session = await schedule(max_participants=3)

    async def join(n):
        async with test_session_factory() as db:
            try:
                await make_lifecycle(db).join(student(n), session.id)
                return "admitted"
            except SessionFull:
                return "full"

    results = await asyncio.gather(*(join(n) for n in range(10)))

    assert results.count("admitted") == 3
    assert results.count("full") == 7
    async with test_session_factory() as db:
        assert await make_lifecycle(db).count_active_participants(session.id) == 3


async def test_concurrent_start_and_cancel_one_wins(
    schedule, make_lifecycle, test_session_factory,
):
    session = await schedule()

    async def attempt(operation):
        async with test_session_factory() as db:
            try:
                await getattr(make_lifecycle(db), operation)(MENTOR, session.id)
                return operation
            except InvalidTransition:
                return "rejected"

    results = await asyncio.gather(attempt("start"), attempt("cancel"))

    async with test_session_factory() as db:
        final = await make_lifecycle(db).get_session(session.id)
    assert final.status == SessionStatus.CANCELLED.value
    if "rejected" in results:
        assert results == ["rejected", "cancel"]
        assert final.started_at is None
    else:
        assert final.started_at is not None


# --- expire ----------------------------------------------------------------------

async def test_sweep_expiry_then_late_start_is_invalid(schedule, lifecycle, clock):
    """Scheduled at T, never started: expired at T+grace, start at T+grace+1 fails."""
    session = await schedule(starts_in=timedelta(hours=1))
    clock.advance(hours=1)
    clock.advance(minutes=15)

    expired = await lifecycle.expire(session.id)
    assert expired.status == SessionStatus.CANCELLED.value
    assert expired.cancel_reason == EXPIRED_REASON

    clock.advance(minutes=1)
    with pytest.raises(InvalidTransition):
        await lifecycle.start(MENTOR, session.id)


async def test_expire_before_deadline_is_noop(schedule, lifecycle, clock):
    session = await schedule(starts_in=timedelta(hours=1))
    clock.advance(hours=1, minutes=14)
    assert await lifecycle.expire(session.id) is None
    assert (await lifecycle.get_session(session.id)).status == SessionStatus.SCHEDULED.value


async def test_expire_after_start_is_noop(schedule, lifecycle, clock):
    session = await schedule(starts_in=timedelta(minutes=10))
    clock.advance(minutes=20)
    await lifecycle.start(MENTOR, session.id)
    clock.advance(hours=2)
    assert await lifecycle.expire(session.id) is None


async def test_list_overdue_uses_grace(schedule, lifecycle, clock):
    early = await schedule(starts_in=timedelta(minutes=10))
    await schedule(starts_in=timedelta(hours=3))
    clock.advance(minutes=25)
    assert await lifecycle.list_overdue(clock.now) == [early.id]


# --- queries ---------------------------------------------------------------------

async def test_list_sessions_filters(schedule, lifecycle, seed_classroom, seed_staff):
    classroom = await seed_classroom()
    await seed_staff(classroom)
    in_class = await schedule(classroom_id=classroom.id)
    platform = await schedule()
    await lifecycle.start(MENTOR, platform.id)

    assert [s.id for s in await lifecycle.list_sessions(classroom_id=classroom.id)] == [in_class.id]
    live = await lifecycle.list_sessions(status=SessionStatus.LIVE)
    assert [s.id for s in live] == [platform.id]
    assert await lifecycle.list_sessions(classroom_id=uuid4()) == []
