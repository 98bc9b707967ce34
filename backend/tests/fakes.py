"""Test doubles for the consumed collaborators and the clock.

Invariants:
    - Fakes satisfy the core Protocols structurally (no inheritance)
    - Every call is recorded in order so tests can assert side effects after drain()
"""

from datetime import datetime, timedelta, timezone

from academy.core.domain_types import Role
from academy.core.role_context import RoleContext

MASTER = RoleContext.of("master-1", Role.MASTER, Role.MENTOR)
ADMIN = RoleContext.of("admin-1", Role.ADMIN)
MENTOR = RoleContext.of("mentor-1", Role.MENTOR)


def student(n: int) -> RoleContext:
    return RoleContext.of(f"student-{n}", Role.STUDENT)


class FakeClock:
    """Manually advanced UTC clock; call the instance to read it."""

    def __init__(self, now: datetime | None = None):
        self.now = now or datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeRoomTransport:
    """Records RTC room signals as ("open" | "close", session_id)."""

    def __init__(self, fail: bool = False):
        self.calls: list[tuple[str, object]] = []
        self.fail = fail

    async def open_room(self, session_id) -> None:
        self.calls.append(("open", session_id))
        if self.fail:
            raise RuntimeError("rtc provider unavailable")

    async def close_room(self, session_id) -> None:
        self.calls.append(("close", session_id))
        if self.fail:
            raise RuntimeError("rtc provider unavailable")

    async def aclose(self) -> None:
        return None


class FakeBroadcaster:
    """Records published events and closed sessions."""

    def __init__(self):
        self.events: list[tuple[object, dict, set | None]] = []
        self.closed: list[object] = []

    async def publish(self, session_id, event: dict, recipients=None) -> int:
        self.events.append((session_id, event, recipients))
        return len(recipients) if recipients is not None else 1

    async def close_session(self, session_id) -> int:
        self.closed.append(session_id)
        return 0

    def of_type(self, event_type: str) -> list[dict]:
        return [e for _, e, _ in self.events if e["type"] == event_type]

    def recipients_of(self, event_type: str) -> list[set | None]:
        return [r for _, e, r in self.events if e["type"] == event_type]


class FakeSocket:
    """Stands in for a WebSocket in broadcast tests."""

    def __init__(self, fail: bool = False):
        self.sent: list[dict] = []
        self.fail = fail
        self.close_code: int | None = None

    async def send_json(self, data: dict) -> None:
        if self.fail:
            raise ConnectionError("socket closed")
        self.sent.append(data)

    async def close(self, code: int = 1000) -> None:
        if self.fail:
            raise ConnectionError("socket closed")
        self.close_code = code


def auth(ctx: RoleContext) -> dict[str, str]:
    """Authorization header understood by TrustedTokenIdentityProvider."""
    roles = ",".join(sorted(r.value for r in ctx.roles))
    return {"Authorization": f"Bearer {ctx.user_id}:{roles}"}


def in_one_hour() -> str:
    return (datetime.now(timezone.utc) + timedelta(hours=1)).isoformat()
