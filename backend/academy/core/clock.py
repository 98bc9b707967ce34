"""Clock helpers — UTC normalization for timestamps read back from storage.

Invariants:
    - All domain timestamps are timezone-aware UTC
    - Naive datetimes (SQLite drops tzinfo) are interpreted as UTC

Design Decisions:
    - Clock passed as a plain callable into services: tests pin "now" without freezegun
"""

from collections.abc import Callable
from datetime import datetime, timezone

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
