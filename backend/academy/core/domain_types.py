"""Domain Types — rich types that replace bare primitives across the codebase.

Invariants:
    - ClassroomId, RequestId, LiveSessionId wrap UUIDs — never use bare UUID in domain logic
    - UserId is an opaque string issued by the identity collaborator
    - All valid states encoded as Enums — no raw string matching

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str Enums: serialize to JSON and to DB string columns without custom encoders
"""

from enum import Enum
from typing import NewType
from uuid import UUID


# ─── Identity Types ──────────────────────────────────────────────

UserId = NewType("UserId", str)
ClassroomId = NewType("ClassroomId", UUID)
RequestId = NewType("RequestId", UUID)
LiveSessionId = NewType("LiveSessionId", UUID)


# ─── Enums ───────────────────────────────────────────────────────

class Role(str, Enum):
    """Platform roles. MENTOR is the teaching role a StaffRequest builds on."""
    STUDENT = "student"
    MENTOR = "mentor"
    MASTER = "master"
    ADMIN = "admin"


class MembershipRole(str, Enum):
    """Role held inside one classroom."""
    STAFF = "staff"
    STUDENT = "student"


class MembershipStatus(str, Enum):
    ACTIVE = "active"
    REMOVED = "removed"


class RequestKind(str, Enum):
    """Approval request kinds — all share one pending/approved/rejected machine."""
    JOIN = "join"
    STAFF = "staff"
    MASTER_ROLE = "master_role"
    RESIGNATION = "resignation"


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class SessionStatus(str, Enum):
    """Live session lifecycle — maps to DB `status` column."""
    SCHEDULED = "scheduled"
    LIVE = "live"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class SessionOperation(str, Enum):
    """Operations that move a live session through its state machine."""
    START = "start"
    END = "end"
    CANCEL = "cancel"
    EXPIRE = "expire"


class ParticipantRole(str, Enum):
    """Role a participant held at the moment of admission."""
    HOST = "host"
    CO_HOST = "co_host"
    ATTENDEE = "attendee"


# ─── Constants ───────────────────────────────────────────────────

CLASSROOM_SCOPED_KINDS = frozenset({
    RequestKind.JOIN, RequestKind.STAFF, RequestKind.RESIGNATION,
})
OPEN_SESSION_STATUSES = frozenset({SessionStatus.SCHEDULED, SessionStatus.LIVE})
TERMINAL_SESSION_STATUSES = frozenset({
    SessionStatus.COMPLETED, SessionStatus.CANCELLED,
})
SLUG_PATTERN = r"^[a-z0-9-]+$"
SLUG_MIN_LENGTH = 3
SLUG_MAX_LENGTH = 64
