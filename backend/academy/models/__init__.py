"""ORM Models — SQLAlchemy declarative models for all workflow entities.

Invariants:
    - All models inherit from Base (db/base.py)
    - Classroom and LiveSession are aggregate roots; other rows are scoped by their ids

Design Decisions:
    - One file per entity for locality
    - All models imported here so SQLAlchemy resolves string-based relationship()
      references before any query runs
"""

from academy.models.classroom import Classroom  # noqa: F401
from academy.models.membership import ClassroomMembership  # noqa: F401
from academy.models.role_grant import RoleGrant  # noqa: F401
from academy.models.approval_request import ApprovalRequest  # noqa: F401
from academy.models.live_session import LiveSession  # noqa: F401
from academy.models.participant import SessionParticipant  # noqa: F401
from academy.models.chat_message import ChatMessage  # noqa: F401
