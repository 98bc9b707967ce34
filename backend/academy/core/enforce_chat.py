"""Chat Enforcement — who may post, and how sequence numbers advance.

Invariants:
    - All functions are PURE: no IO, no async, no DB, no side effects
    - Sequence numbers start at 1 and advance by exactly 1 per accepted message
    - Posting requires an open session AND an active participant row
"""

from academy.core.errors import AcademyError, InvalidMessage, NotParticipant
from academy.core.enforce_sessions import check_open
from academy.core.repository_protocols import LiveSessionLike


def check_can_post(
    session: LiveSessionLike, sender_id: str, is_active_participant: bool,
) -> AcademyError | None:
    """Closed session wins over missing participation (the room is gone either way)."""
    error = check_open(session)
    if error:
        return error
    if not is_active_participant:
        return NotParticipant(str(session.id), sender_id)
    return None


def next_sequence(last_sequence: int) -> int:
    return last_sequence + 1


def normalize_body(body: str, max_length: int) -> tuple[str, AcademyError | None]:
    """Strip whitespace; reject empty or oversized bodies."""
    text = body.strip()
    if not text:
        return text, InvalidMessage("message body cannot be empty")
    if len(text) > max_length:
        return text, InvalidMessage(f"message body exceeds {max_length} characters")
    return text, None
