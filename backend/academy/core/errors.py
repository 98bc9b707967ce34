"""Error Hierarchy — typed, categorized exceptions for every workflow failure mode.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Domain errors (400-level) are caller logic errors and are never retried
    - Infrastructure errors (500-level) are the only class eligible for automatic retry
    - to_response() produces the REST envelope; to_event() the WebSocket envelope
    - No internal details leaked in user-facing messages

Design Decisions:
    - Single hierarchy with AcademyError base: FastAPI global handler catches all
      (ADR: uniform error shape for the UI collaborator's toasts)
    - Pure check functions in core return an AcademyError instance instead of raising,
      the shell decides to raise (ADR: checks testable without pytest.raises)
    - ErrorContext as dataclass: rich observability without coupling to logging framework
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from datetime import datetime, timezone


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    AUTHORIZATION = "authorization"
    BUSINESS_RULE = "business_rule"
    RESOURCE_NOT_FOUND = "resource_not_found"
    CONFLICT = "conflict"
    DATABASE = "database"
    EXTERNAL_API = "external_api"
    INTERNAL = "internal"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    session_id: str | None = None
    request_id: str | None = None
    classroom_id: str | None = None
    user_id: str | None = None
    debug_info: dict[str, Any] | None = None
    retry_after_ms: int | None = None


class AcademyError(Exception):
    """Base exception for all academy workflow errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status

    @property
    def retryable(self) -> bool:
        return self.category in (ErrorCategory.DATABASE, ErrorCategory.EXTERNAL_API)

    def to_response(self) -> dict:
        """Convert to standardized REST error response."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "session_id": self.context.session_id,
                    "request_id": self.context.request_id,
                    "classroom_id": self.context.classroom_id,
                    "retry_after_ms": self.context.retry_after_ms,
                },
            }
        }

    def to_event(self) -> dict:
        """Convert to WebSocket error frame."""
        return {
            "type": "error",
            "data": {
                "code": self.code,
                "message": self.message,
                "severity": self.severity.value,
                "retryable": self.retryable,
            },
        }


# ─── Authorization (401/403) ────────────────────────────────────

class Unauthenticated(AcademyError):
    """Caller could not be resolved by the identity collaborator."""
    def __init__(self, message: str = "Caller identity could not be resolved",
                 context: ErrorContext | None = None):
        super().__init__(
            message, "UNAUTHENTICATED", ErrorCategory.AUTHORIZATION,
            ErrorSeverity.WARNING, context, 401,
        )


class NotAuthorized(AcademyError):
    """Caller lacks the role or ownership required for the action."""
    def __init__(self, action: str, reason: str, context: ErrorContext | None = None):
        super().__init__(
            f"Not authorized to {action}: {reason}",
            "NOT_AUTHORIZED", ErrorCategory.AUTHORIZATION,
            ErrorSeverity.WARNING, context, 403,
        )
        self.action = action


class NotParticipant(AcademyError):
    """Caller has no active participant row in the session."""
    def __init__(self, session_id: str, user_id: str, context: ErrorContext | None = None):
        ctx = context or ErrorContext(session_id=session_id, user_id=user_id)
        super().__init__(
            f"User '{user_id}' is not an active participant of session '{session_id}'",
            "NOT_PARTICIPANT", ErrorCategory.AUTHORIZATION,
            ErrorSeverity.WARNING, ctx, 403,
        )


# ─── Validation (400) ───────────────────────────────────────────

class InvalidSchedule(AcademyError):
    """Session schedule is in the past or has a non-positive duration/capacity."""
    def __init__(self, reason: str, context: ErrorContext | None = None):
        super().__init__(
            f"Invalid schedule: {reason}",
            "INVALID_SCHEDULE", ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 400,
        )


class InvalidSlug(AcademyError):
    """Classroom slug does not match the allowed pattern."""
    def __init__(self, slug: str, reason: str, context: ErrorContext | None = None):
        super().__init__(
            f"Invalid classroom slug '{slug}': {reason}",
            "INVALID_SLUG", ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 400,
        )


class InvalidCapacity(AcademyError):
    """Classroom capacity must be a positive integer."""
    def __init__(self, value: int, context: ErrorContext | None = None):
        super().__init__(
            f"Invalid capacity: max_students must be positive, got {value}",
            "INVALID_CAPACITY", ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 400,
        )


class InvalidMessage(AcademyError):
    """Chat message body is empty or too long."""
    def __init__(self, reason: str, context: ErrorContext | None = None):
        super().__init__(
            f"Invalid message: {reason}",
            "INVALID_MESSAGE", ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 400,
        )


# ─── Not found (404) ────────────────────────────────────────────

class NotFound(AcademyError):
    """Requested resource does not exist."""
    def __init__(
        self, resource_type: str, resource_id: str, context: ErrorContext | None = None,
    ):
        super().__init__(
            f"{resource_type} '{resource_id}' not found",
            "NOT_FOUND", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.ERROR, context, 404,
        )
        self.resource_type = resource_type


class InvalidTarget(AcademyError):
    """Request target does not resolve to an open classroom."""
    def __init__(self, target_id: str | None, reason: str, context: ErrorContext | None = None):
        super().__init__(
            f"Invalid request target '{target_id}': {reason}",
            "INVALID_TARGET", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.ERROR, context, 404,
        )


# ─── Business rules / conflicts (409) ───────────────────────────

class InvalidTransition(AcademyError):
    """State machine rejects the requested move."""
    def __init__(self, entity: str, status: str, operation: str,
                 context: ErrorContext | None = None):
        super().__init__(
            f"Cannot {operation} {entity} in status '{status}'",
            "INVALID_TRANSITION", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.ERROR, context, 409,
        )
        self.status = status
        self.operation = operation


class AlreadyResolved(AcademyError):
    """Approval request is no longer pending."""
    def __init__(self, request_id: str, status: str, context: ErrorContext | None = None):
        ctx = context or ErrorContext(request_id=request_id)
        super().__init__(
            f"Request '{request_id}' is already {status}",
            "ALREADY_RESOLVED", ErrorCategory.CONFLICT,
            ErrorSeverity.ERROR, ctx, 409,
        )
        self.status = status


class DuplicatePendingRequest(AcademyError):
    """Identical request is still pending."""
    def __init__(self, kind: str, existing_id: str, context: ErrorContext | None = None):
        ctx = context or ErrorContext(request_id=existing_id)
        super().__init__(
            f"A pending {kind} request already exists ({existing_id})",
            "DUPLICATE_PENDING_REQUEST", ErrorCategory.CONFLICT,
            ErrorSeverity.ERROR, ctx, 409,
        )
        self.existing_id = existing_id


class AlreadyMember(AcademyError):
    """Requester already holds the membership or role being requested."""
    def __init__(self, what: str, context: ErrorContext | None = None):
        super().__init__(
            f"Already holds {what}",
            "ALREADY_MEMBER", ErrorCategory.CONFLICT,
            ErrorSeverity.ERROR, context, 409,
        )


class ClassroomFull(AcademyError):
    """Classroom has no remaining student capacity."""
    def __init__(self, classroom_id: str, max_students: int, context: ErrorContext | None = None):
        ctx = context or ErrorContext(classroom_id=classroom_id)
        super().__init__(
            f"Classroom is full ({max_students}/{max_students} students)",
            "CLASSROOM_FULL", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.ERROR, ctx, 409,
        )


class SessionFull(AcademyError):
    """Live session is at participant capacity."""
    def __init__(self, session_id: str, max_participants: int, context: ErrorContext | None = None):
        ctx = context or ErrorContext(session_id=session_id)
        super().__init__(
            f"Session is full ({max_participants}/{max_participants} participants)",
            "SESSION_FULL", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.ERROR, ctx, 409,
        )


class SessionClosed(AcademyError):
    """Live session is completed or cancelled."""
    def __init__(self, session_id: str, status: str, context: ErrorContext | None = None):
        ctx = context or ErrorContext(session_id=session_id)
        super().__init__(
            f"Session is {status}",
            "SESSION_CLOSED", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.ERROR, ctx, 409,
        )
        self.status = status


class SlugTaken(AcademyError):
    """Classroom slug is already published by another classroom."""
    def __init__(self, slug: str, context: ErrorContext | None = None):
        super().__init__(
            f"Classroom slug '{slug}' is already taken",
            "SLUG_TAKEN", ErrorCategory.CONFLICT,
            ErrorSeverity.ERROR, context, 409,
        )


# ─── Infrastructure Errors (500-level) ──────────────────────────

class DatabaseError(AcademyError):
    """Database operation failed."""
    def __init__(self, message: str, operation: str, transient: bool = False,
                 context: ErrorContext | None = None):
        super().__init__(
            f"Database {operation} failed: {message}",
            "DATABASE_ERROR", ErrorCategory.DATABASE,
            ErrorSeverity.CRITICAL, context, 503,
        )
        self.operation = operation
        self.transient = transient


class CollaboratorError(AcademyError):
    """External collaborator (identity or RTC provider) call failed."""
    def __init__(self, collaborator: str, message: str, context: ErrorContext | None = None):
        super().__init__(
            f"{collaborator} error: {message}",
            "COLLABORATOR_ERROR", ErrorCategory.EXTERNAL_API,
            ErrorSeverity.CRITICAL, context, 502,
        )
        self.collaborator = collaborator
