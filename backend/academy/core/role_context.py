"""Role Context — the caller's identity and capabilities, resolved once per request.

Invariants:
    - Immutable: a RoleContext never changes after resolution
    - Passed explicitly into every service call (no ambient current-user state)
    - Capability predicates are the ONLY place role names are compared

Design Decisions:
    - Frozen dataclass with frozenset roles: hashable, safe to share across tasks
    - Predicates take the minimum facts they need (master_id, is_staff) instead of
      ORM objects so they stay pure and testable without a DB
"""

from dataclasses import dataclass, field

from academy.core.domain_types import RequestKind, Role, UserId


@dataclass(frozen=True)
class RoleContext:
    """Resolved caller — user id plus enumerated platform roles."""

    user_id: UserId
    roles: frozenset[Role] = field(default_factory=frozenset)

    @classmethod
    def of(cls, user_id: str, *roles: Role) -> "RoleContext":
        return cls(UserId(user_id), frozenset(roles))

    def has_role(self, role: Role) -> bool:
        return role in self.roles

    def with_roles(self, *roles: Role) -> "RoleContext":
        """Return a copy with extra roles (e.g. roles granted by the workflow)."""
        return RoleContext(self.user_id, self.roles | frozenset(roles))

    @property
    def is_admin(self) -> bool:
        return Role.ADMIN in self.roles

    @property
    def is_master(self) -> bool:
        return Role.MASTER in self.roles

    @property
    def is_mentor(self) -> bool:
        return Role.MENTOR in self.roles

    @property
    def is_student(self) -> bool:
        return Role.STUDENT in self.roles

    # --- Capability predicates -----------------------------------------------

    def owns(self, master_id: str | None) -> bool:
        return master_id is not None and master_id == self.user_id

    def can_submit(self, kind: RequestKind) -> bool:
        """Which platform role may open each request kind."""
        if kind == RequestKind.JOIN:
            return self.is_student
        if kind in (RequestKind.STAFF, RequestKind.MASTER_ROLE):
            return self.is_mentor
        # Resignation authority comes from an active staff membership,
        # checked against the registry by the workflow engine.
        return True

    def can_approve(self, kind: RequestKind, master_id: str | None) -> bool:
        """Classroom master reviews classroom requests; admins review master-role requests."""
        if kind == RequestKind.MASTER_ROLE:
            return self.is_admin
        return self.owns(master_id)

    def can_manage_session(self, host_id: str, is_staff_or_master: bool) -> bool:
        """Host, or staff/master of the session's classroom."""
        return host_id == self.user_id or is_staff_or_master

    def can_host_sessions(self, classroom_id: object | None, is_staff_or_master: bool) -> bool:
        """Classroom sessions need classroom staff/master; platform sessions need a teaching role."""
        if classroom_id is not None:
            return is_staff_or_master
        return self.is_mentor or self.is_master
