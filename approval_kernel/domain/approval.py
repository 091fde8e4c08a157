"""
Approval domain types (``approval_kernel.domain.approval``).

Responsibility
--------------
Pure value objects for the multi-level approval engine.  Defines the
request lifecycle state machine, the closed role enumeration, step and
history records, operation results, and the collaborator protocols the
engine consumes.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``models/``, ``services/``, ``selectors/``.

Invariants enforced
-------------------
* Lifecycle state machine -- ``REQUEST_TRANSITIONS`` defines the only
  valid status transitions.  Terminal states have no outgoing edges.
* ``PendingLevel(n)`` is representable only for ``1 <= n <=
  required_levels`` (``WorkflowState`` validates on construction).
* One canonical user identifier type: ``int``.  ``as_user_id`` is the
  only conversion from caller input.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Protocol
from uuid import UUID


# =========================================================================
# Identifiers
# =========================================================================


def as_user_id(value: Any) -> int:
    """Normalize a caller-supplied user identifier to ``int``.

    Accepts ints and strings of digits.  Rejects ``bool``, floats and
    anything else, so ``"7" == 7`` style mismatches cannot reach an
    approver comparison.
    """
    if isinstance(value, bool):
        raise TypeError(f"Invalid user id: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise TypeError(f"Invalid user id: {value!r}")


# =========================================================================
# Request Status Lifecycle
# =========================================================================


class RequestStatus(str, Enum):
    """Overall approval status of a monetary request."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    CLOSED = "closed"


REQUEST_TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.DRAFT: frozenset({
        RequestStatus.SUBMITTED,
        RequestStatus.CANCELLED,
        RequestStatus.CLOSED,
    }),
    RequestStatus.SUBMITTED: frozenset({
        RequestStatus.PENDING,
        RequestStatus.CANCELLED,
        RequestStatus.CLOSED,
    }),
    RequestStatus.PENDING: frozenset({
        RequestStatus.PENDING,
        RequestStatus.APPROVED,
        RequestStatus.REJECTED,
        RequestStatus.CANCELLED,
        RequestStatus.CLOSED,
    }),
    RequestStatus.APPROVED: frozenset(),
    RequestStatus.REJECTED: frozenset(),
    RequestStatus.CANCELLED: frozenset(),
    RequestStatus.CLOSED: frozenset(),
}

TERMINAL_REQUEST_STATUSES: frozenset[RequestStatus] = frozenset({
    RequestStatus.APPROVED,
    RequestStatus.REJECTED,
    RequestStatus.CANCELLED,
    RequestStatus.CLOSED,
})


def can_transition(current: RequestStatus, target: RequestStatus) -> bool:
    """True iff ``current -> target`` is an edge of the state machine."""
    return target in REQUEST_TRANSITIONS.get(current, frozenset())


@dataclass(frozen=True)
class WorkflowState:
    """Overall status plus current level, e.g. ``PendingLevel(2)``.

    ``current_level`` is 0 whenever the request is not in flight.
    """

    status: RequestStatus
    current_level: int = 0
    required_levels: int = 0

    def __post_init__(self) -> None:
        if self.status == RequestStatus.PENDING:
            if not 1 <= self.current_level <= self.required_levels:
                raise ValueError(
                    f"pending level {self.current_level} outside "
                    f"1..{self.required_levels}"
                )
        elif self.status in (RequestStatus.DRAFT, RequestStatus.SUBMITTED):
            if self.current_level != 0:
                raise ValueError(
                    f"{self.status.value} request cannot be at level "
                    f"{self.current_level}"
                )

    @classmethod
    def pending_level(cls, level: int, required_levels: int) -> WorkflowState:
        return cls(RequestStatus.PENDING, level, required_levels)

    @property
    def is_pending(self) -> bool:
        return self.status == RequestStatus.PENDING

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_REQUEST_STATUSES

    @property
    def label(self) -> str:
        """Display label: ``pending_level_<n>`` or the status value."""
        if self.is_pending:
            return f"pending_level_{self.current_level}"
        return self.status.value


class StepStatus(str, Enum):
    """Status of one level of the chain."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class HistoryAction(str, Enum):
    """Actions recorded in the approval history."""

    APPROVED = "approved"
    REJECTED = "rejected"


class ApproverResolution(str, Enum):
    """When concrete approvers are resolved for a chain."""

    EAGER = "eager"  # every level at submit
    LAZY = "lazy"    # each level when the request reaches it


@dataclass(frozen=True)
class EngineSettings:
    """Runtime switches of the approval engine.

    Built from configuration by ``approval_config.bridges``; the kernel
    never reads configuration itself.
    """

    approver_resolution: ApproverResolution = ApproverResolution.EAGER
    requester_fallback_for_missing_head: bool = True
    notifications_enabled: bool = True


# =========================================================================
# Roles
# =========================================================================


class ApproverRole(str, Enum):
    """Role identifiers known to the directory."""

    ADMIN = "admin"
    PRINCIPAL = "principal"
    VICE_PRINCIPAL = "vice_principal"
    DEPT_HEAD = "dept_head"
    TEACHER = "teacher"
    STAFF = "staff"
    CHIEF_COORDINATOR = "chief_coordinator"
    DIRECTOR_ADMIN = "director_admin"
    PO_OFFICER = "po_officer"
    PO_ADMIN_OFFICER = "po_admin_officer"
    PO_DIRECTOR_ADMIN = "po_director_admin"
    MANAGING_DIRECTOR = "managing_director"
    DEPUTY_MANAGING_DIRECTOR = "deputy_managing_director"
    # policy-only marker, never held by a directory user
    ORG_UNIT_HEAD = "org_unit_head"


ORG_UNIT_HEAD_MARKER = ApproverRole.ORG_UNIT_HEAD


def uses_org_unit_head(level: int, roles: Any) -> bool:
    """True iff the level resolves to the requester's org-unit head.

    Level 1 always does, whatever its roles.  A later level does only when
    it carries ``ORG_UNIT_HEAD_MARKER``; a plain ``dept_head`` role there is
    an ordinary role lookup.
    """
    return level == 1 or ORG_UNIT_HEAD_MARKER in tuple(roles)


def parse_roles(values: Any) -> tuple[ApproverRole, ...]:
    """Parse a role or list of roles into a de-duplicated tuple.

    Raises:
        ValueError: if a value is not a known role.
    """
    if isinstance(values, (str, ApproverRole)):
        values = [values]
    roles: list[ApproverRole] = []
    for value in values:
        role = ApproverRole(value)
        if role not in roles:
            roles.append(role)
    return tuple(roles)


def roles_label(roles: tuple[ApproverRole, ...]) -> str:
    """Human-readable role list, e.g. ``managing_director / deputy_managing_director``."""
    return " / ".join(r.value for r in roles)


# =========================================================================
# Steps, History, Requests
# =========================================================================


@dataclass(frozen=True)
class ApprovalStep:
    """One level of a submitted request."""

    level: int
    name: str
    roles: tuple[ApproverRole, ...]
    approver_id: int | None
    status: StepStatus = StepStatus.PENDING
    decided_at: datetime | None = None
    comments: str | None = None


@dataclass(frozen=True)
class HistoryEntry:
    """Append-only record of one approve/reject action."""

    level: int
    action: HistoryAction
    actor_id: int
    actor_name: str
    comment: str | None
    timestamp: datetime


@dataclass(frozen=True)
class ApprovalRequest:
    """Immutable snapshot of the approval projection of a request."""

    request_id: UUID
    tenant_id: int
    requester_id: int
    org_unit_id: int | None
    amount: Decimal
    status: RequestStatus
    current_level: int = 0
    required_levels: int = 0
    reference: str | None = None
    steps: tuple[ApprovalStep, ...] = ()
    history: tuple[HistoryEntry, ...] = ()
    submitted_at: datetime | None = None
    final_approved_at: datetime | None = None
    final_approved_by: int | None = None
    rejection_reason: str | None = None
    rejected_at: datetime | None = None
    rejected_by: int | None = None
    cancelled_at: datetime | None = None
    cancelled_by: int | None = None
    closed_at: datetime | None = None
    closed_by: int | None = None
    version: int = 1

    @property
    def state(self) -> WorkflowState:
        return WorkflowState(
            self.status, self.current_level, self.required_levels,
        )

    @property
    def current_step(self) -> ApprovalStep | None:
        if self.status != RequestStatus.PENDING:
            return None
        for step in self.steps:
            if step.level == self.current_level:
                return step
        return None


# =========================================================================
# Operation Results
# =========================================================================


@dataclass(frozen=True)
class SubmitResult:
    """Result of submitting a request into its chain."""

    request: ApprovalRequest
    required_levels: int
    first_approver_id: int | None


@dataclass(frozen=True)
class TransitionResult:
    """Result of an approve/reject/cancel/close action."""

    request: ApprovalRequest
    action: str
    level: int
    previous_state: str
    new_state: str
    completed: bool = False
    next_approver_id: int | None = None


# =========================================================================
# Collaborator Protocols
# =========================================================================


@dataclass(frozen=True)
class DirectoryUser:
    """A user as seen through the directory."""

    user_id: int
    tenant_id: int
    name: str
    role: ApproverRole | None
    org_unit_id: int | None
    active: bool


class Directory(Protocol):
    """Identity/directory lookups consumed by approver resolution."""

    def list_active_users_by_role(
        self, tenant_id: int, roles: tuple[ApproverRole, ...],
    ) -> list[int]:
        """Active user ids in ``tenant_id`` holding any role, ascending."""
        ...

    def get_org_unit_head(self, org_unit_id: int) -> int | None:
        """Head of the org unit, if one is configured."""
        ...

    def get_user(self, user_id: int) -> DirectoryUser | None:
        """Look up a single user."""
        ...


class Notifier(Protocol):
    """Fire-and-forget delivery of workflow events."""

    def notify(
        self, user_id: int, event_type: str, payload: dict[str, Any],
    ) -> None:
        ...


class NotificationEvent(str, Enum):
    """Event types emitted by the engine."""

    APPROVAL_NEEDED = "approval_needed"
    APPROVAL_COMPLETED = "approval_completed"
    APPROVAL_REJECTED = "approval_rejected"
    REQUEST_CANCELLED = "request_cancelled"
