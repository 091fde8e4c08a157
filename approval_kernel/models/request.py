"""
Module: approval_kernel.models.request
Responsibility: ORM persistence for the approval projection of a monetary
    request: the request row, one step row per chain level, and the
    append-only history.

Architecture position: Kernel > Models.  May import from db/base.py and
    exceptions only (domain imports are deferred to DTO conversion).

Invariants enforced:
    - Lifecycle: DB check constraint limits status values; the engine
      enforces transitions; a before_update listener refuses any change
      to a request whose stored status is terminal.
    - Per-request serialization: ``version`` is the mapper's
      version_id_col, so an UPDATE based on a stale read affects zero rows
      and SQLAlchemy raises StaleDataError.
    - One step per (request, level): UNIQUE(request_id, level).
    - History is append-only: before_update / before_delete listeners
      raise ImmutabilityViolationError.

Failure modes:
    - StaleDataError on a concurrent modification (translated by the engine).
    - ImmutabilityViolationError on history mutation or terminal changes.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    JSON,
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    event,
    inspect,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from approval_kernel.db.base import Base, UUIDString
from approval_kernel.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from approval_kernel.domain.approval import (
        ApprovalRequest,
        ApprovalStep,
        HistoryEntry,
    )

_TERMINAL_STATUS_VALUES = frozenset({"approved", "rejected", "cancelled", "closed"})


class ApprovalRequestModel(Base):
    """Persistent approval request.

    Contract:
        Mutated only through ApprovalEngine.  Terminal statuses
        (approved, rejected, cancelled, closed) cannot be changed once
        stored.
    """

    __tablename__ = "approval_requests"

    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'submitted', 'pending', 'approved', "
            "'rejected', 'cancelled', 'closed')",
            name="ck_approval_requests_valid_status",
        ),
        CheckConstraint("amount >= 0", name="ck_approval_requests_amount"),
        CheckConstraint(
            "current_level >= 0 AND current_level <= required_levels",
            name="ck_approval_requests_level_range",
        ),
        Index("ix_approval_requests_tenant_status", "tenant_id", "status"),
        Index("ix_approval_requests_requester", "requester_id", "created_at"),
    )

    request_id: Mapped[UUID] = mapped_column(
        UUIDString(), nullable=False, unique=True,
    )
    tenant_id: Mapped[int] = mapped_column(nullable=False)
    requester_id: Mapped[int] = mapped_column(nullable=False)
    org_unit_id: Mapped[int | None] = mapped_column(nullable=True)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    current_level: Mapped[int] = mapped_column(nullable=False, default=0)
    required_levels: Mapped[int] = mapped_column(nullable=False, default=0)
    version: Mapped[int] = mapped_column(nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    submitted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    final_approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    final_approved_by: Mapped[int | None] = mapped_column(nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejected_by: Mapped[int | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_by: Mapped[int | None] = mapped_column(nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    closed_by: Mapped[int | None] = mapped_column(nullable=True)

    steps: Mapped[list["ApprovalStepModel"]] = relationship(
        "ApprovalStepModel",
        back_populates="request",
        primaryjoin="ApprovalRequestModel.request_id == ApprovalStepModel.request_id",
        order_by="ApprovalStepModel.level",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    history: Mapped[list["ApprovalHistoryModel"]] = relationship(
        "ApprovalHistoryModel",
        back_populates="request",
        primaryjoin="ApprovalRequestModel.request_id == ApprovalHistoryModel.request_id",
        order_by="ApprovalHistoryModel.sequence",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<ApprovalRequest {self.request_id} status={self.status} "
            f"level={self.current_level}/{self.required_levels}>"
        )

    def step_for(self, level: int) -> ApprovalStepModel | None:
        for step in self.steps:
            if step.level == level:
                return step
        return None

    def to_dto(self) -> ApprovalRequest:
        """Convert ORM model to frozen domain DTO."""
        from approval_kernel.domain.approval import (
            ApprovalRequest as ApprovalRequestDTO,
            RequestStatus,
        )

        return ApprovalRequestDTO(
            request_id=self.request_id,
            tenant_id=self.tenant_id,
            requester_id=self.requester_id,
            org_unit_id=self.org_unit_id,
            amount=Decimal(self.amount),
            status=RequestStatus(self.status),
            current_level=self.current_level,
            required_levels=self.required_levels,
            reference=self.reference,
            # relationship order_by only applies on load, not to appended rows
            steps=tuple(s.to_dto() for s in sorted(self.steps, key=lambda s: s.level)),
            history=tuple(
                h.to_dto() for h in sorted(self.history, key=lambda h: h.sequence)
            ),
            submitted_at=self.submitted_at,
            final_approved_at=self.final_approved_at,
            final_approved_by=self.final_approved_by,
            rejection_reason=self.rejection_reason,
            rejected_at=self.rejected_at,
            rejected_by=self.rejected_by,
            cancelled_at=self.cancelled_at,
            cancelled_by=self.cancelled_by,
            closed_at=self.closed_at,
            closed_by=self.closed_by,
            version=self.version,
        )


class ApprovalStepModel(Base):
    """One chain level of a submitted request."""

    __tablename__ = "approval_steps"

    __table_args__ = (
        UniqueConstraint("request_id", "level", name="uq_approval_steps_level"),
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="ck_approval_steps_valid_status",
        ),
        Index("ix_approval_steps_approver", "approver_id", "status"),
    )

    request_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("approval_requests.request_id"),
        nullable=False,
    )
    level: Mapped[int] = mapped_column(nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    roles: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    approver_id: Mapped[int | None] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    decided_at: Mapped[datetime | None] = mapped_column(nullable=True)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)

    request: Mapped["ApprovalRequestModel"] = relationship(
        "ApprovalRequestModel",
        back_populates="steps",
        foreign_keys=[request_id],
        primaryjoin="ApprovalStepModel.request_id == ApprovalRequestModel.request_id",
    )

    def __repr__(self) -> str:
        return (
            f"<ApprovalStep level={self.level} approver={self.approver_id} "
            f"status={self.status}>"
        )

    def to_dto(self) -> ApprovalStep:
        from approval_kernel.domain.approval import (
            ApprovalStep as ApprovalStepDTO,
            StepStatus,
            parse_roles,
        )

        return ApprovalStepDTO(
            level=self.level,
            name=self.name,
            roles=parse_roles(self.roles),
            approver_id=self.approver_id,
            status=StepStatus(self.status),
            decided_at=self.decided_at,
            comments=self.comments,
        )


class ApprovalHistoryModel(Base):
    """Persistent history entry. Append-only."""

    __tablename__ = "approval_history"

    __table_args__ = (
        UniqueConstraint("request_id", "sequence", name="uq_approval_history_sequence"),
        CheckConstraint(
            "action IN ('approved', 'rejected')",
            name="ck_approval_history_valid_action",
        ),
    )

    request_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("approval_requests.request_id"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(nullable=False)
    level: Mapped[int] = mapped_column(nullable=False)
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    actor_id: Mapped[int] = mapped_column(nullable=False)
    actor_name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(nullable=False)

    request: Mapped["ApprovalRequestModel"] = relationship(
        "ApprovalRequestModel",
        back_populates="history",
        foreign_keys=[request_id],
        primaryjoin="ApprovalHistoryModel.request_id == ApprovalRequestModel.request_id",
    )

    def __repr__(self) -> str:
        return (
            f"<ApprovalHistory #{self.sequence} level={self.level} "
            f"{self.action} by={self.actor_id}>"
        )

    def to_dto(self) -> HistoryEntry:
        from approval_kernel.domain.approval import (
            HistoryAction,
            HistoryEntry as HistoryEntryDTO,
        )

        return HistoryEntryDTO(
            level=self.level,
            action=HistoryAction(self.action),
            actor_id=self.actor_id,
            actor_name=self.actor_name,
            comment=self.comment,
            timestamp=self.timestamp,
        )


# =============================================================================
# ORM-Level Immutability
# =============================================================================


@event.listens_for(ApprovalRequestModel, "before_update")
def prevent_terminal_request_update(mapper, connection, target):
    """Refuse changes to a request whose stored status is terminal."""
    history = inspect(target).attrs.status.history
    stored = history.deleted[0] if history.deleted else target.status
    if stored in _TERMINAL_STATUS_VALUES:
        raise ImmutabilityViolationError(
            entity_type="ApprovalRequest",
            entity_id=str(target.request_id),
            reason=f"request is {stored} -- terminal requests are frozen",
        )


@event.listens_for(ApprovalHistoryModel, "before_update")
def prevent_history_update(mapper, connection, target):
    """Prevent updates to approval history records."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalHistory",
        entity_id=str(target.id),
        reason="Approval history is append-only -- cannot modify",
    )


@event.listens_for(ApprovalHistoryModel, "before_delete")
def prevent_history_delete(mapper, connection, target):
    """Prevent deletion of approval history records."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalHistory",
        entity_id=str(target.id),
        reason="Approval history is append-only -- cannot delete",
    )
