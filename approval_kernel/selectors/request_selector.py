"""
Module: approval_kernel.selectors.request_selector
Responsibility: Read-only query access to approval requests, their steps
    and history.  Returns frozen ApprovalRequest DTOs.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Read-only: no locks are taken; the engine loads with FOR UPDATE
      when it intends to write.
    - "Pending for approver" means the request is pending AND its step at
      current_level is pending AND assigned to the user.  An approver of a
      later level does not see the request until it reaches that level.

Failure modes:
    - get() returns None for unknown ids; it never raises on absence.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import and_, select

from approval_kernel.domain.approval import ApprovalRequest, RequestStatus, as_user_id
from approval_kernel.models.request import ApprovalRequestModel, ApprovalStepModel
from approval_kernel.selectors.base import BaseSelector


class RequestSelector(BaseSelector[ApprovalRequestModel]):
    """Read-only queries over approval_requests."""

    def get(self, request_id: UUID) -> ApprovalRequest | None:
        model = self.session.scalars(
            select(ApprovalRequestModel).where(
                ApprovalRequestModel.request_id == request_id,
            )
        ).one_or_none()
        return model.to_dto() if model is not None else None

    def pending_for_approver(
        self,
        actor_id: int | str,
        tenant_id: int | None = None,
    ) -> list[ApprovalRequest]:
        """Requests currently waiting on ``actor_id``, oldest submission first."""
        actor = as_user_id(actor_id)
        stmt = (
            select(ApprovalRequestModel)
            .join(
                ApprovalStepModel,
                and_(
                    ApprovalStepModel.request_id == ApprovalRequestModel.request_id,
                    ApprovalStepModel.level == ApprovalRequestModel.current_level,
                ),
            )
            .where(
                ApprovalRequestModel.status == RequestStatus.PENDING.value,
                ApprovalStepModel.status == "pending",
                ApprovalStepModel.approver_id == actor,
            )
            .order_by(ApprovalRequestModel.submitted_at, ApprovalRequestModel.id)
        )
        if tenant_id is not None:
            stmt = stmt.where(ApprovalRequestModel.tenant_id == tenant_id)
        return [m.to_dto() for m in self.session.scalars(stmt).all()]

    def by_requester(
        self,
        requester_id: int | str,
        status: RequestStatus | None = None,
    ) -> list[ApprovalRequest]:
        stmt = (
            select(ApprovalRequestModel)
            .where(ApprovalRequestModel.requester_id == as_user_id(requester_id))
            .order_by(ApprovalRequestModel.created_at, ApprovalRequestModel.id)
        )
        if status is not None:
            stmt = stmt.where(ApprovalRequestModel.status == status.value)
        return [m.to_dto() for m in self.session.scalars(stmt).all()]

    def by_status(
        self,
        tenant_id: int,
        status: RequestStatus,
    ) -> list[ApprovalRequest]:
        stmt = (
            select(ApprovalRequestModel)
            .where(
                ApprovalRequestModel.tenant_id == tenant_id,
                ApprovalRequestModel.status == status.value,
            )
            .order_by(ApprovalRequestModel.created_at, ApprovalRequestModel.id)
        )
        return [m.to_dto() for m in self.session.scalars(stmt).all()]
