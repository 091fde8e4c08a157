"""
Module: approval_kernel.selectors.policy_selector
Responsibility: Read access to approval-level policies by scope.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Scope is exact: ``tenant_id=None`` reads the global scope only;
      an integer reads that tenant's policies only.  Callers decide the
      fallback (PolicyResolver, PolicyService.list_policies).
    - Results are ordered by (level, min_amount, sort_order).
"""

from __future__ import annotations

from sqlalchemy import func, select

from approval_kernel.domain.policy import ApprovalLevelPolicy
from approval_kernel.models.policy import ApprovalLevelPolicyModel
from approval_kernel.selectors.base import BaseSelector


def _scope_filter(tenant_id: int | None):
    if tenant_id is None:
        return ApprovalLevelPolicyModel.tenant_id.is_(None)
    return ApprovalLevelPolicyModel.tenant_id == tenant_id


class PolicySelector(BaseSelector[ApprovalLevelPolicyModel]):
    """Read-only queries over approval_policies."""

    def for_scope(self, tenant_id: int | None) -> list[ApprovalLevelPolicy]:
        """All policies of one scope, active or not."""
        stmt = (
            select(ApprovalLevelPolicyModel)
            .where(_scope_filter(tenant_id))
            .order_by(
                ApprovalLevelPolicyModel.level,
                ApprovalLevelPolicyModel.min_amount,
                ApprovalLevelPolicyModel.sort_order,
            )
        )
        return [m.to_dto() for m in self.session.scalars(stmt).all()]

    def active_for_scope(self, tenant_id: int | None) -> list[ApprovalLevelPolicy]:
        stmt = (
            select(ApprovalLevelPolicyModel)
            .where(
                _scope_filter(tenant_id),
                ApprovalLevelPolicyModel.active.is_(True),
            )
            .order_by(
                ApprovalLevelPolicyModel.level,
                ApprovalLevelPolicyModel.min_amount,
                ApprovalLevelPolicyModel.sort_order,
            )
        )
        return [m.to_dto() for m in self.session.scalars(stmt).all()]

    def count_for_scope(self, tenant_id: int | None) -> int:
        stmt = select(func.count(ApprovalLevelPolicyModel.id)).where(
            _scope_filter(tenant_id),
        )
        return self.session.scalar(stmt) or 0

    def tenant_has_active(self, tenant_id: int) -> bool:
        """True iff the tenant owns at least one active policy."""
        stmt = (
            select(ApprovalLevelPolicyModel.id)
            .where(
                ApprovalLevelPolicyModel.tenant_id == tenant_id,
                ApprovalLevelPolicyModel.active.is_(True),
            )
            .limit(1)
        )
        return self.session.scalar(stmt) is not None
