"""
Module: approval_kernel.models.policy
Responsibility: ORM persistence for approval-level policies.

Architecture position: Kernel > Models.  May import from db/base.py and
    domain value objects (for DTO conversion) only.

Invariants enforced:
    - Active levels are unique per scope.  For tenant scopes a partial
      unique index backs the service-level check; for the global scope
      (tenant_id IS NULL, which unique indexes treat as distinct) the
      service check is the only guard.
    - roles is a non-empty JSON list of role identifiers.
    - min_amount >= 0; max_amount NULL means no upper limit.

Failure modes:
    - IntegrityError on a second active policy for the same tenant/level.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import JSON, CheckConstraint, Index, String, func, text
from sqlalchemy.orm import Mapped, mapped_column

from approval_kernel.db.base import Base

if TYPE_CHECKING:
    from approval_kernel.domain.policy import ApprovalLevelPolicy


class ApprovalLevelPolicyModel(Base):
    """Persistent approval-level policy, tenant-scoped or global."""

    __tablename__ = "approval_policies"

    __table_args__ = (
        CheckConstraint("level >= 1", name="ck_approval_policies_level"),
        CheckConstraint("min_amount >= 0", name="ck_approval_policies_min_amount"),
        CheckConstraint(
            "max_amount IS NULL OR max_amount >= min_amount",
            name="ck_approval_policies_amount_range",
        ),
        Index(
            "ix_approval_policies_active_level_unique",
            "tenant_id", "level",
            unique=True,
            postgresql_where=text("active"),
            sqlite_where=text("active = 1"),
        ),
        Index("ix_approval_policies_scope", "tenant_id", "active", "level"),
    )

    tenant_id: Mapped[int | None] = mapped_column(nullable=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    level: Mapped[int] = mapped_column(nullable=False)
    min_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    max_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    roles: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    active: Mapped[bool] = mapped_column(nullable=False, default=True)
    sort_order: Mapped[int] = mapped_column(nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        nullable=False, server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False, server_default=func.now(), onupdate=func.now(),
    )

    def __repr__(self) -> str:
        scope = "global" if self.tenant_id is None else f"tenant={self.tenant_id}"
        return (
            f"<ApprovalLevelPolicy {scope} level={self.level} "
            f"roles={self.roles} active={self.active}>"
        )

    def to_dto(self) -> ApprovalLevelPolicy:
        """Convert ORM model to frozen domain DTO."""
        from approval_kernel.domain.approval import parse_roles
        from approval_kernel.domain.policy import ApprovalLevelPolicy

        return ApprovalLevelPolicy(
            policy_id=self.id,
            tenant_id=self.tenant_id,
            level=self.level,
            name=self.name,
            roles=parse_roles(self.roles),
            min_amount=Decimal(self.min_amount),
            max_amount=(
                Decimal(self.max_amount) if self.max_amount is not None else None
            ),
            active=self.active,
            sort_order=self.sort_order,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
