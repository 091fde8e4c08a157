"""
SqlDirectory -- Directory protocol backed by the directory tables.

Responsibility:
    Answers approver-resolution lookups (users by role, org-unit heads,
    single users) from ``directory_users`` and ``org_units``, and lists the
    roles in use for policy administration.

Architecture position:
    Kernel > Services.  Read-only: it never flushes.  Deployments with an
    external identity service provide their own Directory implementation.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from approval_kernel.domain.approval import ApproverRole, DirectoryUser
from approval_kernel.models.directory import DirectoryUserModel, OrgUnitModel


class SqlDirectory:
    """SQL implementation of the Directory protocol."""

    def __init__(self, session: Session):
        self.session = session

    def list_active_users_by_role(
        self,
        tenant_id: int,
        roles: tuple[ApproverRole, ...],
    ) -> list[int]:
        if not roles:
            return []
        stmt = (
            select(DirectoryUserModel.user_id)
            .where(
                DirectoryUserModel.tenant_id == tenant_id,
                DirectoryUserModel.active.is_(True),
                DirectoryUserModel.role.in_([r.value for r in roles]),
            )
            .order_by(DirectoryUserModel.user_id)
        )
        return list(self.session.scalars(stmt).all())

    def get_org_unit_head(self, org_unit_id: int) -> int | None:
        stmt = select(OrgUnitModel.head_id).where(
            OrgUnitModel.org_unit_id == org_unit_id,
            OrgUnitModel.active.is_(True),
        )
        return self.session.scalar(stmt)

    def get_user(self, user_id: int) -> DirectoryUser | None:
        model = self.session.scalars(
            select(DirectoryUserModel).where(DirectoryUserModel.user_id == user_id)
        ).one_or_none()
        return model.to_dto() if model is not None else None

    def available_roles(self, tenant_id: int) -> list[ApproverRole]:
        """Distinct roles held by active users of the tenant, sorted by value."""
        stmt = (
            select(DirectoryUserModel.role)
            .where(
                DirectoryUserModel.tenant_id == tenant_id,
                DirectoryUserModel.active.is_(True),
                DirectoryUserModel.role.is_not(None),
            )
            .distinct()
            .order_by(DirectoryUserModel.role)
        )
        return [ApproverRole(value) for value in self.session.scalars(stmt).all()]
