"""
Module: approval_kernel.models.directory
Responsibility: Minimal identity directory: users (with one role each) and
    organizational units (with an optional head).  Backs SqlDirectory so
    the engine can run stand-alone; deployments with an external identity
    service implement the Directory protocol instead.

Architecture position: Kernel > Models.  Imports db/base.py only.

Invariants enforced:
    - user_id and org_unit_id are unique integer business keys.
    - role, when set, is one of the ApproverRole values (checked on DTO
      conversion; unknown roles surface as ValueError).
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from approval_kernel.db.base import Base

if TYPE_CHECKING:
    from approval_kernel.domain.approval import DirectoryUser


class OrgUnitModel(Base):
    """Organizational unit (department) of a tenant."""

    __tablename__ = "org_units"

    __table_args__ = (
        Index("ix_org_units_tenant_code", "tenant_id", "code", unique=True),
    )

    org_unit_id: Mapped[int] = mapped_column(nullable=False, unique=True)
    tenant_id: Mapped[int] = mapped_column(nullable=False)
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    head_id: Mapped[int | None] = mapped_column(
        ForeignKey("directory_users.user_id"),
        nullable=True,
    )
    active: Mapped[bool] = mapped_column(nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<OrgUnit {self.org_unit_id} {self.code} head={self.head_id}>"


class DirectoryUserModel(Base):
    """A user as known to the directory."""

    __tablename__ = "directory_users"

    __table_args__ = (
        Index("ix_directory_users_tenant_role", "tenant_id", "role", "active"),
    )

    user_id: Mapped[int] = mapped_column(nullable=False, unique=True)
    tenant_id: Mapped[int] = mapped_column(nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    role: Mapped[str | None] = mapped_column(String(50), nullable=True)
    org_unit_id: Mapped[int | None] = mapped_column(nullable=True)
    active: Mapped[bool] = mapped_column(nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        nullable=False, server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<DirectoryUser {self.user_id} {self.name} role={self.role}>"

    def to_dto(self) -> DirectoryUser:
        from approval_kernel.domain.approval import ApproverRole
        from approval_kernel.domain.approval import DirectoryUser as DirectoryUserDTO

        return DirectoryUserDTO(
            user_id=self.user_id,
            tenant_id=self.tenant_id,
            name=self.name,
            role=ApproverRole(self.role) if self.role else None,
            org_unit_id=self.org_unit_id,
            active=self.active,
        )
