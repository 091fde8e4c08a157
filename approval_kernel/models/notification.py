"""
Module: approval_kernel.models.notification
Responsibility: In-app notification records written by InAppNotifier.

Architecture position: Kernel > Models.  Imports db/base.py only.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from approval_kernel.db.base import Base, UUIDString


class NotificationModel(Base):
    """One notification addressed to a user."""

    __tablename__ = "notifications"

    __table_args__ = (
        Index("ix_notifications_user_unread", "user_id", "read_at"),
    )

    user_id: Mapped[int] = mapped_column(nullable=False)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    related_request_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    read_at: Mapped[datetime | None] = mapped_column(nullable=True)

    @property
    def is_read(self) -> bool:
        return self.read_at is not None

    def __repr__(self) -> str:
        return f"<Notification {self.type} user={self.user_id} read={self.is_read}>"
