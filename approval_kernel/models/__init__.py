"""SQLAlchemy ORM models for the approval kernel."""

from approval_kernel.models.directory import DirectoryUserModel, OrgUnitModel
from approval_kernel.models.notification import NotificationModel
from approval_kernel.models.policy import ApprovalLevelPolicyModel
from approval_kernel.models.request import (
    ApprovalHistoryModel,
    ApprovalRequestModel,
    ApprovalStepModel,
)

__all__ = [
    "ApprovalHistoryModel",
    "ApprovalLevelPolicyModel",
    "ApprovalRequestModel",
    "ApprovalStepModel",
    "DirectoryUserModel",
    "NotificationModel",
    "OrgUnitModel",
]
