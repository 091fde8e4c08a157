"""Services for the approval kernel (write side)."""

from approval_kernel.services.approval_engine import ApprovalEngine
from approval_kernel.services.approver_resolver import ApproverResolver
from approval_kernel.services.directory import SqlDirectory
from approval_kernel.services.notifications import (
    CompositeNotifier,
    InAppNotifier,
    LoggingNotifier,
    NotificationOutbox,
)
from approval_kernel.services.policy_resolver import PolicyResolver
from approval_kernel.services.policy_service import PolicyService

__all__ = [
    "ApprovalEngine",
    "ApproverResolver",
    "CompositeNotifier",
    "InAppNotifier",
    "LoggingNotifier",
    "NotificationOutbox",
    "PolicyResolver",
    "PolicyService",
    "SqlDirectory",
]
