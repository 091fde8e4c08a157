"""
Pure domain layer.

Value objects and pure functions with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Time/clock (beyond the injectable Clock interface)
- I/O

All domain objects are immutable and deterministic.
"""

from approval_kernel.domain.approval import (
    ORG_UNIT_HEAD_MARKER,
    REQUEST_TRANSITIONS,
    TERMINAL_REQUEST_STATUSES,
    ApprovalRequest,
    ApprovalStep,
    ApproverResolution,
    ApproverRole,
    Directory,
    DirectoryUser,
    EngineSettings,
    HistoryAction,
    HistoryEntry,
    NotificationEvent,
    Notifier,
    RequestStatus,
    StepStatus,
    SubmitResult,
    TransitionResult,
    WorkflowState,
    as_user_id,
    uses_org_unit_head,
)
from approval_kernel.domain.chain import (
    ChainLevel,
    EffectiveChain,
    build_effective_chain,
)
from approval_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from approval_kernel.domain.policy import ApprovalLevelPolicy, to_amount

__all__ = [
    "ApprovalLevelPolicy",
    "ApprovalRequest",
    "ApprovalStep",
    "ApproverResolution",
    "ApproverRole",
    "ChainLevel",
    "Clock",
    "DeterministicClock",
    "Directory",
    "DirectoryUser",
    "EngineSettings",
    "EffectiveChain",
    "HistoryAction",
    "HistoryEntry",
    "NotificationEvent",
    "Notifier",
    "ORG_UNIT_HEAD_MARKER",
    "REQUEST_TRANSITIONS",
    "RequestStatus",
    "StepStatus",
    "SubmitResult",
    "SystemClock",
    "TERMINAL_REQUEST_STATUSES",
    "TransitionResult",
    "WorkflowState",
    "as_user_id",
    "build_effective_chain",
    "to_amount",
    "uses_org_unit_head",
]
