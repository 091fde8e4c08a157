"""
approval_kernel.services.approval_engine -- Multi-level approval state machine.

Responsibility:
    Submits a request into its effective chain, validates and applies
    approve/reject actions, advances levels, finalizes, and appends the
    history.  Also owns the request-store side of the lifecycle (draft
    creation, cancel, close).

Architecture position:
    Kernel > Services.  May import from domain/, models/, selectors/ and
    sibling services.  Never commits: the caller owns the transaction and
    notifications are released by the session outbox after commit.

Invariants enforced:
    - Lifecycle: only REQUEST_TRANSITIONS edges are applied; terminal
      requests are never mutated (service check + ORM listener).
    - Authorization: only the assigned approver of the current level may
      approve or reject, compared as ``int == int``.
    - Atomicity per request: the row is loaded with SELECT ... FOR UPDATE
      and fresh state, and the optimistic ``version`` counter turns a lost
      race into InvalidTransitionError at flush.
    - All checks run before the first mutation, so a failed call leaves
      level, steps and history untouched.
    - History length equals the number of applied approve/reject actions.

Failure modes:
    - ApprovalRequestNotFoundError: unknown request id.
    - InvalidTransitionError: wrong status, stale expected_level, lost race.
    - UnauthorizedApproverError: actor is not the current approver.
    - ApproverUnresolvedError: a level has no approver (submit or advance).
    - NoMatchingPoliciesError / NonContiguousLevelsError: chain unresolvable.
    - InvalidRejectionReasonError: reject without a reason.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from approval_kernel.domain.approval import (
    ApprovalRequest,
    Directory,
    EngineSettings,
    ApproverResolution,
    HistoryAction,
    NotificationEvent,
    Notifier,
    RequestStatus,
    StepStatus,
    SubmitResult,
    TransitionResult,
    WorkflowState,
    as_user_id,
    can_transition,
    parse_roles,
)
from approval_kernel.domain.chain import EffectiveChain
from approval_kernel.domain.clock import Clock
from approval_kernel.domain.policy import to_amount
from approval_kernel.exceptions import (
    ApprovalRequestNotFoundError,
    InvalidRejectionReasonError,
    InvalidTransitionError,
    UnauthorizedApproverError,
)
from approval_kernel.logging_config import LogContext, get_logger
from approval_kernel.models.request import (
    ApprovalHistoryModel,
    ApprovalRequestModel,
    ApprovalStepModel,
)
from approval_kernel.services.approver_resolver import ApproverResolver
from approval_kernel.services.base import BaseService
from approval_kernel.services.notifications import NotificationOutbox
from approval_kernel.services.policy_resolver import PolicyResolver

logger = get_logger("services.approval_engine")


def _state(model: ApprovalRequestModel) -> WorkflowState:
    return WorkflowState(
        RequestStatus(model.status), model.current_level, model.required_levels,
    )


class ApprovalEngine(BaseService[ApprovalRequestModel]):
    """Drives approval requests through their effective chain."""

    def __init__(
        self,
        session: Session,
        directory: Directory,
        clock: Clock | None = None,
        settings: EngineSettings | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        super().__init__(session, clock)
        self._directory = directory
        self._settings = settings or EngineSettings()
        self._notifier = notifier
        self._policy_resolver = PolicyResolver(session)

    # =========================================================================
    # Request store side
    # =========================================================================

    def create_draft(
        self,
        tenant_id: int,
        requester_id: int | str,
        org_unit_id: int | None,
        amount: Any,
        reference: str | None = None,
    ) -> ApprovalRequest:
        """Register a request in Draft so it can be submitted."""
        model = ApprovalRequestModel(
            request_id=uuid4(),
            tenant_id=tenant_id,
            requester_id=as_user_id(requester_id),
            org_unit_id=org_unit_id,
            amount=to_amount(amount),
            reference=reference,
            status=RequestStatus.DRAFT.value,
            current_level=0,
            required_levels=0,
            created_at=self._clock.now(),
        )
        self.session.add(model)
        self.session.flush()

        logger.info(
            "approval_request_created",
            extra={
                "request_id": str(model.request_id),
                "tenant_id": tenant_id,
                "amount": model.amount,
            },
        )
        return model.to_dto()

    def get_request(self, request_id: UUID) -> ApprovalRequest:
        return self._load(request_id).to_dto()

    # =========================================================================
    # Chain
    # =========================================================================

    def preview_chain(self, tenant_id: int, amount: Any) -> EffectiveChain:
        """Effective chain for display before submission.  Read-only."""
        return self._policy_resolver.resolve_chain(tenant_id, amount)

    def submit(self, request_id: UUID) -> SubmitResult:
        """
        Enter a Draft request into its chain at level 1.

        In eager mode every level's approver is resolved here; in lazy mode
        only level 1, the rest as the request reaches them.

        Raises:
            InvalidTransitionError: request is not in Draft.
            NoMatchingPoliciesError / NonContiguousLevelsError.
            ApproverUnresolvedError: nothing is persisted.
        """
        model = self._load(request_id, for_update=True)
        with LogContext.bind(request_id=model.request_id, tenant_id=model.tenant_id):
            status = RequestStatus(model.status)
            if status != RequestStatus.DRAFT:
                raise InvalidTransitionError(
                    str(model.request_id), status.value, "submit",
                    "only draft requests can be submitted",
                )

            chain = self._policy_resolver.resolve_chain(model.tenant_id, model.amount)
            resolver = self._new_resolver()
            eager = self._settings.approver_resolution == ApproverResolution.EAGER
            approvers = resolver.resolve_chain_approvers(
                chain.levels if eager else chain.levels[:1],
                model.tenant_id,
                model.requester_id,
                model.org_unit_id,
            )

            # Draft -> Submitted -> PendingLevel(1)
            now = self._clock.now()
            for chain_level in chain:
                model.steps.append(
                    ApprovalStepModel(
                        request_id=model.request_id,
                        level=chain_level.level,
                        name=chain_level.name,
                        roles=[r.value for r in chain_level.roles],
                        approver_id=approvers.get(chain_level.level),
                        status=StepStatus.PENDING.value,
                    )
                )
            model.required_levels = len(chain)
            model.current_level = 1
            model.status = RequestStatus.PENDING.value
            model.submitted_at = now
            self._flush(model, "submit")

            first_approver = approvers[1]
            self._queue(
                first_approver, NotificationEvent.APPROVAL_NEEDED, model, level=1,
            )
            logger.info(
                "approval_submitted",
                extra={
                    "scope": chain.scope,
                    "required_levels": len(chain),
                    "first_approver_id": first_approver,
                    "approver_resolution": self._settings.approver_resolution.value,
                },
            )
            return SubmitResult(
                request=model.to_dto(),
                required_levels=len(chain),
                first_approver_id=first_approver,
            )

    # =========================================================================
    # Decisions
    # =========================================================================

    def can_approve(self, request_id: UUID, actor_id: int | str) -> bool:
        """True iff ``actor_id`` is the pending approver of the current level."""
        model = self._load(request_id)
        if model.status != RequestStatus.PENDING.value:
            return False
        step = model.step_for(model.current_level)
        return (
            step is not None
            and step.status == StepStatus.PENDING.value
            and step.approver_id is not None
            and step.approver_id == as_user_id(actor_id)
        )

    def approve(
        self,
        request_id: UUID,
        actor_id: int | str,
        comments: str | None = None,
        expected_level: int | None = None,
    ) -> TransitionResult:
        """
        Approve the current level; advance or finalize.

        ``expected_level`` is the level the caller saw.  When it no longer
        matches, the call fails instead of approving a different level.
        Without it, a repeated or raced call from an actor who is also the
        approver of the next level approves that level too.  An actor who
        decided an earlier level but is not the current approver gets
        InvalidTransitionError rather than UnauthorizedApproverError.
        """
        actor = as_user_id(actor_id)
        model = self._load(request_id, for_update=True)
        with LogContext.bind(
            request_id=model.request_id, actor_id=actor, tenant_id=model.tenant_id,
        ):
            step = self._check_decision(model, actor, "approve", expected_level)
            actor_name = self._actor_name(actor)
            level = model.current_level
            previous = _state(model)
            completed = level == model.required_levels

            next_step = None
            next_approver = None
            if not completed:
                next_step = model.step_for(level + 1)
                next_approver = next_step.approver_id
                if next_approver is None:
                    next_approver = self._resolve_step(model, next_step)

            now = self._clock.now()
            step.status = StepStatus.APPROVED.value
            step.decided_at = now
            step.comments = comments
            self._append_history(
                model, level, HistoryAction.APPROVED, actor, actor_name, comments, now,
            )

            if completed:
                model.status = RequestStatus.APPROVED.value
                model.final_approved_at = now
                model.final_approved_by = actor
            else:
                next_step.approver_id = next_approver
                model.current_level = level + 1
            self._flush(model, "approve")

            if completed:
                self._queue(
                    model.requester_id, NotificationEvent.APPROVAL_COMPLETED,
                    model, level=level,
                )
                logger.info(
                    "approval_completed",
                    extra={"approval_level": level, "required_levels": model.required_levels},
                )
            else:
                self._queue(
                    next_approver, NotificationEvent.APPROVAL_NEEDED,
                    model, level=level + 1,
                )
                logger.info(
                    "approval_level_approved",
                    extra={"approval_level": level, "next_approver_id": next_approver},
                )

            return TransitionResult(
                request=model.to_dto(),
                action=HistoryAction.APPROVED.value,
                level=level,
                previous_state=previous.label,
                new_state=_state(model).label,
                completed=completed,
                next_approver_id=next_approver,
            )

    def reject(
        self,
        request_id: UUID,
        actor_id: int | str,
        reason: str,
        expected_level: int | None = None,
    ) -> TransitionResult:
        """Reject at the current level.  Terminal."""
        actor = as_user_id(actor_id)
        if reason is None or not str(reason).strip():
            raise InvalidRejectionReasonError(str(request_id))

        model = self._load(request_id, for_update=True)
        with LogContext.bind(
            request_id=model.request_id, actor_id=actor, tenant_id=model.tenant_id,
        ):
            step = self._check_decision(model, actor, "reject", expected_level)
            actor_name = self._actor_name(actor)
            level = model.current_level
            previous = _state(model)

            now = self._clock.now()
            step.status = StepStatus.REJECTED.value
            step.decided_at = now
            step.comments = reason
            self._append_history(
                model, level, HistoryAction.REJECTED, actor, actor_name, reason, now,
            )

            model.status = RequestStatus.REJECTED.value
            model.rejection_reason = reason
            model.rejected_at = now
            model.rejected_by = actor
            self._flush(model, "reject")

            self._queue(
                model.requester_id, NotificationEvent.APPROVAL_REJECTED,
                model, level=level, reason=reason,
            )
            logger.info("approval_rejected", extra={"approval_level": level})

            return TransitionResult(
                request=model.to_dto(),
                action=HistoryAction.REJECTED.value,
                level=level,
                previous_state=previous.label,
                new_state=_state(model).label,
                completed=True,
            )

    # =========================================================================
    # External termination
    # =========================================================================

    def cancel(
        self,
        request_id: UUID,
        actor_id: int | str,
        reason: str | None = None,
    ) -> TransitionResult:
        """Cancel a non-terminal request.  Steps and history are left as-is."""
        actor = as_user_id(actor_id)
        model = self._load(request_id, for_update=True)
        with LogContext.bind(
            request_id=model.request_id, actor_id=actor, tenant_id=model.tenant_id,
        ):
            previous = self._check_terminate(model, RequestStatus.CANCELLED, "cancel")
            model.status = RequestStatus.CANCELLED.value
            model.cancelled_at = self._clock.now()
            model.cancelled_by = actor
            self._flush(model, "cancel")

            self._queue(
                model.requester_id, NotificationEvent.REQUEST_CANCELLED,
                model, level=model.current_level, reason=reason,
            )
            logger.info(
                "approval_request_cancelled",
                extra={"previous_state": previous.label, "reason": reason},
            )
            return TransitionResult(
                request=model.to_dto(),
                action="cancelled",
                level=model.current_level,
                previous_state=previous.label,
                new_state=RequestStatus.CANCELLED.value,
                completed=True,
            )

    def close(self, request_id: UUID, actor_id: int | str) -> TransitionResult:
        """Close a non-terminal request.  No notification is sent."""
        actor = as_user_id(actor_id)
        model = self._load(request_id, for_update=True)
        with LogContext.bind(
            request_id=model.request_id, actor_id=actor, tenant_id=model.tenant_id,
        ):
            previous = self._check_terminate(model, RequestStatus.CLOSED, "close")
            model.status = RequestStatus.CLOSED.value
            model.closed_at = self._clock.now()
            model.closed_by = actor
            self._flush(model, "close")

            logger.info(
                "approval_request_closed",
                extra={"previous_state": previous.label},
            )
            return TransitionResult(
                request=model.to_dto(),
                action="closed",
                level=model.current_level,
                previous_state=previous.label,
                new_state=RequestStatus.CLOSED.value,
                completed=True,
            )

    # =========================================================================
    # Internals
    # =========================================================================

    def _load(
        self,
        request_id: UUID,
        for_update: bool = False,
    ) -> ApprovalRequestModel:
        """Load by request_id; with ``for_update`` lock the row and refresh it."""
        stmt = select(ApprovalRequestModel).where(
            ApprovalRequestModel.request_id == request_id,
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        model = self.session.scalars(stmt).one_or_none()
        if model is None:
            raise ApprovalRequestNotFoundError(str(request_id))
        return model

    def _check_decision(
        self,
        model: ApprovalRequestModel,
        actor: int,
        action: str,
        expected_level: int | None,
    ) -> ApprovalStepModel:
        """Status, level and authority checks shared by approve and reject."""
        request_id = str(model.request_id)
        if model.status != RequestStatus.PENDING.value:
            raise InvalidTransitionError(request_id, model.status, action)

        if expected_level is not None and expected_level != model.current_level:
            raise InvalidTransitionError(
                request_id, _state(model).label, action,
                f"level {expected_level} is no longer current",
            )

        step = model.step_for(model.current_level)
        if (
            step is None
            or step.status != StepStatus.PENDING.value
            or step.approver_id != actor
        ):
            already_decided = any(
                s.level < model.current_level
                and s.approver_id == actor
                and s.status != StepStatus.PENDING.value
                for s in model.steps
            )
            if already_decided:
                raise InvalidTransitionError(
                    request_id, _state(model).label, action,
                    "actor already decided an earlier level",
                )
            logger.warning(
                "approval_unauthorized",
                extra={"approval_level": model.current_level, "action": action},
            )
            raise UnauthorizedApproverError(request_id, actor, model.current_level)
        return step

    def _check_terminate(
        self,
        model: ApprovalRequestModel,
        target: RequestStatus,
        action: str,
    ) -> WorkflowState:
        state = _state(model)
        if not can_transition(state.status, target):
            raise InvalidTransitionError(str(model.request_id), state.status.value, action)
        return state

    def _resolve_step(
        self,
        model: ApprovalRequestModel,
        step: ApprovalStepModel,
    ) -> int:
        resolver = self._new_resolver()
        roles = parse_roles(step.roles)
        approver = resolver.resolve_approver(
            step.level, roles, model.tenant_id, model.requester_id, model.org_unit_id,
        )
        if approver is None:
            raise resolver.unresolved(step.level, roles, model.tenant_id, model.org_unit_id)
        return approver

    def _new_resolver(self) -> ApproverResolver:
        return ApproverResolver(
            self._directory,
            requester_fallback_for_missing_head=(
                self._settings.requester_fallback_for_missing_head
            ),
        )

    def _actor_name(self, actor: int) -> str:
        # Must run before any mutation: the lookup autoflushes.
        user = self._directory.get_user(actor)
        return user.name if user is not None else ""

    def _append_history(
        self,
        model: ApprovalRequestModel,
        level: int,
        action: HistoryAction,
        actor: int,
        actor_name: str,
        comment: str | None,
        timestamp,
    ) -> None:
        model.history.append(
            ApprovalHistoryModel(
                request_id=model.request_id,
                sequence=len(model.history) + 1,
                level=level,
                action=action.value,
                actor_id=actor,
                actor_name=actor_name,
                comment=comment,
                timestamp=timestamp,
            )
        )

    def _flush(self, model: ApprovalRequestModel, action: str) -> None:
        # a failed flush rolls the session back and expires the model
        request_id, status = str(model.request_id), model.status
        try:
            self.session.flush()
        except StaleDataError as exc:
            logger.warning("approval_concurrent_modification", extra={"action": action})
            raise InvalidTransitionError(
                request_id, status, action,
                "request was modified concurrently",
            ) from exc

    def _queue(
        self,
        user_id: int,
        event_type: NotificationEvent,
        model: ApprovalRequestModel,
        **extra: Any,
    ) -> None:
        if self._notifier is None or not self._settings.notifications_enabled:
            return
        payload = {
            "request_id": str(model.request_id),
            "tenant_id": model.tenant_id,
            "requester_id": model.requester_id,
            "amount": str(model.amount),
            "reference": model.reference,
            "status": model.status,
            **extra,
        }
        NotificationOutbox.for_session(self.session).queue(
            self._notifier, user_id, event_type.value, payload,
        )
