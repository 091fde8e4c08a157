"""
Tests for Approval Domain Types (``approval_kernel.domain.approval``).

Covers the pure value objects of the multi-level approval engine: the
request lifecycle state machine, WorkflowState validation, the closed
role enumeration, identifier normalization and frozen DTOs.
"""

from dataclasses import FrozenInstanceError
from decimal import Decimal
from uuid import uuid4

import pytest

from approval_kernel.domain.approval import (
    ORG_UNIT_HEAD_MARKER,
    REQUEST_TRANSITIONS,
    TERMINAL_REQUEST_STATUSES,
    ApprovalRequest,
    ApprovalStep,
    ApproverResolution,
    ApproverRole,
    EngineSettings,
    RequestStatus,
    StepStatus,
    WorkflowState,
    as_user_id,
    can_transition,
    parse_roles,
    roles_label,
)


# =========================================================================
# RequestStatus / REQUEST_TRANSITIONS
# =========================================================================


class TestRequestStatus:
    """Tests for RequestStatus values."""

    def test_all_states_defined(self):
        assert {s.value for s in RequestStatus} == {
            "draft", "submitted", "pending", "approved",
            "rejected", "cancelled", "closed",
        }

    def test_str_enum_identity(self):
        assert RequestStatus.PENDING == "pending"


class TestRequestTransitions:
    """Tests for the REQUEST_TRANSITIONS state machine dict."""

    def test_every_status_has_transition_entry(self):
        for status in RequestStatus:
            assert status in REQUEST_TRANSITIONS

    def test_terminal_states_have_no_outgoing_edges(self):
        for status in TERMINAL_REQUEST_STATUSES:
            assert REQUEST_TRANSITIONS[status] == frozenset()

    def test_terminal_set(self):
        assert TERMINAL_REQUEST_STATUSES == {
            RequestStatus.APPROVED,
            RequestStatus.REJECTED,
            RequestStatus.CANCELLED,
            RequestStatus.CLOSED,
        }

    def test_happy_path_edges(self):
        assert can_transition(RequestStatus.DRAFT, RequestStatus.SUBMITTED)
        assert can_transition(RequestStatus.SUBMITTED, RequestStatus.PENDING)
        assert can_transition(RequestStatus.PENDING, RequestStatus.PENDING)
        assert can_transition(RequestStatus.PENDING, RequestStatus.APPROVED)

    def test_rejection_only_from_pending(self):
        assert can_transition(RequestStatus.PENDING, RequestStatus.REJECTED)
        assert not can_transition(RequestStatus.DRAFT, RequestStatus.REJECTED)
        assert not can_transition(RequestStatus.SUBMITTED, RequestStatus.REJECTED)

    def test_draft_cannot_skip_to_approved(self):
        assert not can_transition(RequestStatus.DRAFT, RequestStatus.APPROVED)

    @pytest.mark.parametrize("status", [
        RequestStatus.DRAFT, RequestStatus.SUBMITTED, RequestStatus.PENDING,
    ])
    def test_cancel_and_close_from_non_terminal(self, status):
        assert can_transition(status, RequestStatus.CANCELLED)
        assert can_transition(status, RequestStatus.CLOSED)

    def test_nothing_leaves_approved(self):
        for target in RequestStatus:
            assert not can_transition(RequestStatus.APPROVED, target)


# =========================================================================
# WorkflowState
# =========================================================================


class TestWorkflowState:
    """PendingLevel(n) exists only for 1 <= n <= required_levels."""

    def test_pending_level_label(self):
        state = WorkflowState.pending_level(2, 5)
        assert state.is_pending
        assert state.label == "pending_level_2"

    def test_level_above_required_is_unrepresentable(self):
        with pytest.raises(ValueError):
            WorkflowState.pending_level(6, 5)

    def test_level_zero_is_unrepresentable_while_pending(self):
        with pytest.raises(ValueError):
            WorkflowState(RequestStatus.PENDING, 0, 5)

    def test_draft_must_be_level_zero(self):
        with pytest.raises(ValueError):
            WorkflowState(RequestStatus.DRAFT, 1, 0)

    def test_terminal_label_is_status(self):
        state = WorkflowState(RequestStatus.REJECTED, 2, 5)
        assert state.is_terminal
        assert state.label == "rejected"


# =========================================================================
# Identifiers and roles
# =========================================================================


class TestAsUserId:
    def test_int_passthrough(self):
        assert as_user_id(7) == 7

    def test_digit_string_normalized(self):
        assert as_user_id("7") == 7
        assert as_user_id(" 12 ") == 12

    @pytest.mark.parametrize("value", [True, 7.0, "seven", None, "-3", uuid4()])
    def test_rejects_other_types(self, value):
        with pytest.raises(TypeError):
            as_user_id(value)


class TestRoles:
    def test_marker_is_dedicated_role(self):
        assert ORG_UNIT_HEAD_MARKER is ApproverRole.ORG_UNIT_HEAD
        assert ORG_UNIT_HEAD_MARKER is not ApproverRole.DEPT_HEAD

    def test_parse_roles_deduplicates_in_order(self):
        roles = parse_roles(["managing_director", "deputy_managing_director", "managing_director"])
        assert roles == (
            ApproverRole.MANAGING_DIRECTOR,
            ApproverRole.DEPUTY_MANAGING_DIRECTOR,
        )

    def test_parse_single_role(self):
        assert parse_roles("po_officer") == (ApproverRole.PO_OFFICER,)

    def test_unknown_role_rejected(self):
        with pytest.raises(ValueError):
            parse_roles(["janitor"])

    def test_roles_label(self):
        label = roles_label(
            (ApproverRole.MANAGING_DIRECTOR, ApproverRole.DEPUTY_MANAGING_DIRECTOR),
        )
        assert label == "managing_director / deputy_managing_director"


# =========================================================================
# DTOs
# =========================================================================


class TestApprovalRequestDTO:
    def _request(self, **overrides):
        fields = dict(
            request_id=uuid4(),
            tenant_id=1,
            requester_id=5,
            org_unit_id=100,
            amount=Decimal("10000"),
            status=RequestStatus.PENDING,
            current_level=2,
            required_levels=3,
            steps=(
                ApprovalStep(1, "Head", (ApproverRole.DEPT_HEAD,), 7, StepStatus.APPROVED),
                ApprovalStep(2, "Officer", (ApproverRole.PO_OFFICER,), 12),
                ApprovalStep(3, "MD", (ApproverRole.MANAGING_DIRECTOR,), 22),
            ),
        )
        fields.update(overrides)
        return ApprovalRequest(**fields)

    def test_current_step(self):
        request = self._request()
        assert request.current_step.approver_id == 12
        assert request.state.label == "pending_level_2"

    def test_no_current_step_when_not_pending(self):
        request = self._request(status=RequestStatus.APPROVED)
        assert request.current_step is None

    def test_frozen(self):
        request = self._request()
        with pytest.raises(FrozenInstanceError):
            request.status = RequestStatus.APPROVED


class TestEngineSettings:
    def test_defaults(self):
        settings = EngineSettings()
        assert settings.approver_resolution == ApproverResolution.EAGER
        assert settings.requester_fallback_for_missing_head is True
        assert settings.notifications_enabled is True
