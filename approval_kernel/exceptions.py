"""
Typed Exception Hierarchy for the Approval Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

An approval workflow fails for very different reasons: a tenant has no
policy covering the amount, a role has nobody holding it, the wrong user
clicked "approve", or two users clicked at the same time.  The caller (a
request-handling layer) must tell these apart without parsing messages.

Every exception here:
  1. Has a TYPED class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes

Example:
    try:
        engine.approve(request_id, actor_id)
    except UnauthorizedApproverError as e:
        api_response(403, code=e.code, level=e.level)
    except InvalidTransitionError as e:
        api_response(409, code=e.code, status=e.current_status)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ApprovalKernelError (base)
    |
    +-- PolicyError
    |   +-- PolicyResolutionError
    |   |   +-- NoMatchingPoliciesError
    |   |   +-- NonContiguousLevelsError
    |   +-- PolicyNotFoundError
    |   +-- InvalidPolicyError
    |   +-- DuplicateActiveLevelError
    |   +-- TenantAlreadyCustomizedError
    |   +-- PolicyScopeViolationError
    |
    +-- WorkflowError
    |   +-- ApprovalRequestNotFoundError
    |   +-- ApproverUnresolvedError
    |   +-- UnauthorizedApproverError
    |   +-- InvalidTransitionError
    |   +-- InvalidAmountError
    |   +-- InvalidRejectionReasonError
    |
    +-- ImmutabilityViolationError
    +-- NotificationDeliveryError
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category   | Code                        | When Raised
-----------|-----------------------------|-------------------------------------------
Policy     | NO_MATCHING_POLICIES        | No active policy covers the amount
           | NON_CONTIGUOUS_LEVELS       | Matching levels have a gap / don't start at 1
           | POLICY_NOT_FOUND            | Policy ID doesn't exist
           | INVALID_POLICY              | Bad level, roles or amount range
           | DUPLICATE_ACTIVE_LEVEL      | Two active policies share a level in a scope
           | TENANT_ALREADY_CUSTOMIZED   | Copy of globals onto a customized tenant
           | POLICY_SCOPE_VIOLATION      | Tenant touching another scope's policy
-----------|-----------------------------|-------------------------------------------
Workflow   | APPROVAL_REQUEST_NOT_FOUND  | Request ID doesn't exist
           | APPROVER_UNRESOLVED         | No approver can be determined for a level
           | UNAUTHORIZED_APPROVER       | Actor is not the current level's approver
           | INVALID_TRANSITION          | Wrong state/level, terminal, or lost race
           | INVALID_AMOUNT              | Negative request amount
           | INVALID_REJECTION_REASON    | Rejection without a reason
-----------|-----------------------------|-------------------------------------------
Other      | IMMUTABILITY_VIOLATION      | Modifying history or a terminal request
           | NOTIFICATION_DELIVERY_FAILED| Logged only, never raised to callers
           | CONFIGURATION_ERROR         | Malformed approval configuration

===============================================================================
PROPAGATION
===============================================================================

Resolution and authorization errors go straight to the caller and are
never retried: they mean data or configuration needs a human fix.
NotificationDeliveryError is constructed at the dispatch boundary only to
be logged; it never escapes a transition.
"""


class ApprovalKernelError(Exception):
    """
    Base exception for all approval kernel errors.

    All subclasses must have a ``code`` class attribute for
    machine-readable error identification.
    """

    code: str = "APPROVAL_KERNEL_ERROR"


# Policy-related exceptions


class PolicyError(ApprovalKernelError):
    """Base exception for approval policy errors."""

    code: str = "POLICY_ERROR"


class PolicyResolutionError(PolicyError):
    """The effective chain for a (tenant, amount) pair cannot be built."""

    code: str = "POLICY_RESOLUTION_ERROR"


class NoMatchingPoliciesError(PolicyResolutionError):
    """No active policy in the selected scope covers the amount."""

    code: str = "NO_MATCHING_POLICIES"

    def __init__(self, tenant_id: int | None, amount: str, scope: str):
        self.tenant_id = tenant_id
        self.amount = amount
        self.scope = scope
        super().__init__(
            f"No active {scope} approval policy covers amount {amount} "
            f"for tenant {tenant_id}"
        )


class NonContiguousLevelsError(PolicyResolutionError):
    """Matching policy levels are not 1..n without gaps."""

    code: str = "NON_CONTIGUOUS_LEVELS"

    def __init__(self, tenant_id: int | None, levels: list[int], scope: str):
        self.tenant_id = tenant_id
        self.levels = levels
        self.scope = scope
        super().__init__(
            f"Approval levels {levels} in {scope} scope for tenant "
            f"{tenant_id} must be contiguous starting at 1"
        )


class PolicyNotFoundError(PolicyError):
    """Policy with given ID was not found."""

    code: str = "POLICY_NOT_FOUND"

    def __init__(self, policy_id: str):
        self.policy_id = policy_id
        super().__init__(f"Approval policy not found: {policy_id}")


class InvalidPolicyError(PolicyError):
    """Policy definition fails validation."""

    code: str = "INVALID_POLICY"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid approval policy {field}: {reason}")


class DuplicateActiveLevelError(PolicyError):
    """Another active policy in the same scope already owns this level."""

    code: str = "DUPLICATE_ACTIVE_LEVEL"

    def __init__(self, tenant_id: int | None, level: int):
        self.tenant_id = tenant_id
        self.level = level
        scope = "global" if tenant_id is None else f"tenant {tenant_id}"
        super().__init__(
            f"An active approval policy for level {level} already exists "
            f"in {scope} scope"
        )


class TenantAlreadyCustomizedError(PolicyError):
    """Global defaults cannot be copied onto a tenant that has policies."""

    code: str = "TENANT_ALREADY_CUSTOMIZED"

    def __init__(self, tenant_id: int, policy_count: int):
        self.tenant_id = tenant_id
        self.policy_count = policy_count
        super().__init__(
            f"Tenant {tenant_id} already has {policy_count} custom "
            "approval policies"
        )


class PolicyScopeViolationError(PolicyError):
    """A tenant tried to modify a policy outside its own scope."""

    code: str = "POLICY_SCOPE_VIOLATION"

    def __init__(
        self,
        policy_id: str,
        policy_tenant_id: int | None,
        acting_tenant_id: int | None,
    ):
        self.policy_id = policy_id
        self.policy_tenant_id = policy_tenant_id
        self.acting_tenant_id = acting_tenant_id
        super().__init__(
            f"Policy {policy_id} belongs to scope {policy_tenant_id}, "
            f"not {acting_tenant_id}"
        )


# Workflow-related exceptions


class WorkflowError(ApprovalKernelError):
    """Base exception for approval workflow errors."""

    code: str = "WORKFLOW_ERROR"


class ApprovalRequestNotFoundError(WorkflowError):
    """Approval request with given ID was not found."""

    code: str = "APPROVAL_REQUEST_NOT_FOUND"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Approval request not found: {request_id}")


class ApproverUnresolvedError(WorkflowError):
    """
    No approver can be determined for a chain level.

    Raised instead of silently skipping the level or assigning it to the
    requester.  The request is left exactly as it was.
    """

    code: str = "APPROVER_UNRESOLVED"

    def __init__(
        self,
        level: int,
        roles: tuple[str, ...],
        tenant_id: int,
        reason: str = "no active user holds a required role",
    ):
        self.level = level
        self.roles = roles
        self.tenant_id = tenant_id
        self.reason = reason
        super().__init__(
            f"Cannot resolve approver for level {level} "
            f"(roles {list(roles)}) in tenant {tenant_id}: {reason}"
        )


class UnauthorizedApproverError(WorkflowError):
    """Actor is not the assigned approver of the current level."""

    code: str = "UNAUTHORIZED_APPROVER"

    def __init__(self, request_id: str, actor_id: int, level: int):
        self.request_id = request_id
        self.actor_id = actor_id
        self.level = level
        super().__init__(
            f"User {actor_id} is not the approver for level {level} "
            f"of request {request_id}"
        )


class InvalidTransitionError(WorkflowError):
    """
    Action attempted against a request not in the expected state.

    Covers double submission, acting after a terminal state, and acting
    on a level that is no longer current because another call won.
    """

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        request_id: str,
        current_status: str,
        action: str,
        reason: str = "",
    ):
        self.request_id = request_id
        self.current_status = current_status
        self.action = action
        self.reason = reason
        message = (
            f"Cannot {action} request {request_id} in status {current_status}"
        )
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class InvalidAmountError(WorkflowError):
    """Request amount is negative or not a number."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, amount: str):
        self.amount = amount
        super().__init__(f"Invalid request amount: {amount}")


class InvalidRejectionReasonError(WorkflowError):
    """A rejection must state a reason."""

    code: str = "INVALID_REJECTION_REASON"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Rejection of request {request_id} requires a reason")


# Immutability-related exceptions


class ImmutabilityViolationError(ApprovalKernelError):
    """
    Attempted to modify or delete an immutable record.

    History rows are append-only; a request in a terminal status is
    frozen.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Cannot modify {entity_type} {entity_id}: {reason}")


# Side-channel exceptions


class NotificationDeliveryError(ApprovalKernelError):
    """A notification could not be delivered.  Logged, never raised."""

    code: str = "NOTIFICATION_DELIVERY_FAILED"

    def __init__(self, user_id: int, event_type: str, reason: str):
        self.user_id = user_id
        self.event_type = event_type
        self.reason = reason
        super().__init__(
            f"Failed to deliver {event_type} to user {user_id}: {reason}"
        )


class ConfigurationError(ApprovalKernelError):
    """Approval configuration is malformed."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Invalid approval configuration ({source}): {reason}")
