"""
PolicyResolver -- effective chain for a (tenant, amount) pair.

Responsibility:
    Loads the tenant's and the global active policies and hands them to
    the pure ``build_effective_chain``.  Pure read: never writes, never
    caches across calls.

Architecture position:
    Kernel > Services.  Consumed by ApprovalEngine (submit, preview).

Failure modes:
    - InvalidAmountError for negative or non-numeric amounts.
    - NoMatchingPoliciesError / NonContiguousLevelsError from the builder.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from approval_kernel.domain.chain import EffectiveChain, build_effective_chain
from approval_kernel.domain.policy import to_amount
from approval_kernel.logging_config import get_logger
from approval_kernel.selectors.policy_selector import PolicySelector

logger = get_logger("services.policy_resolver")


class PolicyResolver:
    """Resolve the effective approval chain."""

    def __init__(self, session: Session):
        self._selector = PolicySelector(session)

    def resolve_chain(self, tenant_id: int, amount: Any) -> EffectiveChain:
        value = to_amount(amount)
        tenant_policies = self._selector.active_for_scope(tenant_id)
        global_policies = (
            [] if tenant_policies else self._selector.active_for_scope(None)
        )
        chain = build_effective_chain(
            tenant_id, value, tenant_policies, global_policies,
        )
        logger.info(
            "policy_chain_resolved",
            extra={
                "tenant_id": tenant_id,
                "amount": value,
                "scope": chain.scope,
                "required_levels": len(chain),
            },
        )
        return chain
