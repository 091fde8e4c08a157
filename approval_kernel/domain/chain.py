"""
Effective chain resolution (``approval_kernel.domain.chain``).

Responsibility
--------------
Turns the policies of one scope into the ordered, amount-matched chain of
levels a request must pass.  Pure function over already-loaded policies;
the service layer decides which scope's policies to pass in.

Selection rule
--------------
1. Tenant scope if the tenant owns at least one active policy, otherwise
   the global scope.  The two are never mixed.
2. Keep active policies whose inclusive ``[min_amount, max_amount]``
   contains the amount.
3. Sort ascending by level (``sort_order`` breaks display ties only).
4. Levels must read ``1, 2, ..., n``.

Failure modes
-------------
* ``NoMatchingPoliciesError`` -- nothing matched.
* ``NonContiguousLevelsError`` -- a gap, or the chain does not start at 1.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from approval_kernel.domain.approval import ApproverRole, roles_label
from approval_kernel.domain.policy import ApprovalLevelPolicy
from approval_kernel.exceptions import (
    NoMatchingPoliciesError,
    NonContiguousLevelsError,
)


@dataclass(frozen=True)
class ChainLevel:
    """One level of an effective chain."""

    level: int
    name: str
    roles: tuple[ApproverRole, ...]
    min_amount: Decimal
    max_amount: Decimal | None
    uses_org_unit_head: bool

    @property
    def roles_label(self) -> str:
        if self.uses_org_unit_head:
            return "org unit head"
        return roles_label(self.roles)


@dataclass(frozen=True)
class EffectiveChain:
    """Ordered levels for one (tenant, amount) pair."""

    tenant_id: int
    amount: Decimal
    scope: str
    levels: tuple[ChainLevel, ...]

    def __len__(self) -> int:
        return len(self.levels)

    def __iter__(self):
        return iter(self.levels)

    def level(self, number: int) -> ChainLevel:
        return self.levels[number - 1]


def select_scope(
    tenant_policies: list[ApprovalLevelPolicy],
    global_policies: list[ApprovalLevelPolicy],
) -> tuple[str, list[ApprovalLevelPolicy]]:
    """Pick the tenant's active set if non-empty, else the global one."""
    tenant_active = [p for p in tenant_policies if p.active]
    if tenant_active:
        return "tenant", tenant_active
    return "global", [p for p in global_policies if p.active]


def build_effective_chain(
    tenant_id: int,
    amount: Decimal,
    tenant_policies: list[ApprovalLevelPolicy],
    global_policies: list[ApprovalLevelPolicy],
) -> EffectiveChain:
    """Compute the effective chain for ``amount`` in ``tenant_id``.

    Raises:
        NoMatchingPoliciesError: no active policy of the scope covers amount.
        NonContiguousLevelsError: matched levels are not ``1..n``.
    """
    scope, candidates = select_scope(tenant_policies, global_policies)

    matched = sorted(
        (p for p in candidates if p.covers(amount)),
        key=lambda p: (p.level, p.sort_order),
    )
    if not matched:
        raise NoMatchingPoliciesError(tenant_id, str(amount), scope)

    levels = [p.level for p in matched]
    if levels != list(range(1, len(levels) + 1)):
        raise NonContiguousLevelsError(tenant_id, levels, scope)

    return EffectiveChain(
        tenant_id=tenant_id,
        amount=amount,
        scope=scope,
        levels=tuple(
            ChainLevel(
                level=p.level,
                name=p.name,
                roles=p.roles,
                min_amount=p.min_amount,
                max_amount=p.max_amount,
                uses_org_unit_head=p.uses_org_unit_head,
            )
            for p in matched
        ),
    )
