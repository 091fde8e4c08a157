"""
Approval policy value objects (``approval_kernel.domain.policy``).

Responsibility
--------------
Frozen representation of one approval-level policy and the pure checks
that apply to it: field validation and amount-range matching.

Architecture position
---------------------
**Kernel domain layer** -- pure, zero I/O.

Invariants enforced
-------------------
* ``level >= 1``, ``min_amount >= 0``, ``max_amount >= min_amount`` when
  bounded, ``roles`` non-empty.
* Amount bounds are inclusive at both ends; ``max_amount=None`` is
  unbounded.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from approval_kernel.domain.approval import (
    ApproverRole,
    roles_label,
    uses_org_unit_head,
)
from approval_kernel.exceptions import InvalidAmountError, InvalidPolicyError


def to_amount(value: Any) -> Decimal:
    """Convert a caller amount to ``Decimal``; reject negatives and NaN."""
    if isinstance(value, bool):
        raise InvalidAmountError(repr(value))
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidAmountError(repr(value)) from None
    if not amount.is_finite() or amount < 0:
        raise InvalidAmountError(str(amount))
    return amount


@dataclass(frozen=True)
class ApprovalLevelPolicy:
    """One configured approval level in a scope.

    ``tenant_id is None`` means the policy belongs to the global scope
    that tenants without policies of their own fall back to.
    """

    policy_id: UUID
    tenant_id: int | None
    level: int
    name: str
    roles: tuple[ApproverRole, ...]
    min_amount: Decimal = Decimal("0")
    max_amount: Decimal | None = None
    active: bool = True
    sort_order: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_global(self) -> bool:
        return self.tenant_id is None

    @property
    def scope(self) -> str:
        return "global" if self.tenant_id is None else "tenant"

    @property
    def uses_org_unit_head(self) -> bool:
        return uses_org_unit_head(self.level, self.roles)

    @property
    def roles_label(self) -> str:
        return roles_label(self.roles)

    def covers(self, amount: Decimal) -> bool:
        return amount_in_range(amount, self.min_amount, self.max_amount)


def amount_in_range(
    amount: Decimal,
    min_amount: Decimal,
    max_amount: Decimal | None,
) -> bool:
    """Inclusive range check; ``max_amount=None`` means no upper limit."""
    if amount < min_amount:
        return False
    return max_amount is None or amount <= max_amount


def validate_policy_fields(
    *,
    level: int,
    name: str,
    roles: tuple[ApproverRole, ...],
    min_amount: Decimal,
    max_amount: Decimal | None,
) -> None:
    """Raise ``InvalidPolicyError`` for the first invalid field."""
    if isinstance(level, bool) or not isinstance(level, int) or level < 1:
        raise InvalidPolicyError("level", f"must be a positive integer, got {level!r}")
    if not name or not name.strip():
        raise InvalidPolicyError("name", "must not be empty")
    if not roles:
        raise InvalidPolicyError("roles", "at least one role is required")
    if min_amount < 0:
        raise InvalidPolicyError("min_amount", f"must be >= 0, got {min_amount}")
    if max_amount is not None and max_amount < min_amount:
        raise InvalidPolicyError(
            "max_amount",
            f"{max_amount} is below min_amount {min_amount}",
        )
