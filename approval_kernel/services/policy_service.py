"""
PolicyService -- administration of approval-level policies.

Responsibility:
    Create, update and delete policies in a tenant or the global scope,
    copy the active global set onto a tenant as a snapshot, reset a tenant
    back to the global defaults, and seed the global set from
    configuration.

Architecture position:
    Kernel > Services -- imperative shell.  Validation rules live in
    ``approval_kernel.domain.policy``; reads go through PolicySelector.

Invariants enforced:
    - Within one scope, no two active policies share a level
      (DuplicateActiveLevelError; a partial unique index backs tenant
      scopes at the database).
    - A tenant may only touch its own policies; the global scope is
      addressed with ``tenant_id=None`` (PolicyScopeViolationError).
    - Copy is a snapshot: later global edits do not reach the tenant.
      Copy refuses a tenant that already owns any policy.
    - Reset only deletes the tenant's own policies, so the tenant falls
      back to the global scope on the next resolution.

Failure modes:
    - InvalidPolicyError, DuplicateActiveLevelError, PolicyNotFoundError,
      PolicyScopeViolationError, TenantAlreadyCustomizedError.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from approval_kernel.domain.approval import parse_roles
from approval_kernel.domain.clock import Clock
from approval_kernel.domain.policy import (
    ApprovalLevelPolicy,
    to_amount,
    validate_policy_fields,
)
from approval_kernel.exceptions import (
    DuplicateActiveLevelError,
    InvalidAmountError,
    InvalidPolicyError,
    PolicyNotFoundError,
    PolicyScopeViolationError,
    TenantAlreadyCustomizedError,
)
from approval_kernel.logging_config import get_logger
from approval_kernel.models.policy import ApprovalLevelPolicyModel
from approval_kernel.selectors.policy_selector import PolicySelector
from approval_kernel.services.base import BaseService

logger = get_logger("services.policy")

_UPDATABLE_FIELDS = frozenset({
    "name", "level", "roles", "min_amount", "max_amount", "active", "sort_order",
})


def _policy_amount(value: Any, field_name: str) -> Decimal:
    try:
        return to_amount(value)
    except InvalidAmountError:
        raise InvalidPolicyError(
            field_name, f"must be a non-negative number, got {value!r}",
        ) from None


def _policy_roles(values: Any):
    try:
        return parse_roles(values)
    except ValueError as exc:
        raise InvalidPolicyError("roles", str(exc)) from None


class PolicyService(BaseService[ApprovalLevelPolicyModel]):
    """Write side of approval policy administration."""

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)
        self._selector = PolicySelector(session)

    # =========================================================================
    # CRUD
    # =========================================================================

    def create_policy(
        self,
        tenant_id: int | None,
        name: str,
        level: int,
        roles: Any,
        min_amount: Any = 0,
        max_amount: Any = None,
        active: bool = True,
        sort_order: int | None = None,
    ) -> ApprovalLevelPolicy:
        """Create a policy in ``tenant_id`` (``None`` for the global scope).

        ``sort_order`` defaults to the level.
        """
        role_tuple = _policy_roles(roles)
        low = _policy_amount(min_amount, "min_amount")
        high = _policy_amount(max_amount, "max_amount") if max_amount is not None else None
        validate_policy_fields(
            level=level, name=name, roles=role_tuple,
            min_amount=low, max_amount=high,
        )
        if active:
            self._ensure_level_free(tenant_id, level)

        now = self._clock.now()
        model = ApprovalLevelPolicyModel(
            tenant_id=tenant_id,
            name=name.strip(),
            level=level,
            min_amount=low,
            max_amount=high,
            roles=[r.value for r in role_tuple],
            active=active,
            sort_order=level if sort_order is None else sort_order,
            created_at=now,
            updated_at=now,
        )
        self.session.add(model)
        self.session.flush()

        logger.info(
            "approval_policy_created",
            extra={
                "policy_id": str(model.id),
                "tenant_id": tenant_id,
                "approval_level": level,
                "roles": model.roles,
            },
        )
        return model.to_dto()

    def update_policy(
        self,
        policy_id: UUID,
        tenant_id: int | None,
        **changes: Any,
    ) -> ApprovalLevelPolicy:
        """Apply ``changes`` to a policy of the acting scope."""
        unknown = sorted(set(changes) - _UPDATABLE_FIELDS)
        if unknown:
            raise InvalidPolicyError(unknown[0], "field cannot be updated")

        model = self._load_in_scope(policy_id, tenant_id)

        name = changes.get("name", model.name)
        level = changes.get("level", model.level)
        role_tuple = _policy_roles(changes.get("roles", model.roles))
        low = _policy_amount(changes.get("min_amount", model.min_amount), "min_amount")
        raw_high = changes.get("max_amount", model.max_amount)
        high = _policy_amount(raw_high, "max_amount") if raw_high is not None else None
        active = changes.get("active", model.active)
        validate_policy_fields(
            level=level, name=name, roles=role_tuple,
            min_amount=low, max_amount=high,
        )
        if active:
            self._ensure_level_free(model.tenant_id, level, exclude_id=model.id)

        model.name = name.strip()
        model.level = level
        model.roles = [r.value for r in role_tuple]
        model.min_amount = low
        model.max_amount = high
        model.active = active
        if "sort_order" in changes:
            model.sort_order = changes["sort_order"]
        model.updated_at = self._clock.now()
        self.session.flush()

        logger.info(
            "approval_policy_updated",
            extra={
                "policy_id": str(model.id),
                "tenant_id": model.tenant_id,
                "fields": sorted(changes),
            },
        )
        return model.to_dto()

    def delete_policy(self, policy_id: UUID, tenant_id: int | None) -> None:
        model = self._load_in_scope(policy_id, tenant_id)
        self.session.delete(model)
        self.session.flush()
        logger.info(
            "approval_policy_deleted",
            extra={"policy_id": str(policy_id), "tenant_id": tenant_id},
        )

    def list_policies(self, tenant_id: int) -> list[ApprovalLevelPolicy]:
        """The tenant's policies if it owns any, otherwise the global ones."""
        if self.has_custom_policies(tenant_id):
            return self._selector.for_scope(tenant_id)
        return self._selector.for_scope(None)

    def has_custom_policies(self, tenant_id: int) -> bool:
        return self._selector.count_for_scope(tenant_id) > 0

    # =========================================================================
    # Copy / Reset / Seed
    # =========================================================================

    def copy_global_policies_to_tenant(
        self,
        tenant_id: int,
    ) -> list[ApprovalLevelPolicy]:
        """
        Snapshot the active global policies into ``tenant_id``.

        Raises:
            TenantAlreadyCustomizedError: tenant already owns policies.
        """
        existing = self._selector.count_for_scope(tenant_id)
        if existing:
            raise TenantAlreadyCustomizedError(tenant_id, existing)

        now = self._clock.now()
        copies = []
        for source in self._selector.active_for_scope(None):
            model = ApprovalLevelPolicyModel(
                tenant_id=tenant_id,
                name=source.name,
                level=source.level,
                min_amount=source.min_amount,
                max_amount=source.max_amount,
                roles=[r.value for r in source.roles],
                active=True,
                sort_order=source.sort_order,
                created_at=now,
                updated_at=now,
            )
            self.session.add(model)
            copies.append(model)
        self.session.flush()

        logger.info(
            "tenant_policies_copied",
            extra={"tenant_id": tenant_id, "policy_count": len(copies)},
        )
        return [m.to_dto() for m in copies]

    def reset_tenant_policies(self, tenant_id: int) -> int:
        """Delete every policy of ``tenant_id``; returns how many were removed."""
        models = self._scope_models(tenant_id)
        for model in models:
            self.session.delete(model)
        self.session.flush()

        logger.info(
            "tenant_policies_reset",
            extra={"tenant_id": tenant_id, "policy_count": len(models)},
        )
        return len(models)

    def seed_global_policies(
        self,
        definitions: Iterable[Mapping[str, Any]],
    ) -> list[ApprovalLevelPolicy]:
        """Replace the global scope with ``definitions``.

        Each definition holds the keyword arguments of ``create_policy``
        (without ``tenant_id``).
        """
        for model in self._scope_models(None):
            self.session.delete(model)
        self.session.flush()

        created = [
            self.create_policy(None, **dict(definition))
            for definition in definitions
        ]
        logger.info(
            "global_policies_seeded",
            extra={"policy_count": len(created)},
        )
        return created

    # =========================================================================
    # Internals
    # =========================================================================

    def _scope_models(self, tenant_id: int | None) -> list[ApprovalLevelPolicyModel]:
        if tenant_id is None:
            scope = ApprovalLevelPolicyModel.tenant_id.is_(None)
        else:
            scope = ApprovalLevelPolicyModel.tenant_id == tenant_id
        return list(
            self.session.scalars(select(ApprovalLevelPolicyModel).where(scope)).all()
        )

    def _load_in_scope(
        self,
        policy_id: UUID,
        tenant_id: int | None,
    ) -> ApprovalLevelPolicyModel:
        model = self.session.get(ApprovalLevelPolicyModel, policy_id)
        if model is None:
            raise PolicyNotFoundError(str(policy_id))
        if model.tenant_id != tenant_id:
            raise PolicyScopeViolationError(
                policy_id=str(policy_id),
                policy_tenant_id=model.tenant_id,
                acting_tenant_id=tenant_id,
            )
        return model

    def _ensure_level_free(
        self,
        tenant_id: int | None,
        level: int,
        exclude_id: UUID | None = None,
    ) -> None:
        for model in self._scope_models(tenant_id):
            if model.active and model.level == level and model.id != exclude_id:
                raise DuplicateActiveLevelError(tenant_id, level)
