"""
ApproverResolver -- concrete approver identity for each chain level.

Responsibility:
    Maps a chain level to one user id using the Directory protocol.

Resolution rules:
    - Org-unit-head levels (level 1, and any level whose role set carries
      ORG_UNIT_HEAD_MARKER): the head of the requester's org unit.  The
      level's other roles are ignored.  When the unit has no head, the
      requester is used, but only if fallback is enabled and the
      requester is an active user of the same tenant.
    - Every other level: active users of the tenant holding any of the
      level's roles; the lowest user id wins.
    - ``None`` means unresolved.  ``resolve_chain_approvers`` turns it
      into ApproverUnresolvedError; nothing is ever auto-approved.

Architecture position:
    Kernel > Services.  One instance per submit/advance call; directory
    answers are cached on the instance and never shared between calls.
"""

from __future__ import annotations

from collections.abc import Iterable

from approval_kernel.domain.approval import (
    ApproverRole,
    Directory,
    uses_org_unit_head,
)
from approval_kernel.domain.chain import ChainLevel
from approval_kernel.exceptions import ApproverUnresolvedError
from approval_kernel.logging_config import get_logger

logger = get_logger("services.approver_resolver")


class ApproverResolver:
    """Resolve approvers through a Directory, caching per instance."""

    def __init__(
        self,
        directory: Directory,
        requester_fallback_for_missing_head: bool = True,
    ):
        self._directory = directory
        self._requester_fallback = requester_fallback_for_missing_head
        self._role_cache: dict[tuple[int, tuple[ApproverRole, ...]], list[int]] = {}
        self._head_cache: dict[int, int | None] = {}

    def resolve_approver(
        self,
        level: int,
        roles: tuple[ApproverRole, ...],
        tenant_id: int,
        requester_id: int,
        org_unit_id: int | None,
    ) -> int | None:
        if uses_org_unit_head(level, roles):
            return self._resolve_head(tenant_id, requester_id, org_unit_id)

        candidates = self._users_with_roles(tenant_id, roles)
        return min(candidates) if candidates else None

    def resolve_chain_approvers(
        self,
        levels: Iterable[ChainLevel],
        tenant_id: int,
        requester_id: int,
        org_unit_id: int | None,
    ) -> dict[int, int]:
        """Resolve every level; raise on the first one without an approver."""
        resolved: dict[int, int] = {}
        for chain_level in levels:
            approver = self.resolve_approver(
                chain_level.level,
                chain_level.roles,
                tenant_id,
                requester_id,
                org_unit_id,
            )
            if approver is None:
                raise self.unresolved(
                    chain_level.level, chain_level.roles, tenant_id, org_unit_id,
                )
            resolved[chain_level.level] = approver
        return resolved

    def unresolved(
        self,
        level: int,
        roles: tuple[ApproverRole, ...],
        tenant_id: int,
        org_unit_id: int | None,
    ) -> ApproverUnresolvedError:
        """Build (and log) the error for a level that resolved to None."""
        if uses_org_unit_head(level, roles):
            reason = (
                f"org unit {org_unit_id} has no head and the requester "
                "cannot stand in"
            )
        else:
            reason = "no active user holds a required role"
        error = ApproverUnresolvedError(
            level=level,
            roles=tuple(r.value for r in roles),
            tenant_id=tenant_id,
            reason=reason,
        )
        logger.warning(
            "approver_unresolved",
            extra={
                "tenant_id": tenant_id,
                "approval_level": level,
                "roles": list(error.roles),
                "reason": reason,
            },
        )
        return error

    def _resolve_head(
        self,
        tenant_id: int,
        requester_id: int,
        org_unit_id: int | None,
    ) -> int | None:
        head = None
        if org_unit_id is not None:
            if org_unit_id not in self._head_cache:
                self._head_cache[org_unit_id] = self._directory.get_org_unit_head(
                    org_unit_id,
                )
            head = self._head_cache[org_unit_id]
        if head is not None:
            return head

        if not self._requester_fallback:
            return None
        requester = self._directory.get_user(requester_id)
        if (
            requester is not None
            and requester.active
            and requester.tenant_id == tenant_id
        ):
            return requester_id
        return None

    def _users_with_roles(
        self,
        tenant_id: int,
        roles: tuple[ApproverRole, ...],
    ) -> list[int]:
        key = (tenant_id, roles)
        if key not in self._role_cache:
            self._role_cache[key] = list(
                self._directory.list_active_users_by_role(tenant_id, roles)
            )
        return self._role_cache[key]
