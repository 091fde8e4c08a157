"""
Config -> Kernel Bridges.

Functions that convert ApprovalConfig artifacts into kernel inputs.  They
live here because the kernel must never import approval_config.

Usage:
    from approval_config import get_active_config
    from approval_config.bridges import build_engine_settings, build_policy_seeds

    config = get_active_config()
    engine = ApprovalEngine(session, directory, settings=build_engine_settings(config))
    PolicyService(session).seed_global_policies(build_policy_seeds(config))
"""

from __future__ import annotations

from typing import Any

from approval_config.schema import ApprovalConfig
from approval_kernel.domain.approval import ApproverResolution, EngineSettings


def build_engine_settings(config: ApprovalConfig) -> EngineSettings:
    engine = config.engine
    return EngineSettings(
        approver_resolution=ApproverResolution(engine.approver_resolution),
        requester_fallback_for_missing_head=engine.requester_fallback_for_missing_head,
        notifications_enabled=engine.notifications_enabled,
    )


def build_policy_seeds(config: ApprovalConfig) -> list[dict[str, Any]]:
    """Keyword arguments for PolicyService.create_policy, one per definition."""
    return [
        {
            "level": p.level,
            "name": p.name,
            "roles": list(p.roles),
            "min_amount": p.min_amount,
            "max_amount": p.max_amount,
            "active": p.active,
            "sort_order": p.sort_order,
        }
        for p in config.global_policies
    ]
