"""
Approval configuration schema.

The human-authored source artifact: YAML is parsed into these frozen
types by the loader and handed to the kernel through the bridges.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

# ---------------------------------------------------------------------------
# Engine settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EngineSettingsDef:
    """``engine:`` section."""

    approver_resolution: str = "eager"  # eager | lazy
    requester_fallback_for_missing_head: bool = True
    notifications_enabled: bool = True


# ---------------------------------------------------------------------------
# Policy definitions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PolicyDefinition:
    """One entry of ``global_policies:``."""

    level: int
    name: str
    roles: tuple[str, ...]
    min_amount: Decimal = Decimal("0")
    max_amount: Decimal | None = None
    sort_order: int | None = None
    active: bool = True


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ApprovalConfig:
    """The complete, validated configuration."""

    config_id: str
    version: int
    engine: EngineSettingsDef
    global_policies: tuple[PolicyDefinition, ...] = ()
    checksum: str = ""
