"""
Configuration Loader (``approval_config.loader``).

Responsibility
--------------
Loads the YAML configuration file and parses it into typed
``approval_config.schema`` dataclass instances.  The single public entry
point for runtime config is ``approval_config.get_active_config()``.

Architecture position
---------------------
**Config layer**.  Sits above ``approval_kernel``; may import its domain
enums for validation.  The kernel never imports this package.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Unknown roles, negative amounts, inverted ranges and duplicate active
  levels are rejected at load time, never at request time.
* ``compute_checksum`` is a deterministic SHA-256 of the parsed source.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML or invalid values  -> ``ConfigurationError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from approval_config.schema import ApprovalConfig, EngineSettingsDef, PolicyDefinition
from approval_kernel.domain.approval import ApproverResolution, ApproverRole
from approval_kernel.exceptions import ConfigurationError


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        ConfigurationError: if the file is not valid YAML or not a mapping.
    """
    with open(path) as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(str(path), f"invalid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top level must be a mapping")
    return data


def _parse_decimal(value: Any, field_name: str, source: str) -> Decimal:
    if isinstance(value, bool):
        raise ConfigurationError(source, f"{field_name} must be a number")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ConfigurationError(
            source, f"{field_name} must be a number, got {value!r}",
        ) from None
    if not amount.is_finite() or amount < 0:
        raise ConfigurationError(source, f"{field_name} must be >= 0, got {value!r}")
    return amount


def _parse_bool(data: dict[str, Any], key: str, default: bool, source: str) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ConfigurationError(source, f"engine.{key} must be true or false")
    return value


def parse_engine_settings(
    data: dict[str, Any] | None,
    source: str = "engine",
) -> EngineSettingsDef:
    """Parse the ``engine:`` section; missing keys take their defaults."""
    data = data or {}
    resolution = data.get("approver_resolution", ApproverResolution.EAGER.value)
    valid = {r.value for r in ApproverResolution}
    if resolution not in valid:
        raise ConfigurationError(
            source,
            f"engine.approver_resolution must be one of {sorted(valid)}, "
            f"got {resolution!r}",
        )
    return EngineSettingsDef(
        approver_resolution=resolution,
        requester_fallback_for_missing_head=_parse_bool(
            data, "requester_fallback_for_missing_head", True, source,
        ),
        notifications_enabled=_parse_bool(
            data, "notifications_enabled", True, source,
        ),
    )


def parse_policy_definition(
    data: dict[str, Any],
    source: str = "global_policies",
) -> PolicyDefinition:
    """Parse one policy entry."""
    level = data.get("level")
    if isinstance(level, bool) or not isinstance(level, int) or level < 1:
        raise ConfigurationError(source, f"level must be a positive integer, got {level!r}")

    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ConfigurationError(source, f"level {level}: name is required")

    raw_roles = data.get("roles")
    if isinstance(raw_roles, str):
        raw_roles = [raw_roles]
    if not raw_roles:
        raise ConfigurationError(source, f"level {level}: at least one role is required")
    known = {r.value for r in ApproverRole}
    unknown = [r for r in raw_roles if r not in known]
    if unknown:
        raise ConfigurationError(source, f"level {level}: unknown roles {unknown}")

    min_amount = _parse_decimal(data.get("min_amount", 0), "min_amount", source)
    max_amount = None
    if data.get("max_amount") is not None:
        max_amount = _parse_decimal(data["max_amount"], "max_amount", source)
        if max_amount < min_amount:
            raise ConfigurationError(
                source,
                f"level {level}: max_amount {max_amount} is below "
                f"min_amount {min_amount}",
            )

    sort_order = data.get("sort_order")
    if sort_order is not None and (
        isinstance(sort_order, bool) or not isinstance(sort_order, int)
    ):
        raise ConfigurationError(source, f"level {level}: sort_order must be an integer")

    active = data.get("active", True)
    if not isinstance(active, bool):
        raise ConfigurationError(source, f"level {level}: active must be true or false")

    return PolicyDefinition(
        level=level,
        name=name.strip(),
        roles=tuple(dict.fromkeys(raw_roles)),
        min_amount=min_amount,
        max_amount=max_amount,
        sort_order=sort_order,
        active=active,
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 of a parsed configuration mapping."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def parse_approval_config(data: dict[str, Any], source: str) -> ApprovalConfig:
    """Parse a whole configuration mapping."""
    raw_policies = data.get("global_policies") or []
    if not isinstance(raw_policies, list):
        raise ConfigurationError(source, "global_policies must be a list")

    policies = tuple(
        parse_policy_definition(entry, source) for entry in raw_policies
    )
    active_levels = [p.level for p in policies if p.active]
    duplicates = sorted({lv for lv in active_levels if active_levels.count(lv) > 1})
    if duplicates:
        raise ConfigurationError(
            source, f"duplicate active global policy levels: {duplicates}",
        )

    version = data.get("version", 1)
    if isinstance(version, bool) or not isinstance(version, int):
        raise ConfigurationError(source, "version must be an integer")

    return ApprovalConfig(
        config_id=str(data.get("config_id", "approval")),
        version=version,
        engine=parse_engine_settings(data.get("engine"), source),
        global_policies=policies,
        checksum=compute_checksum(data),
    )
