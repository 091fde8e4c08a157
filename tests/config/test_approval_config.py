"""
Tests for approval configuration (``approval_config``).

Covers:
- The packaged defaults: engine settings and the five-level global chain
- Validation errors surface as ConfigurationError
- The config -> kernel bridges
- The approval_config_loaded trace
"""

from decimal import Decimal

import pytest

from approval_config import get_active_config
from approval_config.bridges import build_engine_settings, build_policy_seeds
from approval_config.loader import (
    compute_checksum,
    parse_approval_config,
    parse_engine_settings,
    parse_policy_definition,
)
from approval_kernel.domain.approval import ApproverResolution
from approval_kernel.exceptions import ConfigurationError


# =========================================================================
# Packaged defaults
# =========================================================================


class TestDefaultConfig:
    def test_engine_defaults(self):
        config = get_active_config()
        assert config.engine.approver_resolution == "eager"
        assert config.engine.requester_fallback_for_missing_head is True
        assert config.engine.notifications_enabled is True

    def test_five_level_global_chain(self):
        config = get_active_config()
        assert [p.level for p in config.global_policies] == [1, 2, 3, 4, 5]
        assert [p.roles for p in config.global_policies] == [
            ("dept_head",),
            ("po_officer",),
            ("po_admin_officer",),
            ("po_director_admin",),
            ("managing_director", "deputy_managing_director"),
        ]
        assert all(p.min_amount == Decimal("0") for p in config.global_policies)
        assert all(p.max_amount is None for p in config.global_policies)

    def test_checksum_is_stable(self):
        assert get_active_config().checksum == get_active_config().checksum

    def test_emits_trace(self, captured_logs):
        config = get_active_config()
        traces = [r for r in captured_logs() if r["message"] == "approval_config_loaded"]
        assert len(traces) == 1
        assert traces[0]["checksum"] == config.checksum
        assert traces[0]["policy_count"] == 5


class TestCustomFile:
    def test_loads_override_path(self, tmp_path):
        path = tmp_path / "approval.yaml"
        path.write_text(
            "config_id: custom\n"
            "version: 3\n"
            "engine:\n"
            "  approver_resolution: lazy\n"
            "global_policies:\n"
            "  - level: 1\n"
            "    name: Head\n"
            "    roles: [dept_head]\n"
            "  - level: 2\n"
            "    name: Large purchases\n"
            "    roles: po_officer\n"
            "    min_amount: 5000\n"
            "    max_amount: 100000.50\n"
        )
        config = get_active_config(path)
        assert config.config_id == "custom"
        assert config.version == 3
        assert config.engine.approver_resolution == "lazy"
        second = config.global_policies[1]
        assert second.roles == ("po_officer",)
        assert second.min_amount == Decimal("5000")
        assert second.max_amount == Decimal("100000.50")

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "missing.yaml")

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("engine: [unclosed\n")
        with pytest.raises(ConfigurationError):
            get_active_config(path)

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ConfigurationError):
            get_active_config(path)


# =========================================================================
# Validation
# =========================================================================


class TestValidation:
    def test_unknown_resolution_mode(self):
        with pytest.raises(ConfigurationError, match="approver_resolution"):
            parse_engine_settings({"approver_resolution": "sometimes"})

    def test_non_bool_switch(self):
        with pytest.raises(ConfigurationError):
            parse_engine_settings({"notifications_enabled": "yes"})

    def test_missing_section_uses_defaults(self):
        settings = parse_engine_settings(None)
        assert settings.approver_resolution == "eager"

    @pytest.mark.parametrize("entry", [
        {"level": 0, "name": "x", "roles": ["po_officer"]},
        {"level": 1, "name": "", "roles": ["po_officer"]},
        {"level": 1, "name": "x", "roles": []},
        {"level": 1, "name": "x", "roles": ["janitor"]},
        {"level": 1, "name": "x", "roles": ["po_officer"], "min_amount": -1},
        {"level": 1, "name": "x", "roles": ["po_officer"], "min_amount": 10, "max_amount": 5},
        {"level": 1, "name": "x", "roles": ["po_officer"], "sort_order": "first"},
    ])
    def test_invalid_policy_entries(self, entry):
        with pytest.raises(ConfigurationError):
            parse_policy_definition(entry)

    def test_duplicate_active_levels(self):
        data = {
            "global_policies": [
                {"level": 1, "name": "a", "roles": ["dept_head"]},
                {"level": 1, "name": "b", "roles": ["po_officer"]},
            ],
        }
        with pytest.raises(ConfigurationError, match="duplicate"):
            parse_approval_config(data, "test")

    def test_inactive_duplicate_is_allowed(self):
        data = {
            "global_policies": [
                {"level": 1, "name": "a", "roles": ["dept_head"]},
                {"level": 1, "name": "b", "roles": ["po_officer"], "active": False},
            ],
        }
        config = parse_approval_config(data, "test")
        assert len(config.global_policies) == 2

    def test_checksum_changes_with_content(self):
        assert compute_checksum({"a": 1}) != compute_checksum({"a": 2})
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})


# =========================================================================
# Bridges
# =========================================================================


class TestBridges:
    def test_engine_settings(self):
        settings = build_engine_settings(get_active_config())
        assert settings.approver_resolution is ApproverResolution.EAGER

    def test_policy_seeds(self):
        seeds = build_policy_seeds(get_active_config())
        assert len(seeds) == 5
        assert seeds[4]["roles"] == ["managing_director", "deputy_managing_director"]
        assert seeds[0]["sort_order"] == 1
        assert set(seeds[0]) == {
            "level", "name", "roles", "min_amount", "max_amount", "active", "sort_order",
        }
