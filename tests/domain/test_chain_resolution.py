"""
Tests for effective chain resolution (``approval_kernel.domain.chain``)
and policy value checks (``approval_kernel.domain.policy``).

Properties covered:
- Scope exclusivity: tenant policies shadow the global set entirely.
- Amount matching: a level is included iff min <= amount <= max
  (max None = unbounded).
- Contiguity: matched levels must read 1..n.
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from approval_kernel.domain.approval import ApproverRole
from approval_kernel.domain.chain import build_effective_chain, select_scope
from approval_kernel.domain.policy import (
    ApprovalLevelPolicy,
    amount_in_range,
    to_amount,
    validate_policy_fields,
)
from approval_kernel.exceptions import (
    InvalidAmountError,
    InvalidPolicyError,
    NoMatchingPoliciesError,
    NonContiguousLevelsError,
)

TENANT = 1


def policy(level, roles=(ApproverRole.PO_OFFICER,), min_amount="0", max_amount=None,
           tenant_id=None, active=True, sort_order=0, name=None):
    return ApprovalLevelPolicy(
        policy_id=uuid4(),
        tenant_id=tenant_id,
        level=level,
        name=name or f"Level {level}",
        roles=tuple(roles),
        min_amount=Decimal(min_amount),
        max_amount=Decimal(max_amount) if max_amount is not None else None,
        active=active,
        sort_order=sort_order,
    )


# =========================================================================
# Amounts
# =========================================================================


class TestAmounts:
    def test_bounds_are_inclusive(self):
        assert amount_in_range(Decimal("1000"), Decimal("1000"), Decimal("5000"))
        assert amount_in_range(Decimal("5000"), Decimal("1000"), Decimal("5000"))
        assert not amount_in_range(Decimal("5000.01"), Decimal("1000"), Decimal("5000"))
        assert not amount_in_range(Decimal("999.99"), Decimal("1000"), Decimal("5000"))

    def test_none_max_is_unbounded(self):
        assert amount_in_range(Decimal("1e12"), Decimal("0"), None)

    @given(
        amount=st.decimals(min_value=0, max_value=10**9, places=2),
        low=st.decimals(min_value=0, max_value=10**9, places=2),
        width=st.one_of(st.none(), st.decimals(min_value=0, max_value=10**9, places=2)),
    )
    @settings(max_examples=200)
    def test_matches_definition(self, amount, low, width):
        high = None if width is None else low + width
        expected = low <= amount and (high is None or amount <= high)
        assert amount_in_range(amount, low, high) is expected

    @pytest.mark.parametrize("value", ["-1", -0.01, "abc", "NaN", "Infinity", True])
    def test_to_amount_rejects(self, value):
        with pytest.raises(InvalidAmountError):
            to_amount(value)

    def test_to_amount_accepts_numbers(self):
        assert to_amount(10000) == Decimal("10000")
        assert to_amount("2500.50") == Decimal("2500.50")


# =========================================================================
# Policy validation
# =========================================================================


class TestValidatePolicyFields:
    def _valid(self, **overrides):
        fields = dict(
            level=1, name="Head", roles=(ApproverRole.DEPT_HEAD,),
            min_amount=Decimal("0"), max_amount=None,
        )
        fields.update(overrides)
        return fields

    def test_valid_policy_passes(self):
        validate_policy_fields(**self._valid())

    @pytest.mark.parametrize("overrides,field", [
        ({"level": 0}, "level"),
        ({"level": True}, "level"),
        ({"name": "  "}, "name"),
        ({"roles": ()}, "roles"),
        ({"min_amount": Decimal("-1")}, "min_amount"),
        ({"min_amount": Decimal("100"), "max_amount": Decimal("50")}, "max_amount"),
    ])
    def test_invalid_fields(self, overrides, field):
        with pytest.raises(InvalidPolicyError) as exc_info:
            validate_policy_fields(**self._valid(**overrides))
        assert exc_info.value.field == field

    def test_level_one_uses_org_unit_head(self):
        assert policy(1).uses_org_unit_head
        assert not policy(2).uses_org_unit_head
        assert policy(3, roles=(ApproverRole.ORG_UNIT_HEAD,)).uses_org_unit_head
        assert not policy(3, roles=(ApproverRole.DEPT_HEAD,)).uses_org_unit_head


# =========================================================================
# Scope selection
# =========================================================================


class TestScopeExclusivity:
    def test_tenant_policies_shadow_global(self):
        tenant = [policy(1, tenant_id=TENANT)]
        global_ = [policy(1), policy(2), policy(3)]
        chain = build_effective_chain(TENANT, Decimal("100"), tenant, global_)
        assert chain.scope == "tenant"
        assert len(chain) == 1

    def test_global_used_without_tenant_policies(self):
        chain = build_effective_chain(TENANT, Decimal("100"), [], [policy(1), policy(2)])
        assert chain.scope == "global"
        assert [lv.level for lv in chain] == [1, 2]

    def test_inactive_tenant_policies_do_not_count(self):
        tenant = [policy(1, tenant_id=TENANT, active=False)]
        scope, selected = select_scope(tenant, [policy(1)])
        assert scope == "global"
        assert len(selected) == 1

    def test_never_mixes_scopes(self):
        tenant = [policy(1, tenant_id=TENANT, max_amount="500")]
        global_ = [policy(1), policy(2)]
        with pytest.raises(NoMatchingPoliciesError) as exc_info:
            build_effective_chain(TENANT, Decimal("1000"), tenant, global_)
        assert exc_info.value.scope == "tenant"

    @given(n_tenant=st.integers(min_value=0, max_value=4))
    def test_chain_comes_from_exactly_one_scope(self, n_tenant):
        tenant = [policy(i, tenant_id=TENANT, name=f"T{i}") for i in range(1, n_tenant + 1)]
        global_ = [policy(i, name=f"G{i}") for i in range(1, 6)]
        chain = build_effective_chain(TENANT, Decimal("1"), tenant, global_)
        prefixes = {lv.name[0] for lv in chain}
        assert prefixes == ({"T"} if n_tenant else {"G"})


# =========================================================================
# Amount filter and contiguity
# =========================================================================


class TestChainBuilding:
    def test_amount_bands_select_levels(self):
        policies = [
            policy(1),
            policy(2, min_amount="5000"),
            policy(3, min_amount="50000"),
        ]
        small = build_effective_chain(TENANT, Decimal("100"), [], policies)
        large = build_effective_chain(TENANT, Decimal("75000"), [], policies)
        assert len(small) == 1
        assert len(large) == 3

    def test_sorted_by_level(self):
        chain = build_effective_chain(TENANT, Decimal("1"), [], [policy(3), policy(1), policy(2)])
        assert [lv.level for lv in chain] == [1, 2, 3]

    def test_gap_raises_with_levels(self):
        policies = [policy(1), policy(2, max_amount="100"), policy(3)]
        with pytest.raises(NonContiguousLevelsError) as exc_info:
            build_effective_chain(TENANT, Decimal("1000"), [], policies)
        assert exc_info.value.levels == [1, 3]

    def test_must_start_at_one(self):
        with pytest.raises(NonContiguousLevelsError):
            build_effective_chain(TENANT, Decimal("1"), [], [policy(2), policy(3)])

    def test_empty_raises_no_matching(self):
        with pytest.raises(NoMatchingPoliciesError):
            build_effective_chain(TENANT, Decimal("1"), [], [])

    def test_level_one_is_head_level(self):
        chain = build_effective_chain(
            TENANT, Decimal("1"), [], [policy(1, roles=(ApproverRole.PO_OFFICER,))],
        )
        assert chain.level(1).uses_org_unit_head
        assert chain.level(1).roles_label == "org unit head"

    @given(
        levels=st.sets(st.integers(min_value=1, max_value=8), min_size=1, max_size=8),
    )
    def test_contiguity_property(self, levels):
        policies = [policy(lv) for lv in levels]
        ordered = sorted(levels)
        if ordered == list(range(1, len(ordered) + 1)):
            chain = build_effective_chain(TENANT, Decimal("1"), [], policies)
            assert [lv.level for lv in chain] == ordered
        else:
            with pytest.raises(NonContiguousLevelsError):
                build_effective_chain(TENANT, Decimal("1"), [], policies)
