"""
Tests for YAML policy packs.
"""

import asyncio

import pytest

from permguard.core.errors import NotOwner, PolicyPackError
from permguard.core.models import Outcome, role_id_from_name, to_role_id
from permguard.guard_system import PermissionGuard
from permguard.service.policy.policy_pack import (
    apply_pack,
    encode_expected,
    export_pack,
    load_pack,
    pack_from_state,
    parse_pack,
)
from permguard.core.comparison import ParameterType

from .helpers import (
    ALICE,
    APPROVE,
    BOB,
    CAROL,
    OWNER,
    ROLE_1,
    ROLE_2,
    TOKEN,
    TRANSFER,
    VAULT,
    address_word,
    calldata,
    selector,
    transfer,
    word,
)

TREASURY_PACK = f"""
name: treasury-ops
description: Operators may pay Bob small amounts
version: "2.1"

roles:
  operator: ~
  auditor: "0x02"

members:
  "{ALICE}": [operator, auditor]

targets:
  - role: operator
    address: "{TOKEN}"
    scoped: true
    functions:
      - signature: "{TRANSFER}"
        operation: call
        value_limit: 0
        parameters:
          - {{type: static, comparison: eq, expected: "{BOB}"}}
          - {{type: static, comparison: lt, expected: 1000}}
      - selector: "0x095ea7b3"
  - role: auditor
    address: "{VAULT}"
    operation: both

deprecated_roles: [legacy-admin]
"""


@pytest.fixture
def guard():
    return PermissionGuard(OWNER)


class TestParsing:
    def test_parse_treasury_pack(self):
        pack = parse_pack(TREASURY_PACK)

        assert pack.name == "treasury-ops"
        assert pack.version == "2.1"
        assert pack.roles["operator"] == role_id_from_name("operator")
        assert pack.roles["auditor"] == to_role_id(2)
        assert pack.members[ALICE] == [role_id_from_name("operator"), to_role_id(2)]
        assert pack.deprecated_roles == [role_id_from_name("legacy-admin")]

        token = pack.targets[0]
        assert token.scoped
        assert token.functions[0].selector == selector(TRANSFER)
        assert token.functions[1].parameters is None
        assert token.functions[0].parameters[0][3] == address_word(BOB)
        assert token.functions[0].parameters[1][3] == word(1000)

        assert not pack.targets[1].scoped

    def test_expected_value_encoding(self):
        assert encode_expected(ParameterType.STATIC, 5) == word(5)
        assert encode_expected(ParameterType.STATIC, "0x01") == word(1)
        assert encode_expected(ParameterType.DYNAMIC, "0x6869") == b"hi"
        assert encode_expected(ParameterType.DYNAMIC32, [1, "0x02"]) == word(1) + word(2)
        assert encode_expected(ParameterType.DYNAMIC32, []) == b""
        with pytest.raises(PolicyPackError):
            encode_expected(ParameterType.DYNAMIC, 18)
        with pytest.raises(PolicyPackError):
            encode_expected(ParameterType.DYNAMIC32, 18)

    def test_unquoted_hex_for_dynamic_parameter_rejected(self):
        text = (
            "targets: [{role: operator, address: '" + TOKEN + "', functions: "
            "[{selector: '0x12345678', parameters: "
            "[{type: dynamic, comparison: eq, expected: 0x12}]}]}]"
        )

        with pytest.raises(PolicyPackError, match="quoted hex"):
            parse_pack(text)

        quoted = parse_pack(text.replace("expected: 0x12", "expected: '0x12'"))
        assert quoted.targets[0].functions[0].parameters[0][3] == b"\x12"

    @pytest.mark.parametrize(
        "text",
        [
            "just a string",
            "members: {'0x1234': [operator]}",
            "targets: [{role: operator}]",
            "targets: [{role: operator, address: '0x" + "11" * 20 + "', functions: [{operation: call}]}]",
        ],
    )
    def test_invalid_packs(self, text):
        with pytest.raises(PolicyPackError):
            parse_pack(text)

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "treasury.yaml"
        path.write_text(TREASURY_PACK)

        assert load_pack(path).name == "treasury-ops"

    def test_missing_file(self, tmp_path):
        with pytest.raises(PolicyPackError):
            load_pack(tmp_path / "missing.yaml")


class TestApply:
    def test_pack_decisions(self, guard):
        summary = apply_pack(guard, OWNER, parse_pack(TREASURY_PACK))

        assert summary["functions"] == 2
        assert guard.check(ALICE, TOKEN, 0, transfer(BOB, 999)).allowed
        assert not guard.check(ALICE, TOKEN, 0, transfer(BOB, 1000)).allowed
        assert not guard.check(ALICE, TOKEN, 1, transfer(BOB, 1)).allowed
        assert guard.check(
            ALICE, TOKEN, 0, calldata("approve(address,uint256)", ["address", "uint256"], [CAROL, 10**9])
        ).allowed
        assert guard.check(ALICE, VAULT, 5, b"", "delegate_call").allowed
        assert guard.membership.is_deprecated(role_id_from_name("legacy-admin"))

    def test_pack_matches_equivalent_api_calls(self, guard):
        apply_pack(guard, OWNER, parse_pack(TREASURY_PACK))

        manual = PermissionGuard(OWNER)
        operator, auditor = role_id_from_name("operator"), to_role_id(2)
        manual.scope_contract(OWNER, operator, TOKEN)
        manual.scope_function(
            OWNER,
            operator,
            TOKEN,
            selector(TRANSFER),
            [True, True],
            ["static", "static"],
            ["eq", "lt"],
            [address_word(BOB), word(1000)],
            "call",
            0,
        )
        manual.allow_function(OWNER, operator, TOKEN, "0x095ea7b3", "call")
        manual.allow_contract(OWNER, auditor, VAULT, "both")
        manual.assign_roles(OWNER, ALICE, [operator, auditor])
        manual.deprecate_role(OWNER, role_id_from_name("legacy-admin"))

        assert manual.export_state() == guard.export_state()

    def test_non_owner_cannot_apply(self, guard):
        with pytest.raises(NotOwner):
            apply_pack(guard, BOB, parse_pack(TREASURY_PACK))

    def test_failing_pack_changes_nothing(self, guard):
        guard.deprecate_role(OWNER, role_id_from_name("auditor-v0"))
        pack = parse_pack(
            TREASURY_PACK.replace("[operator, auditor]", "[operator, auditor-v0]")
        )

        with pytest.raises(PolicyPackError):
            apply_pack(guard, OWNER, pack)

        assert guard.registry.get_target(role_id_from_name("operator"), TOKEN) is None
        assert guard.events.events("ScopeContract") == []

    def test_reapplying_pack_that_retires_an_assigned_role(self, guard):
        pack = parse_pack(
            f"""
name: retire-operator
members:
  "{ALICE}": [operator]
deprecated_roles: [operator]
"""
        )
        apply_pack(guard, OWNER, pack)
        state = guard.export_state()

        apply_pack(guard, OWNER, pack)

        assert guard.export_state() == state
        assert guard.membership.has_role(ALICE, role_id_from_name("operator"))
        assert guard.membership.is_deprecated(role_id_from_name("operator"))

    def test_reapplying_pack_is_idempotent(self, guard):
        pack = parse_pack(TREASURY_PACK)
        apply_pack(guard, OWNER, pack)
        state = guard.export_state()

        apply_pack(guard, OWNER, pack)

        assert guard.export_state() == state


def test_export_round_trip(guard, tmp_path):
    apply_pack(guard, OWNER, parse_pack(TREASURY_PACK))
    path = asyncio.run(export_pack(guard, tmp_path / "out" / "exported.yaml"))

    restored = PermissionGuard(OWNER)
    apply_pack(restored, OWNER, load_pack(path))

    assert restored.export_state() == guard.export_state()
    result = restored.check(ALICE, TOKEN, 0, transfer(CAROL, 1))
    assert result.outcome == Outcome.PARAMETERS_SCOPE_REJECTED


def test_export_keeps_function_records_without_contract_record(guard):
    guard.allow_function(OWNER, ROLE_1, TOKEN, selector(TRANSFER), "call", 7)
    guard.scope_function(
        OWNER,
        ROLE_2,
        VAULT,
        selector(APPROVE),
        [False, True],
        ["dynamic", "static"],
        ["eq", "lt"],
        ["0x", word(50)],
        "call",
    )

    restored = PermissionGuard(OWNER)
    apply_pack(restored, OWNER, parse_pack(pack_from_state(guard.export_state())))

    assert restored.export_state() == guard.export_state()
    assert restored.registry.get_target(ROLE_1, TOKEN) is None
    assert restored.registry.get_target(ROLE_2, VAULT) is None
