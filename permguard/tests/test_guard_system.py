"""
Tests for the owner-gated PermissionGuard facade and its events.
"""

import pytest

import permguard.guard_system as guard_system
from permguard.core.errors import (
    InvalidValueLimit,
    NotOwner,
    RoleNotFound,
    UnsuitableRelativeComparison,
)
from permguard.core.models import Outcome, role_hex
from permguard.guard_system import PermissionGuard, get_guard, set_guard

from .helpers import ALICE, BOB, OWNER, ROLE_1, ROLE_2, TOKEN, TRANSFER, selector, transfer


@pytest.fixture
def guard():
    return PermissionGuard(OWNER)


class TestOwnership:
    def test_non_owner_cannot_configure(self, guard):
        with pytest.raises(NotOwner):
            guard.assign_role(ALICE, ALICE, ROLE_1)
        with pytest.raises(NotOwner):
            guard.allow_contract(BOB, ROLE_1, TOKEN)
        with pytest.raises(NotOwner):
            guard.scope_function(BOB, ROLE_1, TOKEN, selector(TRANSFER), [], [], [], [])

        assert guard.membership.members() == []

    def test_owner_check_ignores_address_case(self, guard):
        guard.assign_role(OWNER.lower(), ALICE, ROLE_1)

        assert guard.membership.has_role(ALICE, ROLE_1)

    def test_transfer_ownership(self, guard):
        guard.transfer_ownership(OWNER, BOB)

        assert guard.owner == BOB
        with pytest.raises(NotOwner):
            guard.assign_role(OWNER, ALICE, ROLE_1)
        guard.assign_role(BOB, ALICE, ROLE_1)

        event = guard.events.last("OwnershipTransferred")
        assert event.args == {"previous_owner": OWNER, "new_owner": BOB}

    def test_checks_are_open_to_anyone(self, guard):
        guard.assign_role(OWNER, ALICE, ROLE_1)
        guard.allow_contract(OWNER, ROLE_1, TOKEN)

        assert guard.check(ALICE, TOKEN, 0, b"").allowed


class TestEvents:
    def test_assign_emits_even_when_already_held(self, guard):
        guard.assign_role(OWNER, ALICE, ROLE_1)
        guard.assign_role(OWNER, ALICE, ROLE_1)

        events = guard.events.events("AssignRoles")
        assert len(events) == 2
        assert events[0].args == {"member": ALICE, "roles": [role_hex(ROLE_1)]}

    def test_revoke_emits_only_when_something_changed(self, guard):
        guard.assign_role(OWNER, ALICE, ROLE_1)

        assert guard.revoke_role(OWNER, ALICE, ROLE_2) is False
        assert guard.events.events("RevokeRole") == []

        assert guard.revoke_role(OWNER, ALICE, ROLE_1) is True
        assert len(guard.events.events("RevokeRole")) == 1

    def test_scope_function_event_lists_parameters(self, guard):
        guard.scope_contract(OWNER, ROLE_1, TOKEN)
        guard.scope_function(
            OWNER, ROLE_1, TOKEN, selector(TRANSFER), [False], ["static"], ["eq"], ["0x"]
        )

        event = guard.events.last("ScopeFunction")
        assert event.args["selector"] == "0x" + selector(TRANSFER).hex()
        assert event.args["parameters"][0]["is_scoped"] is False

    def test_failed_write_emits_nothing(self, guard):
        with pytest.raises(NotOwner):
            guard.deprecate_role(ALICE, ROLE_1)

        assert guard.events.events() == []

    def test_check_decisions_are_recorded(self, guard):
        guard.assign_role(OWNER, ALICE, ROLE_1)
        guard.scope_contract(OWNER, ROLE_1, TOKEN)

        guard.check(ALICE, TOKEN, 0, transfer(BOB, 1))
        rejected = guard.events.last("CheckRejected")
        assert rejected.args["outcome"] == "FUNCTION_SCOPE_REJECTED"
        assert rejected.args["reason"] == "function not allowed"

        guard.allow_function(OWNER, ROLE_1, TOKEN, selector(TRANSFER))
        guard.check(ALICE, TOKEN, 0, transfer(BOB, 1))
        fulfilled = guard.events.last("CheckFulfilled")
        assert fulfilled.args["role"] == role_hex(ROLE_1)

    def test_hard_errors_are_recorded_and_raised(self, guard):
        with pytest.raises(RoleNotFound):
            guard.check(BOB, TOKEN, 0, b"")

        assert guard.events.last("CheckErrored").args["error"] == "role_not_found"
        assert guard.get_stats()["checks"]["errored"] == 1

    def test_listeners_receive_events(self, guard):
        seen = []
        guard.events.subscribe(seen.append)

        guard.assign_roles(OWNER, ALICE, [ROLE_1, ROLE_2])

        assert [e.name for e in seen] == ["AssignRoles"]


class TestBatchAndStats:
    def test_batch_decision_event(self, guard):
        from permguard.core.engine import CheckRequest

        guard.assign_role(OWNER, ALICE, ROLE_1)
        guard.allow_contract(OWNER, ROLE_1, TOKEN)

        batch = guard.check_batch(ALICE, [CheckRequest(TOKEN), CheckRequest(BOB)])

        assert not batch.allowed
        assert batch.results[1].outcome == Outcome.CONTRACT_SCOPE_REJECTED
        assert guard.events.last("CheckRejected").args["failed_index"] == 1

    def test_stats_and_report(self, guard):
        guard.assign_roles(OWNER, ALICE, [ROLE_1, ROLE_2])
        guard.scope_contract(OWNER, ROLE_1, TOKEN)
        guard.allow_function(OWNER, ROLE_1, TOKEN, selector(TRANSFER))
        guard.deprecate_role(OWNER, 99)

        stats = guard.get_stats()
        assert stats["members"] == 1
        assert stats["role_assignments"] == 2
        assert stats["deprecated_roles"] == 1
        assert stats["target_records"] == 1
        assert stats["function_records"] == 1

        report = guard.generate_report()
        assert f"Owner: {OWNER}" in report
        assert "Function records: 1" in report

    def test_import_state_replaces_everything(self, guard):
        guard.assign_role(OWNER, ALICE, ROLE_1)
        guard.allow_contract(OWNER, ROLE_1, TOKEN)
        state = guard.export_state()

        other = PermissionGuard(BOB)
        other.import_state(state)

        assert other.owner == OWNER
        assert other.check(ALICE, TOKEN, 0, b"").allowed

    def test_import_state_validates_function_records(self, guard):
        guard.assign_role(OWNER, ALICE, ROLE_1)
        guard.scope_function(
            OWNER, ROLE_1, TOKEN, selector(TRANSFER), [True], ["dynamic"], ["eq"], ["0x01"], "call"
        )
        state = guard.export_state()
        state["registry"]["functions"][0]["parameters"][0]["comparison"] = "gt"

        other = PermissionGuard(OWNER)
        with pytest.raises(UnsuitableRelativeComparison):
            other.import_state(state)
        assert other.export_state()["registry"]["functions"] == []
        assert other.roles_of(ALICE)[0] != role_hex(ROLE_1)

        state["registry"]["functions"][0]["parameters"][0]["comparison"] = "eq"
        state["registry"]["functions"][0]["value_limit"] = -1
        with pytest.raises(InvalidValueLimit):
            other.import_state(state)


class TestGlobalGuard:
    @pytest.fixture(autouse=True)
    def reset(self):
        set_guard(None)
        yield
        set_guard(None)

    def test_first_call_needs_owner(self):
        with pytest.raises(RuntimeError):
            get_guard()

    def test_singleton(self):
        guard = get_guard(OWNER)

        assert get_guard() is guard
        assert guard_system._global_guard is guard
