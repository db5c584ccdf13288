"""
PermGuard - Unified Permission Guard

Ties the permission components into one owner-gated object:
- MembershipTable (who holds which roles)
- PermissionRegistry (what each role may call)
- PermissionEngine (check transactions against both)
- EventLog (every write and every decision)

Configuration writes are owner-only. Checks are open to the execution
collaborator. A re-entrant lock makes each write and each check an atomic
unit, so no check ever sees a half-applied configuration.
"""

import logging
import threading
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from .core.engine import BatchCheckResult, CheckRequest, CheckResult, PermissionEngine
from .core.errors import GuardError, NotOwner
from .core.events import EventLog
from .core.membership import MembershipTable
from .core.models import (
    BLANK_ROLE,
    Operation,
    RoleLike,
    role_hex,
    to_address,
    to_role_id,
    to_selector,
)
from .core.registry import PermissionRegistry

logger = logging.getLogger("permguard.guard")


class PermissionGuard:
    """
    Owner-gated permission store plus the check API.

    Every configuration method takes the sender as first argument and raises
    NotOwner unless it is the current owner.
    """

    def __init__(
        self,
        owner: str,
        membership: Optional[MembershipTable] = None,
        registry: Optional[PermissionRegistry] = None,
        events: Optional[EventLog] = None,
    ):
        self._owner = to_address(owner)
        self.membership = membership or MembershipTable()
        self.registry = registry or PermissionRegistry()
        self.engine = PermissionEngine(self.membership, self.registry)
        self.events = events or EventLog()
        self._lock = threading.RLock()

        self._checks = {"fulfilled": 0, "rejected": 0, "errored": 0}

        logger.info(f"PermissionGuard initialized (owner={self._owner})")

    @property
    def owner(self) -> str:
        return self._owner

    def _only_owner(self, sender: str) -> None:
        if to_address(sender) != self._owner:
            logger.warning(f"Rejected configuration write from non-owner {sender}")
            raise NotOwner(sender)

    def transfer_ownership(self, sender: str, new_owner: str) -> None:
        with self._lock:
            self._only_owner(sender)
            previous, self._owner = self._owner, to_address(new_owner)
            self.events.emit(
                "OwnershipTransferred", previous_owner=previous, new_owner=self._owner
            )

    # =========================================================================
    # Membership
    # =========================================================================

    def assign_role(self, sender: str, member: str, role: RoleLike) -> None:
        self.assign_roles(sender, member, [role])

    def assign_roles(self, sender: str, member: str, roles: Iterable[RoleLike]) -> None:
        roles = [to_role_id(r) for r in roles]
        with self._lock:
            self._only_owner(sender)
            self.membership.assign_roles(member, roles)
            self.events.emit(
                "AssignRoles",
                member=to_address(member),
                roles=[role_hex(r) for r in roles],
            )

    def revoke_role(self, sender: str, member: str, role: RoleLike) -> bool:
        with self._lock:
            self._only_owner(sender)
            revoked = self.membership.revoke_role(member, role)
            if revoked:
                self.events.emit(
                    "RevokeRole",
                    member=to_address(member),
                    role=role_hex(to_role_id(role)),
                )
            return revoked

    def drop_member(self, sender: str, member: str) -> None:
        with self._lock:
            self._only_owner(sender)
            self.membership.drop_member(member)
            self.events.emit("DropMember", member=to_address(member))

    def deprecate_role(self, sender: str, role: RoleLike) -> None:
        with self._lock:
            self._only_owner(sender)
            self.membership.deprecate_role(role)
            self.events.emit("DeprecateRole", role=role_hex(to_role_id(role)))

    def roles_of(self, member: str) -> List[str]:
        with self._lock:
            return [role_hex(r) for r in self.membership.roles_of(member)]

    # =========================================================================
    # Targets and functions
    # =========================================================================

    def allow_contract(
        self, sender: str, role: RoleLike, target: str, operation=Operation.CALL
    ) -> None:
        with self._lock:
            self._only_owner(sender)
            allowance = self.registry.allow_contract(role, target, operation)
            self.events.emit(
                "AllowContract",
                role=role_hex(to_role_id(role)),
                target=to_address(target),
                operation=allowance.operation.name,
            )

    def scope_contract(self, sender: str, role: RoleLike, target: str) -> None:
        with self._lock:
            self._only_owner(sender)
            self.registry.scope_contract(role, target)
            self.events.emit(
                "ScopeContract", role=role_hex(to_role_id(role)), target=to_address(target)
            )

    def revoke_contract(self, sender: str, role: RoleLike, target: str) -> None:
        with self._lock:
            self._only_owner(sender)
            self.registry.revoke_contract(role, target)
            self.events.emit(
                "RevokeContract", role=role_hex(to_role_id(role)), target=to_address(target)
            )

    def allow_function(
        self,
        sender: str,
        role: RoleLike,
        target: str,
        selector: Union[bytes, str],
        operation=Operation.CALL,
        value_limit: Optional[int] = None,
    ) -> None:
        with self._lock:
            self._only_owner(sender)
            allowance = self.registry.allow_function(
                role, target, selector, operation, value_limit
            )
            self.events.emit(
                "AllowFunction",
                role=role_hex(to_role_id(role)),
                target=to_address(target),
                selector="0x" + to_selector(selector).hex(),
                operation=allowance.operation.name,
                value_limit=allowance.value_limit,
            )

    def scope_function(
        self,
        sender: str,
        role: RoleLike,
        target: str,
        selector: Union[bytes, str],
        is_scoped: Sequence[bool],
        param_types: Sequence,
        comparisons: Sequence,
        expected: Sequence,
        operation=Operation.CALL,
        value_limit: Optional[int] = None,
    ) -> None:
        with self._lock:
            self._only_owner(sender)
            allowance = self.registry.scope_function(
                role,
                target,
                selector,
                is_scoped,
                param_types,
                comparisons,
                expected,
                operation,
                value_limit,
            )
            self.events.emit(
                "ScopeFunction",
                role=role_hex(to_role_id(role)),
                target=to_address(target),
                selector="0x" + to_selector(selector).hex(),
                operation=allowance.operation.name,
                parameters=[p.to_dict() for p in allowance.parameters],
                value_limit=allowance.value_limit,
            )

    def revoke_function(
        self, sender: str, role: RoleLike, target: str, selector: Union[bytes, str]
    ) -> None:
        with self._lock:
            self._only_owner(sender)
            self.registry.revoke_function(role, target, selector)
            self.events.emit(
                "RevokeFunction",
                role=role_hex(to_role_id(role)),
                target=to_address(target),
                selector="0x" + to_selector(selector).hex(),
            )

    def set_value_limit(
        self,
        sender: str,
        role: RoleLike,
        target: str,
        selector: Union[bytes, str],
        value_limit: Optional[int],
    ) -> None:
        with self._lock:
            self._only_owner(sender)
            self.registry.set_value_limit(role, target, selector, value_limit)
            self.events.emit(
                "SetValueLimit",
                role=role_hex(to_role_id(role)),
                target=to_address(target),
                selector="0x" + to_selector(selector).hex(),
                value_limit=value_limit,
            )

    # =========================================================================
    # Checks
    # =========================================================================

    def check(
        self,
        caller: str,
        target: str,
        value: int,
        calldata: Union[bytes, str],
        operation=Operation.CALL,
    ) -> CheckResult:
        with self._lock:
            return self._record(
                caller,
                target,
                lambda: self.engine.check(caller, target, value, calldata, operation),
            )

    def check_with_role(
        self,
        caller: str,
        role: RoleLike,
        target: str,
        value: int,
        calldata: Union[bytes, str],
        operation=Operation.CALL,
    ) -> CheckResult:
        with self._lock:
            return self._record(
                caller,
                target,
                lambda: self.engine.check_with_role(
                    caller, role, target, value, calldata, operation
                ),
            )

    def check_batch(self, caller: str, requests: Sequence[CheckRequest]) -> BatchCheckResult:
        with self._lock:
            try:
                batch = self.engine.check_batch(caller, requests)
            except GuardError as e:
                self._checks["errored"] += 1
                self.events.emit("CheckErrored", caller=caller, error=e.code, message=e.message)
                raise
            self._checks["fulfilled" if batch.allowed else "rejected"] += 1
            self.events.emit(
                "CheckFulfilled" if batch.allowed else "CheckRejected",
                caller=to_address(caller),
                batch_size=len(requests),
                failed_index=batch.failed_index,
            )
            return batch

    def _record(self, caller: str, target: str, run) -> CheckResult:
        try:
            result = run()
        except GuardError as e:
            self._checks["errored"] += 1
            logger.warning(f"Check from {caller} to {target} failed: {e.message}")
            self.events.emit(
                "CheckErrored", caller=caller, target=target, error=e.code, message=e.message
            )
            raise

        if result.allowed:
            self._checks["fulfilled"] += 1
            self.events.emit(
                "CheckFulfilled",
                caller=to_address(caller),
                target=to_address(target),
                role=role_hex(result.role),
            )
        else:
            self._checks["rejected"] += 1
            self.events.emit(
                "CheckRejected",
                caller=to_address(caller),
                target=to_address(target),
                outcome=result.outcome.name,
                slot_outcomes=[o.name for o in result.slot_outcomes],
                reason=result.reason,
            )
        return result

    # =========================================================================
    # State and stats
    # =========================================================================

    def export_state(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "owner": self._owner,
                "membership": self.membership.export_state(),
                "registry": self.registry.export_state(),
            }

    def import_state(self, state: Dict[str, Any]) -> None:
        """Replace the whole state at once (used when restoring from a store)."""
        membership = MembershipTable(self.membership.capacity)
        membership.import_state(state.get("membership", {}))
        registry = PermissionRegistry()
        registry.import_state(state.get("registry", {}))

        with self._lock:
            self._owner = to_address(state.get("owner", self._owner))
            self.membership = membership
            self.registry = registry
            self.engine = PermissionEngine(membership, registry)
        logger.info(
            f"Imported state: {len(membership.members())} member(s), "
            f"{len(state.get('registry', {}).get('targets', []))} target record(s)"
        )

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            registry_state = self.registry.export_state()
            members = self.membership.members()
            return {
                "owner": self._owner,
                "members": len(members),
                "role_assignments": sum(
                    1
                    for m in members
                    for r in self.membership.roles_of(m)
                    if r != BLANK_ROLE
                ),
                "deprecated_roles": len(self.membership.export_state()["deprecated"]),
                "target_records": len(registry_state["targets"]),
                "function_records": len(registry_state["functions"]),
                "checks": dict(self._checks),
            }

    def generate_report(self) -> str:
        """Human readable status report."""
        stats = self.get_stats()
        checks = stats["checks"]
        report = [
            "=" * 60,
            "PERMGUARD - Permission Status Report",
            "=" * 60,
            f"Owner: {stats['owner']}",
            "",
            "MEMBERSHIP:",
            f"  Members: {stats['members']}",
            f"  Role assignments: {stats['role_assignments']}",
            f"  Deprecated roles: {stats['deprecated_roles']}",
            "",
            "SCOPES:",
            f"  Target records: {stats['target_records']}",
            f"  Function records: {stats['function_records']}",
            "",
            "CHECKS:",
            f"  Fulfilled: {checks['fulfilled']}",
            f"  Rejected: {checks['rejected']}",
            f"  Errored: {checks['errored']}",
            "=" * 60,
        ]
        return "\n".join(report)


# Global guard instance
_global_guard: Optional[PermissionGuard] = None


def get_guard(owner: Optional[str] = None) -> PermissionGuard:
    """Get or create the global guard (owner is required on first call)."""
    global _global_guard
    if _global_guard is None:
        if owner is None:
            raise RuntimeError("PermissionGuard not initialized: owner required")
        _global_guard = PermissionGuard(owner)
    return _global_guard


def set_guard(guard: Optional[PermissionGuard]) -> None:
    global _global_guard
    _global_guard = guard
