"""
Permission Engine - decides whether a caller may send a transaction.

For each occupied role slot of the caller, in slot order, the registry
resolves the transaction. The first FULFILLED slot authorizes it. If no slot
fulfills, the result reports the outcome of every slot so the caller can see
exactly why each held role failed.

The engine only reads membership and registry state. Performing the call
is left to whoever invoked the check.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from .calldata import CalldataView
from .errors import ConfusedOperation, InvalidEnumValue, InvalidValue, RoleNotFound
from .membership import MembershipTable
from .models import (
    ROLE_SLOTS,
    Operation,
    Outcome,
    RoleLike,
    parse_enum,
    role_hex,
    to_address,
    to_bytes,
    to_role_id,
)
from .registry import PermissionRegistry, Resolution

logger = logging.getLogger("permguard.engine")


@dataclass
class CheckRequest:
    target: str
    value: int = 0
    calldata: bytes = b""
    operation: Operation = Operation.CALL


@dataclass
class CheckResult:
    """Decision for one transaction."""

    allowed: bool
    outcome: Outcome
    role: Optional[bytes]  # the role that fulfilled, if any
    slot_outcomes: Tuple[Outcome, ...]
    reasons: Tuple[Optional[str], ...]
    reason: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "outcome": self.outcome.name,
            "role": role_hex(self.role) if self.role else None,
            "slot_outcomes": [o.name for o in self.slot_outcomes],
            "reasons": list(self.reasons),
            "reason": self.reason,
        }


@dataclass
class BatchCheckResult:
    allowed: bool
    results: List[CheckResult] = field(default_factory=list)
    failed_index: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "failed_index": self.failed_index,
            "results": [r.to_dict() for r in self.results],
        }


def require_single_operation(operation: Union[Operation, int, str]) -> Operation:
    """A transaction is exactly one of CALL or DELEGATE_CALL."""
    try:
        op = parse_enum(Operation, operation, "operation")
    except InvalidEnumValue:
        raise ConfusedOperation(operation) from None
    if op not in (Operation.CALL, Operation.DELEGATE_CALL):
        raise ConfusedOperation(op.name)
    return op


def require_value(value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidValue(value)
    return value


class PermissionEngine:
    def __init__(self, membership: MembershipTable, registry: PermissionRegistry):
        self.membership = membership
        self.registry = registry

    def check(
        self,
        caller: str,
        target: str,
        value: int,
        calldata: Union[bytes, str],
        operation: Union[Operation, int, str],
    ) -> CheckResult:
        """
        Resolve every role the caller holds against one transaction.

        Raises:
            ConfusedOperation: operation is not exactly CALL or DELEGATE_CALL
            InvalidValue: value is negative or not an integer
            RoleNotFound: caller holds no role at all
            FunctionSignatureTooShort, CalldataOutOfBounds: malformed calldata
        """
        op = require_single_operation(operation)
        value = require_value(value)
        caller = to_address(caller)

        slots = self.membership.assigned_roles(caller)
        if not slots:
            raise RoleNotFound(caller)

        return self._evaluate(caller, slots, target, value, calldata, op)

    def check_with_role(
        self,
        caller: str,
        role: RoleLike,
        target: str,
        value: int,
        calldata: Union[bytes, str],
        operation: Union[Operation, int, str],
    ) -> CheckResult:
        """Like check(), but only the named role is considered."""
        op = require_single_operation(operation)
        value = require_value(value)
        caller = to_address(caller)
        role_id = to_role_id(role)

        slots = [(i, r) for i, r in self.membership.assigned_roles(caller) if r == role_id]
        if not slots:
            raise RoleNotFound(caller, role_hex(role_id))

        return self._evaluate(caller, slots, target, value, calldata, op)

    def check_batch(
        self, caller: str, requests: Sequence[CheckRequest]
    ) -> BatchCheckResult:
        """
        Check several transactions from one caller; all must be fulfilled.

        Evaluation stops at the first rejected request.
        """
        batch = BatchCheckResult(allowed=True)
        for index, request in enumerate(requests):
            result = self.check(
                caller,
                request.target,
                request.value,
                request.calldata,
                request.operation,
            )
            batch.results.append(result)
            if not result.allowed:
                batch.allowed = False
                batch.failed_index = index
                break
        return batch

    def _evaluate(
        self,
        caller: str,
        slots: List[Tuple[int, bytes]],
        target: str,
        value: int,
        calldata: Union[bytes, str],
        op: Operation,
    ) -> CheckResult:
        target = to_address(target)
        view = CalldataView(to_bytes(calldata))

        outcomes: List[Outcome] = [Outcome.UNKNOWN] * ROLE_SLOTS
        reasons: List[Optional[str]] = [None] * ROLE_SLOTS
        first: Optional[Resolution] = None

        for index, role_id in slots:
            resolution = self.registry.resolve(role_id, target, op, value, view)
            outcomes[index] = resolution.outcome
            reasons[index] = self._describe(resolution)

            if resolution.fulfilled:
                logger.info(
                    f"Fulfilled: {caller} -> {target} via role {role_hex(role_id)} "
                    f"(slot {index})"
                )
                return CheckResult(
                    allowed=True,
                    outcome=Outcome.FULFILLED,
                    role=role_id,
                    slot_outcomes=tuple(outcomes),
                    reasons=tuple(reasons),
                    reason=resolution.reason,
                )
            if first is None:
                first = resolution

        logger.info(
            f"Rejected: {caller} -> {target} "
            f"[{', '.join(outcomes[i].name for i, _ in slots)}]"
        )
        return CheckResult(
            allowed=False,
            outcome=first.outcome,
            role=None,
            slot_outcomes=tuple(outcomes),
            reasons=tuple(reasons),
            reason=self._describe(first),
        )

    @staticmethod
    def _describe(resolution: Resolution) -> str:
        if resolution.parameter_index is None:
            return resolution.reason
        return f"parameter {resolution.parameter_index}: {resolution.reason}"
