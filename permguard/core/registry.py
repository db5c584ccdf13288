"""
Permission Registry - per-role target and function allowances.

Records:
- (role, target)            -> TargetAllowance(operation mask, scoped)
- (role, target, selector)  -> FunctionAllowance(operation mask, parameter
                               scopes, optional value limit)

resolve() walks the records for one role in a fixed order and stops at the
first failing stage:

    target allowed? -> [not scoped] operation ok? -> FULFILLED
                    -> [scoped] selector allowed? -> operation ok?
                       -> value within limit? -> every scoped param matches?
                       -> FULFILLED

Writes replace whole records, so a concurrent reader never sees a half
written scope list.
"""

import logging
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Sequence, Tuple, Union

from .calldata import CalldataView
from .comparison import Comparison, ParameterType, compare, describe_mismatch, validate_scope
from .errors import ArraysDifferentLength, FunctionNotConfigured, InvalidValueLimit
from .models import (
    FunctionAllowance,
    Operation,
    Outcome,
    ParameterScope,
    RoleLike,
    TargetAllowance,
    parse_enum,
    role_hex,
    to_address,
    to_bytes,
    to_role_id,
    to_selector,
)

logger = logging.getLogger("permguard.registry")

TargetKey = Tuple[bytes, str]
FunctionKey = Tuple[bytes, str, bytes]


@dataclass(frozen=True)
class Resolution:
    """Outcome of resolving one role, with a human readable reason."""

    outcome: Outcome
    reason: str = ""
    parameter_index: Optional[int] = None

    @property
    def fulfilled(self) -> bool:
        return self.outcome == Outcome.FULFILLED


FULFILLED = Resolution(Outcome.FULFILLED, "fulfilled")


def _operation_rejection(allowed: Operation, requested: Operation) -> Optional[Resolution]:
    if allowed.permits(requested):
        return None
    if allowed == Operation.NONE:
        reason = "operation not configured"
    elif allowed == Operation.CALL:
        reason = "require call operation"
    else:
        reason = "require delegatecall operation"
    return Resolution(Outcome.OPERATION_REJECTED, reason)


def build_parameter_scopes(
    is_scoped: Sequence[bool],
    param_types: Sequence[Union[ParameterType, int, str]],
    comparisons: Sequence[Union[Comparison, int, str]],
    expected: Sequence[Union[bytes, str]],
) -> Tuple[ParameterScope, ...]:
    """
    Validate the four parallel scope arrays and zip them into ParameterScopes.

    Raises:
        ArraysDifferentLength: arrays are not all the same length
        InvalidEnumValue: unknown parameter type or comparison
        UnsuitableRelativeComparison: GT/LT on a non-static parameter
        UnsuitableStaticValueSize / UnsuitableDynamic32ValueSize
    """
    if not (len(is_scoped) == len(param_types) == len(comparisons) == len(expected)):
        raise ArraysDifferentLength()

    scopes = []
    for index, (scoped, ptype, comp, value) in enumerate(
        zip(is_scoped, param_types, comparisons, expected)
    ):
        ptype = parse_enum(ParameterType, ptype, "parameter type")
        comp = parse_enum(Comparison, comp, "comparison")
        value = to_bytes(value)
        validate_scope(index, bool(scoped), ptype, comp, value)
        scopes.append(ParameterScope(bool(scoped), ptype, comp, value))
    return tuple(scopes)


class PermissionRegistry:
    def __init__(self):
        self._targets: Dict[TargetKey, TargetAllowance] = {}
        self._functions: Dict[FunctionKey, FunctionAllowance] = {}

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    def allow_contract(self, role: RoleLike, target: str, operation) -> TargetAllowance:
        """Open every function on target (subject to the operation mask)."""
        key = (to_role_id(role), to_address(target))
        allowance = TargetAllowance(
            operation=parse_enum(Operation, operation, "operation"), scoped=False
        )
        self._targets[key] = allowance
        logger.info(
            f"Allowed contract {key[1]} for role {role_hex(key[0])} "
            f"operation={allowance.operation.name}"
        )
        return allowance

    def scope_contract(self, role: RoleLike, target: str) -> TargetAllowance:
        """Switch target to function-scoped mode."""
        key = (to_role_id(role), to_address(target))
        allowance = TargetAllowance(operation=Operation.NONE, scoped=True)
        self._targets[key] = allowance
        logger.info(f"Scoped contract {key[1]} for role {role_hex(key[0])}")
        return allowance

    def revoke_contract(self, role: RoleLike, target: str) -> bool:
        """Remove the target allowance and every function record under it."""
        role_id, address = to_role_id(role), to_address(target)
        existed = self._targets.pop((role_id, address), None) is not None
        stale = [k for k in self._functions if k[0] == role_id and k[1] == address]
        for key in stale:
            del self._functions[key]
        logger.info(
            f"Revoked contract {address} for role {role_hex(role_id)} "
            f"({len(stale)} function record(s) removed)"
        )
        return existed or bool(stale)

    def allow_function(
        self,
        role: RoleLike,
        target: str,
        selector: Union[bytes, str],
        operation,
        value_limit: Optional[int] = None,
    ) -> FunctionAllowance:
        key = self._function_key(role, target, selector)
        allowance = FunctionAllowance(
            operation=parse_enum(Operation, operation, "operation"),
            value_limit=_check_value_limit(value_limit),
        )
        self._functions[key] = allowance
        logger.info(
            f"Allowed function 0x{key[2].hex()} on {key[1]} for role "
            f"{role_hex(key[0])} operation={allowance.operation.name}"
        )
        return allowance

    def scope_function(
        self,
        role: RoleLike,
        target: str,
        selector: Union[bytes, str],
        is_scoped: Sequence[bool],
        param_types: Sequence,
        comparisons: Sequence,
        expected: Sequence,
        operation,
        value_limit: Optional[int] = None,
    ) -> FunctionAllowance:
        """Replace the function's parameter scopes wholesale (never merged)."""
        key = self._function_key(role, target, selector)
        allowance = FunctionAllowance(
            operation=parse_enum(Operation, operation, "operation"),
            parameters=build_parameter_scopes(
                is_scoped, param_types, comparisons, expected
            ),
            value_limit=_check_value_limit(value_limit),
        )
        self._functions[key] = allowance
        logger.info(
            f"Scoped function 0x{key[2].hex()} on {key[1]} for role "
            f"{role_hex(key[0])}: {sum(p.is_scoped for p in allowance.parameters)}"
            f"/{len(allowance.parameters)} parameter(s) scoped"
        )
        return allowance

    def revoke_function(self, role: RoleLike, target: str, selector) -> bool:
        key = self._function_key(role, target, selector)
        removed = self._functions.pop(key, None) is not None
        if removed:
            logger.info(f"Revoked function 0x{key[2].hex()} on {key[1]}")
        return removed

    def set_value_limit(
        self, role: RoleLike, target: str, selector, value_limit: Optional[int]
    ) -> FunctionAllowance:
        key = self._function_key(role, target, selector)
        current = self._functions.get(key)
        if current is None:
            raise FunctionNotConfigured("0x" + key[2].hex(), key[1])
        updated = replace(current, value_limit=_check_value_limit(value_limit))
        self._functions[key] = updated
        logger.info(f"Value limit of 0x{key[2].hex()} on {key[1]} set to {value_limit}")
        return updated

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def get_target(self, role: RoleLike, target: str) -> Optional[TargetAllowance]:
        return self._targets.get((to_role_id(role), to_address(target)))

    def get_function(
        self, role: RoleLike, target: str, selector
    ) -> Optional[FunctionAllowance]:
        return self._functions.get(self._function_key(role, target, selector))

    def functions_of(self, role: RoleLike, target: str) -> Dict[bytes, FunctionAllowance]:
        role_id, address = to_role_id(role), to_address(target)
        return {
            k[2]: v
            for k, v in self._functions.items()
            if k[0] == role_id and k[1] == address
        }

    def targets_of(self, role: RoleLike) -> Dict[str, TargetAllowance]:
        role_id = to_role_id(role)
        return {k[1]: v for k, v in self._targets.items() if k[0] == role_id}

    # -------------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------------

    def resolve(
        self,
        role: RoleLike,
        target: str,
        operation: Operation,
        value: int,
        calldata: Union[bytes, CalldataView],
    ) -> Resolution:
        """
        Decide whether role may send this transaction.

        Raises:
            FunctionSignatureTooShort: target is scoped and calldata < 4 bytes
            CalldataOutOfBounds: a scoped parameter could not be decoded
        """
        role_id, address = to_role_id(role), to_address(target)
        view = calldata if isinstance(calldata, CalldataView) else CalldataView(calldata)

        target_allowance = self._targets.get((role_id, address))
        if target_allowance is None:
            return Resolution(Outcome.CONTRACT_SCOPE_REJECTED, "contract not allowed")

        if not target_allowance.scoped:
            return _operation_rejection(target_allowance.operation, operation) or FULFILLED

        selector = view.selector()
        function = self._functions.get((role_id, address, selector))
        if function is None:
            return Resolution(Outcome.FUNCTION_SCOPE_REJECTED, "function not allowed")

        rejection = _operation_rejection(function.operation, operation)
        if rejection:
            return rejection

        if function.value_limit is not None and value > function.value_limit:
            return Resolution(
                Outcome.VALUE_LIMIT_REJECTED,
                "eth value isn't less than or equal to limit",
            )

        return self._check_parameters(function.parameters, view)

    @staticmethod
    def _check_parameters(
        parameters: Sequence[ParameterScope], view: CalldataView
    ) -> Resolution:
        for index, scope in enumerate(parameters):
            if not scope.is_scoped:
                continue
            actual = view.read_parameter(index, scope.param_type)
            if not compare(scope.param_type, scope.comparison, actual, scope.expected):
                return Resolution(
                    Outcome.PARAMETERS_SCOPE_REJECTED,
                    describe_mismatch(scope.comparison),
                    parameter_index=index,
                )
        return FULFILLED

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def export_state(self) -> Dict[str, List[Dict]]:
        return {
            "targets": [
                {
                    "role": role_hex(role_id),
                    "target": address,
                    "operation": allowance.operation.name.lower(),
                    "scoped": allowance.scoped,
                }
                for (role_id, address), allowance in self._targets.items()
            ],
            "functions": [
                {
                    "role": role_hex(role_id),
                    "target": address,
                    "selector": "0x" + selector.hex(),
                    **allowance.to_dict(),
                }
                for (role_id, address, selector), allowance in self._functions.items()
            ],
        }

    def import_state(self, state: Dict[str, List[Dict]]) -> None:
        """Replace all records. Restored scopes pass the same checks as scope_function()."""
        targets = {}
        for record in state.get("targets", []):
            key = (to_role_id(record["role"]), to_address(record["target"]))
            targets[key] = TargetAllowance(
                operation=parse_enum(Operation, record["operation"], "operation"),
                scoped=bool(record["scoped"]),
            )

        functions = {}
        for record in state.get("functions", []):
            key = self._function_key(record["role"], record["target"], record["selector"])
            parameters = record.get("parameters", [])
            functions[key] = FunctionAllowance(
                operation=parse_enum(Operation, record["operation"], "operation"),
                parameters=build_parameter_scopes(
                    [p["is_scoped"] for p in parameters],
                    [p["param_type"] for p in parameters],
                    [p["comparison"] for p in parameters],
                    [p.get("expected") for p in parameters],
                ),
                value_limit=_check_value_limit(record.get("value_limit")),
            )

        self._targets = targets
        self._functions = functions

    @staticmethod
    def _function_key(role: RoleLike, target: str, selector) -> FunctionKey:
        return (to_role_id(role), to_address(target), to_selector(selector))


def _check_value_limit(value_limit: Optional[int]) -> Optional[int]:
    if value_limit is None:
        return None
    if isinstance(value_limit, bool) or not isinstance(value_limit, int) or value_limit < 0:
        raise InvalidValueLimit(value_limit)
    return value_limit
