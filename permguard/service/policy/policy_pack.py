"""
Policy Packs - declarative permission configuration in YAML.

A pack describes roles, members, targets and function scopes:

```yaml
name: treasury-ops
description: Operators may move USDC to the payroll wallet only
version: "1.0"

roles:
  operator: ~                 # id = keccak256("operator")
  auditor: "0x02"             # explicit id, left padded to 32 bytes

members:
  "0x5B38Da6a701c568545dCfcB03FcB875f56beddC4": [operator, auditor]

targets:
  - role: operator
    address: "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"
    scoped: true
    functions:
      - signature: "transfer(address,uint256)"
        operation: call
        value_limit: 0
        parameters:
          - {type: static, comparison: eq, expected: "0xAb8483F64d9C6d1EcF9b849Ae677dD3315835cb2"}
          - {type: static, comparison: lt, expected: 1000000000}
  - role: auditor
    address: "0x4B20993Bc481177ec7E8f571ceCaE8A9e22C02db"
    operation: both
  - role: auditor
    address: "0x6B175474E89094C44Da98b954EedeAC495271d0F"
    functions_only: true      # function records, no contract record
    functions:
      - selector: "0x70a08231"

deprecated_roles: [legacy-admin]
```

Static expected values given as ints are encoded as uint256 words, hex
values shorter than a word are left padded. Dynamic32 expected values may be
a list of ints or hex words. Dynamic expected values must be quoted hex
strings: YAML reads an unquoted 0x12 as the int 18. A parameter entry of `~`
or `{scoped: false}` leaves that parameter unconstrained.

A target with `functions_only: true` only writes its function records; the
contract record for that role and address is left as it is.

Packs are applied through the owner-gated guard API after a dry run against
a scratch copy, so a pack that fails validation changes nothing.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import aiofiles
import yaml
from eth_utils import keccak

from ...core.comparison import WORD_SIZE, Comparison, ParameterType
from ...core.errors import GuardError, NotOwner, PolicyPackError
from ...core.models import (
    BLANK_ROLE,
    Operation,
    parse_enum,
    parse_role_ref,
    role_hex,
    role_id_from_name,
    to_address,
    to_bytes,
    to_role_id,
    to_selector,
)
from ...guard_system import PermissionGuard

logger = logging.getLogger("permguard.policy.pack")


@dataclass
class FunctionSpec:
    selector: bytes
    operation: Operation = Operation.CALL
    value_limit: Optional[int] = None
    # None means "allow the function without parameter constraints"
    parameters: Optional[List[Tuple[bool, ParameterType, Comparison, bytes]]] = None


@dataclass
class TargetSpec:
    role: bytes
    address: str
    scoped: bool = False
    operation: Operation = Operation.CALL
    functions: List[FunctionSpec] = field(default_factory=list)
    functions_only: bool = False


@dataclass
class PolicyPack:
    name: str
    description: str = ""
    version: str = "1.0"
    roles: Dict[str, bytes] = field(default_factory=dict)
    members: Dict[str, List[bytes]] = field(default_factory=dict)
    targets: List[TargetSpec] = field(default_factory=list)
    deprecated_roles: List[bytes] = field(default_factory=list)

    def summary(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "roles": len(self.roles),
            "members": len(self.members),
            "targets": len(self.targets),
            "functions": sum(len(t.functions) for t in self.targets),
            "deprecated_roles": len(self.deprecated_roles),
        }


# =============================================================================
# Parsing
# =============================================================================


def load_pack(path: Union[str, Path]) -> PolicyPack:
    """Load and parse a YAML pack from disk."""
    path = Path(path)
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise PolicyPackError(f"cannot read policy pack {path}: {e}") from e
    pack = parse_pack(data)
    logger.info(f"Loaded policy pack {pack.name} from {path}")
    return pack


def parse_pack(data: Union[str, Dict[str, Any]]) -> PolicyPack:
    """Parse a pack from YAML text or an already decoded mapping."""
    if isinstance(data, str):
        try:
            data = yaml.safe_load(data)
        except yaml.YAMLError as e:
            raise PolicyPackError(f"invalid YAML: {e}") from e
    if not isinstance(data, dict):
        raise PolicyPackError("policy pack must be a mapping")

    try:
        roles = {
            str(name): _explicit_role(name, value)
            for name, value in (data.get("roles") or {}).items()
        }

        def resolve_role(ref) -> bytes:
            if isinstance(ref, str) and ref in roles:
                return roles[ref]
            return parse_role_ref(ref)

        members = {
            to_address(member): [resolve_role(r) for r in (member_roles or [])]
            for member, member_roles in (data.get("members") or {}).items()
        }
        targets = [
            _parse_target(entry, resolve_role) for entry in (data.get("targets") or [])
        ]
        deprecated = [resolve_role(r) for r in (data.get("deprecated_roles") or [])]
    except GuardError as e:
        raise PolicyPackError(f"invalid policy pack: {e.message}") from e
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise PolicyPackError(f"invalid policy pack: {e!r}") from e

    return PolicyPack(
        name=str(data.get("name", "unnamed")),
        description=str(data.get("description", "")),
        version=str(data.get("version", "1.0")),
        roles=roles,
        members=members,
        targets=targets,
        deprecated_roles=deprecated,
    )


def _explicit_role(name, value) -> bytes:
    if value is None:
        return role_id_from_name(str(name))
    return to_role_id(value)


def _parse_target(entry: Dict[str, Any], resolve_role) -> TargetSpec:
    functions = [_parse_function(f) for f in (entry.get("functions") or [])]
    return TargetSpec(
        role=resolve_role(entry["role"]),
        address=to_address(entry["address"]),
        scoped=bool(entry.get("scoped", bool(functions))),
        operation=parse_enum(Operation, entry.get("operation", "call"), "operation"),
        functions=functions,
        functions_only=bool(entry.get("functions_only", False)),
    )


def _parse_function(entry: Dict[str, Any]) -> FunctionSpec:
    if "selector" in entry:
        selector = to_selector(entry["selector"])
    elif "signature" in entry:
        selector = keccak(text=entry["signature"].replace(" ", ""))[:4]
    else:
        raise PolicyPackError("function entry needs a selector or a signature")

    parameters = None
    if entry.get("parameters") is not None:
        parameters = [_parse_parameter(p) for p in entry["parameters"]]

    return FunctionSpec(
        selector=selector,
        operation=parse_enum(Operation, entry.get("operation", "call"), "operation"),
        value_limit=entry.get("value_limit"),
        parameters=parameters,
    )


def _parse_parameter(entry) -> Tuple[bool, ParameterType, Comparison, bytes]:
    if entry is None:
        return (False, ParameterType.STATIC, Comparison.EQ, b"")

    param_type = parse_enum(ParameterType, entry.get("type", "static"), "parameter type")
    comparison = parse_enum(Comparison, entry.get("comparison", "eq"), "comparison")
    if not entry.get("scoped", True):
        # unconstrained: keep the declared type and raw expected bytes
        return (False, param_type, comparison, to_bytes(entry.get("expected")))
    return (True, param_type, comparison, encode_expected(param_type, entry.get("expected")))


def encode_expected(param_type: ParameterType, value) -> bytes:
    """Turn a YAML scalar or list into the raw expected bytes of a scope."""
    if value is None:
        return b""
    if param_type == ParameterType.DYNAMIC32 and isinstance(value, list):
        return b"".join(_word(v) for v in value)
    if param_type == ParameterType.STATIC:
        return _word(value)
    if not isinstance(value, str):
        raise PolicyPackError(
            f"{param_type.name.lower()} expected value must be a quoted hex string, "
            f"got {value!r}"
        )
    return to_bytes(value)


def _word(value) -> bytes:
    if isinstance(value, bool):
        value = int(value)
    if isinstance(value, int):
        if value < 0 or value >= 1 << 256:
            raise PolicyPackError(f"value {value} does not fit in uint256")
        return value.to_bytes(WORD_SIZE, "big")
    raw = to_bytes(str(value))
    if len(raw) > WORD_SIZE:
        raise PolicyPackError(f"value {value!r} is longer than one word")
    return raw.rjust(WORD_SIZE, b"\x00")


# =============================================================================
# Applying
# =============================================================================


def apply_pack(guard, sender: str, pack: PolicyPack) -> Dict[str, Any]:
    """
    Apply pack to guard on behalf of sender (must be the owner).

    Order: target and function records, then members, then deprecations, so
    a pack may assign a role and deprecate it for future assignments.
    """
    scratch = PermissionGuard(guard.owner)
    scratch.import_state(guard.export_state())
    try:
        _apply(scratch, sender, pack)
    except GuardError as e:
        logger.warning(f"Policy pack {pack.name} rejected: {e.message}")
        if isinstance(e, (PolicyPackError, NotOwner)):
            raise
        raise PolicyPackError(f"policy pack {pack.name}: {e.message}") from e

    _apply(guard, sender, pack)
    logger.info(f"Applied policy pack {pack.name}: {pack.summary()}")
    return pack.summary()


def _apply(guard, sender: str, pack: PolicyPack) -> None:
    for target in pack.targets:
        if target.scoped and not target.functions_only:
            guard.scope_contract(sender, target.role, target.address)
        elif not target.functions_only:
            guard.allow_contract(sender, target.role, target.address, target.operation)

        for function in target.functions:
            if function.parameters is None:
                guard.allow_function(
                    sender,
                    target.role,
                    target.address,
                    function.selector,
                    function.operation,
                    function.value_limit,
                )
                continue
            is_scoped, types, comparisons, expected = (
                [list(column) for column in zip(*function.parameters)]
                if function.parameters
                else ([], [], [], [])
            )
            guard.scope_function(
                sender,
                target.role,
                target.address,
                function.selector,
                is_scoped,
                types,
                comparisons,
                expected,
                function.operation,
                function.value_limit,
            )

    for member, roles in pack.members.items():
        missing = [r for r in roles if not guard.membership.has_role(member, r)]
        if missing:
            guard.assign_roles(sender, member, missing)

    for role in pack.deprecated_roles:
        if not guard.membership.is_deprecated(role):
            guard.deprecate_role(sender, role)


# =============================================================================
# Export
# =============================================================================


def pack_from_state(state: Dict[str, Any], name: str = "exported") -> Dict[str, Any]:
    """Describe an exported guard state as a pack mapping (role ids in hex)."""
    functions_by_target: Dict[Tuple[str, str], List[Dict[str, Any]]] = {}
    for f in state["registry"]["functions"]:
        entry = {"selector": f["selector"], "operation": f["operation"]}
        if f["value_limit"] is not None:
            entry["value_limit"] = f["value_limit"]
        if f["parameters"]:
            entry["parameters"] = [_export_parameter(p) for p in f["parameters"]]
        functions_by_target.setdefault((f["role"], f["target"]), []).append(entry)

    targets = []
    for t in state["registry"]["targets"]:
        entry = {
            "role": t["role"],
            "address": t["target"],
            "scoped": t["scoped"],
            "operation": t["operation"],
        }
        functions = functions_by_target.pop((t["role"], t["target"]), None)
        if functions:
            entry["functions"] = functions
        targets.append(entry)

    # function records whose role and address have no contract record
    for (role, address), functions in functions_by_target.items():
        targets.append(
            {
                "role": role,
                "address": address,
                "functions_only": True,
                "functions": functions,
            }
        )

    blank = role_hex(BLANK_ROLE)
    return {
        "name": name,
        "version": "1.0",
        "members": {
            member: [r for r in slots if r != blank]
            for member, slots in state["membership"]["members"].items()
            if any(r != blank for r in slots)
        },
        "targets": targets,
        "deprecated_roles": list(state["membership"]["deprecated"]),
    }


def _export_parameter(p: Dict[str, Any]) -> Dict[str, Any]:
    entry = {} if p["is_scoped"] else {"scoped": False}
    entry.update(type=p["param_type"], comparison=p["comparison"], expected=p["expected"])
    return entry


async def export_pack(guard, path: Union[str, Path], name: str = "exported") -> Path:
    """Write the guard's live configuration to path as a YAML pack."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    content = yaml.safe_dump(pack_from_state(guard.export_state(), name), sort_keys=False)

    async with aiofiles.open(path, "w") as f:
        await f.write(content)

    logger.info(f"Exported policy pack {name} to {path}")
    return path
