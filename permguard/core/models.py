"""
Permission records - the data model shared by registry, membership and engine.

Role ids are 32 raw bytes, addresses are EIP-55 checksummed strings and
selectors are 4 raw bytes. Helpers here normalise the many spellings callers
use (hex strings, ints, names) into those canonical forms.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Optional, Tuple, Union

from eth_utils import is_address, keccak, to_checksum_address

from .comparison import Comparison, ParameterType
from .errors import FunctionSignatureTooShort, InvalidAddress, InvalidEnumValue

ROLE_SLOTS = 16
ROLE_ID_SIZE = 32
SELECTOR_SIZE = 4

BLANK_ROLE = bytes(ROLE_ID_SIZE)

RoleLike = Union[bytes, str, int]


class Operation(IntEnum):
    """Call-type mask. BOTH is only meaningful on allowances."""

    NONE = 0
    CALL = 1
    DELEGATE_CALL = 2
    BOTH = 3

    def permits(self, requested: "Operation") -> bool:
        return bool(self & requested) and requested in (
            Operation.CALL,
            Operation.DELEGATE_CALL,
        )


class Outcome(IntEnum):
    """Result of resolving one role against one transaction."""

    UNKNOWN = 0
    FULFILLED = 1
    CONTRACT_SCOPE_REJECTED = 2
    FUNCTION_SCOPE_REJECTED = 3
    PARAMETERS_SCOPE_REJECTED = 4
    OPERATION_REJECTED = 5
    VALUE_LIMIT_REJECTED = 6


def parse_enum(enum_cls, value, kind: str):
    """Coerce an int, name or member into enum_cls, rejecting anything else."""
    if isinstance(value, enum_cls):
        return value
    try:
        if isinstance(value, str):
            return enum_cls[value.strip().upper()]
        return enum_cls(value)
    except (KeyError, ValueError):
        raise InvalidEnumValue(kind, value) from None


def to_bytes(value: Union[bytes, bytearray, str, None]) -> bytes:
    """Accept raw bytes or a 0x-prefixed hex string."""
    if value is None:
        return b""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    text = value[2:] if value.startswith(("0x", "0X")) else value
    if len(text) % 2:
        raise ValueError(f"hex string has odd length: {value!r}")
    return bytes.fromhex(text)


def to_role_id(role: RoleLike) -> bytes:
    """
    Normalise a role id to 32 bytes.

    Ints and short hex strings are left-padded, which matches how role ids
    are usually written (role 1 == 0x00...01).
    """
    if isinstance(role, int):
        if role < 0 or role >= 1 << 256:
            raise InvalidEnumValue("role id", role)
        return role.to_bytes(ROLE_ID_SIZE, "big")
    raw = to_bytes(role)
    if len(raw) > ROLE_ID_SIZE:
        raise InvalidEnumValue("role id", role)
    return raw.rjust(ROLE_ID_SIZE, b"\x00")


def role_id_from_name(name: str) -> bytes:
    """Derive a role id from a human readable name (keccak256 of the name)."""
    return keccak(text=name)


def parse_role_ref(ref: RoleLike) -> bytes:
    """A role id (bytes, int, 0x-hex) or, for any other string, a role name."""
    if isinstance(ref, str) and not ref.startswith(("0x", "0X")):
        return role_id_from_name(ref)
    return to_role_id(ref)


def role_hex(role: bytes) -> str:
    return "0x" + role.hex()


def to_address(value: str) -> str:
    if not isinstance(value, str) or not is_address(value):
        raise InvalidAddress(value)
    return to_checksum_address(value)


def to_selector(calldata_or_selector: Union[bytes, str]) -> bytes:
    """Take the leading 4 bytes of a selector or any calldata prefix."""
    raw = to_bytes(calldata_or_selector)
    if len(raw) < SELECTOR_SIZE:
        raise FunctionSignatureTooShort(len(raw))
    return raw[:SELECTOR_SIZE]


@dataclass(frozen=True)
class ParameterScope:
    """Constraint on one top-level ABI parameter."""

    is_scoped: bool
    param_type: ParameterType
    comparison: Comparison
    expected: bytes = b""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_scoped": self.is_scoped,
            "param_type": self.param_type.name.lower(),
            "comparison": self.comparison.name.lower(),
            "expected": "0x" + self.expected.hex(),
        }


@dataclass(frozen=True)
class TargetAllowance:
    operation: Operation = Operation.NONE
    scoped: bool = False


@dataclass(frozen=True)
class FunctionAllowance:
    operation: Operation = Operation.NONE
    parameters: Tuple[ParameterScope, ...] = field(default_factory=tuple)
    value_limit: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation.name.lower(),
            "parameters": [p.to_dict() for p in self.parameters],
            "value_limit": self.value_limit,
        }
