"""
Parameter comparison - decides whether one decoded calldata segment satisfies
one configured constraint.
"""

from enum import IntEnum

from .errors import (
    UnsuitableDynamic32ValueSize,
    UnsuitableRelativeComparison,
    UnsuitableStaticValueSize,
)

WORD_SIZE = 32


class ParameterType(IntEnum):
    STATIC = 0  # one head word (uint, address, bool, bytesN)
    DYNAMIC = 1  # bytes / string, byte-length prefixed
    DYNAMIC32 = 2  # T[] of 32-byte elements, element-count prefixed


class Comparison(IntEnum):
    EQ = 0
    GT = 1
    LT = 2


_MISMATCH_REASONS = {
    Comparison.EQ: "input value isn't equal to target value",
    Comparison.GT: "input value isn't greater than target value",
    Comparison.LT: "input value isn't less than target value",
}


def compare(
    param_type: ParameterType, comparison: Comparison, actual: bytes, expected: bytes
) -> bool:
    """
    Compare a decoded parameter against its expected value.

    EQ is exact byte equality, so segment lengths must match too. GT/LT read
    both operands as unsigned 256-bit big-endian integers and are strict.
    """
    if comparison == Comparison.EQ:
        return actual == expected

    if param_type != ParameterType.STATIC:
        # validate_scope keeps these out of the registry
        raise UnsuitableRelativeComparison()

    actual_int = int.from_bytes(actual, "big")
    expected_int = int.from_bytes(expected, "big")
    if comparison == Comparison.GT:
        return actual_int > expected_int
    return actual_int < expected_int


def validate_scope(
    index: int,
    is_scoped: bool,
    param_type: ParameterType,
    comparison: Comparison,
    expected: bytes,
) -> None:
    """Configuration-time checks for one parameter scope entry."""
    if param_type != ParameterType.STATIC and comparison != Comparison.EQ:
        raise UnsuitableRelativeComparison(index)

    if not is_scoped:
        return

    if param_type == ParameterType.STATIC and len(expected) != WORD_SIZE:
        raise UnsuitableStaticValueSize(index, len(expected))
    if param_type == ParameterType.DYNAMIC32 and len(expected) % WORD_SIZE:
        raise UnsuitableDynamic32ValueSize(index, len(expected))


def describe_mismatch(comparison: Comparison) -> str:
    return _MISMATCH_REASONS[comparison]
