"""
Tests for parameter comparison and scope validation.
"""

import pytest

from permguard.core.comparison import (
    Comparison,
    ParameterType,
    compare,
    describe_mismatch,
    validate_scope,
)
from permguard.core.errors import (
    UnsuitableDynamic32ValueSize,
    UnsuitableRelativeComparison,
    UnsuitableStaticValueSize,
)

from .helpers import word


class TestCompare:
    def test_eq_is_exact_bytes(self):
        assert compare(ParameterType.DYNAMIC, Comparison.EQ, b"abc", b"abc")
        assert not compare(ParameterType.DYNAMIC, Comparison.EQ, b"abc", b"abcd")
        assert not compare(ParameterType.DYNAMIC, Comparison.EQ, b"abc", b"")

    def test_empty_expected_only_matches_empty(self):
        assert compare(ParameterType.DYNAMIC32, Comparison.EQ, b"", b"")
        assert not compare(ParameterType.DYNAMIC32, Comparison.EQ, word(0), b"")

    def test_gt_and_lt_are_strict(self):
        assert compare(ParameterType.STATIC, Comparison.GT, word(11), word(10))
        assert not compare(ParameterType.STATIC, Comparison.GT, word(10), word(10))
        assert compare(ParameterType.STATIC, Comparison.LT, word(9), word(10))
        assert not compare(ParameterType.STATIC, Comparison.LT, word(10), word(10))

    def test_relative_comparison_is_unsigned(self):
        """The top bit set means a large number, not a negative one."""
        assert compare(ParameterType.STATIC, Comparison.GT, b"\xff" * 32, word(1))

    def test_relative_on_dynamic_raises(self):
        with pytest.raises(UnsuitableRelativeComparison):
            compare(ParameterType.DYNAMIC, Comparison.LT, b"a", b"b")


class TestValidateScope:
    def test_relative_comparison_needs_static(self):
        with pytest.raises(UnsuitableRelativeComparison) as exc:
            validate_scope(2, True, ParameterType.DYNAMIC32, Comparison.GT, b"")
        assert exc.value.index == 2

    def test_relative_comparison_rejected_even_when_unscoped(self):
        with pytest.raises(UnsuitableRelativeComparison):
            validate_scope(0, False, ParameterType.DYNAMIC, Comparison.LT, b"")

    def test_static_expected_must_be_one_word(self):
        with pytest.raises(UnsuitableStaticValueSize):
            validate_scope(0, True, ParameterType.STATIC, Comparison.EQ, b"\x01" * 31)

    def test_dynamic32_expected_must_be_whole_words(self):
        with pytest.raises(UnsuitableDynamic32ValueSize):
            validate_scope(0, True, ParameterType.DYNAMIC32, Comparison.EQ, b"\x01" * 33)

        validate_scope(0, True, ParameterType.DYNAMIC32, Comparison.EQ, word(1) + word(2))
        validate_scope(0, True, ParameterType.DYNAMIC32, Comparison.EQ, b"")

    def test_unscoped_expected_is_ignored(self):
        validate_scope(0, False, ParameterType.STATIC, Comparison.EQ, b"")

    def test_dynamic_accepts_any_length(self):
        validate_scope(0, True, ParameterType.DYNAMIC, Comparison.EQ, b"\x01" * 5)


def test_mismatch_reasons():
    assert describe_mismatch(Comparison.EQ) == "input value isn't equal to target value"
    assert describe_mismatch(Comparison.GT) == "input value isn't greater than target value"
    assert describe_mismatch(Comparison.LT) == "input value isn't less than target value"
