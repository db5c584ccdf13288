"""
Tests for the bounds-checked calldata reader.
"""

import pytest

from permguard.core.calldata import CalldataView
from permguard.core.comparison import ParameterType
from permguard.core.errors import CalldataOutOfBounds, FunctionSignatureTooShort

from .helpers import ALICE, address_word, calldata, selector, word


class TestStaticParameters:
    def test_reads_head_words_in_order(self):
        data = calldata("f(uint256,address)", ["uint256", "address"], [5, ALICE])
        view = CalldataView(data)

        assert view.selector() == selector("f(uint256,address)")
        assert view.read_parameter(0, ParameterType.STATIC) == word(5)
        assert view.read_parameter(1, ParameterType.STATIC) == address_word(ALICE)

    def test_static_past_end_raises(self):
        view = CalldataView(calldata("f(uint256)", ["uint256"], [1]))

        with pytest.raises(CalldataOutOfBounds) as exc:
            view.read_parameter(1, ParameterType.STATIC)

        assert exc.value.kind == "static"
        assert exc.value.position == "word"
        assert exc.value.message == "calldata out of bounds for static type"

    def test_partial_word_is_not_zero_filled(self):
        """A head word cut short must not be padded."""
        data = calldata("f(uint256)", ["uint256"], [1])[:-1]

        with pytest.raises(CalldataOutOfBounds):
            CalldataView(data).read_parameter(0, ParameterType.STATIC)

    def test_selector_too_short(self):
        with pytest.raises(FunctionSignatureTooShort):
            CalldataView(b"\x01\x02\x03").selector()


class TestDynamicParameters:
    def test_bytes_payload_without_padding(self):
        data = calldata("f(bytes)", ["bytes"], [b"hello"])

        assert CalldataView(data).read_parameter(0, ParameterType.DYNAMIC) == b"hello"

    def test_string_after_static(self):
        data = calldata("f(uint256,string)", ["uint256", "string"], [7, "abc"])
        view = CalldataView(data)

        assert view.read_parameter(0, ParameterType.STATIC) == word(7)
        assert view.read_parameter(1, ParameterType.DYNAMIC) == b"abc"

    def test_empty_bytes(self):
        data = calldata("f(bytes)", ["bytes"], [b""])

        assert CalldataView(data).read_parameter(0, ParameterType.DYNAMIC) == b""

    def test_missing_head_word_is_reported_at_the_first(self):
        view = CalldataView(selector("f(bytes)"))

        with pytest.raises(CalldataOutOfBounds) as exc:
            view.read_parameter(0, ParameterType.DYNAMIC)

        assert exc.value.position == "head"
        assert exc.value.message == "calldata out of bounds for dynamic type at the first"

    def test_pointer_past_end_is_reported_at_the_first(self):
        view = CalldataView(selector("f(bytes)") + word(0x300000))

        with pytest.raises(CalldataOutOfBounds) as exc:
            view.read_parameter(0, ParameterType.DYNAMIC)

        assert exc.value.position == "head"

    def test_payload_overrun_is_reported_at_the_end(self):
        view = CalldataView(selector("f(bytes)") + word(32) + word(100) + b"\x01" * 10)

        with pytest.raises(CalldataOutOfBounds) as exc:
            view.read_parameter(0, ParameterType.DYNAMIC)

        assert exc.value.position == "tail"
        assert exc.value.message == "calldata out of bounds for dynamic type at the end"


class TestDynamic32Parameters:
    def test_elements_are_words(self):
        data = calldata("f(uint256[])", ["uint256[]"], [[1, 2, 3]])
        view = CalldataView(data)

        head = view.parameter_head(0)
        assert view.read_dynamic32(head) == [word(1), word(2), word(3)]
        assert view.read_parameter(0, ParameterType.DYNAMIC32) == word(1) + word(2) + word(3)

    def test_empty_array_is_empty_bytes(self):
        data = calldata("f(uint256[])", ["uint256[]"], [[]])

        assert CalldataView(data).read_parameter(0, ParameterType.DYNAMIC32) == b""

    def test_array_of_addresses(self):
        data = calldata("f(address[])", ["address[]"], [[ALICE]])

        assert CalldataView(data).read_parameter(0, ParameterType.DYNAMIC32) == address_word(
            ALICE
        )

    def test_element_overrun_is_reported_at_the_end(self):
        view = CalldataView(selector("f(uint256[])") + word(32) + word(2) + word(1))

        with pytest.raises(CalldataOutOfBounds) as exc:
            view.read_parameter(0, ParameterType.DYNAMIC32)

        assert exc.value.kind == "dynamic32"
        assert exc.value.position == "tail"

    def test_error_dict_carries_kind_and_position(self):
        view = CalldataView(selector("f(uint256[])"))

        with pytest.raises(CalldataOutOfBounds) as exc:
            view.read_parameter(0, ParameterType.DYNAMIC32)

        assert exc.value.to_dict() == {
            "error": "calldata_out_of_bounds",
            "message": "calldata out of bounds for dynamic32 type at the first",
            "kind": "dynamic32",
            "position": "head",
        }
