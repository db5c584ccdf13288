"""
Bounds-checked reader over raw ABI calldata.

Layout: 4-byte selector, then one 32-byte head word per top-level parameter.
Dynamic parameters store in their head word an offset, relative to the start
of the parameter block, to a length word followed by the payload.

Every read is checked against the buffer. Nothing is truncated or zero-filled:
a short buffer raises CalldataOutOfBounds.
"""

from typing import List

from .comparison import WORD_SIZE, ParameterType
from .errors import CalldataOutOfBounds, FunctionSignatureTooShort

SELECTOR_SIZE = 4


class CalldataView:
    """Read-only view over one calldata buffer."""

    __slots__ = ("data",)

    def __init__(self, data: bytes):
        self.data = bytes(data)

    def __len__(self) -> int:
        return len(self.data)

    def selector(self) -> bytes:
        if len(self.data) < SELECTOR_SIZE:
            raise FunctionSignatureTooShort(len(self.data))
        return self.data[:SELECTOR_SIZE]

    @staticmethod
    def parameter_head(index: int) -> int:
        """Absolute offset of the head word of top-level parameter index."""
        return SELECTOR_SIZE + WORD_SIZE * index

    def read_word(self, offset: int) -> bytes:
        end = offset + WORD_SIZE
        if offset < 0 or end > len(self.data):
            raise CalldataOutOfBounds("static", "word", offset)
        return self.data[offset:end]

    def read_dynamic(self, head_offset: int) -> bytes:
        start, length = self._resolve_tail(head_offset, "dynamic")
        end = start + length
        if end > len(self.data):
            raise CalldataOutOfBounds("dynamic", "tail", start)
        return self.data[start:end]

    def read_dynamic32(self, head_offset: int) -> List[bytes]:
        start, count = self._resolve_tail(head_offset, "dynamic32")
        end = start + count * WORD_SIZE
        if end > len(self.data):
            raise CalldataOutOfBounds("dynamic32", "tail", start)
        return [
            self.data[pos : pos + WORD_SIZE] for pos in range(start, end, WORD_SIZE)
        ]

    def read_parameter(self, index: int, param_type: ParameterType) -> bytes:
        """
        Decode top-level parameter index as param_type.

        Dynamic32 elements are returned concatenated so the result can be
        compared byte-for-byte against a packed expected value.
        """
        head = self.parameter_head(index)
        if param_type == ParameterType.STATIC:
            return self.read_word(head)
        if param_type == ParameterType.DYNAMIC:
            return self.read_dynamic(head)
        return b"".join(self.read_dynamic32(head))

    def _resolve_tail(self, head_offset: int, kind: str):
        """Follow a head pointer; return (payload start, length word value)."""
        head_end = head_offset + WORD_SIZE
        if head_offset < 0 or head_end > len(self.data):
            raise CalldataOutOfBounds(kind, "head", head_offset)

        pointer = int.from_bytes(self.data[head_offset:head_end], "big")
        length_offset = SELECTOR_SIZE + pointer
        length_end = length_offset + WORD_SIZE
        if length_end > len(self.data):
            raise CalldataOutOfBounds(kind, "head", length_offset)

        length = int.from_bytes(self.data[length_offset:length_end], "big")
        return length_end, length
