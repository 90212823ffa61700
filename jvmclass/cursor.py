"""
Forward-only big-endian reader over class file bytes.
"""

import struct
from typing import BinaryIO, Union

from .errors import TruncatedInputError

_U2 = struct.Struct(">H")
_U4 = struct.Struct(">I")


class ByteCursor:
    """Reads unsigned big-endian integers and byte runs from a buffer.

    Accepts anything bytes-like, or a binary file object which is read to
    the end up front. The position only ever moves forward.
    """

    def __init__(self, source: Union[bytes, bytearray, memoryview, BinaryIO]):
        if hasattr(source, "read"):
            source = source.read()
        self.data = bytes(source)
        self.pos = 0

    @property
    def remaining(self) -> int:
        return len(self.data) - self.pos

    def at_end(self) -> bool:
        return self.pos >= len(self.data)

    def _require(self, width: int):
        if self.remaining < width:
            raise TruncatedInputError(width, self.remaining, self.pos)

    def read_u1(self) -> int:
        self._require(1)
        val = self.data[self.pos]
        self.pos += 1
        return val

    def read_u2(self) -> int:
        self._require(2)
        val = _U2.unpack_from(self.data, self.pos)[0]
        self.pos += 2
        return val

    def read_u4(self) -> int:
        self._require(4)
        val = _U4.unpack_from(self.data, self.pos)[0]
        self.pos += 4
        return val

    def read_bytes(self, length: int) -> bytes:
        self._require(length)
        val = self.data[self.pos:self.pos + length]
        self.pos += length
        return val

    def read_u2_list(self) -> tuple[int, ...]:
        """Read a u2 count followed by that many u2 values."""
        count = self.read_u2()
        return tuple(self.read_u2() for _ in range(count))
