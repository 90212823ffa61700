"""
Errors raised while decoding class files.
"""

from typing import Optional


class DecodeError(Exception):
    """A class file could not be decoded."""

    def __init__(self, message: str, offset: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.offset = offset

    def __str__(self) -> str:
        if self.offset is None:
            return self.message
        return f"{self.message} (at offset {self.offset})"


class BadMagicError(DecodeError):
    """The file does not start with 0xCAFEBABE."""

    def __init__(self, magic: int, offset: int = 0):
        super().__init__(f"Invalid class file magic: {magic:#010x}", offset)
        self.magic = magic


class TruncatedInputError(DecodeError):
    """The input ended before a required field could be read."""

    def __init__(self, wanted: int, available: int, offset: int):
        super().__init__(
            f"Unexpected end of input: wanted {wanted} byte(s), {available} left", offset
        )
        self.wanted = wanted
        self.available = available


class UnknownConstantTagError(DecodeError):
    def __init__(self, tag: int, offset: int):
        super().__init__(f"Unknown constant pool tag: {tag}", offset)
        self.tag = tag


class InvalidUtf8Error(DecodeError):
    def __init__(self, data: bytes, offset: int):
        super().__init__(f"Malformed UTF-8 in constant pool entry: {data!r}", offset)
        self.data = data


class AttributeNameNotUtf8Error(DecodeError):
    def __init__(self, name_index: int, offset: int):
        super().__init__(f"Attribute name index {name_index} is not a Utf8 constant", offset)
        self.name_index = name_index


class AttributeLengthMismatchError(DecodeError):
    """A recognized attribute did not consume exactly its declared length."""

    def __init__(self, name: str, declared: int, consumed: int, offset: int):
        super().__init__(
            f"Attribute {name} declares {declared} byte(s) but its payload is {consumed}", offset
        )
        self.name = name
        self.declared = declared
        self.consumed = consumed


class UnknownFrameTypeError(DecodeError):
    def __init__(self, frame_type: int, offset: int):
        super().__init__(f"Unknown stack map frame type: {frame_type}", offset)
        self.frame_type = frame_type


class UnknownVerificationTagError(DecodeError):
    def __init__(self, tag: int, offset: int):
        super().__init__(f"Unknown verification type tag: {tag}", offset)
        self.tag = tag


class UnknownElementValueTagError(DecodeError):
    def __init__(self, tag: str, offset: int):
        super().__init__(f"Unknown annotation element value tag: {tag!r}", offset)
        self.tag = tag


class RecursionLimitExceededError(DecodeError):
    def __init__(self, limit: int, offset: int):
        super().__init__(f"Nesting deeper than {limit} levels", offset)
        self.limit = limit


class FileUnreadableError(Exception):
    """A class file could not be read from disk."""

    def __init__(self, path, reason: str):
        super().__init__(f"Cannot read {path}: {reason}")
        self.path = path
        self.reason = reason


class ConstantPoolLookupError(LookupError):
    """A constant pool index does not name an entry of the expected kind."""
    pass
