"""jvmclass - a decoder for Java class files."""

from .classfile import ClassFile, ConstantPool
from .classreader import ClassReader, ReaderOptions, decode, read_class_file
from .errors import DecodeError, FileUnreadableError

__version__ = "0.1.0"
__all__ = [
    "ClassFile",
    "ClassReader",
    "ConstantPool",
    "DecodeError",
    "FileUnreadableError",
    "ReaderOptions",
    "decode",
    "read_class_file",
]
