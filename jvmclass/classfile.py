"""
In-memory model of a decoded Java class file.

Every record is a frozen dataclass holding exactly what the binary format
stores. Cross references stay as raw 1-based constant pool indices; the
ConstantPool accessors resolve them on demand.
"""

import struct
from dataclasses import dataclass
from enum import IntEnum, IntFlag
from typing import ClassVar, Iterator, Optional, Union

from .errors import ConstantPoolLookupError

MAGIC = 0xCAFEBABE


class ClassAccessFlags(IntFlag):
    PUBLIC = 0x0001
    STATIC = 0x0008
    FINAL = 0x0010
    SUPER = 0x0020
    INTERFACE = 0x0200
    ABSTRACT = 0x0400
    SYNTHETIC = 0x1000
    ANNOTATION = 0x2000
    ENUM = 0x4000


class FieldAccessFlags(IntFlag):
    PUBLIC = 0x0001
    PRIVATE = 0x0002
    PROTECTED = 0x0004
    STATIC = 0x0008
    FINAL = 0x0010
    VOLATILE = 0x0040
    TRANSIENT = 0x0080
    SYNTHETIC = 0x1000
    ENUM = 0x4000


class MethodAccessFlags(IntFlag):
    PUBLIC = 0x0001
    PRIVATE = 0x0002
    PROTECTED = 0x0004
    STATIC = 0x0008
    FINAL = 0x0010
    SYNCHRONIZED = 0x0020
    BRIDGE = 0x0040
    VARARGS = 0x0080
    NATIVE = 0x0100
    ABSTRACT = 0x0400
    STRICT = 0x0800
    SYNTHETIC = 0x1000


class InnerClassAccessFlags(IntFlag):
    PUBLIC = 0x0001
    PRIVATE = 0x0002
    PROTECTED = 0x0004
    STATIC = 0x0008
    FINAL = 0x0010
    INTERFACE = 0x0200
    ABSTRACT = 0x0400
    SYNTHETIC = 0x1000
    ANNOTATION = 0x2000
    ENUM = 0x4000


def flag_names(flags_cls: type[IntFlag], value: int) -> list[str]:
    """Names of the flags of flags_cls set in value, lowest bit first."""
    return [flag.name.lower() for flag in flags_cls if flag.value & value]


class ConstantPoolTag(IntEnum):
    UTF8 = 1
    INTEGER = 3
    FLOAT = 4
    LONG = 5
    DOUBLE = 6
    CLASS = 7
    STRING = 8
    FIELDREF = 9
    METHODREF = 10
    INTERFACE_METHODREF = 11
    NAME_AND_TYPE = 12
    METHOD_HANDLE = 15
    METHOD_TYPE = 16
    INVOKE_DYNAMIC = 18


class ReferenceKind(IntEnum):
    GET_FIELD = 1
    GET_STATIC = 2
    PUT_FIELD = 3
    PUT_STATIC = 4
    INVOKE_VIRTUAL = 5
    INVOKE_STATIC = 6
    INVOKE_SPECIAL = 7
    NEW_INVOKE_SPECIAL = 8
    INVOKE_INTERFACE = 9


# ==================== CONSTANT POOL ====================

class ConstantPoolEntry:
    """Base class for constant pool entries."""
    tag: ClassVar[ConstantPoolTag]


@dataclass(frozen=True)
class Utf8Info(ConstantPoolEntry):
    tag: ClassVar[ConstantPoolTag] = ConstantPoolTag.UTF8
    value: str


@dataclass(frozen=True)
class IntegerInfo(ConstantPoolEntry):
    tag: ClassVar[ConstantPoolTag] = ConstantPoolTag.INTEGER
    bytes: int

    @property
    def value(self) -> int:
        return struct.unpack(">i", struct.pack(">I", self.bytes))[0]


@dataclass(frozen=True)
class FloatInfo(ConstantPoolEntry):
    tag: ClassVar[ConstantPoolTag] = ConstantPoolTag.FLOAT
    bytes: int

    @property
    def value(self) -> float:
        return struct.unpack(">f", struct.pack(">I", self.bytes))[0]


@dataclass(frozen=True)
class LongInfo(ConstantPoolEntry):
    tag: ClassVar[ConstantPoolTag] = ConstantPoolTag.LONG
    high_bytes: int
    low_bytes: int

    @property
    def value(self) -> int:
        return struct.unpack(">q", struct.pack(">II", self.high_bytes, self.low_bytes))[0]


@dataclass(frozen=True)
class DoubleInfo(ConstantPoolEntry):
    tag: ClassVar[ConstantPoolTag] = ConstantPoolTag.DOUBLE
    high_bytes: int
    low_bytes: int

    @property
    def value(self) -> float:
        return struct.unpack(">d", struct.pack(">II", self.high_bytes, self.low_bytes))[0]


@dataclass(frozen=True)
class ClassInfo(ConstantPoolEntry):
    tag: ClassVar[ConstantPoolTag] = ConstantPoolTag.CLASS
    name_index: int


@dataclass(frozen=True)
class StringInfo(ConstantPoolEntry):
    tag: ClassVar[ConstantPoolTag] = ConstantPoolTag.STRING
    string_index: int


@dataclass(frozen=True)
class FieldRefInfo(ConstantPoolEntry):
    tag: ClassVar[ConstantPoolTag] = ConstantPoolTag.FIELDREF
    class_index: int
    name_and_type_index: int


@dataclass(frozen=True)
class MethodRefInfo(ConstantPoolEntry):
    tag: ClassVar[ConstantPoolTag] = ConstantPoolTag.METHODREF
    class_index: int
    name_and_type_index: int


@dataclass(frozen=True)
class InterfaceMethodRefInfo(ConstantPoolEntry):
    tag: ClassVar[ConstantPoolTag] = ConstantPoolTag.INTERFACE_METHODREF
    class_index: int
    name_and_type_index: int


@dataclass(frozen=True)
class NameAndTypeInfo(ConstantPoolEntry):
    tag: ClassVar[ConstantPoolTag] = ConstantPoolTag.NAME_AND_TYPE
    name_index: int
    descriptor_index: int


@dataclass(frozen=True)
class MethodHandleInfo(ConstantPoolEntry):
    tag: ClassVar[ConstantPoolTag] = ConstantPoolTag.METHOD_HANDLE
    reference_kind: int
    reference_index: int


@dataclass(frozen=True)
class MethodTypeInfo(ConstantPoolEntry):
    tag: ClassVar[ConstantPoolTag] = ConstantPoolTag.METHOD_TYPE
    descriptor_index: int


@dataclass(frozen=True)
class InvokeDynamicInfo(ConstantPoolEntry):
    tag: ClassVar[ConstantPoolTag] = ConstantPoolTag.INVOKE_DYNAMIC
    bootstrap_method_attr_index: int
    name_and_type_index: int


class ConstantPool:
    """The decoded constant pool, addressed by 1-based index.

    Iterating yields the stored slots in order; the slot after a Long or
    Double entry is None when the two-slot convention was applied.
    """

    def __init__(self, entries=()):
        self._entries: tuple[Optional[ConstantPoolEntry], ...] = tuple(entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Optional[ConstantPoolEntry]]:
        return iter(self._entries)

    def __eq__(self, other) -> bool:
        if not isinstance(other, ConstantPool):
            return NotImplemented
        return self._entries == other._entries

    def __repr__(self) -> str:
        return f"ConstantPool({list(self._entries)!r})"

    def __getitem__(self, index: int) -> Optional[ConstantPoolEntry]:
        if not 1 <= index <= len(self._entries):
            raise ConstantPoolLookupError(f"Constant pool index {index} out of range 1..{len(self._entries)}")
        return self._entries[index - 1]

    def items(self) -> Iterator[tuple[int, ConstantPoolEntry]]:
        """Yield (index, entry) pairs, skipping wide-slot placeholders."""
        for i, entry in enumerate(self._entries, start=1):
            if entry is not None:
                yield i, entry

    def get(self, index: int, kind=None) -> ConstantPoolEntry:
        """Look up an entry, optionally checking it is an instance of kind."""
        entry = self[index]
        if entry is None:
            raise ConstantPoolLookupError(f"Constant pool index {index} is the second slot of a wide constant")
        if kind is not None and not isinstance(entry, kind):
            expected = kind.__name__ if isinstance(kind, type) else " or ".join(k.__name__ for k in kind)
            raise ConstantPoolLookupError(
                f"Expected {expected} at index {index}, got {type(entry).__name__}"
            )
        return entry

    def utf8(self, index: int) -> str:
        return self.get(index, Utf8Info).value

    def class_name(self, index: int) -> Optional[str]:
        """Internal name of a Class entry; index 0 means "none" (e.g. Object's super)."""
        if index == 0:
            return None
        return self.utf8(self.get(index, ClassInfo).name_index)

    def name_and_type(self, index: int) -> tuple[str, str]:
        entry = self.get(index, NameAndTypeInfo)
        return self.utf8(entry.name_index), self.utf8(entry.descriptor_index)

    def member_ref(self, index: int) -> tuple[str, str, str]:
        """Resolve a Fieldref/Methodref/InterfaceMethodref to (class, name, descriptor)."""
        entry = self.get(index, (FieldRefInfo, MethodRefInfo, InterfaceMethodRefInfo))
        name, descriptor = self.name_and_type(entry.name_and_type_index)
        return self.class_name(entry.class_index), name, descriptor


# ==================== VERIFICATION TYPES ====================

class VerificationTag(IntEnum):
    TOP = 0
    INTEGER = 1
    FLOAT = 2
    DOUBLE = 3
    LONG = 4
    NULL = 5
    UNINITIALIZED_THIS = 6
    OBJECT = 7
    UNINITIALIZED = 8


class VerificationTypeInfo:
    """Base class for verification types."""
    tag: ClassVar[VerificationTag]


@dataclass(frozen=True)
class TopVariableInfo(VerificationTypeInfo):
    tag: ClassVar[VerificationTag] = VerificationTag.TOP


@dataclass(frozen=True)
class IntegerVariableInfo(VerificationTypeInfo):
    tag: ClassVar[VerificationTag] = VerificationTag.INTEGER


@dataclass(frozen=True)
class FloatVariableInfo(VerificationTypeInfo):
    tag: ClassVar[VerificationTag] = VerificationTag.FLOAT


@dataclass(frozen=True)
class DoubleVariableInfo(VerificationTypeInfo):
    tag: ClassVar[VerificationTag] = VerificationTag.DOUBLE


@dataclass(frozen=True)
class LongVariableInfo(VerificationTypeInfo):
    tag: ClassVar[VerificationTag] = VerificationTag.LONG


@dataclass(frozen=True)
class NullVariableInfo(VerificationTypeInfo):
    tag: ClassVar[VerificationTag] = VerificationTag.NULL


@dataclass(frozen=True)
class UninitializedThisVariableInfo(VerificationTypeInfo):
    tag: ClassVar[VerificationTag] = VerificationTag.UNINITIALIZED_THIS


@dataclass(frozen=True)
class ObjectVariableInfo(VerificationTypeInfo):
    tag: ClassVar[VerificationTag] = VerificationTag.OBJECT
    cpool_index: int


@dataclass(frozen=True)
class UninitializedVariableInfo(VerificationTypeInfo):
    tag: ClassVar[VerificationTag] = VerificationTag.UNINITIALIZED
    offset: int


# ==================== STACK MAP FRAMES ====================

@dataclass(frozen=True)
class SameFrame:
    pass


@dataclass(frozen=True)
class SameLocalsStackItemFrame:
    stack: VerificationTypeInfo


@dataclass(frozen=True)
class SameLocalsStackItemExtendedFrame:
    offset_delta: int
    stack: VerificationTypeInfo


@dataclass(frozen=True)
class ChopFrame:
    offset_delta: int


@dataclass(frozen=True)
class SameExtendedFrame:
    offset_delta: int


@dataclass(frozen=True)
class AppendFrame:
    offset_delta: int
    locals: tuple[VerificationTypeInfo, ...]


@dataclass(frozen=True)
class FullFrame:
    offset_delta: int
    locals: tuple[VerificationTypeInfo, ...]
    stack: tuple[VerificationTypeInfo, ...]


FrameInfo = Union[
    SameFrame, SameLocalsStackItemFrame, SameLocalsStackItemExtendedFrame,
    ChopFrame, SameExtendedFrame, AppendFrame, FullFrame,
]


@dataclass(frozen=True)
class StackMapFrame:
    frame_type: int
    info: FrameInfo

    @property
    def offset_delta(self) -> int:
        if isinstance(self.info, SameFrame):
            return self.frame_type
        if isinstance(self.info, SameLocalsStackItemFrame):
            return self.frame_type - 64
        return self.info.offset_delta

    @property
    def chopped(self) -> int:
        """Number of locals removed by a chop frame, 0 for every other kind."""
        if isinstance(self.info, ChopFrame):
            return 251 - self.frame_type
        return 0


# ==================== ANNOTATIONS ====================

@dataclass(frozen=True)
class ConstValue:
    """B C D F I J S Z s: index of the constant."""
    const_value_index: int


@dataclass(frozen=True)
class EnumConstValue:
    type_name_index: int
    const_name_index: int


@dataclass(frozen=True)
class ClassInfoValue:
    class_info_index: int


@dataclass(frozen=True)
class AnnotationValue:
    annotation: "Annotation"


@dataclass(frozen=True)
class ArrayValue:
    values: tuple["ElementValue", ...]


@dataclass(frozen=True)
class ElementValue:
    tag: str
    value: Union[ConstValue, EnumConstValue, ClassInfoValue, AnnotationValue, ArrayValue]


@dataclass(frozen=True)
class ElementValuePair:
    element_name_index: int
    value: ElementValue


@dataclass(frozen=True)
class Annotation:
    type_index: int
    element_value_pairs: tuple[ElementValuePair, ...] = ()


@dataclass(frozen=True)
class ParameterAnnotations:
    annotations: tuple[Annotation, ...] = ()


# ==================== ATTRIBUTES ====================

class HasAttributes:
    """Mixin for records that own an attribute list."""
    attributes: tuple["AttributeInfo", ...]

    def find_attribute(self, name: str):
        """Payload of the first attribute called name, or None."""
        for attr in self.attributes:
            if attr.name == name:
                return attr.info
        return None


@dataclass(frozen=True)
class ExceptionTableEntry:
    start_pc: int
    end_pc: int
    handler_pc: int
    catch_type: int


@dataclass(frozen=True)
class ConstantValueAttribute:
    name: ClassVar[str] = "ConstantValue"
    constantvalue_index: int


@dataclass(frozen=True)
class CodeAttribute(HasAttributes):
    name: ClassVar[str] = "Code"
    max_stack: int
    max_locals: int
    code: bytes
    exception_table: tuple[ExceptionTableEntry, ...] = ()
    attributes: tuple["AttributeInfo", ...] = ()


@dataclass(frozen=True)
class StackMapTableAttribute:
    name: ClassVar[str] = "StackMapTable"
    entries: tuple[StackMapFrame, ...] = ()


@dataclass(frozen=True)
class ExceptionsAttribute:
    name: ClassVar[str] = "Exceptions"
    exception_index_table: tuple[int, ...] = ()


@dataclass(frozen=True)
class InnerClassEntry:
    inner_class_info_index: int
    outer_class_info_index: int
    inner_name_index: int
    inner_class_access_flags: int


@dataclass(frozen=True)
class InnerClassesAttribute:
    name: ClassVar[str] = "InnerClasses"
    classes: tuple[InnerClassEntry, ...] = ()


@dataclass(frozen=True)
class EnclosingMethodAttribute:
    name: ClassVar[str] = "EnclosingMethod"
    class_index: int
    method_index: int


@dataclass(frozen=True)
class SyntheticAttribute:
    name: ClassVar[str] = "Synthetic"


@dataclass(frozen=True)
class SignatureAttribute:
    name: ClassVar[str] = "Signature"
    signature_index: int


@dataclass(frozen=True)
class SourceFileAttribute:
    name: ClassVar[str] = "SourceFile"
    sourcefile_index: int


@dataclass(frozen=True)
class SourceDebugExtensionAttribute:
    name: ClassVar[str] = "SourceDebugExtension"
    debug_extension: bytes


@dataclass(frozen=True)
class LineNumberEntry:
    start_pc: int
    line_number: int


@dataclass(frozen=True)
class LineNumberTableAttribute:
    name: ClassVar[str] = "LineNumberTable"
    line_number_table: tuple[LineNumberEntry, ...] = ()


@dataclass(frozen=True)
class LocalVariableEntry:
    start_pc: int
    length: int
    name_index: int
    descriptor_index: int
    index: int


@dataclass(frozen=True)
class LocalVariableTableAttribute:
    name: ClassVar[str] = "LocalVariableTable"
    local_variable_table: tuple[LocalVariableEntry, ...] = ()


@dataclass(frozen=True)
class LocalVariableTypeEntry:
    start_pc: int
    length: int
    name_index: int
    signature_index: int
    index: int


@dataclass(frozen=True)
class LocalVariableTypeTableAttribute:
    name: ClassVar[str] = "LocalVariableTypeTable"
    local_variable_type_table: tuple[LocalVariableTypeEntry, ...] = ()


@dataclass(frozen=True)
class DeprecatedAttribute:
    name: ClassVar[str] = "Deprecated"


@dataclass(frozen=True)
class RuntimeVisibleAnnotationsAttribute:
    name: ClassVar[str] = "RuntimeVisibleAnnotations"
    annotations: tuple[Annotation, ...] = ()


@dataclass(frozen=True)
class RuntimeInvisibleAnnotationsAttribute:
    name: ClassVar[str] = "RuntimeInvisibleAnnotations"
    annotations: tuple[Annotation, ...] = ()


@dataclass(frozen=True)
class RuntimeVisibleParameterAnnotationsAttribute:
    name: ClassVar[str] = "RuntimeVisibleParameterAnnotations"
    parameter_annotations: tuple[ParameterAnnotations, ...] = ()


@dataclass(frozen=True)
class RuntimeInvisibleParameterAnnotationsAttribute:
    name: ClassVar[str] = "RuntimeInvisibleParameterAnnotations"
    parameter_annotations: tuple[ParameterAnnotations, ...] = ()


@dataclass(frozen=True)
class AnnotationDefaultAttribute:
    name: ClassVar[str] = "AnnotationDefault"
    default_value: ElementValue


@dataclass(frozen=True)
class BootstrapMethod:
    bootstrap_method_ref: int
    bootstrap_arguments: tuple[int, ...] = ()


@dataclass(frozen=True)
class BootstrapMethodsAttribute:
    name: ClassVar[str] = "BootstrapMethods"
    bootstrap_methods: tuple[BootstrapMethod, ...] = ()


@dataclass(frozen=True)
class UnknownAttribute:
    """Payload of an attribute whose name is not recognized, kept verbatim."""
    data: bytes


@dataclass(frozen=True)
class AttributeInfo:
    name_index: int
    length: int
    name: str
    info: object


# ==================== MEMBERS AND CLASS ====================

@dataclass(frozen=True)
class FieldInfo(HasAttributes):
    access_flags: int
    name_index: int
    descriptor_index: int
    attributes: tuple[AttributeInfo, ...] = ()


@dataclass(frozen=True)
class MethodInfo(HasAttributes):
    access_flags: int
    name_index: int
    descriptor_index: int
    attributes: tuple[AttributeInfo, ...] = ()

    @property
    def code(self) -> Optional[CodeAttribute]:
        return self.find_attribute("Code")


@dataclass(frozen=True)
class ClassFile(HasAttributes):
    magic: int
    minor_version: int
    major_version: int
    constant_pool: ConstantPool
    access_flags: int
    this_class: int
    super_class: int
    interfaces: tuple[int, ...] = ()
    fields: tuple[FieldInfo, ...] = ()
    methods: tuple[MethodInfo, ...] = ()
    attributes: tuple[AttributeInfo, ...] = ()

    @property
    def version(self) -> tuple[int, int]:
        return (self.major_version, self.minor_version)

    @property
    def name(self) -> Optional[str]:
        return self.constant_pool.class_name(self.this_class)

    @property
    def super_name(self) -> Optional[str]:
        return self.constant_pool.class_name(self.super_class)
