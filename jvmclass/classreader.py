"""
Java class file reader.

Decodes the complete structure of a class file (constant pool, fields,
methods, attributes, stack map frames and annotations) in one forward pass.
Constant pool references are left as raw indices.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .classfile import (
    MAGIC, Annotation, AnnotationDefaultAttribute, AnnotationValue, AppendFrame,
    ArrayValue, AttributeInfo, BootstrapMethod, BootstrapMethodsAttribute, ChopFrame,
    ClassFile, ClassInfo, ClassInfoValue, CodeAttribute, ConstantPool, ConstantPoolEntry,
    ConstantPoolTag, ConstantValueAttribute, ConstValue, DeprecatedAttribute, DoubleInfo,
    DoubleVariableInfo, ElementValue, ElementValuePair, EnclosingMethodAttribute,
    EnumConstValue, ExceptionsAttribute, ExceptionTableEntry, FieldInfo, FieldRefInfo,
    FloatInfo, FloatVariableInfo, FullFrame, InnerClassEntry, InnerClassesAttribute,
    IntegerInfo, IntegerVariableInfo, InterfaceMethodRefInfo, InvokeDynamicInfo,
    LineNumberEntry, LineNumberTableAttribute, LocalVariableEntry,
    LocalVariableTableAttribute, LocalVariableTypeEntry, LocalVariableTypeTableAttribute,
    LongInfo, LongVariableInfo, MethodHandleInfo, MethodInfo, MethodRefInfo, MethodTypeInfo,
    NameAndTypeInfo, NullVariableInfo, ObjectVariableInfo, ParameterAnnotations,
    RuntimeInvisibleAnnotationsAttribute, RuntimeInvisibleParameterAnnotationsAttribute,
    RuntimeVisibleAnnotationsAttribute, RuntimeVisibleParameterAnnotationsAttribute,
    SameExtendedFrame, SameFrame, SameLocalsStackItemExtendedFrame, SameLocalsStackItemFrame,
    SignatureAttribute, SourceDebugExtensionAttribute, SourceFileAttribute, StackMapFrame,
    StackMapTableAttribute, StringInfo, SyntheticAttribute, TopVariableInfo,
    UninitializedThisVariableInfo, UninitializedVariableInfo, UnknownAttribute, Utf8Info,
    VerificationTag, VerificationTypeInfo,
)
from .cursor import ByteCursor
from .errors import (
    AttributeLengthMismatchError, AttributeNameNotUtf8Error, BadMagicError,
    ConstantPoolLookupError, FileUnreadableError, InvalidUtf8Error,
    RecursionLimitExceededError, UnknownConstantTagError, UnknownElementValueTagError,
    UnknownFrameTypeError, UnknownVerificationTagError,
)

logger = logging.getLogger(__name__)

# Verification types without a payload, by tag.
_PLAIN_VERIFICATION_TYPES = {
    VerificationTag.TOP: TopVariableInfo,
    VerificationTag.INTEGER: IntegerVariableInfo,
    VerificationTag.FLOAT: FloatVariableInfo,
    VerificationTag.DOUBLE: DoubleVariableInfo,
    VerificationTag.LONG: LongVariableInfo,
    VerificationTag.NULL: NullVariableInfo,
    VerificationTag.UNINITIALIZED_THIS: UninitializedThisVariableInfo,
}


@dataclass(frozen=True)
class ReaderOptions:
    """Knobs for ClassReader.

    max_depth bounds nesting of Code attribute lists and annotation values.
    wide_constants gives Long/Double entries two pool slots.
    check_attribute_lengths requires each recognized attribute to fill
    exactly its declared length.
    allow_truncated_tables treats input that stops right after the
    interfaces as having empty field, method and attribute tables.
    """
    max_depth: int = 64
    wide_constants: bool = True
    check_attribute_lengths: bool = True
    allow_truncated_tables: bool = True

    def __post_init__(self):
        if self.max_depth < 0:
            raise ValueError(f"max_depth must not be negative, got {self.max_depth}")


class ClassReader:
    """Reads Java class files. Each instance decodes one input once."""

    def __init__(self, data, options: Optional[ReaderOptions] = None):
        self.cursor = ByteCursor(data)
        self.options = options or ReaderOptions()
        self.constant_pool = ConstantPool()
        self._depth = 0
        self._deepest = 0

    @contextmanager
    def _nested(self):
        if self._depth >= self.options.max_depth:
            raise RecursionLimitExceededError(self.options.max_depth, self.cursor.pos)
        outermost = self._depth == 0
        self._depth += 1
        self._deepest = max(self._deepest, self._depth)
        try:
            yield
        except RecursionError:
            # Python's stack ran out before max_depth; convert at the outermost level.
            if not outermost:
                raise
            raise RecursionLimitExceededError(self._deepest, self.cursor.pos) from None
        finally:
            self._depth -= 1

    # ==================== CONSTANT POOL ====================

    def _read_constant_pool(self) -> ConstantPool:
        """Read the constant pool; the stored count is one more than the slots present."""
        count = self.cursor.read_u2()
        logger.debug("Running for %d constant pool slots", max(count - 1, 0))
        entries: list[Optional[ConstantPoolEntry]] = []
        while len(entries) < count - 1:
            entry = self._read_constant()
            entries.append(entry)
            if self.options.wide_constants and isinstance(entry, (LongInfo, DoubleInfo)):
                entries.append(None)  # Long/Double take 2 slots
        return ConstantPool(entries)

    def _read_constant(self) -> ConstantPoolEntry:
        c = self.cursor
        offset = c.pos
        tag = c.read_u1()

        if tag == ConstantPoolTag.UTF8:
            length = c.read_u2()
            raw = c.read_bytes(length)
            try:
                return Utf8Info(raw.decode("utf-8"))
            except UnicodeDecodeError:
                raise InvalidUtf8Error(raw, offset) from None

        elif tag == ConstantPoolTag.INTEGER:
            return IntegerInfo(c.read_u4())

        elif tag == ConstantPoolTag.FLOAT:
            return FloatInfo(c.read_u4())

        elif tag == ConstantPoolTag.LONG:
            high = c.read_u4()
            return LongInfo(high, c.read_u4())

        elif tag == ConstantPoolTag.DOUBLE:
            high = c.read_u4()
            return DoubleInfo(high, c.read_u4())

        elif tag == ConstantPoolTag.CLASS:
            return ClassInfo(c.read_u2())

        elif tag == ConstantPoolTag.STRING:
            return StringInfo(c.read_u2())

        elif tag == ConstantPoolTag.FIELDREF:
            class_idx = c.read_u2()
            return FieldRefInfo(class_idx, c.read_u2())

        elif tag == ConstantPoolTag.METHODREF:
            class_idx = c.read_u2()
            return MethodRefInfo(class_idx, c.read_u2())

        elif tag == ConstantPoolTag.INTERFACE_METHODREF:
            class_idx = c.read_u2()
            return InterfaceMethodRefInfo(class_idx, c.read_u2())

        elif tag == ConstantPoolTag.NAME_AND_TYPE:
            name_idx = c.read_u2()
            return NameAndTypeInfo(name_idx, c.read_u2())

        elif tag == ConstantPoolTag.METHOD_HANDLE:
            kind = c.read_u1()
            return MethodHandleInfo(kind, c.read_u2())

        elif tag == ConstantPoolTag.METHOD_TYPE:
            return MethodTypeInfo(c.read_u2())

        elif tag == ConstantPoolTag.INVOKE_DYNAMIC:
            bootstrap_idx = c.read_u2()
            return InvokeDynamicInfo(bootstrap_idx, c.read_u2())

        raise UnknownConstantTagError(tag, offset)

    # ==================== ATTRIBUTES ====================

    def _read_attributes(self) -> tuple[AttributeInfo, ...]:
        count = self.cursor.read_u2()
        return tuple(self._read_attribute() for _ in range(count))

    def _attribute_name(self, name_index: int, offset: int) -> str:
        try:
            entry = self.constant_pool[name_index]
        except ConstantPoolLookupError:
            raise AttributeNameNotUtf8Error(name_index, offset) from None
        if not isinstance(entry, Utf8Info):
            raise AttributeNameNotUtf8Error(name_index, offset)
        return entry.value

    def _read_attribute(self) -> AttributeInfo:
        c = self.cursor
        offset = c.pos
        name_index = c.read_u2()
        length = c.read_u4()
        name = self._attribute_name(name_index, offset)

        start = c.pos
        info = self._read_attribute_info(name, length)
        consumed = c.pos - start
        if self.options.check_attribute_lengths and consumed != length:
            raise AttributeLengthMismatchError(name, length, consumed, offset)
        return AttributeInfo(name_index, length, name, info)

    def _read_attribute_info(self, name: str, length: int):
        """Decode an attribute payload selected by the attribute's name."""
        c = self.cursor

        if name == "ConstantValue":
            return ConstantValueAttribute(c.read_u2())

        elif name == "Code":
            return self._read_code()

        elif name == "StackMapTable":
            count = c.read_u2()
            return StackMapTableAttribute(tuple(self._read_stack_map_frame() for _ in range(count)))

        elif name == "Exceptions":
            return ExceptionsAttribute(c.read_u2_list())

        elif name == "InnerClasses":
            return InnerClassesAttribute(self._read_inner_classes())

        elif name == "EnclosingMethod":
            class_idx = c.read_u2()
            return EnclosingMethodAttribute(class_idx, c.read_u2())

        elif name == "Synthetic":
            return SyntheticAttribute()

        elif name == "Signature":
            return SignatureAttribute(c.read_u2())

        elif name == "SourceFile":
            return SourceFileAttribute(c.read_u2())

        elif name == "SourceDebugExtension":
            return SourceDebugExtensionAttribute(c.read_bytes(length))

        elif name == "LineNumberTable":
            return LineNumberTableAttribute(self._read_line_numbers())

        elif name == "LocalVariableTable":
            return LocalVariableTableAttribute(self._read_local_variables())

        elif name == "LocalVariableTypeTable":
            return LocalVariableTypeTableAttribute(self._read_local_variable_types())

        elif name == "Deprecated":
            return DeprecatedAttribute()

        elif name == "RuntimeVisibleAnnotations":
            return RuntimeVisibleAnnotationsAttribute(self._read_annotations())

        elif name == "RuntimeInvisibleAnnotations":
            return RuntimeInvisibleAnnotationsAttribute(self._read_annotations())

        elif name == "RuntimeVisibleParameterAnnotations":
            return RuntimeVisibleParameterAnnotationsAttribute(self._read_parameter_annotations())

        elif name == "RuntimeInvisibleParameterAnnotations":
            return RuntimeInvisibleParameterAnnotationsAttribute(self._read_parameter_annotations())

        elif name == "AnnotationDefault":
            return AnnotationDefaultAttribute(self._read_element_value())

        elif name == "BootstrapMethods":
            return BootstrapMethodsAttribute(self._read_bootstrap_methods())

        logger.debug("Unrecognized attribute %r, keeping %d raw bytes", name, length)
        return UnknownAttribute(c.read_bytes(length))

    def _read_code(self) -> CodeAttribute:
        c = self.cursor
        max_stack = c.read_u2()
        max_locals = c.read_u2()
        code_length = c.read_u4()
        code = c.read_bytes(code_length)

        exception_table = []
        for _ in range(c.read_u2()):
            exception_table.append(ExceptionTableEntry(
                start_pc=c.read_u2(),
                end_pc=c.read_u2(),
                handler_pc=c.read_u2(),
                catch_type=c.read_u2(),
            ))

        with self._nested():
            attributes = self._read_attributes()

        return CodeAttribute(
            max_stack=max_stack,
            max_locals=max_locals,
            code=code,
            exception_table=tuple(exception_table),
            attributes=attributes,
        )

    def _read_inner_classes(self) -> tuple[InnerClassEntry, ...]:
        c = self.cursor
        classes = []
        for _ in range(c.read_u2()):
            classes.append(InnerClassEntry(
                inner_class_info_index=c.read_u2(),
                outer_class_info_index=c.read_u2(),
                inner_name_index=c.read_u2(),
                inner_class_access_flags=c.read_u2(),
            ))
        return tuple(classes)

    def _read_line_numbers(self) -> tuple[LineNumberEntry, ...]:
        c = self.cursor
        table = []
        for _ in range(c.read_u2()):
            start_pc = c.read_u2()
            table.append(LineNumberEntry(start_pc, c.read_u2()))
        return tuple(table)

    def _read_local_variables(self) -> tuple[LocalVariableEntry, ...]:
        c = self.cursor
        table = []
        for _ in range(c.read_u2()):
            table.append(LocalVariableEntry(
                start_pc=c.read_u2(),
                length=c.read_u2(),
                name_index=c.read_u2(),
                descriptor_index=c.read_u2(),
                index=c.read_u2(),
            ))
        return tuple(table)

    def _read_local_variable_types(self) -> tuple[LocalVariableTypeEntry, ...]:
        c = self.cursor
        table = []
        for _ in range(c.read_u2()):
            table.append(LocalVariableTypeEntry(
                start_pc=c.read_u2(),
                length=c.read_u2(),
                name_index=c.read_u2(),
                signature_index=c.read_u2(),
                index=c.read_u2(),
            ))
        return tuple(table)

    def _read_bootstrap_methods(self) -> tuple[BootstrapMethod, ...]:
        c = self.cursor
        methods = []
        for _ in range(c.read_u2()):
            method_ref = c.read_u2()
            methods.append(BootstrapMethod(method_ref, c.read_u2_list()))
        return tuple(methods)

    # ==================== STACK MAP FRAMES ====================

    def _read_stack_map_frame(self) -> StackMapFrame:
        c = self.cursor
        offset = c.pos
        frame_type = c.read_u1()

        if frame_type <= 63:
            info = SameFrame()
        elif frame_type <= 127:
            info = SameLocalsStackItemFrame(self._read_verification_type())
        elif frame_type == 247:
            delta = c.read_u2()
            info = SameLocalsStackItemExtendedFrame(delta, self._read_verification_type())
        elif 248 <= frame_type <= 250:
            info = ChopFrame(c.read_u2())
        elif frame_type == 251:
            info = SameExtendedFrame(c.read_u2())
        elif 252 <= frame_type <= 254:
            delta = c.read_u2()
            info = AppendFrame(delta, self._read_verification_types(frame_type - 251))
        elif frame_type == 255:
            delta = c.read_u2()
            locals_ = self._read_verification_types(c.read_u2())
            info = FullFrame(delta, locals_, self._read_verification_types(c.read_u2()))
        else:
            raise UnknownFrameTypeError(frame_type, offset)

        return StackMapFrame(frame_type, info)

    def _read_verification_types(self, count: int) -> tuple[VerificationTypeInfo, ...]:
        return tuple(self._read_verification_type() for _ in range(count))

    def _read_verification_type(self) -> VerificationTypeInfo:
        c = self.cursor
        offset = c.pos
        tag = c.read_u1()
        if tag in _PLAIN_VERIFICATION_TYPES:
            return _PLAIN_VERIFICATION_TYPES[tag]()
        if tag == VerificationTag.OBJECT:
            return ObjectVariableInfo(c.read_u2())
        if tag == VerificationTag.UNINITIALIZED:
            return UninitializedVariableInfo(c.read_u2())
        raise UnknownVerificationTagError(tag, offset)

    # ==================== ANNOTATIONS ====================

    def _read_annotations(self) -> tuple[Annotation, ...]:
        count = self.cursor.read_u2()
        return tuple(self._read_annotation() for _ in range(count))

    def _read_parameter_annotations(self) -> tuple[ParameterAnnotations, ...]:
        num_parameters = self.cursor.read_u1()
        return tuple(ParameterAnnotations(self._read_annotations()) for _ in range(num_parameters))

    def _read_annotation(self) -> Annotation:
        """Read a single annotation."""
        c = self.cursor
        type_index = c.read_u2()
        pairs = []
        for _ in range(c.read_u2()):
            name_index = c.read_u2()
            pairs.append(ElementValuePair(name_index, self._read_element_value()))
        return Annotation(type_index, tuple(pairs))

    def _read_element_value(self) -> ElementValue:
        """Read an annotation element value."""
        c = self.cursor
        offset = c.pos
        tag = chr(c.read_u1())

        if tag in "BCDFIJSZs":
            # Constant value
            return ElementValue(tag, ConstValue(c.read_u2()))

        elif tag == "e":
            # Enum constant
            type_idx = c.read_u2()
            return ElementValue(tag, EnumConstValue(type_idx, c.read_u2()))

        elif tag == "c":
            # Class
            return ElementValue(tag, ClassInfoValue(c.read_u2()))

        elif tag == "@":
            # Nested annotation
            with self._nested():
                return ElementValue(tag, AnnotationValue(self._read_annotation()))

        elif tag == "[":
            # Array
            num_values = c.read_u2()
            with self._nested():
                values = tuple(self._read_element_value() for _ in range(num_values))
            return ElementValue(tag, ArrayValue(values))

        raise UnknownElementValueTagError(tag, offset)

    # ==================== FIELDS, METHODS, CLASS ====================

    def _read_members(self, member_cls):
        """Read a counted field or method table; both share one layout."""
        c = self.cursor
        members = []
        for _ in range(c.read_u2()):
            access = c.read_u2()
            name_idx = c.read_u2()
            desc_idx = c.read_u2()
            members.append(member_cls(access, name_idx, desc_idx, self._read_attributes()))
        return tuple(members)


    def read(self) -> ClassFile:
        """Read the class file and return the decoded ClassFile."""
        c = self.cursor

        # Magic number
        magic = c.read_u4()
        if magic != MAGIC:
            raise BadMagicError(magic)

        # Version
        minor = c.read_u2()
        major = c.read_u2()
        logger.debug("Major: %d, Minor: %d", major, minor)

        # Constant pool
        self.constant_pool = self._read_constant_pool()

        access_flags = c.read_u2()
        this_class = c.read_u2()
        super_class = c.read_u2()

        interfaces = c.read_u2_list()
        logger.debug("Interfaces: %s", interfaces)

        # Header-only input stops here; once the fields count is present the
        # remaining tables are required.
        if self.options.allow_truncated_tables and c.at_end():
            fields = methods = attributes = ()
        else:
            fields = self._read_members(FieldInfo)
            methods = self._read_members(MethodInfo)
            attributes = self._read_attributes()

        if not c.at_end():
            logger.debug("Ignoring %d trailing byte(s)", c.remaining)

        return ClassFile(
            magic=magic,
            minor_version=minor,
            major_version=major,
            constant_pool=self.constant_pool,
            access_flags=access_flags,
            this_class=this_class,
            super_class=super_class,
            interfaces=interfaces,
            fields=fields,
            methods=methods,
            attributes=attributes,
        )


def decode(data, options: Optional[ReaderOptions] = None) -> ClassFile:
    """Decode class file bytes (or a binary file object) into a ClassFile."""
    return ClassReader(data, options).read()


def read_class_file(path, options: Optional[ReaderOptions] = None) -> ClassFile:
    """Read a single class file."""
    try:
        data = Path(path).read_bytes()
    except OSError as e:
        raise FileUnreadableError(path, e.strerror or str(e)) from e
    return decode(data, options)
