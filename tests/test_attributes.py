"""Tests for attribute decoding."""

import pytest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from jvmclass import decode, ReaderOptions
from jvmclass.classfile import (
    BootstrapMethod, BootstrapMethodsAttribute, CodeAttribute, ConstantValueAttribute,
    DeprecatedAttribute, EnclosingMethodAttribute, ExceptionsAttribute, ExceptionTableEntry,
    InnerClassAccessFlags, InnerClassEntry, InnerClassesAttribute, LineNumberEntry,
    LineNumberTableAttribute, LocalVariableEntry, LocalVariableTableAttribute,
    LocalVariableTypeEntry, LocalVariableTypeTableAttribute, SignatureAttribute,
    SourceDebugExtensionAttribute, SourceFileAttribute, SyntheticAttribute, UnknownAttribute,
    Utf8Info, IntegerInfo,
)
from jvmclass.errors import (
    AttributeLengthMismatchError, AttributeNameNotUtf8Error, RecursionLimitExceededError,
    TruncatedInputError,
)

from classbuilder import ClassBuilder, attribute, code_attribute, reader_for, u1, u2, u4


@pytest.fixture
def builder():
    return ClassBuilder(name="pkg/Attrs")


def only_method(class_file):
    assert len(class_file.methods) == 1
    return class_file.methods[0]


class TestSimpleAttributes:
    def test_constant_value(self, builder):
        value_idx = builder.pool.add_integer(42)
        builder.add_field(0x0019, "ANSWER", "I",
                          attribute(builder.pool, "ConstantValue", u2(value_idx)))
        cf = decode(builder.to_bytes())
        field = cf.fields[0]
        attr = field.attributes[0]
        assert attr.name == "ConstantValue"
        assert attr.length == 2
        assert attr.info == ConstantValueAttribute(value_idx)
        assert cf.constant_pool[attr.info.constantvalue_index].value == 42

    def test_markers(self, builder):
        builder.add_method(0x1001, "bridge", "()V",
                           attribute(builder.pool, "Synthetic", b""),
                           attribute(builder.pool, "Deprecated", b""))
        attrs = only_method(decode(builder.to_bytes())).attributes
        assert [a.info for a in attrs] == [SyntheticAttribute(), DeprecatedAttribute()]
        assert [a.length for a in attrs] == [0, 0]

    def test_signature_and_source_file(self, builder):
        sig_idx = builder.pool.add_utf8("<T:Ljava/lang/Object;>Ljava/lang/Object;")
        src_idx = builder.pool.add_utf8("Attrs.java")
        builder.add_attribute(attribute(builder.pool, "Signature", u2(sig_idx)))
        builder.add_attribute(attribute(builder.pool, "SourceFile", u2(src_idx)))
        cf = decode(builder.to_bytes())
        assert cf.find_attribute("Signature") == SignatureAttribute(sig_idx)
        assert cf.find_attribute("SourceFile") == SourceFileAttribute(src_idx)
        assert cf.find_attribute("Missing") is None

    def test_exceptions(self, builder):
        io_idx = builder.pool.add_class("java/io/IOException")
        state_idx = builder.pool.add_class("java/lang/IllegalStateException")
        builder.add_method(0x0001, "run", "()V",
                           attribute(builder.pool, "Exceptions", u2(2) + u2(io_idx) + u2(state_idx)))
        method = only_method(decode(builder.to_bytes()))
        assert method.find_attribute("Exceptions") == ExceptionsAttribute((io_idx, state_idx))

    def test_inner_classes(self, builder):
        inner_idx = builder.pool.add_class("pkg/Attrs$Inner")
        name_idx = builder.pool.add_utf8("Inner")
        payload = u2(1) + u2(inner_idx) + u2(builder.this_class) + u2(name_idx) + u2(0x0009)
        builder.add_attribute(attribute(builder.pool, "InnerClasses", payload))
        info = decode(builder.to_bytes()).find_attribute("InnerClasses")
        assert info == InnerClassesAttribute((
            InnerClassEntry(inner_idx, builder.this_class, name_idx, 0x0009),
        ))
        flags = InnerClassAccessFlags(info.classes[0].inner_class_access_flags)
        assert flags == InnerClassAccessFlags.PUBLIC | InnerClassAccessFlags.STATIC

    def test_enclosing_method(self, builder):
        outer_idx = builder.pool.add_class("pkg/Outer")
        nat_idx = builder.pool.add_name_and_type("call", "()V")
        builder.add_attribute(attribute(builder.pool, "EnclosingMethod", u2(outer_idx) + u2(nat_idx)))
        info = decode(builder.to_bytes()).find_attribute("EnclosingMethod")
        assert info == EnclosingMethodAttribute(outer_idx, nat_idx)

    def test_source_debug_extension(self, builder):
        smap = b"SMAP\nAttrs.kt\nKotlin\n*S Kotlin\n*E\n"
        builder.add_attribute(attribute(builder.pool, "SourceDebugExtension", smap))
        info = decode(builder.to_bytes()).find_attribute("SourceDebugExtension")
        assert info == SourceDebugExtensionAttribute(smap)

    def test_bootstrap_methods(self, builder):
        target = builder.pool.add_methodref("java/lang/invoke/LambdaMetafactory", "metafactory", "()V")
        handle = builder.pool.add_method_handle(6, target)
        arg1 = builder.pool.add_method_type("()V")
        arg2 = builder.pool.add_string("x")
        payload = (u2(2)
                   + u2(handle) + u2(2) + u2(arg1) + u2(arg2)
                   + u2(handle) + u2(0))
        builder.add_attribute(attribute(builder.pool, "BootstrapMethods", payload))
        info = decode(builder.to_bytes()).find_attribute("BootstrapMethods")
        assert info == BootstrapMethodsAttribute((
            BootstrapMethod(handle, (arg1, arg2)),
            BootstrapMethod(handle, ()),
        ))


class TestCodeAttribute:
    def test_code_body(self, builder):
        handler_type = builder.pool.add_class("java/lang/Exception")
        code = bytes([0x2A, 0xB7, 0x00, 0x01, 0xB1])
        builder.add_method(0x0001, "<init>", "()V", code_attribute(
            builder.pool, code=code, max_stack=2, max_locals=3,
            exception_table=[(0, 4, 4, handler_type), (0, 4, 4, 0)],
        ))
        method = only_method(decode(builder.to_bytes()))
        assert isinstance(method.code, CodeAttribute)
        assert method.code.max_stack == 2
        assert method.code.max_locals == 3
        assert method.code.code == code
        assert method.code.exception_table == (
            ExceptionTableEntry(0, 4, 4, handler_type),
            ExceptionTableEntry(0, 4, 4, 0),
        )
        assert method.code.attributes == ()

    def test_nested_tables(self, builder):
        pool = builder.pool
        this_idx = pool.add_utf8("this")
        desc_idx = pool.add_utf8("Lpkg/Attrs;")
        sig_idx = pool.add_utf8("Lpkg/Attrs<TT;>;")
        lines = attribute(pool, "LineNumberTable", u2(2) + u2(0) + u2(10) + u2(4) + u2(11))
        locals_ = attribute(pool, "LocalVariableTable",
                            u2(1) + u2(0) + u2(5) + u2(this_idx) + u2(desc_idx) + u2(0))
        local_types = attribute(pool, "LocalVariableTypeTable",
                                u2(1) + u2(0) + u2(5) + u2(this_idx) + u2(sig_idx) + u2(0))
        builder.add_method(0x0001, "run", "()V",
                           code_attribute(pool, attributes=[lines, locals_, local_types]))

        code = only_method(decode(builder.to_bytes())).code

        assert [a.name for a in code.attributes] == [
            "LineNumberTable", "LocalVariableTable", "LocalVariableTypeTable",
        ]
        assert code.find_attribute("LineNumberTable") == LineNumberTableAttribute((
            LineNumberEntry(0, 10), LineNumberEntry(4, 11),
        ))
        assert code.find_attribute("LocalVariableTable") == LocalVariableTableAttribute((
            LocalVariableEntry(0, 5, this_idx, desc_idx, 0),
        ))
        assert code.find_attribute("LocalVariableTypeTable") == LocalVariableTypeTableAttribute((
            LocalVariableTypeEntry(0, 5, this_idx, sig_idx, 0),
        ))

    def test_depth_limit(self, builder):
        builder.add_method(0x0001, "run", "()V", code_attribute(builder.pool))
        data = builder.to_bytes()
        assert decode(data, ReaderOptions(max_depth=1)).methods[0].code is not None
        with pytest.raises(RecursionLimitExceededError) as exc:
            decode(data, ReaderOptions(max_depth=0))
        assert exc.value.limit == 0

    def test_code_inside_code_recurses(self, builder):
        inner = code_attribute(builder.pool)
        outer = code_attribute(builder.pool, attributes=[inner])
        builder.add_method(0x0001, "run", "()V", outer)
        data = builder.to_bytes()
        code = decode(data).methods[0].code
        assert isinstance(code.attributes[0].info, CodeAttribute)
        with pytest.raises(RecursionLimitExceededError):
            decode(data, ReaderOptions(max_depth=1))

    def test_truncated_code(self, builder):
        pool = builder.pool
        payload = u2(1) + u2(1) + u4(100) + b"\xb1"
        builder.add_method(0x0001, "run", "()V", attribute(pool, "Code", payload))
        with pytest.raises(TruncatedInputError):
            decode(builder.to_bytes())


class TestUnknownAttributes:
    def test_opaque_passthrough(self, builder):
        blob = bytes(range(17))
        builder.add_attribute(attribute(builder.pool, "org.vendor.Custom", blob))
        attr = decode(builder.to_bytes()).attributes[0]
        assert attr.name == "org.vendor.Custom"
        assert attr.length == 17
        assert attr.info == UnknownAttribute(blob)

    @pytest.mark.parametrize("length", [0, 1, 300])
    def test_cursor_advances_by_header_plus_length(self, length):
        data = u2(1) + u4(length) + b"\x5a" * length + b"trailing"
        reader = reader_for(data, Utf8Info("Custom"))
        attr = reader._read_attribute()
        assert reader.cursor.pos == 6 + length
        assert len(attr.info.data) == length

    def test_unknown_body_truncated(self):
        reader = reader_for(u2(1) + u4(10) + b"abc", Utf8Info("Custom"))
        with pytest.raises(TruncatedInputError):
            reader._read_attribute()

    def test_unknown_attribute_in_code(self, builder):
        custom = attribute(builder.pool, "CharacterRangeTable", b"\x00\x00")
        builder.add_method(0x0001, "run", "()V", code_attribute(builder.pool, attributes=[custom]))
        code = only_method(decode(builder.to_bytes())).code
        assert code.attributes[0].info == UnknownAttribute(b"\x00\x00")


class TestAttributeNames:
    def test_name_must_be_utf8(self):
        reader = reader_for(u2(2) + u4(0), Utf8Info("Code"), IntegerInfo(3))
        with pytest.raises(AttributeNameNotUtf8Error) as exc:
            reader._read_attribute()
        assert exc.value.name_index == 2
        assert exc.value.offset == 0

    @pytest.mark.parametrize("index", [0, 5])
    def test_name_index_out_of_range(self, index):
        reader = reader_for(u2(index) + u4(0), Utf8Info("Code"))
        with pytest.raises(AttributeNameNotUtf8Error):
            reader._read_attribute()

    def test_names_are_one_based(self):
        reader = reader_for(u2(2) + u4(0), Utf8Info("SourceFile"), Utf8Info("Synthetic"))
        assert reader._read_attribute().info == SyntheticAttribute()


class TestAttributeLengths:
    def test_declared_length_too_long(self, builder):
        src_idx = builder.pool.add_utf8("A.java")
        bad = u2(builder.pool.add_utf8("SourceFile")) + u4(4) + u2(src_idx) + u2(0)
        builder.add_attribute(bad)
        data = builder.to_bytes()
        with pytest.raises(AttributeLengthMismatchError) as exc:
            decode(data)
        assert exc.value.declared == 4
        assert exc.value.consumed == 2

    def test_check_can_be_disabled(self):
        reader = reader_for(u2(1) + u4(7) + u1(0) + u1(0), Utf8Info("Deprecated"),
                            check_attribute_lengths=False)
        assert reader._read_attribute().info == DeprecatedAttribute()
        assert reader.cursor.pos == 6
