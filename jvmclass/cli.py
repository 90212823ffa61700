#!/usr/bin/env python3
"""
Command-line interface for jvmclass - dump the structure of a Java class file.
"""

import argparse
import logging
import sys
from dataclasses import astuple

from .classfile import (
    ClassAccessFlags, CodeAttribute, DoubleInfo, FieldAccessFlags, FloatInfo, IntegerInfo,
    LongInfo, MethodAccessFlags, MethodHandleInfo, ReferenceKind, Utf8Info, flag_names,
)
from .classreader import ReaderOptions, read_class_file
from .descriptors import DescriptorError, parse_field_descriptor, parse_method_descriptor
from .errors import ConstantPoolLookupError, DecodeError, FileUnreadableError


def _resolve(lookup, index: int) -> str:
    """Resolve a pool reference for display, falling back to #index."""
    try:
        value = lookup(index)
    except (ConstantPoolLookupError, DescriptorError):
        return f"#{index}"
    return f"#{index}" if value is None else str(value)


def _format_constant(entry) -> str:
    kind = type(entry).__name__.removesuffix("Info")
    if isinstance(entry, Utf8Info):
        detail = repr(entry.value)
    elif isinstance(entry, (IntegerInfo, FloatInfo, LongInfo, DoubleInfo)):
        detail = str(entry.value)
    elif isinstance(entry, MethodHandleInfo):
        try:
            kind_name = ReferenceKind(entry.reference_kind).name.lower()
        except ValueError:
            kind_name = str(entry.reference_kind)
        detail = f"{kind_name} #{entry.reference_index}"
    else:
        detail = ", ".join(f"#{index}" for index in astuple(entry))
    return f"{kind:<20} {detail}"


def _format_attributes(attributes) -> str:
    parts = []
    for attr in attributes:
        if isinstance(attr.info, CodeAttribute):
            code = attr.info
            nested = _format_attributes(code.attributes)
            detail = f"stack={code.max_stack}, locals={code.max_locals}, {len(code.code)} bytes"
            if code.exception_table:
                detail += f", {len(code.exception_table)} handler(s)"
            if nested:
                detail += f"; {nested}"
            parts.append(f"Code({detail})")
        else:
            parts.append(attr.name)
    return ", ".join(parts)


def _format_field(pool, field_info) -> str:
    flags = " ".join(flag_names(FieldAccessFlags, field_info.access_flags))
    name = _resolve(pool.utf8, field_info.name_index)
    field_type = _resolve(lambda i: parse_field_descriptor(pool.utf8(i)), field_info.descriptor_index)
    return " ".join(part for part in (flags, field_type, name) if part)


def _format_method(pool, method) -> str:
    flags = " ".join(flag_names(MethodAccessFlags, method.access_flags))
    name = _resolve(pool.utf8, method.name_index)
    try:
        descriptor = parse_method_descriptor(pool.utf8(method.descriptor_index))
    except (ConstantPoolLookupError, DescriptorError):
        signature = f"{name} #{method.descriptor_index}"
    else:
        params = ", ".join(str(param) for param in descriptor.parameter_types)
        signature = f"{descriptor.return_type} {name}({params})"
    return " ".join(part for part in (flags, signature) if part)


def dump_class(class_file, show_constants: bool = False, out=None):
    """Write a human-readable summary of a decoded class file."""
    out = out or sys.stdout
    pool = class_file.constant_pool

    def emit(line: str = ""):
        print(line, file=out)

    kind = "interface" if class_file.access_flags & ClassAccessFlags.INTERFACE else "class"
    header = f"{kind} {_resolve(pool.class_name, class_file.this_class)}"
    if class_file.super_class:
        header += f" extends {_resolve(pool.class_name, class_file.super_class)}"
    emit(header)
    emit(f"  version: {class_file.major_version}.{class_file.minor_version}")
    emit(f"  flags: {', '.join(flag_names(ClassAccessFlags, class_file.access_flags))}"
         f" ({class_file.access_flags:#06x})")

    if class_file.interfaces:
        names = ", ".join(_resolve(pool.class_name, i) for i in class_file.interfaces)
        emit(f"  interfaces: {names}")

    if show_constants:
        emit(f"  constant pool ({len(pool)} slots):")
        for index, entry in pool.items():
            emit(f"    #{index:<5} = {_format_constant(entry)}")

    emit(f"  fields ({len(class_file.fields)}):")
    for field_info in class_file.fields:
        emit(f"    {_format_field(pool, field_info)}")
        if field_info.attributes:
            emit(f"      [{_format_attributes(field_info.attributes)}]")

    emit(f"  methods ({len(class_file.methods)}):")
    for method in class_file.methods:
        emit(f"    {_format_method(pool, method)}")
        if method.attributes:
            emit(f"      [{_format_attributes(method.attributes)}]")

    if class_file.attributes:
        emit(f"  attributes: {_format_attributes(class_file.attributes)}")


def main(argv=None):
    """Main entry point for jvmclass CLI."""
    parser = argparse.ArgumentParser(
        prog="jvmclass",
        description="Decode a Java class file and print its structure",
    )
    parser.add_argument(
        "file",
        help="Path to a .class file",
    )
    parser.add_argument(
        "-c", "--constants",
        action="store_true",
        help="Also print the constant pool",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Print decoder debug traces to stderr",
    )
    parser.add_argument(
        "--max-depth",
        type=int,
        default=ReaderOptions.max_depth,
        help="Maximum nesting of code attributes and annotation values (default: %(default)s)",
    )
    parser.add_argument(
        "--dense-pool",
        action="store_true",
        help="Give Long/Double constants a single pool slot",
    )
    parser.add_argument(
        "--no-length-check",
        action="store_true",
        help="Don't verify declared attribute lengths",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Reject files that end right after the interfaces",
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        options = ReaderOptions(
            max_depth=args.max_depth,
            wide_constants=not args.dense_pool,
            check_attribute_lengths=not args.no_length_check,
            allow_truncated_tables=not args.strict,
        )
    except ValueError as e:
        parser.error(str(e))

    try:
        class_file = read_class_file(args.file, options)
    except FileUnreadableError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except DecodeError as e:
        print(f"Error decoding {args.file}: {e}", file=sys.stderr)
        sys.exit(1)

    dump_class(class_file, show_constants=args.constants)


if __name__ == "__main__":
    main()
