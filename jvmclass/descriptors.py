"""
Field and method descriptor parser using Lark.

Descriptors are the type strings referenced by name_and_type, field and
method entries, e.g. "[Ljava/lang/String;" or "(IJ)V".
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Union

from lark import Lark, Transformer, v_args
from lark.exceptions import LarkError


GRAMMAR_FILE = Path(__file__).parent / "descriptor.lark"

_BASE_TYPE_NAMES = {
    "B": "byte", "C": "char", "D": "double", "F": "float",
    "I": "int", "J": "long", "S": "short", "Z": "boolean", "V": "void",
}


class DescriptorError(ValueError):
    """Malformed field or method descriptor."""
    pass


@dataclass(frozen=True)
class BaseType:
    """Primitive type (B, C, D, F, I, J, S, Z) or void (V)."""
    descriptor: str

    @property
    def name(self) -> str:
        return _BASE_TYPE_NAMES[self.descriptor]

    @property
    def size(self) -> int:
        """Number of local variable / operand stack slots."""
        if self.descriptor == "V":
            return 0
        return 2 if self.descriptor in "JD" else 1

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class ObjectType:
    """Class or interface type, by internal name (java/lang/String)."""
    class_name: str
    size = 1

    def __str__(self) -> str:
        return self.class_name.replace("/", ".")


@dataclass(frozen=True)
class ArrayType:
    component: "FieldType"
    size = 1

    @property
    def dimensions(self) -> int:
        dims = 1
        component = self.component
        while isinstance(component, ArrayType):
            dims += 1
            component = component.component
        return dims

    def __str__(self) -> str:
        return f"{self.component}[]"


FieldType = Union[BaseType, ObjectType, ArrayType]


@dataclass(frozen=True)
class MethodDescriptor:
    parameter_types: tuple[FieldType, ...]
    return_type: FieldType

    @property
    def argument_slots(self) -> int:
        return sum(param.size for param in self.parameter_types)

    def __str__(self) -> str:
        params = ", ".join(str(param) for param in self.parameter_types)
        return f"{self.return_type} ({params})"


@v_args(inline=True)
class DescriptorTransformer(Transformer):
    """Transforms Lark parse tree to descriptor types."""

    def field_descriptor(self, field_type):
        return field_type

    def method_descriptor(self, *items):
        *params, return_type = items
        return MethodDescriptor(tuple(params), return_type)

    def base_type(self, token):
        return BaseType(str(token))

    def void_type(self):
        return BaseType("V")

    def object_type(self, class_name):
        return ObjectType(str(class_name))

    def array_type(self, component):
        return ArrayType(component)


class DescriptorParser:
    """Parses field and method descriptors."""

    def __init__(self):
        with open(GRAMMAR_FILE, "r") as f:
            grammar = f.read()

        self._parser = Lark(
            grammar,
            parser="earley",
            start=["field_descriptor", "method_descriptor"],
            maybe_placeholders=False,
        )
        self._transformer = DescriptorTransformer()

    def _parse(self, text: str, start: str):
        try:
            tree = self._parser.parse(text, start=start)
        except LarkError as e:
            raise DescriptorError(f"Malformed descriptor {text!r}: {e}") from e
        return self._transformer.transform(tree)

    def parse_field(self, text: str) -> FieldType:
        return self._parse(text, "field_descriptor")

    def parse_method(self, text: str) -> MethodDescriptor:
        return self._parse(text, "method_descriptor")


_parser = None


def _get_parser() -> DescriptorParser:
    global _parser
    if _parser is None:
        _parser = DescriptorParser()
    return _parser


def parse_field_descriptor(text: str) -> FieldType:
    """Parse a field descriptor such as "I" or "[Ljava/lang/Object;"."""
    return _get_parser().parse_field(text)


def parse_method_descriptor(text: str) -> MethodDescriptor:
    """Parse a method descriptor such as "(ILjava/lang/String;)V"."""
    return _get_parser().parse_method(text)
