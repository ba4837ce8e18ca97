"""Shape resolution: classify fields into the structural categories code is emitted for."""

import re
from dataclasses import dataclass
from typing import assert_never

from .types import PACKABLE_KINDS, FieldKind, ProtoField
from .util import escape_identifier

ANY_TYPE = "google.protobuf.Any"

# Module level names generated code relies on
RESERVED_TYPE_NAMES = frozenset({"self", "len", "int", "isinstance"})

# Python value type for each scalar kind
SCALAR_TYPES: dict[FieldKind, str] = {
    FieldKind.DOUBLE: "float",
    FieldKind.FLOAT: "float",
    FieldKind.INT32: "int",
    FieldKind.INT64: "int",
    FieldKind.UINT32: "int",
    FieldKind.UINT64: "int",
    FieldKind.SINT32: "int",
    FieldKind.SINT64: "int",
    FieldKind.FIXED32: "int",
    FieldKind.FIXED64: "int",
    FieldKind.SFIXED32: "int",
    FieldKind.SFIXED64: "int",
    FieldKind.BOOL: "bool",
    FieldKind.STRING: "str",
    FieldKind.BYTES: "bytes",
}

# Wire primitive family used for each scalar kind
SCALAR_FAMILIES: dict[FieldKind, str] = {kind: kind.value for kind in SCALAR_TYPES}

_ZERO_VALUES = {
    "float": "0.0",
    "int": "0",
    "bool": "False",
    "str": '""',
    "bytes": 'b""',
}


class ResolutionError(RuntimeError):
    """Raised when a field cannot be mapped to a shape."""


class UnsupportedTypeError(ResolutionError):
    """Raised for references to constructs the generator does not support."""


@dataclass(frozen=True)
class ScalarShape:
    """A scalar value; ``family`` selects the wire primitives."""

    kind: FieldKind
    value_type: str
    family: str


@dataclass(frozen=True)
class EnumShape:
    type_name: str


@dataclass(frozen=True)
class RecordShape:
    type_name: str


@dataclass(frozen=True)
class ListShape:
    element: "Shape"
    packed: bool


@dataclass(frozen=True)
class MapShape:
    key: "Shape"
    value: "Shape"


Shape = ScalarShape | EnumShape | RecordShape | ListShape | MapShape


def local_name(full_name: str, package: str) -> str:
    """Class name of a type inside the module generated for its own file.

    The package prefix is dropped and nested names are joined with ``_``
    (``pkg.Outer.Inner`` -> ``Outer_Inner``).
    """
    local = full_name
    if package and full_name.startswith(package + "."):
        local = full_name[len(package) + 1 :]
    return escape_identifier(local.replace(".", "_"), RESERVED_TYPE_NAMES)


def file_alias(path: str) -> str:
    """Name the module generated for schema file ``path`` is imported as.

    ``common/types.proto`` -> ``_common_types_pb``. Schema identifiers start
    with a letter, so the alias cannot clash with a generated class.
    """
    stem = path.removesuffix(".proto")
    return "_" + re.sub(r"[^A-Za-z0-9_]", "_", stem) + "_pb"


def type_name(
    full_name: str, declaring_package: str, declaring_file: str | None, file: str
) -> str:
    """Name a referenced type as seen from code generated for ``file``.

    Types declared in another file are qualified with that file's module
    alias (``_other_pb.Outer_Inner``), whatever their package. A missing
    ``declaring_file`` means the type lives in ``file``.
    """
    name = local_name(full_name, declaring_package)
    if declaring_file is not None and declaring_file != file:
        name = f"{file_alias(declaring_file)}.{name}"
    return name


def resolve(field: ProtoField, file: str, *, repeated: bool | None = None) -> Shape:
    """Resolve the shape of ``field`` for code generated from schema ``file``.

    Map key and value descriptors, as well as list elements, are resolved as
    singular fields.
    """
    if field.is_map:
        assert field.map_key is not None and field.map_value is not None
        key = resolve(field.map_key, file, repeated=False)
        value = resolve(field.map_value, file, repeated=False)
        if isinstance(key, (ListShape, MapShape)) or isinstance(value, (ListShape, MapShape)):
            raise ResolutionError(f"{field.name}: map entries cannot hold collections")
        return MapShape(key, value)

    if field.is_repeated if repeated is None else repeated:
        element = resolve(field, file, repeated=False)
        if field.packed and not is_packable(element):
            raise ResolutionError(
                f"{field.name}: {shape_label(element)} elements cannot be packed"
            )
        return ListShape(element, packed=field.packed)

    match field.kind:
        case FieldKind.MESSAGE:
            assert field.type_name is not None
            if field.type_name == ANY_TYPE:
                raise UnsupportedTypeError(f"{field.name}: {ANY_TYPE} is not supported")
            return RecordShape(
                type_name(field.type_name, field.type_package or "", field.type_file, file)
            )
        case FieldKind.ENUM:
            assert field.type_name is not None
            return EnumShape(
                type_name(field.type_name, field.type_package or "", field.type_file, file)
            )
        case _:
            return ScalarShape(field.kind, SCALAR_TYPES[field.kind], SCALAR_FAMILIES[field.kind])


def is_packable(shape: Shape) -> bool:
    """Whether the wire format allows a list of ``shape`` to be packed."""
    match shape:
        case ScalarShape(kind=kind):
            return kind in PACKABLE_KINDS
        case EnumShape():
            return True
        case RecordShape() | ListShape() | MapShape():
            return False
        case _:
            assert_never(shape)


def python_type(shape: Shape, *, optional: bool = True) -> str:
    """Render the type annotation for a value of ``shape``."""
    match shape:
        case ScalarShape(value_type=value_type):
            return value_type
        case EnumShape(type_name=name):
            return name
        case RecordShape(type_name=name):
            return f"{name} | None" if optional else name
        case ListShape(element=element):
            return f"list[{python_type(element, optional=False)}]"
        case MapShape(key=key, value=value):
            return f"dict[{python_type(key)}, {python_type(value, optional=False)}]"
        case _:
            assert_never(shape)


def zero_value(shape: Shape) -> str:
    """Expression for the default (zero) value of ``shape``."""
    match shape:
        case ScalarShape(value_type=value_type):
            return _ZERO_VALUES[value_type]
        case EnumShape(type_name=name):
            return f"{name}(0)"
        case RecordShape():
            return "None"
        case ListShape():
            return "[]"
        case MapShape():
            return "{}"
        case _:
            assert_never(shape)


def shape_label(shape: Shape) -> str:
    """Short human readable form, e.g. ``list<int32, packed>``."""
    match shape:
        case ScalarShape(family=family):
            return family
        case EnumShape(type_name=name):
            return f"enum {name}"
        case RecordShape(type_name=name):
            return f"message {name}"
        case ListShape(element=element, packed=packed):
            return f"list<{shape_label(element)}{', packed' if packed else ''}>"
        case MapShape(key=key, value=value):
            return f"map<{shape_label(key)}, {shape_label(value)}>"
        case _:
            assert_never(shape)
