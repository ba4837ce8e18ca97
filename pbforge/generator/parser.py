"""Schema parser using Lark.

Parses ``.proto`` files into the descriptor graph of ``types``, links type
references across the main file and its imports, and validates the result.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any

from lark import Lark, Token
from lark.exceptions import LarkError
from lark.visitors import Transformer

from .types import (
    MAP_KEY_KINDS,
    PACKABLE_KINDS,
    SCALAR_KINDS,
    FieldKind,
    FieldLabel,
    ProtoEnum,
    ProtoEnumValue,
    ProtoField,
    ProtoFile,
    ProtoMessage,
    ProtoReservedRange,
    ProtoSchema,
)
from .util import to_camel_case

logger = logging.getLogger(__name__)

_g_parser: Lark | None = None

MAX_FIELD_NUMBER = (1 << 29) - 1
RESERVED_NUMBERS = ProtoReservedRange(19000, 19999)

# Sources for the well-known types a schema may import without having them on
# disk. Only their shape matters to the generator.
WELL_KNOWN_FILES = {
    "google/protobuf/any.proto": """
        syntax = "proto3";
        package google.protobuf;
        message Any {
            string type_url = 1;
            bytes value = 2;
        }
    """,
    "google/protobuf/empty.proto": """
        syntax = "proto3";
        package google.protobuf;
        message Empty {}
    """,
    "google/protobuf/timestamp.proto": """
        syntax = "proto3";
        package google.protobuf;
        message Timestamp {
            int64 seconds = 1;
            int32 nanos = 2;
        }
    """,
    "google/protobuf/duration.proto": """
        syntax = "proto3";
        package google.protobuf;
        message Duration {
            int64 seconds = 1;
            int32 nanos = 2;
        }
    """,
}


class ValidationError(RuntimeError):
    """Raised when schema validation fails."""


class ParseError(RuntimeError):
    """Raised when a schema file cannot be parsed."""


@dataclass
class _Syntax:
    value: str


@dataclass
class _Import:
    path: str


@dataclass
class _Package:
    name: str


@dataclass
class _Option:
    name: str
    value: Any


@dataclass
class _TypeRef:
    name: str
    absolute: bool = False


@dataclass
class _Field:
    label: str | None
    type: _TypeRef
    name: str
    number: int
    options: dict[str, Any]


@dataclass
class _MapField:
    key: _TypeRef
    value: _TypeRef
    name: str
    number: int
    options: dict[str, Any]


@dataclass
class _Oneof:
    name: str
    fields: list[_Field]


@dataclass
class _Reserved:
    ranges: list[ProtoReservedRange]
    names: list[str]


@dataclass
class _Message:
    name: str
    items: list[Any]


@dataclass
class _Enum:
    name: str
    items: list[Any]


def _parse_int(text: str) -> int:
    sign = 1
    if text[0] in "+-":
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    if text[:2].lower() == "0x":
        return sign * int(text, 16)
    if len(text) > 1 and text[0] == "0":
        return sign * int(text, 8)
    return sign * int(text)


def _unquote(text: str) -> str:
    return text[1:-1].encode("latin-1", "backslashreplace").decode("unicode_escape")


class TreeTransformer(Transformer):
    """Transform parse tree into intermediate schema items."""

    def start(self, args: list[Any]) -> list[Any]:
        return [a for a in args if a is not None]

    def empty(self, args: list[Any]) -> None:
        return None

    def syntax(self, args: list[Any]) -> _Syntax:
        return _Syntax(_unquote(str(args[0])))

    def import_stmt(self, args: list[Any]) -> _Import:
        return _Import(_unquote(str(args[-1])))

    def package_stmt(self, args: list[Any]) -> _Package:
        return _Package(args[0])

    def option_stmt(self, args: list[Any]) -> _Option:
        return _Option(name=args[0], value=args[1])

    def option_name(self, args: list[Any]) -> str:
        return ".".join(str(a) for a in args)

    def full_ident(self, args: list[Any]) -> str:
        return ".".join(str(a) for a in args)

    def type_ref(self, args: list[Any]) -> _TypeRef:
        return _TypeRef(args[0])

    def absolute_type_ref(self, args: list[Any]) -> _TypeRef:
        return _TypeRef(args[0], absolute=True)

    def string_constant(self, args: list[Any]) -> str:
        return "".join(_unquote(str(a)) for a in args)

    def number_constant(self, args: list[Any]) -> int | float:
        text = str(args[0])
        try:
            return _parse_int(text)
        except ValueError:
            return float(text)

    def ident_constant(self, args: list[Any]) -> Any:
        value = args[0]
        if value in ("true", "false"):
            return value == "true"
        return value

    def field_option(self, args: list[Any]) -> tuple[str, Any]:
        return (args[0], args[1])

    def field_options(self, args: list[Any]) -> dict[str, Any]:
        return dict(args)

    def field(self, args: list[Any]) -> _Field:
        label = None
        if isinstance(args[0], Token) and args[0].type == "LABEL":
            label = str(args[0])
            args = args[1:]
        options = args[3] if len(args) > 3 else {}
        return _Field(label, args[0], str(args[1]), _parse_int(str(args[2])), options)

    def oneof_field(self, args: list[Any]) -> _Field:
        options = args[3] if len(args) > 3 else {}
        return _Field(None, args[0], str(args[1]), _parse_int(str(args[2])), options)

    def map_field(self, args: list[Any]) -> _MapField:
        options = args[4] if len(args) > 4 else {}
        return _MapField(args[0], args[1], str(args[2]), _parse_int(str(args[3])), options)

    def oneof(self, args: list[Any]) -> _Oneof:
        return _Oneof(str(args[0]), [a for a in args[1:] if isinstance(a, _Field)])

    def range(self, args: list[Any]) -> ProtoReservedRange:
        start = _parse_int(str(args[0]))
        if len(args) == 1:
            return ProtoReservedRange(start, start)
        if args[1].type == "MAX":
            return ProtoReservedRange(start, MAX_FIELD_NUMBER)
        return ProtoReservedRange(start, _parse_int(str(args[1])))

    def ranges(self, args: list[Any]) -> list[ProtoReservedRange]:
        return list(args)

    def reserved_names(self, args: list[Any]) -> list[str]:
        return [_unquote(str(a)) for a in args]

    def reserved(self, args: list[Any]) -> _Reserved:
        value = args[0]
        if value and isinstance(value[0], ProtoReservedRange):
            return _Reserved(ranges=value, names=[])
        return _Reserved(ranges=[], names=value)

    def extensions(self, args: list[Any]) -> None:
        return None

    def enum_value(self, args: list[Any]) -> ProtoEnumValue:
        return ProtoEnumValue(name=str(args[0]), number=_parse_int(str(args[1])))

    def enum(self, args: list[Any]) -> _Enum:
        return _Enum(str(args[0]), [a for a in args[1:] if a is not None])

    def message(self, args: list[Any]) -> _Message:
        return _Message(str(args[0]), [a for a in args[1:] if a is not None])

    def service(self, args: list[Any]) -> None:
        return None

    def rpc(self, args: list[Any]) -> None:
        return None


@dataclass
class _PendingRef:
    """A field whose enum/message type is resolved once all files are parsed."""

    field: ProtoField
    scope: str
    ref: _TypeRef
    packed: bool | None
    proto3: bool


class _FileBuilder:
    """Turns the transformed items of one file into descriptors."""

    def __init__(self, name: str, items: list[Any]):
        self.name = name
        self.items = items
        self.pending: list[_PendingRef] = []
        self.syntax = "proto2"
        self.package = ""

    def build(self) -> ProtoFile:
        imports = []
        for item in self.items:
            if isinstance(item, _Syntax):
                self.syntax = item.value
            elif isinstance(item, _Package):
                self.package = item.name
            elif isinstance(item, _Import):
                imports.append(item.path)

        if self.syntax not in ("proto2", "proto3"):
            raise ValidationError(f"{self.name}: unsupported syntax {self.syntax!r}")

        scope = self.package
        return ProtoFile(
            name=self.name,
            package=self.package,
            syntax=self.syntax,
            imports=imports,
            messages=[self._message(m, scope) for m in self.items if isinstance(m, _Message)],
            enums=[self._enum(e, scope) for e in self.items if isinstance(e, _Enum)],
        )

    def _full_name(self, scope: str, name: str) -> str:
        return f"{scope}.{name}" if scope else name

    def _enum(self, enum: _Enum, scope: str) -> ProtoEnum:
        return ProtoEnum(
            name=enum.name,
            full_name=self._full_name(scope, enum.name),
            package=self.package,
            values=[v for v in enum.items if isinstance(v, ProtoEnumValue)],
        )

    def _message(self, message: _Message, scope: str) -> ProtoMessage:
        full_name = self._full_name(scope, message.name)
        result = ProtoMessage(name=message.name, full_name=full_name, package=self.package)

        for item in message.items:
            if isinstance(item, _Field):
                result.fields.append(self._field(item, full_name))
            elif isinstance(item, _MapField):
                result.fields.append(self._map_field(item, result))
            elif isinstance(item, _Oneof):
                result.oneofs.append(item.name)
                for member in item.fields:
                    proto_field = self._field(member, full_name)
                    proto_field.oneof = item.name
                    result.fields.append(proto_field)
            elif isinstance(item, _Message):
                result.messages.append(self._message(item, full_name))
            elif isinstance(item, _Enum):
                result.enums.append(self._enum(item, full_name))
            elif isinstance(item, _Reserved):
                result.reserved_ranges.extend(item.ranges)
                result.reserved_names.extend(item.names)

        return result

    def _label(self, label: str | None) -> FieldLabel:
        if label is None:
            return FieldLabel.OPTIONAL
        return FieldLabel(label)

    def _field(self, item: _Field, scope: str) -> ProtoField:
        packed = item.options.get("packed")
        label = self._label(item.label)
        proto_field = ProtoField(name=item.name, number=item.number, kind=FieldKind.MESSAGE, label=label)

        if not item.type.absolute and item.type.name in SCALAR_KINDS:
            proto_field.kind = FieldKind(item.type.name)
            proto_field.packed = self._packed(proto_field, packed, self.syntax == "proto3")
        else:
            self.pending.append(
                _PendingRef(proto_field, scope, item.type, packed, self.syntax == "proto3")
            )
        return proto_field

    def _map_field(self, item: _MapField, parent: ProtoMessage) -> ProtoField:
        where = f"{parent.full_name}.{item.name}"
        if item.key.absolute or item.key.name not in MAP_KEY_KINDS:
            raise ValidationError(f"{where}: invalid map key type {item.key.name}")

        key = ProtoField(name="key", number=1, kind=FieldKind(item.key.name))
        value = self._field(_Field(None, item.value, "value", 2, {}), parent.full_name)

        entry_name = to_camel_case(item.name) + "Entry"
        entry = ProtoMessage(
            name=entry_name,
            full_name=f"{parent.full_name}.{entry_name}",
            package=self.package,
            fields=[key, value],
            map_entry=True,
        )
        parent.messages.append(entry)

        return ProtoField(
            name=item.name,
            number=item.number,
            kind=FieldKind.MESSAGE,
            label=FieldLabel.REPEATED,
            type_name=entry.full_name,
            type_package=self.package,
            type_file=self.name,
            map_key=key,
            map_value=value,
        )

    @staticmethod
    def _packed(proto_field: ProtoField, option: bool | None, proto3: bool) -> bool:
        if not proto_field.is_repeated:
            if option:
                raise ValidationError(f"{proto_field.name}: [packed] requires a repeated field")
            return False
        packable = proto_field.kind in PACKABLE_KINDS
        if option and not packable:
            raise ValidationError(
                f"{proto_field.name}: [packed] is not allowed on {proto_field.kind} fields"
            )
        if option is None:
            return packable and proto3
        return bool(option)


def _get_parser() -> Lark:
    global _g_parser

    if not _g_parser:
        with open(f"{os.path.dirname(__file__)}/protodef.lark", encoding="utf-8") as f:
            grammar = f.read()
        _g_parser = Lark(grammar)
    return _g_parser


def parse_file(text: str, name: str = "<input>") -> tuple[ProtoFile, list[_PendingRef]]:
    """Parse one schema file without resolving its type references."""
    try:
        tree = _get_parser().parse(text)
    except LarkError as e:
        raise ParseError(f"{name}: {e}") from e

    items = TreeTransformer().transform(tree)
    builder = _FileBuilder(name, items)
    proto_file = builder.build()
    logger.debug(
        "parsed %s: package=%r, %d messages, %d enums",
        name,
        proto_file.package,
        len(proto_file.messages),
        len(proto_file.enums),
    )
    return proto_file, builder.pending


def _walk_messages(messages: list[ProtoMessage]) -> list[ProtoMessage]:
    result: list[ProtoMessage] = []
    queue = list(messages)
    while queue:
        message = queue.pop(0)
        result.append(message)
        queue.extend(message.messages)
    return result


# kind, package and declaring file of a type
_Symbol = tuple[FieldKind, str, str]


def _symbols(files: list[ProtoFile]) -> dict[str, _Symbol]:
    table: dict[str, _Symbol] = {}
    for proto_file in files:
        for enum in proto_file.enums:
            table[enum.full_name] = (FieldKind.ENUM, proto_file.package, proto_file.name)
        for message in _walk_messages(proto_file.messages):
            table[message.full_name] = (FieldKind.MESSAGE, proto_file.package, proto_file.name)
            for enum in message.enums:
                table[enum.full_name] = (FieldKind.ENUM, proto_file.package, proto_file.name)
    return table


def _resolve_ref(ref: _TypeRef, scope: str, table: dict[str, _Symbol]) -> str:
    if ref.absolute:
        if ref.name in table:
            return ref.name
        raise ValidationError(f"{scope}: unknown type .{ref.name}")

    parts = scope.split(".") if scope else []
    while True:
        candidate = ".".join([*parts, ref.name])
        if candidate in table:
            return candidate
        if not parts:
            break
        parts.pop()
    raise ValidationError(f"{scope}: unknown type {ref.name}")


def link(pending: list[_PendingRef], files: list[ProtoFile]) -> None:
    """Resolve enum/message references of pending fields against all files."""
    table = _symbols(files)
    for item in pending:
        full_name = _resolve_ref(item.ref, item.scope, table)
        kind, package, file_name = table[full_name]
        item.field.kind = kind
        item.field.type_name = full_name
        item.field.type_package = package
        item.field.type_file = file_name
        item.field.packed = _FileBuilder._packed(item.field, item.packed, item.proto3)


def _validate_message(message: ProtoMessage, syntax: str) -> None:
    numbers: dict[int, str] = {}
    names: set[str] = set()
    for proto_field in message.fields:
        where = f"{message.full_name}.{proto_field.name}"
        if not 1 <= proto_field.number <= MAX_FIELD_NUMBER:
            raise ValidationError(f"{where}: field number {proto_field.number} is out of range")
        if proto_field.number in RESERVED_NUMBERS:
            raise ValidationError(
                f"{where}: field numbers 19000-19999 are reserved for the implementation"
            )
        if proto_field.number in numbers:
            raise ValidationError(
                f"{where}: field number {proto_field.number} "
                f"already used by {numbers[proto_field.number]}"
            )
        if proto_field.name in names:
            raise ValidationError(f"{where}: duplicate field name")
        if any(proto_field.number in r for r in message.reserved_ranges):
            raise ValidationError(f"{where}: field number {proto_field.number} is reserved")
        if proto_field.name in message.reserved_names:
            raise ValidationError(f"{where}: field name is reserved")
        if syntax == "proto3" and proto_field.label == FieldLabel.REQUIRED:
            raise ValidationError(f"{where}: required fields are not allowed in proto3")
        numbers[proto_field.number] = proto_field.name
        names.add(proto_field.name)

    for enum in message.enums:
        _validate_enum(enum, syntax)


def _validate_enum(enum: ProtoEnum, syntax: str) -> None:
    if not enum.values:
        raise ValidationError(f"{enum.full_name}: enum must define at least one value")
    if syntax == "proto3" and enum.values[0].number != 0:
        raise ValidationError(f"{enum.full_name}: the first enum value must be zero in proto3")


def validate(schema: ProtoSchema) -> None:
    """Validate every file of a linked schema."""
    for proto_file in schema.files:
        for enum in proto_file.enums:
            _validate_enum(enum, proto_file.syntax)
        for message in _walk_messages(proto_file.messages):
            _validate_message(message, proto_file.syntax)


def _find_import(path: str, include_dirs: list[str]) -> str | None:
    for include_dir in include_dirs:
        candidate = os.path.join(include_dir, path)
        if os.path.isfile(candidate):
            return candidate
    return None


def parse(
    text: str,
    name: str = "<input>",
    include_dirs: list[str] | tuple[str, ...] = (),
) -> ProtoSchema:
    """Parse a schema file together with its imports and return the linked schema."""
    files: list[ProtoFile] = []
    pending: list[_PendingRef] = []
    seen: set[str] = set()
    queue: list[tuple[str, str]] = [(name, text)]

    while queue:
        file_name, source = queue.pop(0)
        proto_file, refs = parse_file(source, file_name)
        files.append(proto_file)
        pending.extend(refs)
        seen.add(file_name)

        for import_path in proto_file.imports:
            if import_path in seen or any(q[0] == import_path for q in queue):
                continue
            found = _find_import(import_path, list(include_dirs))
            if found:
                with open(found, encoding="utf-8") as f:
                    queue.append((import_path, f.read()))
            elif import_path in WELL_KNOWN_FILES:
                queue.append((import_path, WELL_KNOWN_FILES[import_path]))
            else:
                raise ValidationError(f"{file_name}: import {import_path!r} not found")

    link(pending, files)
    schema = ProtoSchema(files=files)
    validate(schema)
    return schema


def load(path: str, include_dirs: list[str] | tuple[str, ...] = ()) -> ProtoSchema:
    """Load a schema file from disk.

    The directory containing ``path`` is searched for imports after
    ``include_dirs``.
    """
    with open(path, encoding="utf-8") as f:
        text = f.read()
    dirs = [*include_dirs, os.path.dirname(os.path.abspath(path))]
    return parse(text, name=os.path.basename(path), include_dirs=dirs)
