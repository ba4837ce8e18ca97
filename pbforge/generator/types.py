"""Descriptor types for parsed schemas.

These dataclasses form the read-only descriptor graph consumed by the code
generator. They serialize to and from JSON, so a graph produced by another
tool can be fed to the generator directly.
"""

from dataclasses import dataclass, field
from enum import StrEnum

from dataclasses_json import DataClassJsonMixin


class FieldKind(StrEnum):
    """Declared type of a field."""

    DOUBLE = "double"
    FLOAT = "float"
    INT32 = "int32"
    INT64 = "int64"
    UINT32 = "uint32"
    UINT64 = "uint64"
    SINT32 = "sint32"
    SINT64 = "sint64"
    FIXED32 = "fixed32"
    FIXED64 = "fixed64"
    SFIXED32 = "sfixed32"
    SFIXED64 = "sfixed64"
    BOOL = "bool"
    STRING = "string"
    BYTES = "bytes"
    ENUM = "enum"
    MESSAGE = "message"


class FieldLabel(StrEnum):
    OPTIONAL = "optional"
    REQUIRED = "required"
    REPEATED = "repeated"


SCALAR_KINDS = frozenset(k for k in FieldKind if k not in (FieldKind.ENUM, FieldKind.MESSAGE))

# Kinds whose repeated form may use packed encoding
PACKABLE_KINDS = (SCALAR_KINDS - {FieldKind.STRING, FieldKind.BYTES}) | {FieldKind.ENUM}

MAP_KEY_KINDS = SCALAR_KINDS - {
    FieldKind.DOUBLE,
    FieldKind.FLOAT,
    FieldKind.BYTES,
}


@dataclass
class ProtoField(DataClassJsonMixin):
    """A field of a message.

    For enum and message fields, ``type_name`` is the referenced type's full
    name (without a leading dot), ``type_package`` the package of the file
    declaring it and ``type_file`` that file's import path. Map fields are
    repeated message fields pointing at a synthetic entry message;
    ``map_key`` and ``map_value`` describe the entry's two fields.
    """

    name: str
    number: int
    kind: FieldKind
    label: FieldLabel = FieldLabel.OPTIONAL
    type_name: str | None = None
    type_package: str | None = None
    type_file: str | None = None
    packed: bool = False
    oneof: str | None = None
    map_key: "ProtoField | None" = None
    map_value: "ProtoField | None" = None

    @property
    def is_map(self) -> bool:
        return self.map_key is not None

    @property
    def is_repeated(self) -> bool:
        return self.label == FieldLabel.REPEATED


@dataclass
class ProtoEnumValue(DataClassJsonMixin):
    name: str
    number: int


@dataclass
class ProtoEnum(DataClassJsonMixin):
    """An enum type definition."""

    name: str
    full_name: str
    package: str
    values: list[ProtoEnumValue] = field(default_factory=list)


@dataclass
class ProtoReservedRange(DataClassJsonMixin):
    """An inclusive range of reserved field numbers."""

    start: int
    end: int

    def __contains__(self, number: int) -> bool:
        return self.start <= number <= self.end


@dataclass
class ProtoMessage(DataClassJsonMixin):
    """A message type definition.

    ``fields`` keeps declaration order; oneof members appear in it with their
    ``oneof`` attribute set and ``oneofs`` lists the group names in
    declaration order.
    """

    name: str
    full_name: str
    package: str
    fields: list[ProtoField] = field(default_factory=list)
    messages: list["ProtoMessage"] = field(default_factory=list)
    enums: list[ProtoEnum] = field(default_factory=list)
    oneofs: list[str] = field(default_factory=list)
    map_entry: bool = False
    reserved_ranges: list[ProtoReservedRange] = field(default_factory=list)
    reserved_names: list[str] = field(default_factory=list)


@dataclass
class ProtoFile(DataClassJsonMixin):
    """A single schema file."""

    name: str
    package: str
    syntax: str = "proto3"
    imports: list[str] = field(default_factory=list)
    messages: list[ProtoMessage] = field(default_factory=list)
    enums: list[ProtoEnum] = field(default_factory=list)


@dataclass
class ProtoSchema(DataClassJsonMixin):
    """A linked set of schema files.

    The first file is the one code is generated for; the rest are its
    (transitive) imports.
    """

    files: list[ProtoFile]

    @property
    def main(self) -> ProtoFile:
        return self.files[0]

    def file(self, name: str) -> ProtoFile:
        for proto_file in self.files:
            if proto_file.name == name:
                return proto_file
        raise KeyError(name)
