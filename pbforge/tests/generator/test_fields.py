"""Tests for per-field code emission."""

from pbforge.generator.fields import (
    FieldEmitter,
    OneofAdapter,
    default_check,
    emit_decode,
    emit_encode,
    emit_size,
)
from pbforge.generator.shapes import EnumShape, ListShape, MapShape, RecordShape, ScalarShape
from pbforge.generator.types import FieldKind, ProtoField
from pbforge.generator.writer import CodeWriter

INT32 = ScalarShape(FieldKind.INT32, "int", "int32")
STRING = ScalarShape(FieldKind.STRING, "str", "string")


def lines(emit, *args, **kwargs):
    w = CodeWriter()
    emit(w, *args, **kwargs)
    return w.getvalue().splitlines()


def describe_default_check():
    def checks_each_shape(expect):
        expect(default_check(INT32, "x")) == "x == 0"
        expect(default_check(STRING, "x")) == 'x == ""'
        expect(default_check(ScalarShape(FieldKind.BOOL, "bool", "bool"), "x")) == "not x"
        expect(default_check(ScalarShape(FieldKind.BYTES, "bytes", "bytes"), "x")) == (
            "len(x) == 0"
        )
        expect(default_check(EnumShape("Color"), "x")) == "x == 0"
        expect(default_check(RecordShape("Address"), "x")) == "x is None"
        expect(default_check(ListShape(INT32, packed=True), "x")) == "len(x) == 0"
        expect(default_check(MapShape(STRING, INT32), "x")) == "len(x) == 0"


def describe_emit_decode():
    def reads_scalars_in_place(expect):
        expect(lines(emit_decode, INT32, "self.x")) == [
            "self.x, _n = _wire.read_int32(_data, _offset, _wire_type)"
        ]

    def converts_enums(expect):
        expect(lines(emit_decode, EnumShape("Color"), "self.c")) == [
            "_v, _n = _wire.read_int32(_data, _offset, _wire_type)",
            "self.c = Color(_v)",
        ]

    def appends_unpackable_elements(expect):
        expect(lines(emit_decode, ListShape(RecordShape("A"), packed=False), "self.a")) == [
            "_v = A()",
            "_n = _wire.read_message(_data, _offset, _wire_type, _v)",
            "self.a.append(_v)",
        ]

    def reads_packable_lists_through_read_list(expect):
        expect(lines(emit_decode, ListShape(INT32, packed=False), "self.a")) == [
            "def _read_element(_data, _offset, _wire_type):",
            "    _v, _n = _wire.read_int32(_data, _offset, _wire_type)",
            "    self.a.append(_v)",
            "    return _n",
            "_n = _wire.read_list(_data, _offset, _wire_type, _read_element)",
        ]

    def reads_map_entries(expect):
        expect(lines(emit_decode, MapShape(STRING, RecordShape("A")), "self.m")) == [
            '_key = ""',
            "_value = None",
            "def _read_key(_data, _offset, _wire_type):",
            "    nonlocal _key",
            "    _key, _n = _wire.read_string(_data, _offset, _wire_type)",
            "    return _n",
            "def _read_value(_data, _offset, _wire_type):",
            "    nonlocal _value",
            "    _v = A()",
            "    _n = _wire.read_message(_data, _offset, _wire_type, _v)",
            "    _value = _v",
            "    return _n",
            "_n = _wire.read_map_entry(_data, _offset, _wire_type, _read_key, _read_value)",
            "self.m[_key] = _value",
        ]


def describe_emit_encode():
    def writes_scalars(expect):
        expect(lines(emit_encode, STRING, "self.s", "4")) == [
            "_offset += _wire.write_string(_buf, 4, self.s)"
        ]

    def writes_packed_lists_in_one_block(expect):
        expect(lines(emit_encode, ListShape(EnumShape("E"), packed=True), "self.e", "2")) == [
            "def _write_element(_buf, _number, _item):",
            "    _offset = 0",
            "    _offset += _wire.write_int32(_buf, _number, int(_item))",
            "    return _offset",
            "_offset += _wire.write_list_packed(_buf, 2, self.e, _write_element)",
        ]

    def writes_unpacked_lists_per_element(expect):
        expect(lines(emit_encode, ListShape(INT32, packed=False), "self.a", "3")) == [
            "for _item in self.a:",
            "    _offset += _wire.write_int32(_buf, 3, _item)",
        ]

    def writes_map_entries(expect):
        expect(lines(emit_encode, MapShape(INT32, STRING), "self.m", "5")) == [
            "def _write_entry(_buf, _key, _value):",
            "    _offset = 0",
            "    _offset += _wire.write_int32(_buf, 1, _key)",
            "    _offset += _wire.write_string(_buf, 2, _value)",
            "    return _offset",
            "for _key, _value in self.m.items():",
            "    _offset += _wire.write_map_entry(_buf, 5, _key, _value, _write_entry)",
        ]


def describe_emit_size():
    def sizes_records(expect):
        expect(lines(emit_size, RecordShape("A"), "self.a", "7")) == [
            "_n += _wire.size_message(7, self.a)"
        ]

    def sizes_packed_lists(expect):
        expect(lines(emit_size, ListShape(INT32, packed=True), "self.a", "1")) == [
            "def _size_element(_number, _item):",
            "    _n = 0",
            "    _n += _wire.size_int32(_number, _item)",
            "    return _n",
            "_n += _wire.size_list_packed(1, self.a, _size_element)",
        ]


def describe_field_emitter():
    def declares_attributes(expect):
        field = ProtoField(name="tags", number=2, kind=FieldKind.STRING)
        expect(FieldEmitter(field, ListShape(STRING, False), "tags").declaration()) == (
            "tags: list[str] = _dc.field(default_factory=list)"
        )
        expect(FieldEmitter(field, RecordShape("A"), "tags").declaration()) == (
            "tags: A | None = None"
        )

    def defers_enum_defaults_shadowed_by_attributes(expect):
        field = ProtoField(name="other", number=8, kind=FieldKind.ENUM)
        emitter = FieldEmitter(field, EnumShape("Kind"), "other")
        expect(emitter.declaration()) == "other: Kind = Kind(0)"
        expect(emitter.declaration({"Kind", "other"})) == (
            "other: Kind = _dc.field(default_factory=lambda: Kind(0))"
        )

    def emits_guarded_writer(expect):
        field = ProtoField(name="id", number=2, kind=FieldKind.INT32)
        expect(lines(FieldEmitter(field, INT32, "id").emit_write)) == [
            "def _write_field2(self, _buf):",
            "    if self.id == 0:",
            "        return 0",
            "    _offset = 0",
            "    _offset += _wire.write_int32(_buf, 2, self.id)",
            "    return _offset",
        ]


def describe_oneof_adapter():
    def installs_a_fresh_variant(expect):
        field = ProtoField(name="email", number=4, kind=FieldKind.STRING, oneof="contact")
        adapter = OneofAdapter(field, STRING, "email", "contact", "Person_Email")
        expect(lines(adapter.emit_read)) == [
            "def _read_field4(self, _data, _offset, _wire_type):",
            "    _ov = Person_Email()",
            "    _ov.email, _n = _wire.read_string(_data, _offset, _wire_type)",
            "    self.contact = _ov",
            "    return _n",
        ]

    def writes_through_the_getter(expect):
        field = ProtoField(name="email", number=4, kind=FieldKind.STRING, oneof="contact")
        adapter = OneofAdapter(field, STRING, "email", "contact", "Person_Email")
        expect(lines(adapter.emit_size)) == [
            "def _size_field4(self):",
            '    if self.get_email() == "":',
            "        return 0",
            "    _n = 0",
            "    _n += _wire.size_string(4, self.get_email())",
            "    return _n",
        ]
        expect(lines(adapter.emit_getter)) == [
            "def get_email(self) -> str:",
            "    if isinstance(self.contact, Person_Email):",
            "        return self.contact.email",
            '    return ""',
        ]

    def accepts_a_renamed_getter(expect):
        field = ProtoField(name="email", number=4, kind=FieldKind.STRING, oneof="contact")
        adapter = OneofAdapter(field, STRING, "email", "contact", "Person_Email", "get_email_")
        expect(adapter.inner.value) == "self.get_email_()"
