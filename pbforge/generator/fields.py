"""Per-field code emission.

Every field gets three methods on its generated class:

    _read_field<N>(self, _data, _offset, _wire_type) -> bytes consumed
    _write_field<N>(self, _buf) -> bytes written
    _size_field<N>(self) -> encoded size

The shape functions below produce the bodies. Decode fragments leave the
number of consumed bytes in ``_n``; encode fragments add to ``_offset`` and
size fragments add to ``_n``. Composite shapes recurse into their element,
key and value shapes through nested helper functions. Locals and parameters
of generated methods start with ``_`` so schema names never shadow them.
"""

from collections.abc import Set
from typing import assert_never

from .shapes import (
    EnumShape,
    ListShape,
    MapShape,
    RecordShape,
    ScalarShape,
    Shape,
    is_packable,
    python_type,
    zero_value,
)
from .types import FieldKind, ProtoField
from .writer import CodeWriter


def default_check(shape: Shape, value: str) -> str:
    """Condition that is true when ``value`` holds the zero value of ``shape``."""
    match shape:
        case ListShape() | MapShape():
            return f"len({value}) == 0"
        case ScalarShape(kind=FieldKind.BYTES):
            return f"len({value}) == 0"
        case ScalarShape(kind=FieldKind.BOOL):
            return f"not {value}"
        case ScalarShape(kind=FieldKind.STRING):
            return f'{value} == ""'
        case RecordShape():
            return f"{value} is None"
        case ScalarShape() | EnumShape():
            return f"{value} == 0"
        case _:
            assert_never(shape)


def _store(w: CodeWriter, target: str, value: str, append: bool) -> None:
    if append:
        w.line(f"{target}.append({value})")
    else:
        w.line(f"{target} = {value}")


def emit_decode(w: CodeWriter, shape: Shape, target: str, *, append: bool = False) -> None:
    """Decode one occurrence from ``_data[_offset:]`` into ``target``."""
    match shape:
        case ScalarShape(family=family):
            if append:
                w.line(f"_v, _n = _wire.read_{family}(_data, _offset, _wire_type)")
                w.line(f"{target}.append(_v)")
            else:
                w.line(f"{target}, _n = _wire.read_{family}(_data, _offset, _wire_type)")
        case EnumShape(type_name=name):
            w.line("_v, _n = _wire.read_int32(_data, _offset, _wire_type)")
            _store(w, target, f"{name}(_v)", append)
        case RecordShape(type_name=name):
            w.line(f"_v = {name}()")
            w.line("_n = _wire.read_message(_data, _offset, _wire_type, _v)")
            _store(w, target, "_v", append)
        case ListShape(element=element):
            if not is_packable(element):
                emit_decode(w, element, target, append=True)
                return
            # packed and unpacked occurrences are both accepted
            with w.block("def _read_element(_data, _offset, _wire_type):"):
                emit_decode(w, element, target, append=True)
                w.line("return _n")
            w.line("_n = _wire.read_list(_data, _offset, _wire_type, _read_element)")
        case MapShape(key=key, value=value):
            w.line(f"_key = {zero_value(key)}")
            w.line(f"_value = {zero_value(value)}")
            with w.block("def _read_key(_data, _offset, _wire_type):"):
                w.line("nonlocal _key")
                emit_decode(w, key, "_key")
                w.line("return _n")
            with w.block("def _read_value(_data, _offset, _wire_type):"):
                w.line("nonlocal _value")
                emit_decode(w, value, "_value")
                w.line("return _n")
            w.line(
                "_n = _wire.read_map_entry(_data, _offset, _wire_type, _read_key, _read_value)"
            )
            w.line(f"{target}[_key] = _value")
        case _:
            assert_never(shape)


def emit_encode(w: CodeWriter, shape: Shape, value: str, number: str) -> None:
    """Write ``value`` as field ``number``, adding the byte count to ``_offset``."""
    match shape:
        case ScalarShape(family=family):
            w.line(f"_offset += _wire.write_{family}(_buf, {number}, {value})")
        case EnumShape():
            w.line(f"_offset += _wire.write_int32(_buf, {number}, int({value}))")
        case RecordShape():
            w.line(f"_offset += _wire.write_message(_buf, {number}, {value})")
        case ListShape(element=element, packed=True):
            with w.block("def _write_element(_buf, _number, _item):"):
                w.line("_offset = 0")
                emit_encode(w, element, "_item", "_number")
                w.line("return _offset")
            w.line(
                f"_offset += _wire.write_list_packed(_buf, {number}, {value}, _write_element)"
            )
        case ListShape(element=element):
            with w.block(f"for _item in {value}:"):
                emit_encode(w, element, "_item", number)
        case MapShape(key=key, value=value_shape):
            with w.block("def _write_entry(_buf, _key, _value):"):
                w.line("_offset = 0")
                emit_encode(w, key, "_key", "1")
                emit_encode(w, value_shape, "_value", "2")
                w.line("return _offset")
            with w.block(f"for _key, _value in {value}.items():"):
                w.line(
                    f"_offset += _wire.write_map_entry(_buf, {number}, _key, _value, _write_entry)"
                )
        case _:
            assert_never(shape)


def emit_size(w: CodeWriter, shape: Shape, value: str, number: str) -> None:
    """Add the encoded size of ``value`` as field ``number`` to ``_n``."""
    match shape:
        case ScalarShape(family=family):
            w.line(f"_n += _wire.size_{family}({number}, {value})")
        case EnumShape():
            w.line(f"_n += _wire.size_int32({number}, int({value}))")
        case RecordShape():
            w.line(f"_n += _wire.size_message({number}, {value})")
        case ListShape(element=element, packed=True):
            with w.block("def _size_element(_number, _item):"):
                w.line("_n = 0")
                emit_size(w, element, "_item", "_number")
                w.line("return _n")
            w.line(f"_n += _wire.size_list_packed({number}, {value}, _size_element)")
        case ListShape(element=element):
            with w.block(f"for _item in {value}:"):
                emit_size(w, element, "_item", number)
        case MapShape(key=key, value=value_shape):
            with w.block("def _size_entry(_key, _value):"):
                w.line("_n = 0")
                emit_size(w, key, "_key", "1")
                emit_size(w, value_shape, "_value", "2")
                w.line("return _n")
            with w.block(f"for _key, _value in {value}.items():"):
                w.line(f"_n += _wire.size_map_entry({number}, _key, _value, _size_entry)")
        case _:
            assert_never(shape)


class FieldEmitter:
    """Emits the decode, encode and size methods of a single field.

    ``attr`` is the attribute the field is stored in; ``value`` is the
    expression encode and size read it through (the attribute itself unless
    overridden).
    """

    def __init__(self, field: ProtoField, shape: Shape, attr: str, *, value: str | None = None):
        self.field = field
        self.shape = shape
        self.attr = attr
        self.number = field.number
        self.value = value or f"self.{attr}"

    def declaration(self, shadowed: Set[str] = frozenset()) -> str:
        """Attribute declaration for a class body defining the names in ``shadowed``."""
        annotation = python_type(self.shape)
        match self.shape:
            case ListShape():
                default = "_dc.field(default_factory=list)"
            case MapShape():
                default = "_dc.field(default_factory=dict)"
            case EnumShape(type_name=name) if name.split(".")[0] in shadowed:
                # a lambda body looks the enum up in module scope
                default = f"_dc.field(default_factory=lambda: {zero_value(self.shape)})"
            case _:
                default = zero_value(self.shape)
        return f"{self.attr}: {annotation} = {default}"

    def emit_read_body(self, w: CodeWriter, target: str) -> None:
        emit_decode(w, self.shape, target)

    def emit_read(self, w: CodeWriter) -> None:
        with w.block(f"def _read_field{self.number}(self, _data, _offset, _wire_type):"):
            self.emit_read_body(w, f"self.{self.attr}")
            w.line("return _n")

    def emit_write(self, w: CodeWriter) -> None:
        with w.block(f"def _write_field{self.number}(self, _buf):"):
            with w.block(f"if {default_check(self.shape, self.value)}:"):
                w.line("return 0")
            w.line("_offset = 0")
            emit_encode(w, self.shape, self.value, str(self.number))
            w.line("return _offset")

    def emit_size(self, w: CodeWriter) -> None:
        with w.block(f"def _size_field{self.number}(self):"):
            with w.block(f"if {default_check(self.shape, self.value)}:"):
                w.line("return 0")
            w.line("_n = 0")
            emit_size(w, self.shape, self.value, str(self.number))
            w.line("return _n")


class OneofAdapter:
    """Wraps a field emitter for a member of a oneof.

    Decoding fills a fresh variant box and installs it in the holder
    attribute, replacing whatever variant was there. Encoding and sizing read
    the member through a getter that yields the zero value unless this
    variant is selected, so the regular default check skips it.
    """

    def __init__(
        self,
        field: ProtoField,
        shape: Shape,
        attr: str,
        holder: str,
        variant: str,
        getter: str | None = None,
    ):
        self.field = field
        self.shape = shape
        self.attr = attr
        self.holder = holder
        self.variant = variant
        self.getter = getter or f"get_{field.name}"
        self.inner = FieldEmitter(field, shape, attr, value=f"self.{self.getter}()")
        self.number = field.number

    def emit_variant(self, w: CodeWriter) -> None:
        w.line("@_dc.dataclass")
        with w.block(f"class {self.variant}(_msg.OneofVariant):"):
            w.line(self.inner.declaration())

    def emit_getter(self, w: CodeWriter) -> None:
        with w.block(f"def {self.getter}(self) -> {python_type(self.shape)}:"):
            with w.block(f"if isinstance(self.{self.holder}, {self.variant}):"):
                w.line(f"return self.{self.holder}.{self.attr}")
            w.line(f"return {zero_value(self.shape)}")

    def emit_read(self, w: CodeWriter) -> None:
        with w.block(f"def _read_field{self.number}(self, _data, _offset, _wire_type):"):
            w.line(f"_ov = {self.variant}()")
            self.inner.emit_read_body(w, f"_ov.{self.attr}")
            w.line(f"self.{self.holder} = _ov")
            w.line("return _n")

    def emit_write(self, w: CodeWriter) -> None:
        self.inner.emit_write(w)

    def emit_size(self, w: CodeWriter) -> None:
        self.inner.emit_size(w)
