"""Message class emission."""

import logging

from .fields import FieldEmitter, OneofAdapter
from .shapes import resolve
from .types import ProtoMessage
from .util import escape_identifier, to_camel_case
from .writer import CodeWriter

logger = logging.getLogger(__name__)

# Attribute names that would shadow members of the runtime Message base
RESERVED_NAMES = frozenset(
    {
        "self",
        "fast_read",
        "fast_write",
        "size",
        "to_bytes",
        "from_bytes",
        "_readers",
        "_field_names",
    }
)


class MessageEmitter:
    """Emits the dataclass and codec methods for one message.

    All field shapes are resolved when the emitter is built, so a schema
    with an unsupported field fails before any code is written.
    """

    def __init__(
        self,
        message: ProtoMessage,
        class_name: str,
        file: str,
        taken_names: set[str],
        dense_dispatch_limit: int = 64,
    ):
        self.message = message
        self.class_name = class_name
        self.dense_dispatch_limit = dense_dispatch_limit
        self.fields = sorted(message.fields, key=lambda f: f.number)

        self.holders: dict[str, str] = {}
        for oneof in message.oneofs:
            self.holders[oneof] = escape_identifier(oneof, RESERVED_NAMES)

        attrs = {f.name: escape_identifier(f.name, RESERVED_NAMES) for f in self.fields}
        members = set(attrs.values()) | set(self.holders.values())

        self.emitters: list[FieldEmitter | OneofAdapter] = []
        for field in self.fields:
            shape = resolve(field, file)
            attr = attrs[field.name]
            if field.oneof is None:
                self.emitters.append(FieldEmitter(field, shape, attr))
                continue
            variant = f"{class_name}_{to_camel_case(field.name)}"
            while variant in taken_names:
                variant += "_"
            taken_names.add(variant)
            getter = f"get_{field.name}"
            while getter in members:
                getter += "_"
            members.add(getter)
            self.emitters.append(
                OneofAdapter(field, shape, attr, self.holders[field.oneof], variant, getter)
            )

    @property
    def adapters(self) -> list[OneofAdapter]:
        return [e for e in self.emitters if isinstance(e, OneofAdapter)]

    @property
    def dense(self) -> bool:
        """Whether field numbers are compact enough for an indexed reader table."""
        if not self.fields:
            return False
        highest = self.fields[-1].number
        return highest <= self.dense_dispatch_limit and highest <= 2 * len(self.fields)

    def emit(self, w: CodeWriter) -> None:
        logger.debug(
            "emitting %s (%d fields, %s dispatch)",
            self.class_name,
            len(self.fields),
            "dense" if self.dense else "sparse",
        )
        for adapter in self.adapters:
            w.line()
            w.line()
            adapter.emit_variant(w)

        w.line()
        w.line()
        w.line("@_dc.dataclass")
        with w.block(f"class {self.class_name}(_msg.Message):"):
            self._emit_attributes(w)
            for adapter in self.adapters:
                w.line()
                adapter.emit_getter(w)
            w.line()
            self._emit_dispatcher(w)
            for emitter in self.emitters:
                w.line()
                emitter.emit_read(w)
            w.line()
            self._emit_fast_write(w)
            for emitter in self.emitters:
                w.line()
                emitter.emit_write(w)
            w.line()
            self._emit_size(w)
            for emitter in self.emitters:
                w.line()
                emitter.emit_size(w)
            w.line()
            self._emit_tables(w)

    def _emit_attributes(self, w: CodeWriter) -> None:
        declared = False
        shadowed = {e.attr for e in self.emitters} | set(self.holders.values())
        for emitter in self.emitters:
            if isinstance(emitter, FieldEmitter):
                w.line(emitter.declaration(shadowed))
                declared = True
        for oneof, holder in self.holders.items():
            variants = [a.variant for a in self.adapters if a.field.oneof == oneof]
            w.line(f"{holder}: {' | '.join(variants + ['None'])} = None")
            declared = True
        if not declared:
            w.line("pass")

    def _emit_dispatcher(self, w: CodeWriter) -> None:
        name = self.class_name
        with w.block(
            "def fast_read(self, data: memoryview, offset: int, wire_type: int, number: int) -> int:"
        ):
            if self.dense:
                w.line(
                    "reader = self._readers[number] if number < len(self._readers) else None"
                )
            else:
                w.line("reader = self._readers.get(number)")
            with w.block("if reader is None:"):
                with w.block("try:"):
                    w.line("return _wire.skip(data, offset, wire_type, number)")
                with w.block("except _wire.WireError as e:"):
                    w.line("raise _msg.DecodeError(")
                    w.line(
                        '    f"' + name + ' cannot skip field {number} '
                        '(wire type {wire_type}): {e}"'
                    )
                    w.line(") from e")
            with w.block("try:"):
                w.line("return reader(self, data, offset, wire_type)")
            with w.block("except _wire.WireError as e:"):
                w.line("raise _msg.DecodeError(")
                w.line(
                    '    f"' + name + " read field {number} "
                    "'{self._field_names[number]}' error: {e}\""
                )
                w.line(") from e")

    def _emit_fast_write(self, w: CodeWriter) -> None:
        with w.block("def fast_write(self, buf: bytearray) -> int:"):
            w.line("offset = 0")
            for emitter in self.emitters:
                w.line(f"offset += self._write_field{emitter.number}(buf)")
            w.line("return offset")

    def _emit_size(self, w: CodeWriter) -> None:
        with w.block("def size(self) -> int:"):
            w.line("n = 0")
            for emitter in self.emitters:
                w.line(f"n += self._size_field{emitter.number}()")
            w.line("return n")

    def _emit_tables(self, w: CodeWriter) -> None:
        if self.dense:
            by_number = {e.number: f"_read_field{e.number}" for e in self.emitters}
            highest = self.fields[-1].number
            entries = [by_number.get(i, "None") for i in range(highest + 1)]
            w.line(f"_readers = ({', '.join(entries)})")
        else:
            entries = [f"{e.number}: _read_field{e.number}" for e in self.emitters]
            w.line(f"_readers = {{{', '.join(entries)}}}")

        names = [f'{f.number}: "{f.name}"' for f in self.fields]
        w.line(f"_field_names = {{{', '.join(names)}}}")
