"""Base classes for generated pbforge message types."""

from enum import IntEnum
from typing import Any, ClassVar, Self

from .wire import WireError, decode_fields


class DecodeError(WireError):
    """Raised by a generated message when one of its fields fails to decode.

    The message names the record type and, when known, the field number and
    name. Errors from nested records are wrapped again at every level.
    """


class Message:
    """Base class for generated message types.

    Generated subclasses are dataclasses that implement the three routines
    below with one specialized method per field:

        fast_read(data, offset, wire_type, number) -> bytes consumed
        fast_write(buf) -> bytes written
        size() -> encoded size

    Example:
        person = Person(name="Ada", id=7)
        data = person.to_bytes()
        assert len(data) == person.size()
        assert Person.from_bytes(data) == person
    """

    _field_names: ClassVar[dict[int, str]] = {}

    def fast_read(self, data: Any, offset: int, wire_type: int, number: int) -> int:
        """Decode one occurrence of field ``number``. Generated code overrides this."""
        raise NotImplementedError("fast_read() must be implemented by generated code")

    def fast_write(self, buf: bytearray) -> int:
        """Append all non-default fields to ``buf``. Generated code overrides this."""
        raise NotImplementedError("fast_write() must be implemented by generated code")

    def size(self) -> int:
        """Return the encoded size in bytes. Generated code overrides this."""
        raise NotImplementedError("size() must be implemented by generated code")

    def to_bytes(self) -> bytes:
        buf = bytearray()
        self.fast_write(buf)
        return bytes(buf)

    @classmethod
    def from_bytes(cls, data: bytes | bytearray | memoryview) -> Self:
        """Decode a message from its wire representation.

        Raises:
            WireError: if the data is malformed. Field-level failures are
                reported as DecodeError.
        """
        msg = cls()
        decode_fields(memoryview(data), msg)
        return msg


class OneofVariant:
    """Base class for the boxed variants stored in a oneof holder attribute."""

    __slots__ = ()


class ProtoEnum(IntEnum):
    """Base class for generated enums.

    Enums are open: values that the schema does not declare decode to pseudo
    members instead of failing, so they survive a decode/encode round trip.
    """

    @classmethod
    def _missing_(cls, value: object) -> Any:
        if not isinstance(value, int):
            return None
        member = int.__new__(cls, value)
        member._name_ = f"{cls.__name__}_{value}"
        member._value_ = value
        return cls._value2member_map_.setdefault(value, member)
