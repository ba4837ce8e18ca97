"""Wire-format primitives used by generated pbforge code.

Every scalar family has a ``read_*``, ``write_*`` and ``size_*`` function:

    read_int32(data, offset, wire_type) -> (value, bytes_consumed)
    write_int32(buf, number, value) -> bytes_written
    size_int32(number, value) -> encoded_size

Readers take a ``memoryview`` (or any bytes-like object) and an offset,
writers append to a ``bytearray``. Passing ``SKIP_TAG`` as the field number
writes (or sizes) a bare value without a tag, which is how elements of a
packed block are produced. Passing ``SKIP_TYPE_CHECK`` as the wire type reads
a bare value, which is how elements of a packed block are consumed.
"""

import struct
from collections.abc import Callable, Iterable
from typing import Any, Protocol

VARINT = 0
I64 = 1
LEN = 2
SGROUP = 3
EGROUP = 4
I32 = 5

SKIP_TAG = -1
SKIP_TYPE_CHECK = -1

MAX_FIELD_NUMBER = (1 << 29) - 1

_MASK32 = 0xFFFFFFFF
_MASK64 = 0xFFFFFFFFFFFFFFFF

_FIXED32 = struct.Struct("<I")
_SFIXED32 = struct.Struct("<i")
_FLOAT = struct.Struct("<f")
_FIXED64 = struct.Struct("<Q")
_SFIXED64 = struct.Struct("<q")
_DOUBLE = struct.Struct("<d")


class WireError(RuntimeError):
    """Raised when wire data is malformed or does not match the expected type."""


class FieldReader(Protocol):
    """Anything that can consume one field occurrence (a generated message)."""

    def fast_read(self, data: Any, offset: int, wire_type: int, number: int) -> int: ...


class FieldWriter(Protocol):
    """Anything that can write itself as a sequence of fields."""

    def fast_write(self, buf: bytearray) -> int: ...

    def size(self) -> int: ...


ElementReader = Callable[[Any, int, int], int]


# Varints and tags


def read_varint(data: Any, offset: int) -> tuple[int, int]:
    """Decode a base-128 varint, returning ``(value, bytes_consumed)``."""
    result = 0
    shift = 0
    pos = offset
    end = len(data)
    while True:
        if pos >= end:
            raise WireError("truncated varint")
        byte = data[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        if byte < 0x80:
            return result & _MASK64, pos - offset
        shift += 7
        if shift >= 70:
            raise WireError("varint overflows 64 bits")


def write_varint(buf: bytearray, value: int) -> int:
    value &= _MASK64
    n = 1
    while value >= 0x80:
        buf.append((value & 0x7F) | 0x80)
        value >>= 7
        n += 1
    buf.append(value)
    return n


def size_varint(value: int) -> int:
    value &= _MASK64
    if value < 0x80:
        return 1
    return (value.bit_length() + 6) // 7


def zigzag_encode32(value: int) -> int:
    return ((value << 1) ^ (value >> 31)) & _MASK32


def zigzag_encode64(value: int) -> int:
    return ((value << 1) ^ (value >> 63)) & _MASK64


def zigzag_decode(value: int) -> int:
    return (value >> 1) ^ -(value & 1)


def read_tag(data: Any, offset: int) -> tuple[int, int, int]:
    """Decode a field tag, returning ``(number, wire_type, bytes_consumed)``."""
    tag, n = read_varint(data, offset)
    number = tag >> 3
    if number == 0 or number > MAX_FIELD_NUMBER:
        raise WireError(f"invalid field number {number}")
    return number, tag & 0x07, n


def write_tag(buf: bytearray, number: int, wire_type: int) -> int:
    if number == SKIP_TAG:
        return 0
    return write_varint(buf, (number << 3) | wire_type)


def size_tag(number: int) -> int:
    if number == SKIP_TAG:
        return 0
    return size_varint(number << 3)


def _check(wire_type: int, expected: int, family: str) -> None:
    if wire_type != expected and wire_type != SKIP_TYPE_CHECK:
        raise WireError(f"cannot read {family} from wire type {wire_type}")


def _read_fixed(data: Any, offset: int, codec: struct.Struct) -> tuple[Any, int]:
    if offset + codec.size > len(data):
        raise WireError("truncated fixed-width value")
    return codec.unpack_from(data, offset)[0], codec.size


def _read_length(data: Any, offset: int) -> tuple[int, int]:
    """Read a length prefix; returns ``(start, end)`` of the payload."""
    length, n = read_varint(data, offset)
    start = offset + n
    end = start + length
    if end > len(data):
        raise WireError("truncated length-delimited field")
    return start, end


# Scalar families


def read_bool(data: Any, offset: int, wire_type: int) -> tuple[bool, int]:
    _check(wire_type, VARINT, "bool")
    value, n = read_varint(data, offset)
    return value != 0, n


def write_bool(buf: bytearray, number: int, value: bool) -> int:
    n = write_tag(buf, number, VARINT)
    buf.append(1 if value else 0)
    return n + 1


def size_bool(number: int, value: bool) -> int:
    return size_tag(number) + 1


def read_int32(data: Any, offset: int, wire_type: int) -> tuple[int, int]:
    _check(wire_type, VARINT, "int32")
    value, n = read_varint(data, offset)
    value &= _MASK32
    if value & 0x80000000:
        value -= 1 << 32
    return value, n


def write_int32(buf: bytearray, number: int, value: int) -> int:
    return write_tag(buf, number, VARINT) + write_varint(buf, value)


def size_int32(number: int, value: int) -> int:
    return size_tag(number) + size_varint(value)


def read_int64(data: Any, offset: int, wire_type: int) -> tuple[int, int]:
    _check(wire_type, VARINT, "int64")
    value, n = read_varint(data, offset)
    if value & 0x8000000000000000:
        value -= 1 << 64
    return value, n


write_int64 = write_int32
size_int64 = size_int32


def read_uint32(data: Any, offset: int, wire_type: int) -> tuple[int, int]:
    _check(wire_type, VARINT, "uint32")
    value, n = read_varint(data, offset)
    return value & _MASK32, n


def write_uint32(buf: bytearray, number: int, value: int) -> int:
    return write_tag(buf, number, VARINT) + write_varint(buf, value & _MASK32)


def size_uint32(number: int, value: int) -> int:
    return size_tag(number) + size_varint(value & _MASK32)


def read_uint64(data: Any, offset: int, wire_type: int) -> tuple[int, int]:
    _check(wire_type, VARINT, "uint64")
    return read_varint(data, offset)


write_uint64 = write_int32
size_uint64 = size_int32


def read_sint32(data: Any, offset: int, wire_type: int) -> tuple[int, int]:
    _check(wire_type, VARINT, "sint32")
    value, n = read_varint(data, offset)
    return zigzag_decode(value & _MASK32), n


def write_sint32(buf: bytearray, number: int, value: int) -> int:
    return write_tag(buf, number, VARINT) + write_varint(buf, zigzag_encode32(value))


def size_sint32(number: int, value: int) -> int:
    return size_tag(number) + size_varint(zigzag_encode32(value))


def read_sint64(data: Any, offset: int, wire_type: int) -> tuple[int, int]:
    _check(wire_type, VARINT, "sint64")
    value, n = read_varint(data, offset)
    return zigzag_decode(value), n


def write_sint64(buf: bytearray, number: int, value: int) -> int:
    return write_tag(buf, number, VARINT) + write_varint(buf, zigzag_encode64(value))


def size_sint64(number: int, value: int) -> int:
    return size_tag(number) + size_varint(zigzag_encode64(value))


def read_fixed32(data: Any, offset: int, wire_type: int) -> tuple[int, int]:
    _check(wire_type, I32, "fixed32")
    return _read_fixed(data, offset, _FIXED32)


def write_fixed32(buf: bytearray, number: int, value: int) -> int:
    n = write_tag(buf, number, I32)
    buf += _FIXED32.pack(value & _MASK32)
    return n + 4


def size_fixed32(number: int, value: Any) -> int:
    return size_tag(number) + 4


def read_sfixed32(data: Any, offset: int, wire_type: int) -> tuple[int, int]:
    _check(wire_type, I32, "sfixed32")
    return _read_fixed(data, offset, _SFIXED32)


def write_sfixed32(buf: bytearray, number: int, value: int) -> int:
    n = write_tag(buf, number, I32)
    buf += _SFIXED32.pack(value)
    return n + 4


size_sfixed32 = size_fixed32


def read_float(data: Any, offset: int, wire_type: int) -> tuple[float, int]:
    _check(wire_type, I32, "float")
    return _read_fixed(data, offset, _FLOAT)


def write_float(buf: bytearray, number: int, value: float) -> int:
    n = write_tag(buf, number, I32)
    buf += _FLOAT.pack(value)
    return n + 4


size_float = size_fixed32


def read_fixed64(data: Any, offset: int, wire_type: int) -> tuple[int, int]:
    _check(wire_type, I64, "fixed64")
    return _read_fixed(data, offset, _FIXED64)


def write_fixed64(buf: bytearray, number: int, value: int) -> int:
    n = write_tag(buf, number, I64)
    buf += _FIXED64.pack(value & _MASK64)
    return n + 8


def size_fixed64(number: int, value: Any) -> int:
    return size_tag(number) + 8


def read_sfixed64(data: Any, offset: int, wire_type: int) -> tuple[int, int]:
    _check(wire_type, I64, "sfixed64")
    return _read_fixed(data, offset, _SFIXED64)


def write_sfixed64(buf: bytearray, number: int, value: int) -> int:
    n = write_tag(buf, number, I64)
    buf += _SFIXED64.pack(value)
    return n + 8


size_sfixed64 = size_fixed64


def read_double(data: Any, offset: int, wire_type: int) -> tuple[float, int]:
    _check(wire_type, I64, "double")
    return _read_fixed(data, offset, _DOUBLE)


def write_double(buf: bytearray, number: int, value: float) -> int:
    n = write_tag(buf, number, I64)
    buf += _DOUBLE.pack(value)
    return n + 8


size_double = size_fixed64


def read_bytes(data: Any, offset: int, wire_type: int) -> tuple[bytes, int]:
    _check(wire_type, LEN, "bytes")
    start, end = _read_length(data, offset)
    return bytes(data[start:end]), end - offset


def write_bytes(buf: bytearray, number: int, value: bytes) -> int:
    n = write_tag(buf, number, LEN)
    n += write_varint(buf, len(value))
    buf += value
    return n + len(value)


def size_bytes(number: int, value: bytes) -> int:
    return size_tag(number) + size_varint(len(value)) + len(value)


def read_string(data: Any, offset: int, wire_type: int) -> tuple[str, int]:
    _check(wire_type, LEN, "string")
    start, end = _read_length(data, offset)
    try:
        value = bytes(data[start:end]).decode("utf-8")
    except UnicodeDecodeError as e:
        raise WireError(f"string field contains invalid UTF-8: {e}") from e
    return value, end - offset


def write_string(buf: bytearray, number: int, value: str) -> int:
    return write_bytes(buf, number, value.encode("utf-8"))


def size_string(number: int, value: str) -> int:
    return size_bytes(number, value.encode("utf-8"))


# Composite primitives


def decode_fields(data: Any, msg: FieldReader) -> None:
    """Feed every field of ``data`` to ``msg.fast_read`` until the buffer is exhausted."""
    offset = 0
    end = len(data)
    while offset < end:
        number, wire_type, n = read_tag(data, offset)
        offset += n
        if wire_type == EGROUP:
            raise WireError(f"unexpected end group for field {number}")
        offset += msg.fast_read(data, offset, wire_type, number)


def read_message(data: Any, offset: int, wire_type: int, msg: FieldReader) -> int:
    _check(wire_type, LEN, "message")
    start, end = _read_length(data, offset)
    decode_fields(data[start:end], msg)
    return end - offset


def write_message(buf: bytearray, number: int, msg: FieldWriter | None) -> int:
    """Write ``msg`` as a length-delimited field; ``None`` is written as an empty message."""
    n = write_tag(buf, number, LEN)
    if msg is None:
        buf.append(0)
        return n + 1
    length = msg.size()
    n += write_varint(buf, length)
    written = msg.fast_write(buf)
    if written != length:
        raise WireError(
            f"{type(msg).__name__} wrote {written} bytes but reported a size of {length}"
        )
    return n + written


def size_message(number: int, msg: FieldWriter | None) -> int:
    if msg is None:
        return size_tag(number) + 1
    length = msg.size()
    return size_tag(number) + size_varint(length) + length


def read_list(data: Any, offset: int, wire_type: int, read_element: ElementReader) -> int:
    """Read one occurrence of a packable repeated field.

    A length-delimited occurrence is a packed block and every element inside
    it is passed to ``read_element``; any other wire type is a single
    unpacked element.
    """
    if wire_type != LEN:
        return read_element(data, offset, wire_type)
    start, end = _read_length(data, offset)
    block = data[start:end]
    pos = 0
    while pos < len(block):
        pos += read_element(block, pos, SKIP_TYPE_CHECK)
    return end - offset


def write_list_packed(
    buf: bytearray,
    number: int,
    values: Iterable[Any],
    write_element: Callable[[bytearray, int, Any], int],
) -> int:
    block = bytearray()
    for value in values:
        write_element(block, SKIP_TAG, value)
    n = write_tag(buf, number, LEN)
    n += write_varint(buf, len(block))
    buf += block
    return n + len(block)


def size_list_packed(
    number: int,
    values: Iterable[Any],
    size_element: Callable[[int, Any], int],
) -> int:
    length = 0
    for value in values:
        length += size_element(SKIP_TAG, value)
    return size_tag(number) + size_varint(length) + length


def read_map_entry(
    data: Any,
    offset: int,
    wire_type: int,
    read_key: ElementReader,
    read_value: ElementReader,
) -> int:
    """Read one map entry: key at field 1, value at field 2, anything else skipped."""
    _check(wire_type, LEN, "map entry")
    start, end = _read_length(data, offset)
    entry = data[start:end]
    pos = 0
    while pos < len(entry):
        number, entry_type, n = read_tag(entry, pos)
        pos += n
        if number == 1:
            pos += read_key(entry, pos, entry_type)
        elif number == 2:
            pos += read_value(entry, pos, entry_type)
        else:
            pos += skip(entry, pos, entry_type, number)
    return end - offset


def write_map_entry(
    buf: bytearray,
    number: int,
    key: Any,
    value: Any,
    write_entry: Callable[[bytearray, Any, Any], int],
) -> int:
    entry = bytearray()
    write_entry(entry, key, value)
    n = write_tag(buf, number, LEN)
    n += write_varint(buf, len(entry))
    buf += entry
    return n + len(entry)


def size_map_entry(
    number: int,
    key: Any,
    value: Any,
    size_entry: Callable[[Any, Any], int],
) -> int:
    length = size_entry(key, value)
    return size_tag(number) + size_varint(length) + length


def skip(data: Any, offset: int, wire_type: int, number: int) -> int:
    """Skip over one field occurrence of any wire type, returning bytes consumed."""
    if wire_type == VARINT:
        return read_varint(data, offset)[1]
    if wire_type == I64:
        if offset + 8 > len(data):
            raise WireError("truncated fixed64")
        return 8
    if wire_type == I32:
        if offset + 4 > len(data):
            raise WireError("truncated fixed32")
        return 4
    if wire_type == LEN:
        return _read_length(data, offset)[1] - offset
    if wire_type == SGROUP:
        pos = offset
        while True:
            inner_number, inner_type, n = read_tag(data, pos)
            pos += n
            if inner_type == EGROUP:
                if inner_number != number:
                    raise WireError(f"mismatched end group {inner_number} for group {number}")
                return pos - offset
            pos += skip(data, pos, inner_type, inner_number)
    raise WireError(f"invalid wire type {wire_type}")
