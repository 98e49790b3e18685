"""Serialization of flat records in the postcard wire format.

A record is described by a schema: a sequence of field type names, one per
value, in wire order. Supported types are ``bool``, ``u8``, ``i8``, ``u16``,
``u32``, ``u64``, ``i16``, ``i32``, ``i64``, ``f16``, ``f32`` and ``f64``.
Tuples and nested structs are written by listing their fields in order.
"""

from __future__ import annotations

import math
import struct
from typing import Sequence

from rocketlink.protocol import SerializationError

_VARINT_BITS = {"u16": 16, "u32": 32, "u64": 64}
_ZIGZAG_BITS = {"i16": 16, "i32": 32, "i64": 64}
_FIXED_FORMATS = {"f32": "<f", "f64": "<d"}

FIELD_TYPES = frozenset({"bool", "u8", "i8", "f16", *_VARINT_BITS, *_ZIGZAG_BITS, *_FIXED_FORMATS})


def _check_schema(schema: Sequence[str]) -> None:
    unknown = [kind for kind in schema if kind not in FIELD_TYPES]
    if unknown:
        raise ValueError(f"unknown field types: {', '.join(unknown)}")


def _check_range(value: int, low: int, high: int, kind: str) -> None:
    if not low <= value <= high:
        raise SerializationError(f"value {value} out of range for {kind}")


def _varint_len(bits: int) -> int:
    return (bits + 6) // 7


def _encode_varint(value: int) -> bytes:
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def _f16_bits(value: float) -> int:
    try:
        raw = struct.pack("<e", value)
    except OverflowError:
        raw = struct.pack("<e", math.copysign(math.inf, value))
    return int.from_bytes(raw, "little")


def _encode_field(kind: str, value) -> bytes:
    if kind == "bool":
        return b"\x01" if value else b"\x00"
    if kind == "u8":
        _check_range(value, 0, 0xFF, kind)
        return bytes([value])
    if kind == "i8":
        _check_range(value, -0x80, 0x7F, kind)
        return bytes([value & 0xFF])
    if kind == "f16":
        return _encode_varint(_f16_bits(float(value)))
    if kind in _VARINT_BITS:
        bits = _VARINT_BITS[kind]
        _check_range(value, 0, (1 << bits) - 1, kind)
        return _encode_varint(value)
    if kind in _ZIGZAG_BITS:
        bits = _ZIGZAG_BITS[kind]
        _check_range(value, -(1 << (bits - 1)), (1 << (bits - 1)) - 1, kind)
        zigzag = ((value << 1) ^ (value >> (bits - 1))) & ((1 << bits) - 1)
        return _encode_varint(zigzag)
    return struct.pack(_FIXED_FORMATS[kind], value)


class _Reader:
    def __init__(self, data: bytes) -> None:
        self._data = data
        self._pos = 0

    def take(self, count: int) -> bytes:
        end = self._pos + count
        if end > len(self._data):
            raise SerializationError("DeserializeUnexpectedEnd")
        chunk = self._data[self._pos : end]
        self._pos = end
        return chunk

    def varint(self, bits: int) -> int:
        value = 0
        for index in range(_varint_len(bits)):
            byte = self.take(1)[0]
            value |= (byte & 0x7F) << (7 * index)
            if not byte & 0x80:
                if value >> bits:
                    raise SerializationError("DeserializeBadVarint")
                return value
        raise SerializationError("DeserializeBadVarint")


def _decode_field(kind: str, reader: _Reader):
    if kind == "bool":
        byte = reader.take(1)[0]
        if byte > 1:
            raise SerializationError("DeserializeBadBool")
        return bool(byte)
    if kind == "u8":
        return reader.take(1)[0]
    if kind == "i8":
        return int.from_bytes(reader.take(1), "little", signed=True)
    if kind == "f16":
        bits = reader.varint(16)
        return struct.unpack("<e", bits.to_bytes(2, "little"))[0]
    if kind in _VARINT_BITS:
        return reader.varint(_VARINT_BITS[kind])
    if kind in _ZIGZAG_BITS:
        zigzag = reader.varint(_ZIGZAG_BITS[kind])
        return (zigzag >> 1) ^ -(zigzag & 1)
    fmt = _FIXED_FORMATS[kind]
    return struct.unpack(fmt, reader.take(struct.calcsize(fmt)))[0]


def to_slice(schema: Sequence[str], values: Sequence, size: int) -> bytes:
    """Serialize ``values`` into exactly ``size`` bytes, zero-padded.

    Raises :class:`SerializationError` if the encoding does not fit.
    """
    _check_schema(schema)
    if len(schema) != len(values):
        raise ValueError("schema and values differ in length")
    encoded = b"".join(_encode_field(kind, value) for kind, value in zip(schema, values))
    if len(encoded) > size:
        raise SerializationError("SerializeBufferFull")
    return encoded + bytes(size - len(encoded))


def from_bytes(schema: Sequence[str], data: bytes) -> tuple:
    """Deserialize one value per schema entry from ``data``; trailing bytes are ignored."""
    _check_schema(schema)
    reader = _Reader(bytes(data))
    return tuple(_decode_field(kind, reader) for kind in schema)