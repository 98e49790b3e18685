import math

import pytest

from rocketlink.postcard import from_bytes, to_slice
from rocketlink.protocol import SerializationError


def test_varint_wire_format():
    assert to_slice(["u16"], [300], 2) == b"\xac\x02"


def test_zigzag_wire_format():
    assert to_slice(["i16"], [-1], 1) == b"\x01"


def test_u8_and_i8_are_single_raw_bytes():
    data = to_slice(["u8", "i8"], [200, -1], 2)
    assert data == bytes([200, 0xFF])


def test_padding_to_size():
    data = to_slice(["u8"], [7], 6)
    assert len(data) == 6
    assert data[1:] == bytes(5)


@pytest.mark.parametrize(
    "schema, values",
    [
        (["u8", "u16", "u32", "u64"], (0, 65535, 4_000_000_000, 2**63)),
        (["i8", "i16", "i32", "i64"], (-128, -32768, 2**31 - 1, -(2**63))),
        (["bool", "bool"], (True, False)),
        (["f32", "f64"], (1.5, -2.25)),
        (["f16", "f16"], (0.5, -3.0)),
    ],
)
def test_round_trip(schema, values):
    data = to_slice(schema, values, 40)
    assert from_bytes(schema, data) == values


def test_f16_overflow_becomes_infinity():
    data = to_slice(["f16"], [1e10], 3)
    (value,) = from_bytes(["f16"], data)
    assert math.isinf(value) and value > 0


def test_buffer_full():
    with pytest.raises(SerializationError):
        to_slice(["u32", "u32"], [2**31, 2**31], 6)


def test_unexpected_end():
    with pytest.raises(SerializationError):
        from_bytes(["u8", "u8"], b"\x01")


def test_bad_varint_too_long():
    with pytest.raises(SerializationError):
        from_bytes(["u16"], b"\xff\xff\xff\x01")


def test_bad_varint_overflow():
    with pytest.raises(SerializationError):
        from_bytes(["u16"], b"\xff\xff\x7f")


def test_bad_bool():
    with pytest.raises(SerializationError):
        from_bytes(["bool"], b"\x02")


def test_out_of_range_value():
    with pytest.raises(SerializationError):
        to_slice(["u8"], [256], 4)


def test_unknown_type():
    with pytest.raises(ValueError):
        to_slice(["u128"], [1], 4)


def test_length_mismatch():
    with pytest.raises(ValueError):
        to_slice(["u8", "u8"], [1], 4)


def test_trailing_bytes_ignored():
    assert from_bytes(["u8"], b"\x05\x09\x09") == (5,)