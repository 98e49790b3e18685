import pytest

from rocketlink.siphash import siphash24

REFERENCE_KEY = bytes(range(16))


def test_reference_vector_empty_message():
    assert siphash24(REFERENCE_KEY, b"") == 0x726FDB47DD0E0E31


def test_reference_vector_fifteen_bytes():
    assert siphash24(REFERENCE_KEY, bytes(range(15))) == 0xA129CA6149BE45E5


@pytest.mark.parametrize("length", [0, 1, 7, 8, 9, 16, 33])
def test_result_fits_in_64_bits_and_is_deterministic(length):
    data = bytes(range(length))
    first = siphash24(REFERENCE_KEY, data)
    assert 0 <= first < 2**64
    assert siphash24(REFERENCE_KEY, data) == first


def test_key_changes_result():
    data = b"schinken"
    assert siphash24(bytes(16), data) != siphash24(bytes([0x42] * 16), data)


def test_message_length_matters():
    assert siphash24(REFERENCE_KEY, b"\x00") != siphash24(REFERENCE_KEY, b"\x00\x00")


@pytest.mark.parametrize("key", [b"", bytes(15), bytes(17)])
def test_wrong_key_length_rejected(key):
    with pytest.raises(ValueError):
        siphash24(key, b"data")