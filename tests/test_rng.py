import pytest

from rocketlink.rng import ChaCha20Rng


def test_zero_seed_matches_chacha20_keystream():
    rng = ChaCha20Rng(bytes(32))
    assert rng.next_u32() == 0xADE0B876
    assert rng.next_u32() == 0x903DF1A0


def test_next_u64_combines_two_words_low_first():
    words = ChaCha20Rng(bytes(32))
    wide = ChaCha20Rng(bytes(32))
    for _ in range(20):
        low = words.next_u32()
        high = words.next_u32()
        assert wide.next_u64() == (high << 32) | low


def test_stream_continues_across_blocks():
    rng = ChaCha20Rng.seed_from_u64(7)
    first = [rng.next_u32() for _ in range(40)]
    assert len(set(first)) == 40
    assert all(0 <= w < 2**32 for w in first)


def test_seed_from_u64_is_deterministic():
    a = ChaCha20Rng.seed_from_u64(1234)
    b = ChaCha20Rng.seed_from_u64(1234)
    assert [a.next_u64() for _ in range(5)] == [b.next_u64() for _ in range(5)]


def test_different_seeds_differ():
    a = ChaCha20Rng.seed_from_u64(1)
    b = ChaCha20Rng.seed_from_u64(2)
    assert [a.next_u32() for _ in range(4)] != [b.next_u32() for _ in range(4)]


def test_seed_must_be_32_bytes():
    with pytest.raises(ValueError):
        ChaCha20Rng(bytes(16))


@pytest.mark.parametrize("length", [2, 3, 14, 64, 100])
def test_shuffle_is_a_permutation(length):
    items = list(range(length))
    ChaCha20Rng.seed_from_u64(99).shuffle(items)
    assert sorted(items) == list(range(length))


def test_shuffle_is_deterministic_and_moves_items():
    first = list(range(64))
    second = list(range(64))
    ChaCha20Rng.seed_from_u64(42).shuffle(first)
    ChaCha20Rng.seed_from_u64(42).shuffle(second)
    assert first == second
    assert first != list(range(64))


@pytest.mark.parametrize("items", [[], ["only"]])
def test_shuffle_of_short_sequence_consumes_nothing(items):
    rng = ChaCha20Rng(bytes(32))
    copy = list(items)
    rng.shuffle(copy)
    assert copy == items
    assert rng.next_u32() == ChaCha20Rng(bytes(32)).next_u32()