"""ChaCha20-based deterministic random number generator."""

from __future__ import annotations

from collections import deque
from typing import MutableSequence

_M32 = 0xFFFF_FFFF
_M64 = 0xFFFF_FFFF_FFFF_FFFF
_CONSTANTS = (0x61707865, 0x3320646E, 0x79622D32, 0x6B206574)
_PCG_MUL = 6364136223846793005
_PCG_INC = 11634580027462260723


def _rotl32(value: int, shift: int) -> int:
    return ((value << shift) | (value >> (32 - shift))) & _M32


def _quarter_round(s: list[int], a: int, b: int, c: int, d: int) -> None:
    s[a] = (s[a] + s[b]) & _M32
    s[d] = _rotl32(s[d] ^ s[a], 16)
    s[c] = (s[c] + s[d]) & _M32
    s[b] = _rotl32(s[b] ^ s[c], 12)
    s[a] = (s[a] + s[b]) & _M32
    s[d] = _rotl32(s[d] ^ s[a], 8)
    s[c] = (s[c] + s[d]) & _M32
    s[b] = _rotl32(s[b] ^ s[c], 7)


def _chacha20_block(key_words: tuple[int, ...], counter: int, stream: int) -> list[int]:
    state = [
        *_CONSTANTS,
        *key_words,
        counter & _M32,
        (counter >> 32) & _M32,
        stream & _M32,
        (stream >> 32) & _M32,
    ]
    working = list(state)
    for _ in range(10):
        _quarter_round(working, 0, 4, 8, 12)
        _quarter_round(working, 1, 5, 9, 13)
        _quarter_round(working, 2, 6, 10, 14)
        _quarter_round(working, 3, 7, 11, 15)
        _quarter_round(working, 0, 5, 10, 15)
        _quarter_round(working, 1, 6, 11, 12)
        _quarter_round(working, 2, 7, 8, 13)
        _quarter_round(working, 3, 4, 9, 14)
    return [(w + s) & _M32 for w, s in zip(working, state)]


def _chunk_bound(m: int) -> tuple[int, int]:
    """Largest product ``m * (m+1) * ...`` that fits in 32 bits, and its factor count."""
    product = m
    current = m + 1
    while product * current <= _M32:
        product *= current
        current += 1
    return product, current - m


class ChaCha20Rng:
    """Random number generator producing the ChaCha20 keystream as 32-bit words."""

    def __init__(self, seed: bytes, stream: int = 0) -> None:
        seed = bytes(seed)
        if len(seed) != 32:
            raise ValueError("ChaCha20 seed must be 32 bytes")
        self._key = tuple(
            int.from_bytes(seed[offset : offset + 4], "little") for offset in range(0, 32, 4)
        )
        self._stream = stream & _M64
        self._counter = 0
        self._buffer: deque[int] = deque()

    @classmethod
    def seed_from_u64(cls, state: int) -> "ChaCha20Rng":
        """Build a generator whose seed is expanded from a 64-bit value with PCG32."""
        state &= _M64
        seed = bytearray()
        for _ in range(8):
            state = (state * _PCG_MUL + _PCG_INC) & _M64
            xorshifted = (((state >> 18) ^ state) >> 27) & _M32
            rot = state >> 59
            word = ((xorshifted >> rot) | (xorshifted << (32 - rot))) & _M32
            seed += word.to_bytes(4, "little")
        return cls(bytes(seed))

    def next_u32(self) -> int:
        if not self._buffer:
            self._buffer.extend(_chacha20_block(self._key, self._counter, self._stream))
            self._counter = (self._counter + 1) & _M64
        return self._buffer.popleft()

    def next_u64(self) -> int:
        low = self.next_u32()
        high = self.next_u32()
        return (high << 32) | low

    def _below(self, bound: int) -> int:
        """A number in ``[0, bound)`` for ``0 < bound < 2**32``."""
        product = self.next_u32() * bound
        result, low_order = product >> 32, product & _M32
        if low_order > ((-bound) & _M32):
            new_high = (self.next_u32() * bound) >> 32
            if low_order + new_high > _M32:
                result += 1
        return result

    def shuffle(self, items: MutableSequence) -> None:
        """Shuffle ``items`` in place."""
        if len(items) <= 1:
            return
        n = 0
        chunk = 0
        remaining = 1
        for i in range(len(items)):
            next_n = n + 1
            if remaining == 0:
                bound, remaining = _chunk_bound(next_n)
                chunk = self._below(bound)
            remaining -= 1
            if remaining == 0:
                index = chunk
            else:
                index = chunk % next_n
                chunk //= next_n
            items[i], items[index] = items[index], items[i]
            n = next_n