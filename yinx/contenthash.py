"""BLAKE3 content hashing used for content-addressed storage."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from itertools import count
from typing import Sequence

__all__ = ["blake3_digest", "blake3_hex", "OUT_LEN"]

OUT_LEN = 32
BLOCK_LEN = 64
CHUNK_LEN = 1024

_CHUNK_START = 1 << 0
_CHUNK_END = 1 << 1
_PARENT = 1 << 2
_ROOT = 1 << 3

_IV = (
    0x6A09E667,
    0xBB67AE85,
    0x3C6EF372,
    0xA54FF53A,
    0x510E527F,
    0x9B05688C,
    0x1F83D9AB,
    0x5BE0CD19,
)
_MSG_PERMUTATION = (2, 6, 3, 10, 7, 0, 4, 13, 1, 11, 12, 5, 9, 14, 15, 8)
_MASK = 0xFFFFFFFF
_BLOCK_STRUCT = struct.Struct("<16I")


def _g(s: list[int], a: int, b: int, c: int, d: int, mx: int, my: int) -> None:
    s[a] = (s[a] + s[b] + mx) & _MASK
    x = s[d] ^ s[a]
    s[d] = ((x >> 16) | (x << 16)) & _MASK
    s[c] = (s[c] + s[d]) & _MASK
    x = s[b] ^ s[c]
    s[b] = ((x >> 12) | (x << 20)) & _MASK
    s[a] = (s[a] + s[b] + my) & _MASK
    x = s[d] ^ s[a]
    s[d] = ((x >> 8) | (x << 24)) & _MASK
    s[c] = (s[c] + s[d]) & _MASK
    x = s[b] ^ s[c]
    s[b] = ((x >> 7) | (x << 25)) & _MASK


def _round(s: list[int], m: Sequence[int]) -> None:
    # Columns.
    _g(s, 0, 4, 8, 12, m[0], m[1])
    _g(s, 1, 5, 9, 13, m[2], m[3])
    _g(s, 2, 6, 10, 14, m[4], m[5])
    _g(s, 3, 7, 11, 15, m[6], m[7])
    # Diagonals.
    _g(s, 0, 5, 10, 15, m[8], m[9])
    _g(s, 1, 6, 11, 12, m[10], m[11])
    _g(s, 2, 7, 8, 13, m[12], m[13])
    _g(s, 3, 4, 9, 14, m[14], m[15])


def _compress(
    cv: Sequence[int],
    block_words: Sequence[int],
    counter: int,
    block_len: int,
    flags: int,
) -> list[int]:
    state = [
        *cv,
        *_IV[:4],
        counter & _MASK,
        (counter >> 32) & _MASK,
        block_len,
        flags,
    ]
    message = list(block_words)
    for round_number in range(7):
        _round(state, message)
        if round_number < 6:
            message = [message[i] for i in _MSG_PERMUTATION]
    head = [low ^ high for low, high in zip(state[:8], state[8:])]
    tail = [high ^ word for high, word in zip(state[8:], cv)]
    return head + tail


def _words(block: bytes) -> tuple[int, ...]:
    return _BLOCK_STRUCT.unpack(block.ljust(BLOCK_LEN, b"\0"))


@dataclass(frozen=True)
class _Output:
    cv: tuple[int, ...]
    block_words: tuple[int, ...]
    counter: int
    block_len: int
    flags: int

    def chaining_value(self) -> tuple[int, ...]:
        words = _compress(self.cv, self.block_words, self.counter, self.block_len, self.flags)
        return tuple(words[:8])

    def root_bytes(self, length: int) -> bytes:
        out = bytearray()
        for block_counter in count():
            if len(out) >= length:
                break
            words = _compress(
                self.cv, self.block_words, block_counter, self.block_len, self.flags | _ROOT
            )
            out += _BLOCK_STRUCT.pack(*words)
        return bytes(out[:length])


def _parent_output(left: tuple[int, ...], right: tuple[int, ...]) -> _Output:
    return _Output(_IV, left + right, 0, BLOCK_LEN, _PARENT)


def _chunk_output(chunk: bytes, chunk_counter: int) -> _Output:
    blocks = [chunk[start:start + BLOCK_LEN] for start in range(0, len(chunk), BLOCK_LEN)] or [b""]
    cv: tuple[int, ...] = _IV
    for position, block in enumerate(blocks[:-1]):
        flags = _CHUNK_START if position == 0 else 0
        cv = tuple(_compress(cv, _words(block), chunk_counter, BLOCK_LEN, flags)[:8])
    last = blocks[-1]
    flags = _CHUNK_END | (_CHUNK_START if len(blocks) == 1 else 0)
    return _Output(cv, _words(last), chunk_counter, len(last), flags)


def _hash(data: bytes, out_len: int) -> bytes:
    chunks = [data[start:start + CHUNK_LEN] for start in range(0, len(data), CHUNK_LEN)] or [b""]
    stack: list[tuple[int, ...]] = []
    for chunk_counter, chunk in enumerate(chunks[:-1]):
        cv = _chunk_output(chunk, chunk_counter).chaining_value()
        total_chunks = chunk_counter + 1
        while total_chunks & 1 == 0:
            cv = _parent_output(stack.pop(), cv).chaining_value()
            total_chunks >>= 1
        stack.append(cv)
    output = _chunk_output(chunks[-1], len(chunks) - 1)
    while stack:
        output = _parent_output(stack.pop(), output.chaining_value())
    return output.root_bytes(out_len)


def blake3_digest(data: bytes | bytearray | memoryview) -> bytes:
    """Return the 32-byte BLAKE3 digest of ``data``."""
    return _hash(bytes(data), OUT_LEN)


def blake3_hex(data: bytes | bytearray | memoryview, length: int = 2 * OUT_LEN) -> str:
    """Return the first ``length`` hex characters of the BLAKE3 output for ``data``."""
    if length < 0:
        raise ValueError("length must not be negative")
    return _hash(bytes(data), (length + 1) // 2).hex()[:length]