from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Iterator

from .errors import InvalidIdentifierError

IdentifierArg = str | bytes

# Bytes below 0x20 are escaped too.
UNSAFE_BYTES = frozenset(b"*?/\\\"'%")

SHARD_BASE = ord("z") - ord("a")
SHARD_WIDTH = 4

# The hash accumulator wraps like a 64-bit unsigned long.
_HASH_MASK = (1 << 64) - 1

_PERCENT = ord("%")


def to_identifier(identifier: IdentifierArg) -> bytes:
    """Return the raw bytes of `identifier`.

    `str` identifiers are converted with `os.fsencode`, so a command-line
    argument keeps the exact bytes it was given as.

    Raises:
        InvalidIdentifierError: If the identifier is empty, `.` or `..`.
    """
    if isinstance(identifier, str):
        identifier = os.fsencode(identifier)
    if not identifier:
        raise InvalidIdentifierError("identifier must not be empty")
    if identifier in (b".", b".."):
        raise InvalidIdentifierError(f"{identifier!r} cannot be used as an identifier")
    return bytes(identifier)


def _is_unsafe(byte: int) -> bool:
    return byte < 0x20 or byte in UNSAFE_BYTES


def encode_id(identifier: IdentifierArg) -> str:
    """Escape `identifier` into a file name.

    Control bytes and ``* ? / \\ " ' %`` are replaced by `%` followed by the
    decimal value of the byte, e.g. `/` becomes `%47`. All other bytes are
    kept as they are.
    """
    encoded = bytearray()
    for byte in to_identifier(identifier):
        if _is_unsafe(byte):
            encoded += b"%%%d" % byte
        else:
            encoded.append(byte)
    return os.fsdecode(bytes(encoded))


def iter_decodings(filename: str) -> Iterator[bytes]:
    """Yield every identifier that `encode_id` maps to `filename`.

    Escapes are not delimited, so `%34` is both `"` and byte 3 followed by
    `4`. Longer escapes are tried first. Nothing is yielded for names
    `encode_id` never produces.
    """
    raw = os.fsencode(filename)

    def _decode(start: int) -> Iterator[bytes]:
        if start == len(raw):
            yield b""
            return

        byte = raw[start]
        if byte != _PERCENT:
            if _is_unsafe(byte):
                return
            for rest in _decode(start + 1):
                yield bytes((byte,)) + rest
            return

        digits = raw[start + 1 : start + 3]
        candidates = []
        if len(digits) == 2 and digits.isdigit() and digits[:1] != b"0":
            candidates.append(2)
        if digits[:1].isdigit():
            candidates.append(1)

        for width in candidates:
            value = int(digits[:width])
            if not _is_unsafe(value):
                continue
            for rest in _decode(start + 1 + width):
                yield bytes((value,)) + rest

    return _decode(0)


def shard_for_id(identifier: IdentifierArg) -> str:
    """Return the 4 letter shard directory name for `identifier`.

    The bytes are folded through a rolling hash, then written out as base 25
    digits over `a`..`y`, least significant digit first. Unrelated
    identifiers are expected to share shards.
    """
    state = 0
    for byte in to_identifier(identifier):
        top = (state >> 24) & 0xFF
        state = ((state << 8) + (byte ^ top)) & _HASH_MASK

    letters = []
    for _ in range(SHARD_WIDTH):
        state, digit = divmod(state, SHARD_BASE)
        letters.append(chr(ord("a") + digit))
    return "".join(letters)


def is_shard_name(name: str) -> bool:
    return len(name) == SHARD_WIDTH and all(
        "a" <= char < chr(ord("a") + SHARD_BASE) for char in name
    )


@dataclass(frozen=True)
class CacheEntryPath:
    """Location of an identifier's entry, relative to the cache root.

    Attributes:
        shard: Name of the shard directory.
        filename: Escaped identifier, the entry's file name in `shard`.
    """

    shard: str
    filename: str

    @classmethod
    def from_id(cls, identifier: IdentifierArg) -> CacheEntryPath:
        return cls(shard_for_id(identifier), encode_id(identifier))

    @property
    def relpath(self) -> str:
        return f"{self.shard}/{self.filename}"
