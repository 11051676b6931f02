from __future__ import annotations

from Cryptodome.Util.strxor import strxor

from .errors import CipherKeyError


def keystream(key: bytes, position: int, length: int) -> bytes:
    """Repeating ``key`` rotated so that byte 0 lines up with ``position``."""
    if not key:
        raise CipherKeyError("Cipher key is empty")
    start = position % len(key)
    rotated = key[start:] + key[:start]
    reps = -(-length // len(rotated))
    return (rotated * reps)[:length]


def transform(data: bytes, key: bytes, position: int = 0) -> bytes:
    """XOR ``data`` with the repeating ``key``; applying it twice is a no-op.

    ``position`` is the offset of ``data[0]`` from the start of its entry, so
    any slice of an entry can be processed on its own.
    """
    if not key:
        raise CipherKeyError("Cipher key is empty")
    if position < 0:
        raise ValueError("position must be >= 0")
    if not data:
        return b""
    return strxor(bytes(data), keystream(key, position, len(data)))
