from __future__ import annotations

from Cryptodome.Hash import SHA1


def derive_key(index_bytes: bytes) -> bytes:
    """SHA-1 of the index region: a 20-byte key, no salt or nonce.

    ``index_bytes`` is the index exactly as it sits on disk, starting at the
    entry-count field (file offset 0x07) and spanning ``index_size`` bytes.
    """
    return SHA1.new(bytes(index_bytes)).digest()
