from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterable, List, Optional, Sequence, Tuple

from .constants import HEADER_SIZE, MAX_U32
from .errors import ArchiveTooLargeError, InvalidFormatError
from .format import ArchiveFormat, RawEntry, compute_index_size, serialize_index
from .pathutil import matches_any_pattern, to_system_path


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Entry:
    name: str  # backslash separated
    offset: int
    size: int
    encrypted: bool

    @property
    def path(self) -> str:
        """Forward-slash form of ``name`` for display."""
        return self.name.replace("\\", "/")

    @property
    def file_name(self) -> str:
        return self.name.rsplit("\\", 1)[-1]

    def system_path(self, base=None) -> Path:
        return to_system_path(self.name, base)

    @classmethod
    def from_raw(cls, raw: RawEntry, fmt: ArchiveFormat, unencrypted_patterns: Iterable[str]) -> "Entry":
        return cls(
            name=raw.name,
            offset=raw.offset,
            size=raw.size,
            encrypted=is_encrypted(raw.name, fmt, unencrypted_patterns),
        )


def is_encrypted(name: str, fmt: ArchiveFormat, unencrypted_patterns: Iterable[str], force_plain: bool = False) -> bool:
    if not fmt.supports_encryption or force_plain:
        return False
    return not matches_any_pattern(name, unencrypted_patterns)


@dataclass
class PendingEntry:
    """A source registered with the builder but not yet laid out."""
    archive_path: str
    size: int
    source_path: Optional[str] = None
    data: Optional[bytes] = None
    force_plain: bool = False

    def open(self) -> BinaryIO:
        if self.data is not None:
            return io.BytesIO(self.data)
        if self.source_path is None:
            raise ValueError(f"{self.archive_path!r}: entry has neither data nor a source path")
        return open(self.source_path, "rb")


def compute_layout(
    pending: Sequence[PendingEntry],
    unencrypted_patterns: Iterable[str],
    fmt: ArchiveFormat = ArchiveFormat.PF8,
) -> Tuple[List[Entry], bytes]:
    """Assign offsets in the given order and serialize the index.

    The index size depends only on the names, so it is fixed first; offsets
    then follow in a single forward pass starting right after the index.
    """
    patterns = tuple(unencrypted_patterns)
    index_size = compute_index_size(p.archive_path for p in pending)
    offset = HEADER_SIZE + index_size
    entries: List[Entry] = []
    for p in pending:
        if p.size > MAX_U32 or offset > MAX_U32:
            raise ArchiveTooLargeError(
                f"{p.archive_path!r}: offset {offset} / size {p.size} exceed 32 bits"
            )
        entries.append(
            Entry(
                name=p.archive_path,
                offset=offset,
                size=p.size,
                encrypted=is_encrypted(p.archive_path, fmt, patterns, p.force_plain),
            )
        )
        offset += p.size
    if offset > MAX_U32 + 1:
        raise ArchiveTooLargeError(f"Archive of {offset} bytes exceeds 32-bit offsets")
    index = serialize_index([RawEntry(e.name, e.offset, e.size) for e in entries])
    if len(index) != index_size:
        raise InvalidFormatError(f"Serialized index is {len(index)} bytes, expected {index_size}")
    logger.debug("layout: entries=%d index_size=%d total=%d", len(entries), index_size, offset)
    return entries, index
