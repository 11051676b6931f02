"""PF6/PF8 wire layout: header, index records and the trailing size table.

    |magic 'pf6' or 'pf8'                3
    |index_size  (from 0x07 to index end) u32
    |entry_count                          u32
    |entries[]
    |  |name_length                       u32
    |  |name (backslash separated)
    |  |reserved 00 00 00 00
    |  |offset                            u32
    |  |size                              u32
    |size_table_count (entry_count + 1)   u32
    |size_table[] (size field pos - 0x0F) u64, then 8 zero bytes
    |size_table_count pos (from 0x07)     u32
    |data section

All integers are little endian. The index region hashed for the key starts
at 0x07 and spans ``index_size`` bytes.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from .constants import (
    PF6_MAGIC,
    PF8_MAGIC,
    OFF_INDEX_SIZE,
    OFF_INDEX_DATA,
    OFF_ENTRIES,
    OFF_SIZE_TABLE_BASE,
    HEADER_SIZE,
    U32,
    U64,
    ENTRY_TAIL,
    ENTRY_FIXED_SIZE,
    MAX_U32,
    MAX_NAME_LENGTH,
    NAME_ENCODING,
)
from .errors import (
    InvalidFormatError,
    CorruptedError,
    IndexSizeError,
    EntryBoundsError,
    EntryOverlapError,
    DuplicateEntryError,
    ArchiveTooLargeError,
)
from .pathutil import normalize_name


logger = logging.getLogger(__name__)


class ArchiveFormat(enum.Enum):
    PF6 = PF6_MAGIC  # legacy, never encrypted, read-only
    PF8 = PF8_MAGIC

    @property
    def supports_encryption(self) -> bool:
        return self is ArchiveFormat.PF8


@dataclass(frozen=True)
class Header:
    format: ArchiveFormat
    index_size: int
    entry_count: int

    @property
    def data_offset(self) -> int:
        return OFF_INDEX_DATA + self.index_size


@dataclass(frozen=True)
class RawEntry:
    name: str
    offset: int
    size: int


def detect_format(data: bytes) -> ArchiveFormat:
    magic = bytes(data[:3])
    if magic == PF8_MAGIC:
        return ArchiveFormat.PF8
    if magic == PF6_MAGIC:
        return ArchiveFormat.PF6
    raise InvalidFormatError(f"Not a PF6 or PF8 archive (magic {magic!r})")


def read_header(data: bytes, file_size: Optional[int] = None) -> Header:
    """Parse the fixed 7-byte header plus the entry count.

    ``data`` must hold at least ``HEADER_SIZE`` bytes for the index size; the
    entry count is read when present. ``file_size`` (default ``len(data)``)
    bounds the declared index.
    """
    fmt = detect_format(data)
    if file_size is None:
        file_size = len(data)
    if len(data) < HEADER_SIZE:
        raise CorruptedError("Archive truncated inside header")
    (index_size,) = U32.unpack_from(data, OFF_INDEX_SIZE)
    if index_size < 4:
        raise InvalidFormatError(f"Index size {index_size} is too small")
    if OFF_INDEX_DATA + index_size > file_size:
        raise CorruptedError(
            f"Index extends beyond end of file: {OFF_INDEX_DATA + index_size} > {file_size}"
        )
    entry_count = 0
    if len(data) >= OFF_ENTRIES:
        (entry_count,) = U32.unpack_from(data, OFF_INDEX_DATA)
        if 4 + entry_count * ENTRY_FIXED_SIZE > index_size:
            raise IndexSizeError(
                f"{entry_count} entries cannot fit in an index of {index_size} bytes"
            )
    return Header(format=fmt, index_size=index_size, entry_count=entry_count)


def parse_index(data: bytes, file_size: Optional[int] = None) -> Tuple[Header, List[RawEntry]]:
    """Parse header and index records from ``data`` (file start onward).

    Raises InvalidFormatError for a bad magic or an impossible structure, and
    CorruptedError when entries fall outside the file, overlap each other or
    the index, or repeat a name.
    """
    if file_size is None:
        file_size = len(data)
    header = read_header(data, file_size)
    index_end = header.data_offset
    if len(data) < index_end:
        raise CorruptedError("Archive truncated inside index")
    view = memoryview(data)[:index_end]
    entries: List[RawEntry] = []
    cursor = OFF_ENTRIES
    for i in range(header.entry_count):
        if cursor + 4 > index_end:
            raise CorruptedError(f"Index ends inside record {i}")
        (name_len,) = U32.unpack_from(view, cursor)
        cursor += 4
        if name_len > MAX_NAME_LENGTH:
            raise InvalidFormatError(f"Record {i}: name length {name_len} exceeds {MAX_NAME_LENGTH}")
        if cursor + name_len + ENTRY_TAIL.size > index_end:
            raise CorruptedError(f"Record {i} extends beyond the index")
        raw_name = bytes(view[cursor : cursor + name_len])
        cursor += name_len
        _reserved, offset, size = ENTRY_TAIL.unpack_from(view, cursor)
        cursor += ENTRY_TAIL.size
        try:
            name = raw_name.rstrip(b"\x00").decode(NAME_ENCODING)
        except UnicodeDecodeError as exc:
            raise InvalidFormatError(f"Record {i}: name is not valid {NAME_ENCODING}") from exc
        entries.append(RawEntry(name=name, offset=offset, size=size))
    _check_size_table(view, cursor, index_end, len(entries))
    validate_entries(entries, header.data_offset, file_size)
    logger.debug(
        "parsed %s index: index_size=%d entries=%d data_offset=%d",
        header.format.name, header.index_size, len(entries), header.data_offset,
    )
    return header, entries


def _check_size_table(view, cursor: int, index_end: int, count: int) -> None:
    # Readers only need the records; a malformed table is tolerated.
    remaining = index_end - cursor
    if remaining == 0:
        return
    if remaining >= 4:
        (table_count,) = U32.unpack_from(view, cursor)
        if table_count == count + 1 and remaining == 4 + table_count * 8 + 4:
            return
    logger.warning("ignoring inconsistent size table (%d trailing index bytes)", remaining)


def validate_entries(entries: Sequence[RawEntry], data_offset: int, file_size: int) -> None:
    """Reject duplicate names and out-of-bounds or overlapping ranges."""
    seen = set()
    for e in entries:
        key = normalize_name(e.name)
        if key in seen:
            raise DuplicateEntryError(f"Duplicate entry name: {e.name!r}")
        seen.add(key)
        if e.offset + e.size > file_size:
            raise EntryBoundsError(
                f"{e.name!r}: data extends beyond archive bounds: {e.offset + e.size} > {file_size}"
            )
        if e.size and e.offset < data_offset:
            raise EntryBoundsError(f"{e.name!r}: data offset {e.offset} lies inside the index")
    prev: Optional[RawEntry] = None
    for e in sorted((e for e in entries if e.size), key=lambda e: e.offset):
        if prev is not None and e.offset < prev.offset + prev.size:
            raise EntryOverlapError(f"{e.name!r} overlaps {prev.name!r}")
        prev = e


def compute_index_size(names: Iterable[str]) -> int:
    """Index byte length; depends only on the count and name lengths."""
    names = list(names)
    records = sum(len(n.encode(NAME_ENCODING)) + ENTRY_FIXED_SIZE for n in names)
    return 4 + records + 4 + (len(names) + 1) * 8 + 4


def serialize_index(entries: Sequence[RawEntry]) -> bytes:
    """Serialize the index region (from 0x07) for finalized entries."""
    buf = bytearray()
    buf += U32.pack(len(entries))
    size_positions: List[int] = []
    for e in entries:
        name = e.name.encode(NAME_ENCODING)
        if e.offset > MAX_U32 or e.size > MAX_U32:
            raise ArchiveTooLargeError(f"{e.name!r}: offset/size exceed 32 bits")
        buf += U32.pack(len(name))
        buf += name
        buf += ENTRY_TAIL.pack(0, e.offset, e.size)
        size_field_pos = OFF_INDEX_DATA + len(buf) - 4
        size_positions.append(size_field_pos - OFF_SIZE_TABLE_BASE)
    table_count_pos = len(buf)
    buf += U32.pack(len(entries) + 1)
    for pos in size_positions:
        buf += U64.pack(pos)
    buf += b"\x00" * 8
    buf += U32.pack(table_count_pos)
    return bytes(buf)


def pack_header(fmt: ArchiveFormat, index: bytes) -> bytes:
    if len(index) > MAX_U32:
        raise ArchiveTooLargeError("Index exceeds 32 bits")
    return fmt.value + U32.pack(len(index))
