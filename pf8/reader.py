from __future__ import annotations

import logging
import os
from typing import BinaryIO, Callable, Dict, Iterable, Iterator, List, Optional

from .constants import DEFAULT_CHUNK_SIZE, HEADER_SIZE, OFF_INDEX_DATA, UNENCRYPTED_FILTER
from .crypto import transform
from .entry import Entry
from .errors import CorruptedError, EntryBoundsError, FileNotFoundInArchive, Pf8Error
from .format import ArchiveFormat, Header, parse_index, read_header
from .hashutil import derive_key
from .pathutil import normalize_name


logger = logging.getLogger(__name__)


class ArchiveReader:
    """Random-access and streaming reader for PF6/PF8 archives.

    Only the header and index are held in memory; entry data is fetched from
    disk on demand and decrypted chunk by chunk.
    """

    def __init__(
        self,
        path: str,
        unencrypted_patterns: Iterable[str] = UNENCRYPTED_FILTER,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.path = os.fspath(path)
        self.unencrypted_patterns = tuple(unencrypted_patterns)
        self.chunk_size = chunk_size
        self.f: Optional[BinaryIO] = None
        self.header: Optional[Header] = None
        self._entries: List[Entry] = []
        self._entry_map: Dict[str, int] = {}
        self._index_bytes: bytes = b""
        self._key: Optional[bytes] = None

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Entry]:
        return iter(self._entries)

    def open(self):
        if self.f is not None:
            return
        self.f = open(self.path, "rb")
        try:
            self._load_index()
        except (Pf8Error, OSError):
            # Ensure file handle is closed on failure to avoid leaks
            self.close()
            raise

    def close(self):
        if self.f is not None:
            self.f.close()
            self.f = None

    @property
    def format(self) -> ArchiveFormat:
        self._require_open()
        return self.header.format

    @property
    def data_offset(self) -> int:
        self._require_open()
        return self.header.data_offset

    def is_encrypted(self) -> bool:
        return any(e.encrypted for e in self._entries)

    @property
    def key(self) -> Optional[bytes]:
        """Cipher key, derived from the index on first use (None for PF6)."""
        self._require_open()
        if not self.header.format.supports_encryption:
            return None
        if self._key is None:
            self._key = derive_key(self._index_bytes)
        return self._key

    def entries(self) -> List[Entry]:
        return list(self._entries)

    def list(self) -> List[Entry]:
        return self.entries()

    def get_entry(self, path: str) -> Optional[Entry]:
        i = self._entry_map.get(normalize_name(path))
        return self._entries[i] if i is not None else None

    def contains(self, path: str) -> bool:
        return self.get_entry(path) is not None

    def read_file(self, path: str) -> bytes:
        """Return the full plain content of one entry."""
        entry = self._lookup(path)
        self._check_bounds(entry)
        raw = self._read_range(entry, 0, entry.size)
        return transform(raw, self.key, 0) if entry.encrypted else raw

    def iter_file(self, path: str, chunk_size: Optional[int] = None) -> Iterator[bytes]:
        """Yield the plain content of one entry in bounded chunks.

        The lookup happens eagerly; the generator itself is single-use.
        """
        if chunk_size is None:
            chunk_size = self.chunk_size
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        entry = self._lookup(path)
        self._check_bounds(entry)
        return self._iter_entry(entry, chunk_size)

    def read_file_streaming(self, path: str, sink: Callable[[bytes], object], chunk_size: Optional[int] = None) -> None:
        """Deliver an entry's content to ``sink`` chunk by chunk, in order.

        An exception raised by ``sink`` stops the stream and propagates.
        """
        for chunk in self.iter_file(path, chunk_size):
            sink(chunk)

    def extract_file(self, path: str, out_path: str) -> None:
        os.makedirs(os.path.dirname(os.fspath(out_path)) or ".", exist_ok=True)
        with open(out_path, "wb") as wf:
            self.read_file_streaming(path, wf.write)

    def extract_all(self, dest_dir: str) -> List[str]:
        """Extract every entry under ``dest_dir``; returns the written paths."""
        self._require_open()
        written = []
        for e in self._entries:
            out_path = e.system_path(dest_dir)
            self._check_bounds(e)
            os.makedirs(out_path.parent, exist_ok=True)
            with open(out_path, "wb") as wf:
                for chunk in self._iter_entry(e, self.chunk_size):
                    wf.write(chunk)
            written.append(str(out_path))
        return written

    # internals
    def _require_open(self):
        if self.f is None or self.header is None:
            raise RuntimeError("Archive not open")

    def _lookup(self, path: str) -> Entry:
        self._require_open()
        entry = self.get_entry(path)
        if entry is None:
            raise FileNotFoundInArchive(f"File not found in archive: {path}")
        return entry

    def _load_index(self):
        assert self.f is not None
        file_size = os.fstat(self.f.fileno()).st_size
        head = self.f.read(HEADER_SIZE)
        header = read_header(head, file_size)
        self.f.seek(0)
        data = self.f.read(header.data_offset)
        if len(data) != header.data_offset:
            raise CorruptedError("Archive truncated inside index")
        header, raw_entries = parse_index(data, file_size)
        self.header = header
        self._index_bytes = data[OFF_INDEX_DATA:]
        self._key = None
        self._entries = []
        self._entry_map = {}
        for raw in raw_entries:
            e = Entry.from_raw(raw, header.format, self.unencrypted_patterns)
            self._entry_map[normalize_name(e.name)] = len(self._entries)
            self._entries.append(e)
        logger.debug("opened %s: %s, %d entries", self.path, header.format.name, len(self._entries))

    def _check_bounds(self, entry: Entry) -> None:
        self._require_open()
        file_size = os.fstat(self.f.fileno()).st_size
        if entry.offset + entry.size > file_size:
            raise EntryBoundsError(
                f"{entry.name!r}: data extends beyond archive bounds: {entry.offset + entry.size} > {file_size}"
            )

    def _read_range(self, entry: Entry, start: int, length: int) -> bytes:
        self._require_open()
        self.f.seek(entry.offset + start)
        raw = self.f.read(length)
        if len(raw) != length:
            raise CorruptedError(f"{entry.name!r}: unexpected end of archive")
        return raw

    def _iter_entry(self, entry: Entry, chunk_size: int) -> Iterator[bytes]:
        key = self.key if entry.encrypted else None
        pos = 0
        while pos < entry.size:
            n = min(chunk_size, entry.size - pos)
            # Seek per chunk: other reads may move the handle between yields
            raw = self._read_range(entry, pos, n)
            yield transform(raw, key, pos) if key is not None else raw
            pos += n
