from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import BinaryIO, Dict, Iterable, List, Optional, Union

from .constants import DEFAULT_CHUNK_SIZE, UNENCRYPTED_FILTER
from .crypto import transform
from .entry import Entry, PendingEntry, compute_layout
from .errors import AlreadyFinalizedError, DuplicateNameError, SourceChangedError
from .format import ArchiveFormat, pack_header
from .hashutil import derive_key
from .pathutil import to_archive_path, validate_name, normalize_name


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FinalizedArchive:
    """Fixed layout of a PF8 archive: entries, index bytes and key.

    Produced only by ``ArchiveBuilder.finalize()``; the key is derived from
    the serialized index, so nothing here can exist before the layout does.
    """
    entries: List[Entry]
    index: bytes
    key: Optional[bytes]
    sources: List[PendingEntry]
    chunk_size: int
    format: ArchiveFormat = ArchiveFormat.PF8

    @property
    def total_size(self) -> int:
        if not self.entries:
            return len(self.header_bytes)
        last = self.entries[-1]
        return last.offset + last.size

    @property
    def header_bytes(self) -> bytes:
        return pack_header(self.format, self.index) + self.index

    def write_to(self, fh: BinaryIO) -> int:
        """Stream header, index and every entry into ``fh``; returns bytes written."""
        header = self.header_bytes
        fh.write(header)
        written = len(header)
        for entry, src in zip(self.entries, self.sources):
            if written != entry.offset:
                raise SourceChangedError(f"{entry.name!r}: expected offset {entry.offset}, at {written}")
            written += self._write_entry(fh, entry, src)
        return written

    def _write_entry(self, fh: BinaryIO, entry: Entry, src: PendingEntry) -> int:
        key = self.key if entry.encrypted else None
        pos = 0
        with src.open() as rf:
            while pos < entry.size:
                raw = rf.read(min(self.chunk_size, entry.size - pos))
                if not raw:
                    break
                fh.write(transform(raw, key, pos) if key is not None else raw)
                pos += len(raw)
            if pos != entry.size or rf.read(1):
                raise SourceChangedError(f"{entry.name!r}: source size changed since it was added")
        return pos


class ArchiveBuilder:
    """Collects sources and writes a PF8 archive.

    States: empty/accumulating (``add_*``), finalized (``finalize()``;
    layout, index and key fixed), written (``write_to()``).
    """

    def __init__(
        self,
        unencrypted_patterns: Iterable[str] = UNENCRYPTED_FILTER,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        sort_entries: bool = False,
    ):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.unencrypted_patterns = tuple(unencrypted_patterns)
        self.chunk_size = chunk_size
        self.sort_entries = sort_entries
        self._pending: List[PendingEntry] = []
        self._names: Dict[str, int] = {}
        self._finalized: Optional[FinalizedArchive] = None
        self.written = False

    def __len__(self) -> int:
        return len(self._pending)

    @property
    def is_finalized(self) -> bool:
        return self._finalized is not None

    def pending(self) -> List[PendingEntry]:
        return list(self._pending)

    def set_unencrypted_patterns(self, patterns: Iterable[str]) -> None:
        self._require_accumulating()
        self.unencrypted_patterns = tuple(patterns)

    def add_file(self, system_path: str, archive_path: Optional[str] = None, *, encrypt: bool = True) -> PendingEntry:
        """Register a filesystem file; its basename is used when no name is given.

        ``encrypt=False`` stores the entry in plain form regardless of the
        pattern filter. Readers must then be opened with patterns that also
        exclude it, since the format has no per-entry flag.
        """
        self._require_accumulating()
        system_path = os.fspath(system_path)
        size = os.stat(system_path).st_size  # OSError if missing
        if not os.path.isfile(system_path):
            raise IsADirectoryError(f"Not a regular file: {system_path}")
        if archive_path is None:
            name = to_archive_path(os.path.basename(system_path))
        else:
            name = to_archive_path(archive_path)
        return self._register(PendingEntry(archive_path=name, size=size, source_path=system_path, force_plain=not encrypt))

    def add_file_as(self, system_path: str, archive_path: str, *, encrypt: bool = True) -> PendingEntry:
        return self.add_file(system_path, archive_path, encrypt=encrypt)

    def add_bytes(self, data: bytes, archive_path: str, *, encrypt: bool = True) -> PendingEntry:
        self._require_accumulating()
        data = bytes(data)
        name = to_archive_path(archive_path)
        return self._register(PendingEntry(archive_path=name, size=len(data), data=data, force_plain=not encrypt))

    def add_dir(self, system_path: str, prefix: Optional[str] = None) -> List[PendingEntry]:
        """Register every file below ``system_path``, keeping relative paths.

        Directories are walked in sorted order; ``prefix`` is prepended to
        each relative name.
        """
        self._require_accumulating()
        system_path = os.fspath(system_path)
        if not os.path.isdir(system_path):
            os.stat(system_path)
            raise NotADirectoryError(f"Not a directory: {system_path}")
        added: List[PendingEntry] = []
        for root, dirs, files in os.walk(system_path):
            dirs.sort()
            for fn in sorted(files):
                fs_path = os.path.join(root, fn)
                if not os.path.isfile(fs_path):
                    continue
                rel = os.path.relpath(fs_path, system_path)
                if prefix:
                    rel = os.path.join(prefix, rel)
                added.append(self.add_file(fs_path, rel))
        return added

    def finalize(self) -> FinalizedArchive:
        """Fix the layout, serialize the index, then derive the key."""
        if self._finalized is not None:
            return self._finalized
        pending = list(self._pending)
        if self.sort_entries:
            pending.sort(key=lambda p: p.archive_path)
        entries, index = compute_layout(pending, self.unencrypted_patterns, ArchiveFormat.PF8)
        key = derive_key(index) if any(e.encrypted for e in entries) else None
        self._finalized = FinalizedArchive(
            entries=entries,
            index=index,
            key=key,
            sources=pending,
            chunk_size=self.chunk_size,
        )
        logger.debug(
            "finalized %d entries (%d encrypted), index_size=%d",
            len(entries), sum(e.encrypted for e in entries), len(index),
        )
        return self._finalized

    def write_to(self, target: Union[str, os.PathLike, BinaryIO]) -> FinalizedArchive:
        """Write the archive to a path or a writable binary stream.

        On failure the destination holds a partial archive and must be
        discarded by the caller.
        """
        layout = self.finalize()
        if isinstance(target, (str, os.PathLike)):
            with open(target, "wb") as fh:
                written = layout.write_to(fh)
        else:
            written = layout.write_to(target)
        self.written = True
        logger.debug("wrote %d bytes", written)
        return layout

    # internals
    def _require_accumulating(self):
        if self._finalized is not None:
            raise AlreadyFinalizedError("Archive layout already finalized")

    def _register(self, p: PendingEntry) -> PendingEntry:
        validate_name(p.archive_path)
        key = normalize_name(p.archive_path)
        if key in self._names:
            raise DuplicateNameError(f"Duplicate archive path: {p.archive_path!r}")
        self._names[key] = len(self._pending)
        self._pending.append(p)
        return p
