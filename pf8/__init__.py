"""
pf8 — reader and writer for PF6/PF8 game-asset archives.

Features:

- Header/index parser with defensive bounds, overlap and duplicate checks.
- Keyed XOR cipher whose 20-byte key is the SHA-1 of the on-disk index.
- Streaming reads and writes bounded by a configurable chunk size.
- PF6 (legacy, never encrypted) is read-only; PF8 is read and written.

Entries whose names end with one of the unencrypted patterns (by default
``mp4`` and ``flv``) are stored in plain form.
"""

from __future__ import annotations

from typing import Iterable

from .constants import UNENCRYPTED_FILTER
from .entry import Entry
from .errors import (
    Pf8Error,
    InvalidFormatError,
    CorruptedError,
    FileNotFoundInArchive,
    InvalidPathError,
    DuplicateNameError,
    AlreadyFinalizedError,
)
from .format import ArchiveFormat
from .reader import ArchiveReader
from .writer import ArchiveBuilder, FinalizedArchive

__version__ = "0.1"

__all__ = [
    "ArchiveBuilder",
    "ArchiveFormat",
    "ArchiveReader",
    "Entry",
    "FinalizedArchive",
    "open_archive",
    "open_with_patterns",
    "extract",
    "create_from_dir",
    "Pf8Error",
    "InvalidFormatError",
    "CorruptedError",
    "FileNotFoundInArchive",
    "InvalidPathError",
    "DuplicateNameError",
    "AlreadyFinalizedError",
]


def open_archive(path: str) -> ArchiveReader:
    """Open a PF6/PF8 archive with the default unencrypted patterns."""
    reader = ArchiveReader(path)
    reader.open()
    return reader


def open_with_patterns(path: str, patterns: Iterable[str]) -> ArchiveReader:
    reader = ArchiveReader(path, unencrypted_patterns=patterns)
    reader.open()
    return reader


def extract(archive_path: str, dest_dir: str, patterns: Iterable[str] = UNENCRYPTED_FILTER):
    with ArchiveReader(archive_path, unencrypted_patterns=patterns) as reader:
        return reader.extract_all(dest_dir)


def create_from_dir(src_dir: str, out_path: str, patterns: Iterable[str] = UNENCRYPTED_FILTER) -> FinalizedArchive:
    builder = ArchiveBuilder(unencrypted_patterns=patterns)
    builder.add_dir(src_dir)
    return builder.write_to(out_path)
