from __future__ import annotations

import os
from pathlib import Path, PurePath
from typing import Iterable, Optional, Union

from .constants import ARCHIVE_SEP, MAX_NAME_LENGTH, NAME_ENCODING
from .errors import InvalidPathError


def validate_name(name: str, max_length: int = MAX_NAME_LENGTH) -> str:
    """Check that ``name`` can be stored in an index record."""
    if not name:
        raise InvalidPathError("Archive path is empty")
    if "\x00" in name:
        raise InvalidPathError(f"Archive path contains NUL: {name!r}")
    try:
        encoded = name.encode(NAME_ENCODING)
    except UnicodeEncodeError as exc:
        raise InvalidPathError(f"Archive path is not encodable: {name!r}") from exc
    if len(encoded) > max_length:
        raise InvalidPathError(f"Archive path exceeds {max_length} bytes: {name[:64]!r}...")
    return name


def to_archive_path(system_path: Union[str, os.PathLike], strip_components: int = 0) -> str:
    """Map a host path to the backslash-separated archive encoding.

    The first ``strip_components`` components are dropped; choosing how many
    is left to the caller. Both slashes and backslashes separate components
    on every host, so names built by hand behave the same everywhere.
    """
    raw = os.fspath(system_path).replace(os.sep, ARCHIVE_SEP).replace("/", ARCHIVE_SEP)
    parts = [p for p in raw.split(ARCHIVE_SEP) if p not in ("", ".")]
    if strip_components < 0:
        raise InvalidPathError("strip_components must be >= 0")
    parts = parts[strip_components:]
    return validate_name(ARCHIVE_SEP.join(parts))


def normalize_name(name: str) -> str:
    """Canonical lookup form of a caller-supplied archive name."""
    parts = name.replace("/", ARCHIVE_SEP).split(ARCHIVE_SEP)
    return ARCHIVE_SEP.join(p for p in parts if p)


def to_system_path(archive_path: str, base: Optional[Union[str, os.PathLike]] = None) -> Path:
    """Map an archive name to a host path, optionally under ``base``.

    Rules:
    - Split on backslashes (forward slashes are accepted too)
    - Drop empty and '.' segments
    - Reject '..' segments, NUL bytes and drive or root prefixes
    """
    validate_name(archive_path)
    parts = [p for p in normalize_name(archive_path).split(ARCHIVE_SEP) if p not in ("", ".")]
    if not parts:
        raise InvalidPathError(f"Archive path has no components: {archive_path!r}")
    for p in parts:
        if p == "..":
            raise InvalidPathError("Path may not contain '..'")
        if PurePath(p).drive or ":" in p:
            raise InvalidPathError(f"Path may not carry a drive: {archive_path!r}")
    rel = Path(*parts)
    return Path(base) / rel if base is not None else rel


def matches_any_pattern(name: str, patterns: Iterable[str]) -> bool:
    """True if ``name`` ends with one of ``patterns`` (case-sensitive)."""
    return any(p and name.endswith(p) for p in patterns)
