"""
Path safety utilities for archive entry names.

Entry names written to dist.tzst must be relative, forward-slash paths so
that consumers can extract them anywhere without escaping the target
directory.
"""
from __future__ import annotations

import unicodedata
from pathlib import PurePosixPath


def normalize_entry_name(name: str) -> str:
    """
    Validate and normalize an archive entry name.

    This function enforces the following rules:
    - Backslashes are converted to forward slashes
    - Leading "./" components are removed
    - No empty names or "." (the archive root is not an entry)
    - No absolute paths and no parent directory references ('..')
    - No NUL bytes

    Args:
        name: Entry name as given by the caller or a source archive

    Returns:
        Normalized name safe for use in an archive

    Raises:
        ValueError: If the name violates safety rules

    Examples:
        >>> normalize_entry_name("./bin/piper")
        'bin/piper'

        >>> normalize_entry_name("lib\\\\libonnxruntime.so")
        'lib/libonnxruntime.so'

        >>> normalize_entry_name("../etc/passwd")
        ValueError: unsafe entry name: ../etc/passwd
    """
    normalized = unicodedata.normalize("NFC", name.replace("\\", "/"))
    while normalized.startswith("./"):
        normalized = normalized[2:]
    normalized = normalized.rstrip("/")

    if "\x00" in normalized:
        raise ValueError(f"entry name contains NUL byte: {name!r}")

    rel = PurePosixPath(normalized)
    s = str(rel)
    if not normalized or s == ".":
        raise ValueError(f"unsafe entry name: {name}")
    if rel.is_absolute() or ".." in rel.parts:
        raise ValueError(f"unsafe entry name: {name}")
    return s
