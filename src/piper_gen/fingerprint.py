"""
Content fingerprinting and package metadata.

The fingerprint is a single xxh3-128 digest over the full contents of a set
of files, taken in sorted filename order so the same files give the same
value on any machine regardless of how they were listed.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable

import xxhash

from .errors import IOFailure
from .models import METADATA_FILENAME, Fingerprint, Meta

logger = logging.getLogger(__name__)

__all__ = ["compute_fingerprint", "write_metadata"]

CHUNK_SIZE = 1024 * 1024  # 1 MiB


def compute_fingerprint(paths: Iterable[str | os.PathLike]) -> Fingerprint:
    """
    Hash the contents of ``paths`` into one 128-bit fingerprint.

    Paths are sorted lexicographically (as strings) before hashing; every
    file is streamed through the same accumulating hash.

    Raises:
        IOFailure: If any file cannot be opened or read
    """
    filenames = sorted(os.fspath(p) for p in paths)
    h = xxhash.xxh3_128()
    for filename in filenames:
        try:
            with open(filename, "rb") as f:
                while True:
                    chunk = f.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    h.update(chunk)
        except OSError as e:
            raise IOFailure(f"failed to hash file {filename}: {e}") from e
    return Fingerprint.from_int(h.intdigest())


def write_metadata(directory: str | os.PathLike, version: str,
                   paths: Iterable[str | os.PathLike]) -> Meta:
    """
    Write dist.json for a package directory.

    Args:
        directory: Package directory receiving dist.json
        version: Asset version recorded in the metadata
        paths: Finalized archive file(s) to fingerprint

    Returns:
        The metadata record that was written

    Raises:
        IOFailure: If inputs cannot be read or dist.json cannot be written
    """
    meta = Meta(version=version, hash=compute_fingerprint(paths))
    target = Path(directory) / METADATA_FILENAME
    try:
        target.write_text(meta.to_json(), encoding="utf-8")
    except OSError as e:
        raise IOFailure(f"failed to write metadata {target}: {e}") from e
    logger.debug(f"Wrote {target} (version {version}, hash {meta.hash.hexdigest()})")
    return meta
