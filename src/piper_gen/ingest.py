"""
Repackaging of third-party archives into a Tarball.

Entries are read lazily from the source archive and streamed straight into
the destination; nothing is extracted to disk. Callers select entries with a
path predicate and rename them with a rewrite function, e.g. to drop the
top-level directory of a release archive.
"""
from __future__ import annotations

import dataclasses
import logging
import threading
from typing import Callable, Iterator, Optional

from .archive_types import ByteStream, SourceEntry
from .errors import IOFailure, PackagingCancelled, UnsupportedFormat
from .formats import READ_ERRORS, identify
from .tarball import Tarball

logger = logging.getLogger(__name__)

__all__ = ["PathFilter", "PathRewrite", "prefix_filter", "strip_prefix", "iter_entries", "repackage"]

PathFilter = Callable[[str], bool]
PathRewrite = Callable[[str], str]


def prefix_filter(*prefixes: str) -> PathFilter:
    """
    Select entries equal to or below any of ``prefixes``.

    ``prefix_filter("foo")`` and ``prefix_filter("foo/")`` both match
    ``foo`` and ``foo/bar.txt`` but not ``foobar.txt``.
    """
    cleaned = [p.strip("/") for p in prefixes]

    def matches(name: str) -> bool:
        return any(name == p or name.startswith(p + "/") for p in cleaned)

    return matches


def strip_prefix(prefix: str) -> PathRewrite:
    """Remove a leading directory from entry names that have it."""
    p = prefix.strip("/") + "/"

    def rewrite(name: str) -> str:
        return name[len(p):] if name.startswith(p) else name

    return rewrite


def _clean_name(name: str) -> str:
    name = name.replace("\\", "/")
    while name.startswith("./"):
        name = name[2:]
    return name.strip("/") if name != "." else ""


def iter_entries(stream: ByteStream, name_hint: str = "",
                 path_filter: Optional[PathFilter] = None) -> Iterator[SourceEntry]:
    """
    Identify ``stream`` and lazily yield its file and symlink entries.

    Entry names are normalized (forward slashes, no leading "./") before
    ``path_filter`` sees them.

    Raises:
        UnsupportedFormat: If the format is unknown or does not support extraction
        IOFailure: If the archive cannot be read
    """
    fmt, stream = identify(name_hint, stream)
    if not fmt.extractable:
        raise UnsupportedFormat(f"{fmt.name} does not support extraction: {name_hint or '<stream>'}")
    logger.debug(f"Identified {name_hint or '<stream>'} as {fmt.name}")

    for entry in fmt.extract(stream):
        name = _clean_name(entry.name)
        if not name:
            continue
        if path_filter is not None and not path_filter(name):
            continue
        yield dataclasses.replace(entry, name=name) if name != entry.name else entry


def repackage(stream: ByteStream, tarball: Tarball, *, name_hint: str = "",
              path_filter: Optional[PathFilter] = None,
              path_rewrite: Optional[PathRewrite] = None,
              cancel: Optional[threading.Event] = None) -> int:
    """
    Copy selected entries of a third-party archive into ``tarball``.

    Mode, size and link target are carried over from each source entry. The
    cancel event is checked between entries only, so the destination never
    holds half an entry. Any entry failure aborts the whole operation; the
    caller discards the destination archive.

    Args:
        stream: Source archive data
        tarball: Destination writer
        name_hint: Source file name, helps format identification
        path_filter: Predicate selecting entries by normalized name
        path_rewrite: Maps a selected name to its destination name; entries
            rewritten to an empty name are skipped
        cancel: Optional event that stops the operation when set

    Returns:
        Number of entries written

    Raises:
        PackagingCancelled: If ``cancel`` was set
        UnsupportedFormat, IOFailure, WriteFailure, EncodingFailure
    """
    count = 0
    for entry in iter_entries(stream, name_hint, path_filter):
        if cancel is not None and cancel.is_set():
            raise PackagingCancelled(f"repackaging of {name_hint or '<stream>'} cancelled after {count} entries")

        name = _clean_name(path_rewrite(entry.name)) if path_rewrite else entry.name
        if not name:
            logger.debug(f"Skipping {entry.name}: rewritten to an empty name")
            continue

        header = entry.header(name)
        if entry.is_symlink:
            tarball.append(header)
        else:
            try:
                with entry.open() as reader:
                    tarball.append(header, reader)
            except (OSError,) + READ_ERRORS as e:
                raise IOFailure(f"failed to read entry {entry.name} of {name_hint or '<stream>'}: {e}") from e
        count += 1

    logger.info(f"Repackaged {count} entries from {name_hint or '<stream>'} into {tarball.path}")
    return count
