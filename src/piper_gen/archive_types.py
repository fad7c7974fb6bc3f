"""
Archive entry types shared by the tarball writer and the ingest layer.

These types describe one entry of a sequential archive independently of the
container library, so sources (local files, third-party archives) and the
writer only agree on this shape.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import IO, Callable, Optional

# Type alias for readable binary streams
ByteStream = IO[bytes]

__all__ = ["EntryHeader", "SourceEntry", "ByteStream"]


@dataclass(frozen=True, slots=True)
class EntryHeader:
    """
    Header of one archive entry.

    ``link_target`` is set if and only if the entry is a symbolic link; a
    symlink entry carries no content, so its effective size is zero.
    """
    name: str                           # Forward-slash relative path, no leading "./"
    mode: int                           # Permission bits (e.g. 0o755)
    size: int = 0                       # Exact content length for regular entries
    link_target: Optional[str] = None   # Symlink target

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("entry name must not be empty")
        if self.size < 0:
            raise ValueError(f"size must be non-negative, got {self.size}")

    @property
    def is_symlink(self) -> bool:
        return self.link_target is not None


@dataclass(frozen=True, slots=True)
class SourceEntry:
    """
    An entry read from a third-party archive.

    Content is not buffered; ``open()`` returns a reader positioned at the
    start of the entry data. For streaming sources the reader is only valid
    until the next entry is requested.
    """
    name: str
    mode: int
    size: int
    link_target: Optional[str]
    opener: Callable[[], ByteStream]

    @property
    def is_symlink(self) -> bool:
        return self.link_target is not None

    def open(self) -> ByteStream:
        return self.opener()

    def header(self, name: Optional[str] = None) -> EntryHeader:
        """Build a writer header for this entry, optionally renamed."""
        return EntryHeader(
            name=name if name is not None else self.name,
            mode=self.mode,
            size=0 if self.is_symlink else self.size,
            link_target=self.link_target,
        )
