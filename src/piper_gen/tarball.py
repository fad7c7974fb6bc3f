"""
Streaming tar + zstd archive writer.

A Tarball owns three nested layers: the output file, a zstandard stream
writer wrapping it, and a PAX tar writer wrapping the encoder. Entries are
appended strictly in sequence and tar headers are canonicalized (owner,
timestamps) so identical inputs produce byte-identical archives.

Output goes to a temporary file beside the destination and is renamed into
place only when every layer closed cleanly, so a failed run never leaves a
truncated dist.tzst behind.
"""
from __future__ import annotations

import logging
import os
import stat
import tarfile
import tempfile
from pathlib import Path
from typing import List, Optional, Tuple

import zstandard as zstd

from .archive_types import ByteStream, EntryHeader
from .errors import AggregateCloseFailure, EncodingFailure, IOFailure, WriteFailure
from .formats import READ_ERRORS
from .path_safety import normalize_entry_name
from .settings import MAX_ZSTD_LEVEL

logger = logging.getLogger(__name__)

__all__ = ["Tarball", "create_tarball"]


class _SourceReader:
    """Reports read errors of entry content as IOFailure, not as write errors."""

    def __init__(self, reader: ByteStream, name: str):
        self._reader = reader
        self._name = name

    def read(self, size: int = -1) -> bytes:
        try:
            return self._reader.read(size)
        except (OSError,) + READ_ERRORS as e:
            raise IOFailure(f"failed to read content for {self._name}: {e}") from e


class Tarball:
    """
    Sequential writer for a tar archive compressed with zstd.

    Not reentrant: only one ``append`` may run at a time. Use
    ``create_tarball`` to construct one; use it as a context manager to
    close on success and discard on error.
    """

    def __init__(self, path: Path, temp_path: Path, file, encoder, tar: tarfile.TarFile):
        self.path = path
        self._temp_path = temp_path
        self._file = file
        self._encoder = encoder
        self._tar = tar
        self._appending = False
        self._closed = False
        self.entries = 0

    def __enter__(self) -> Tarball:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.close()
        else:
            self.discard()

    def append(self, header: EntryHeader, reader: Optional[ByteStream] = None) -> None:
        """
        Write one entry.

        Writes the header, then exactly ``header.size`` bytes from ``reader``.
        Symlink entries carry no content and ``reader`` is never read.

        Raises:
            WriteFailure: If the header is rejected or content does not match size
            IOFailure: If reading from ``reader`` fails
            EncodingFailure: If the compressor fails
        """
        if self._closed:
            raise WriteFailure(f"archive {self.path} is closed")
        if self._appending:
            raise RuntimeError(f"concurrent append on archive {self.path}")

        try:
            name = normalize_entry_name(header.name)
        except ValueError as e:
            raise WriteFailure(f"failed to write header for {header.name!r}: {e}") from e

        info = tarfile.TarInfo(name)
        _apply_canonical_headers(info, header.mode)
        if header.is_symlink:
            info.type = tarfile.SYMTYPE
            info.linkname = header.link_target
            info.size = 0
        else:
            if reader is None:
                raise WriteFailure(f"no content reader given for regular entry {name}")
            info.type = tarfile.REGTYPE
            info.size = header.size

        self._appending = True
        try:
            if info.issym():
                self._tar.addfile(info)
            else:
                source = _SourceReader(reader, name)
                self._tar.addfile(info, source)
                if source.read(1):
                    raise WriteFailure(f"content of {name} is longer than declared size {header.size}")
        except zstd.ZstdError as e:
            raise EncodingFailure(f"failed to compress entry {name}: {e}") from e
        except ValueError as e:
            # tarfile rejects header fields it cannot encode
            raise WriteFailure(f"failed to write header for {name}: {e}") from e
        except OSError as e:
            raise WriteFailure(f"failed to write data for {name}: {e}") from e
        finally:
            self._appending = False

        self.entries += 1
        logger.debug(f"Appended {name} ({'-> ' + info.linkname if info.issym() else f'{info.size} bytes'}) to {self.path}")

    def append_file(self, dest_name: str, source_path: str | os.PathLike) -> None:
        """
        Append a local file under ``dest_name``.

        Metadata comes from a non-following stat. A symlink is stored as a
        link with its target; the link is never opened.

        Raises:
            IOFailure: If the source cannot be stat-ed, read, or is not a file or symlink
        """
        source_path = os.fspath(source_path)
        try:
            st = os.lstat(source_path)
        except OSError as e:
            raise IOFailure(f"failed to stat {source_path}: {e}") from e

        mode = stat.S_IMODE(st.st_mode)
        if stat.S_ISLNK(st.st_mode):
            try:
                target = os.readlink(source_path)
            except OSError as e:
                raise IOFailure(f"failed to read symlink {source_path}: {e}") from e
            self.append(EntryHeader(name=dest_name, mode=mode, link_target=target))
            return

        if not stat.S_ISREG(st.st_mode):
            raise IOFailure(f"cannot archive {source_path}: not a regular file or symlink")

        try:
            with open(source_path, "rb") as f:
                self.append(EntryHeader(name=dest_name, mode=mode, size=st.st_size), f)
        except OSError as e:
            raise IOFailure(f"failed to open {source_path}: {e}") from e

    def close(self) -> None:
        """
        Finalize the archive.

        Closes the tar writer, the encoder, then the file. All three are
        attempted even if an earlier one fails. On success the archive is
        moved to its destination path.

        Raises:
            AggregateCloseFailure: Naming every layer that failed to close
            IOFailure: If the finished archive cannot be moved into place
        """
        if self._closed:
            return
        failures = self._close_layers()
        if failures:
            self._remove_temp()
            raise AggregateCloseFailure(str(self.path), failures)

        try:
            os.replace(self._temp_path, self.path)
        except OSError as e:
            self._remove_temp()
            raise IOFailure(f"failed to move archive into place at {self.path}: {e}") from e
        logger.info(f"Wrote {self.entries} entries to {self.path}")

    def discard(self) -> None:
        """Close all layers and delete the partial archive."""
        if self._closed:
            return
        failures = self._close_layers()
        for layer, exc in failures:
            logger.debug(f"Ignoring {layer} close error while discarding {self.path}: {exc}")
        self._remove_temp()
        logger.info(f"Discarded partial archive {self.path}")

    def _close_layers(self) -> List[Tuple[str, BaseException]]:
        self._closed = True
        failures: List[Tuple[str, BaseException]] = []
        for layer, closer in (
            ("tar", self._tar.close),
            ("encoder", self._encoder.close),
            ("file", self._file.close),
        ):
            try:
                closer()
            except Exception as e:
                failures.append((layer, e))
        return failures

    def _remove_temp(self) -> None:
        try:
            self._temp_path.unlink()
        except FileNotFoundError:
            pass


def create_tarball(path: str | os.PathLike, level: Optional[int] = None) -> Tarball:
    """
    Create a Tarball writing to ``path``.

    Args:
        path: Destination archive path; parent directories are created
        level: Zstandard compression level (defaults to the maximum, 22)

    Returns:
        Open Tarball

    Raises:
        IOFailure: If the output file cannot be created
        EncodingFailure: If the compressor cannot be initialized
    """
    path = Path(path)
    if level is None:
        level = MAX_ZSTD_LEVEL

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    except OSError as e:
        raise IOFailure(f"failed to create archive {path}: {e}") from e
    temp_path = Path(temp_name)
    file = os.fdopen(fd, "wb")

    try:
        os.chmod(temp_path, 0o644)
        compressor = zstd.ZstdCompressor(level=level, write_checksum=True)
        encoder = compressor.stream_writer(file, closefd=False)
    except OSError as e:
        file.close()
        temp_path.unlink()
        raise IOFailure(f"failed to create archive {path}: {e}") from e
    except (zstd.ZstdError, ValueError) as e:
        file.close()
        temp_path.unlink()
        raise EncodingFailure(f"failed to create zstd encoder for {path}: {e}") from e

    tar = tarfile.open(fileobj=encoder, mode="w", format=tarfile.PAX_FORMAT)
    logger.debug(f"Created archive {path} (zstd level {level})")
    return Tarball(path, temp_path, file, encoder, tar)


def _apply_canonical_headers(tarinfo: tarfile.TarInfo, mode: int) -> None:
    """
    Apply canonical tar headers for deterministic output.

    Ownership and timestamps are fixed; permission bits are kept as given.
    """
    tarinfo.uid = 0
    tarinfo.gid = 0
    tarinfo.uname = ""
    tarinfo.gname = ""
    tarinfo.mtime = 0
    tarinfo.mode = mode & 0o7777
