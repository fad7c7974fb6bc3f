"""
Archive format identification and sequential extraction.

``identify`` inspects the leading bytes of a stream (and the file name as a
hint) and returns a format object. Extractable formats turn the stream into
a lazy sequence of ``SourceEntry`` objects; entry content is streamed from
the source, never written to disk.

Supported: tar (plain, gzip, bzip2, xz, zstd) and zip. Bare compressed files
are recognized but cannot be extracted.
"""
from __future__ import annotations

import bz2
import io
import logging
import lzma
import stat
import tarfile
import zipfile
import zlib
from abc import ABC, abstractmethod
from typing import Iterator, Optional, Tuple

import zstandard as zstd

from .archive_types import ByteStream, SourceEntry
from .errors import IOFailure, UnsupportedFormat

logger = logging.getLogger(__name__)

__all__ = ["ArchiveFormat", "TarFormat", "ZipFormat", "CompressedFileFormat", "READ_ERRORS", "identify"]

# Enough to see a tar header inside most compressed streams
HEAD_SIZE = 64 * 1024

_TAR_MAGIC_OFFSET = 257

_ZIP_ENCRYPTED = 0x1

# Raised by the container libraries on corrupt or truncated source data
READ_ERRORS = (tarfile.TarError, zipfile.BadZipFile, zstd.ZstdError, EOFError, zlib.error, lzma.LZMAError)

_COMPRESSION_MAGIC = (
    (b"\x1f\x8b", "gz"),
    (b"BZh", "bz2"),
    (b"\xfd7zXZ\x00", "xz"),
    (b"\x28\xb5\x2f\xfd", "zst"),
)

_TAR_SUFFIXES = {
    "gz": (".tar.gz", ".tgz"),
    "bz2": (".tar.bz2", ".tbz2", ".tbz"),
    "xz": (".tar.xz", ".txz"),
    "zst": (".tar.zst", ".tar.zstd", ".tzst"),
}


def _empty_reader() -> ByteStream:
    return io.BytesIO(b"")


class ArchiveFormat(ABC):
    """An identified archive or compression format."""

    name: str = ""
    extractable: bool = True

    @abstractmethod
    def extract(self, stream: ByteStream) -> Iterator[SourceEntry]:
        """
        Yield every file and symlink entry of the archive, in archive order.

        Directory entries and special files are not yielded.

        Raises:
            UnsupportedFormat: If this format cannot be extracted
            IOFailure: If the archive is corrupt or cannot be read
        """

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


class TarFormat(ArchiveFormat):
    """Tar archive, optionally wrapped in a compression codec."""

    def __init__(self, compression: Optional[str] = None):
        self.compression = compression
        self.name = f"tar.{compression}" if compression else "tar"

    def extract(self, stream: ByteStream) -> Iterator[SourceEntry]:
        if self.compression == "zst":
            source = zstd.ZstdDecompressor().stream_reader(stream, read_across_frames=True, closefd=False)
            mode = "r|"
        else:
            source = stream
            mode = f"r|{self.compression or ''}"

        try:
            with tarfile.open(fileobj=source, mode=mode) as tar:
                for member in tar:
                    if member.isdir():
                        continue
                    if member.issym():
                        yield SourceEntry(member.name, member.mode, 0, member.linkname, _empty_reader)
                    elif member.isreg():
                        yield SourceEntry(member.name, member.mode, member.size, None,
                                          lambda m=member: tar.extractfile(m))
                    else:
                        logger.debug(f"Skipping non-regular tar entry {member.name} (type {member.type!r})")
        except READ_ERRORS as e:
            raise IOFailure(f"failed to read {self.name} archive: {e}") from e


class ZipFormat(ArchiveFormat):
    """Zip archive. Requires a seekable stream."""

    name = "zip"

    def extract(self, stream: ByteStream) -> Iterator[SourceEntry]:
        if not stream.seekable():
            raise UnsupportedFormat("zip archives can only be extracted from a seekable stream")

        try:
            with zipfile.ZipFile(stream) as zf:
                for info in zf.infolist():
                    if info.is_dir():
                        continue
                    unix_mode = info.external_attr >> 16
                    file_type = stat.S_IFMT(unix_mode)
                    # Archives made on Windows carry no unix mode
                    perm = stat.S_IMODE(unix_mode) or 0o644
                    if file_type == stat.S_IFLNK:
                        with _open_member(zf, info) as f:
                            target = f.read().decode("utf-8")
                        yield SourceEntry(info.filename, perm, 0, target, _empty_reader)
                    elif file_type in (0, stat.S_IFREG):
                        yield SourceEntry(info.filename, perm, info.file_size, None,
                                          lambda i=info: _open_member(zf, i))
                    else:
                        logger.debug(f"Skipping non-regular zip entry {info.filename}")
        except READ_ERRORS as e:
            raise IOFailure(f"failed to read zip archive: {e}") from e


def _open_member(zf: zipfile.ZipFile, info: zipfile.ZipInfo) -> ByteStream:
    if info.flag_bits & _ZIP_ENCRYPTED:
        raise UnsupportedFormat(f"zip entry {info.filename} is encrypted")
    try:
        return zf.open(info)
    except NotImplementedError as e:
        raise UnsupportedFormat(
            f"zip entry {info.filename} uses unsupported compression method {info.compress_type}: {e}"
        ) from e
    except RuntimeError as e:
        raise UnsupportedFormat(f"cannot open zip entry {info.filename}: {e}") from e


class CompressedFileFormat(ArchiveFormat):
    """A single compressed file; has no entries to extract."""

    extractable = False

    def __init__(self, compression: str):
        self.compression = compression
        self.name = compression

    def extract(self, stream: ByteStream) -> Iterator[SourceEntry]:
        raise UnsupportedFormat(f"{self.name} is a compressed file, not an archive that supports extraction")


class _ReplayStream(io.RawIOBase):
    """Serves an already-read prefix, then the rest of a non-seekable stream."""

    def __init__(self, prefix: bytes, stream: ByteStream):
        self._prefix = prefix
        self._stream = stream

    def readable(self) -> bool:
        return True

    def readinto(self, b) -> int:
        if self._prefix:
            n = min(len(b), len(self._prefix))
            b[:n] = self._prefix[:n]
            self._prefix = self._prefix[n:]
            return n
        data = self._stream.read(len(b))
        n = len(data)
        b[:n] = data
        return n


def _peek(stream: ByteStream) -> Tuple[bytes, ByteStream]:
    if stream.seekable():
        pos = stream.tell()
        head = stream.read(HEAD_SIZE)
        stream.seek(pos)
        return head, stream
    head = stream.read(HEAD_SIZE)
    return head, io.BufferedReader(_ReplayStream(head, stream))


def _decompress_head(compression: str, head: bytes) -> bytes:
    """Best-effort decompression of the first bytes of a stream."""
    limit = _TAR_MAGIC_OFFSET + 8
    try:
        if compression == "gz":
            return zlib.decompressobj(wbits=31).decompress(head, limit)
        if compression == "xz":
            return lzma.LZMADecompressor().decompress(head, max_length=limit)
        if compression == "bz2":
            return bz2.BZ2Decompressor().decompress(head, max_length=limit)
        if compression == "zst":
            with zstd.ZstdDecompressor().stream_reader(io.BytesIO(head)) as reader:
                return reader.read(limit)
    except (zlib.error, lzma.LZMAError, OSError, EOFError, zstd.ZstdError) as e:
        logger.debug(f"Could not decompress {compression} head: {e}")
    return b""


def _is_tar_header(block: bytes) -> bool:
    return block[_TAR_MAGIC_OFFSET:_TAR_MAGIC_OFFSET + 5] == b"ustar"


def identify(name_hint: str, stream: ByteStream) -> Tuple[ArchiveFormat, ByteStream]:
    """
    Identify the archive format of ``stream``.

    Args:
        name_hint: File name (or URL) of the data, used when the content alone
            is ambiguous
        stream: Binary stream positioned at the start of the data

    Returns:
        (format, stream) where stream must be used instead of the one passed
        in, because identification may have consumed a prefix of it

    Raises:
        UnsupportedFormat: If the data is not a recognized format
    """
    head, stream = _peek(stream)
    hint = name_hint.lower()

    if head.startswith((b"PK\x03\x04", b"PK\x05\x06")):
        return ZipFormat(), stream

    for magic, compression in _COMPRESSION_MAGIC:
        if head.startswith(magic):
            if hint.endswith(_TAR_SUFFIXES[compression]) or _is_tar_header(_decompress_head(compression, head)):
                return TarFormat(compression), stream
            return CompressedFileFormat(compression), stream

    if _is_tar_header(head) or (hint.endswith(".tar") and len(head) >= tarfile.BLOCKSIZE):
        return TarFormat(), stream

    raise UnsupportedFormat(f"unrecognized archive format: {name_hint or '<stream>'}")
