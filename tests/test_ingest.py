"""
Test repackaging of third-party archives.

Covers format identification, entry selection and renaming, symlink and
mode preservation from tar and zip sources, and cancellation.
"""
from __future__ import annotations

import gzip
import io
import threading

import pytest

from piper_gen.errors import IOFailure, PackagingCancelled, UnsupportedFormat
from piper_gen.formats import CompressedFileFormat, TarFormat, ZipFormat, identify
from piper_gen.ingest import iter_entries, prefix_filter, repackage, strip_prefix
from piper_gen.tarball import create_tarball
from tests.helpers.archives import build_tar, build_zip, read_tzst

RELEASE_ENTRIES = [
    ("piper", None, 0o755, None),
    ("piper/piper", b"#!binary", 0o755, None),
    ("piper/libpiper.so.1", b"library", 0o644, None),
    ("piper/libpiper.so", None, 0o777, "libpiper.so.1"),
    ("piper/espeak-ng-data", None, 0o755, None),
    ("piper/espeak-ng-data/phontab", b"phonemes", 0o644, None),
    ("README.md", b"readme", 0o644, None),
]


class NonSeekable(io.RawIOBase):
    """Byte stream that can only be read forward, like an HTTP body."""

    def __init__(self, data: bytes):
        self._inner = io.BytesIO(data)

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return False

    def readinto(self, b) -> int:
        data = self._inner.read(len(b))
        b[:len(data)] = data
        return len(data)


def _repack(tmp_path, data: bytes, name_hint: str, **kwargs):
    dest = tmp_path / "dist.tzst"
    with create_tarball(dest, level=3) as tb:
        count = repackage(io.BytesIO(data), tb, name_hint=name_hint, **kwargs)
    return count, read_tzst(dest)


class TestIdentify:
    """Test format identification from content and name."""

    @pytest.mark.parametrize("compression", ["", "gz", "bz2", "xz", "zst"])
    def test_tar_variants_identified_from_content(self, compression):
        data = build_tar([("a.txt", b"a", 0o644, None)], compression)
        fmt, _ = identify("", io.BytesIO(data))
        assert isinstance(fmt, TarFormat)
        assert fmt.compression == (compression or None)

    def test_zip_identified(self):
        fmt, _ = identify("release.zip", io.BytesIO(build_zip([("a.txt", b"a", 0o644, None)])))
        assert isinstance(fmt, ZipFormat)

    def test_bare_gzip_is_compressed_file(self):
        fmt, _ = identify("voice.onnx.gz", io.BytesIO(gzip.compress(b"not a tar" * 10)))
        assert isinstance(fmt, CompressedFileFormat)
        assert not fmt.extractable

    def test_unknown_data_rejected(self):
        with pytest.raises(UnsupportedFormat, match="unrecognized archive format"):
            identify("data.bin", io.BytesIO(b"\x00\x01garbage" * 100))

    def test_identify_does_not_consume_seekable_stream(self):
        data = build_tar([("a.txt", b"a", 0o644, None)], "gz")
        stream = io.BytesIO(data)
        _, returned = identify("", stream)
        assert returned is stream
        assert stream.tell() == 0

    def test_non_seekable_stream_replays_prefix(self):
        data = build_tar([("a.txt", b"a", 0o644, None)])
        _, returned = identify("", NonSeekable(data))
        assert returned.read() == data


class TestPathHelpers:
    """Test the path filter and rewrite helpers."""

    def test_prefix_filter_matches_directory_and_children(self):
        matches = prefix_filter("foo/")
        assert matches("foo")
        assert matches("foo/bar.txt")
        assert matches("foo/baz/qux")
        assert not matches("foobar.txt")
        assert not matches("other/foo/bar.txt")

    def test_prefix_filter_multiple_prefixes(self):
        matches = prefix_filter("bin", "lib/")
        assert matches("bin/piper")
        assert matches("lib/libpiper.so")
        assert not matches("share/doc")

    def test_strip_prefix(self):
        rewrite = strip_prefix("foo/")
        assert rewrite("foo/bar.txt") == "bar.txt"
        assert rewrite("foo") == "foo"
        assert rewrite("other/x") == "other/x"


class TestRepackage:
    """Test copying entries into a destination Tarball."""

    def test_selective_repackage_with_strip(self, tmp_path):
        """Only entries under the prefix are kept, renamed without it."""
        data = build_tar([
            ("foo/bar.txt", b"bar", 0o644, None),
            ("foo/baz", None, 0o755, None),
            ("other/skip.txt", b"skip", 0o644, None),
        ], "gz")

        count, entries = _repack(tmp_path, data, "release.tar.gz",
                                 path_filter=prefix_filter("foo/"),
                                 path_rewrite=strip_prefix("foo/"))

        assert count == 1
        assert [(m.name, d) for m, d in entries] == [("bar.txt", b"bar")]

    def test_release_tarball_preserves_modes_and_symlinks(self, tmp_path):
        data = build_tar(RELEASE_ENTRIES, "gz")

        count, entries = _repack(tmp_path, data, "piper_linux_x86_64.tar.gz",
                                 path_filter=prefix_filter("piper"),
                                 path_rewrite=strip_prefix("piper"))

        by_name = {m.name: (m, d) for m, d in entries}
        assert count == 4
        assert list(by_name) == ["piper", "libpiper.so.1", "libpiper.so", "espeak-ng-data/phontab"]
        assert by_name["piper"][0].mode == 0o755
        assert by_name["piper"][1] == b"#!binary"
        link, _ = by_name["libpiper.so"]
        assert link.issym()
        assert link.linkname == "libpiper.so.1"

    @pytest.mark.parametrize("compression", ["", "bz2", "xz", "zst"])
    def test_all_tar_compressions(self, tmp_path, compression):
        data = build_tar([("dir/a.txt", b"alpha", 0o600, None)], compression)
        count, entries = _repack(tmp_path, data, "")
        assert count == 1
        member, content = entries[0]
        assert member.name == "dir/a.txt"
        assert member.mode == 0o600
        assert content == b"alpha"

    def test_zip_preserves_modes_and_symlinks(self, tmp_path):
        data = build_zip([
            ("piper/", None, 0o755, None),
            ("piper/piper.exe", b"MZ", 0o755, None),
            ("piper/link", None, 0o777, "piper.exe"),
            ("piper/notes.txt", b"notes", 0o644, None),
        ])

        count, entries = _repack(tmp_path, data, "piper_windows_amd64.zip",
                                 path_rewrite=strip_prefix("piper/"))

        assert count == 3
        names = [m.name for m, _ in entries]
        assert names == ["piper.exe", "link", "notes.txt"]
        exe, link, notes = (m for m, _ in entries)
        assert exe.mode == 0o755
        assert link.issym()
        assert link.linkname == "piper.exe"
        assert notes.mode == 0o644
        assert entries[0][1] == b"MZ"

    def test_non_seekable_tar_source(self, tmp_path):
        data = build_tar([("a.txt", b"a" * 3000, 0o644, None), ("b.txt", b"b", 0o644, None)], "gz")
        dest = tmp_path / "dist.tzst"
        with create_tarball(dest, level=3) as tb:
            count = repackage(NonSeekable(data), tb, name_hint="x.tar.gz")
        assert count == 2
        assert [(m.name, len(d)) for m, d in read_tzst(dest)] == [("a.txt", 3000), ("b.txt", 1)]

    def test_rewrite_to_empty_name_skipped(self, tmp_path):
        data = build_tar([("piper", b"x", 0o755, None), ("piper/a", b"a", 0o644, None)])
        count, entries = _repack(tmp_path, data, "", path_rewrite=lambda n: "" if n == "piper" else n)
        assert count == 1
        assert [m.name for m, _ in entries] == ["piper/a"]

    def test_compressed_file_not_extractable(self, tmp_path):
        dest = tmp_path / "dist.tzst"
        with pytest.raises(UnsupportedFormat, match="does not support extraction"):
            with create_tarball(dest, level=3) as tb:
                repackage(io.BytesIO(gzip.compress(b"plain data")), tb, name_hint="voice.onnx.gz")
        assert not dest.exists()

    def test_random_bytes_rejected(self, tmp_path):
        with pytest.raises(UnsupportedFormat):
            with create_tarball(tmp_path / "dist.tzst", level=3) as tb:
                repackage(io.BytesIO(b"definitely not an archive"), tb)

    def test_zip_requires_seekable_stream(self):
        data = build_zip([("a.txt", b"a", 0o644, None)])
        with pytest.raises(UnsupportedFormat, match="seekable"):
            list(iter_entries(NonSeekable(data), "a.zip"))

    def test_truncated_archive_raises_io_failure(self, tmp_path):
        data = build_tar([("a.txt", b"a" * 100_000, 0o644, None)], "gz")
        with pytest.raises(IOFailure):
            with create_tarball(tmp_path / "dist.tzst", level=3) as tb:
                repackage(io.BytesIO(data[:len(data) // 2]), tb, name_hint="a.tar.gz")
        assert list(tmp_path.iterdir()) == []

    def test_cancel_stops_between_entries(self, tmp_path):
        data = build_tar([("a.txt", b"a", 0o644, None), ("b.txt", b"b", 0o644, None)])
        cancel = threading.Event()
        cancel.set()
        dest = tmp_path / "dist.tzst"

        with pytest.raises(PackagingCancelled):
            with create_tarball(dest, level=3) as tb:
                repackage(io.BytesIO(data), tb, cancel=cancel)

        assert not dest.exists()

    def test_iter_entries_normalizes_names(self):
        data = build_tar([("./pkg/a.txt", b"a", 0o644, None)])
        entries = list(iter_entries(io.BytesIO(data)))
        assert [e.name for e in entries] == ["pkg/a.txt"]


def _patch_zip_header(data: bytes, *, method: int | None = None, flags: int | None = None) -> bytes:
    """Rewrite the method or flag field of the only entry of a stored zip."""
    patched = bytearray(data)
    local = 0
    central = patched.find(b"PK\x01\x02")
    if method is not None:
        patched[local + 8:local + 10] = method.to_bytes(2, "little")
        patched[central + 10:central + 12] = method.to_bytes(2, "little")
    if flags is not None:
        patched[local + 6:local + 8] = flags.to_bytes(2, "little")
        patched[central + 8:central + 10] = flags.to_bytes(2, "little")
    return bytes(patched)


class TestUnreadableZipEntries:
    """Test zip entries the reader cannot decode."""

    def test_unsupported_compression_method(self, tmp_path):
        """Deflate64 (method 9) is named in the error with the entry."""
        data = _patch_zip_header(build_zip([("piper/piper.exe", b"MZ", 0o755, None)]), method=9)

        with pytest.raises(UnsupportedFormat, match="piper/piper.exe uses unsupported compression method 9"):
            _repack(tmp_path, data, "x.zip")

        assert list(tmp_path.iterdir()) == []

    def test_encrypted_entry(self, tmp_path):
        data = _patch_zip_header(build_zip([("piper/piper.exe", b"MZ", 0o755, None)]), flags=0x1)

        with pytest.raises(UnsupportedFormat, match="zip entry piper/piper.exe is encrypted"):
            _repack(tmp_path, data, "x.zip")

        assert list(tmp_path.iterdir()) == []

    def test_encrypted_symlink_entry(self, tmp_path):
        data = _patch_zip_header(build_zip([("piper/link", None, 0o777, "piper.exe")]), flags=0x1)

        with pytest.raises(UnsupportedFormat, match="zip entry piper/link is encrypted"):
            _repack(tmp_path, data, "x.zip")
