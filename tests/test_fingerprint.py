"""
Test content fingerprints and dist.json metadata.
"""
from __future__ import annotations

import json

import pytest
import xxhash

from piper_gen.errors import IOFailure
from piper_gen.fingerprint import compute_fingerprint, write_metadata
from piper_gen.models import Fingerprint, Meta


@pytest.fixture
def files(tmp_path):
    a = tmp_path / "a.bin"
    b = tmp_path / "b.bin"
    a.write_bytes(b"first file")
    b.write_bytes(b"second file")
    return a, b


class TestComputeFingerprint:
    """Test the xxh3-128 fingerprint over a set of files."""

    def test_matches_hash_of_sorted_concatenation(self, files):
        a, b = files
        expected = xxhash.xxh3_128(b"first file" + b"second file").intdigest()
        assert int(compute_fingerprint([b, a])) == expected

    def test_order_independent(self, files):
        a, b = files
        assert compute_fingerprint([a, b]) == compute_fingerprint([b, a])

    def test_content_change_changes_fingerprint(self, files):
        a, b = files
        before = compute_fingerprint([a, b])
        b.write_bytes(b"second filf")
        assert compute_fingerprint([a, b]) != before

    def test_large_file_streamed(self, tmp_path):
        big = tmp_path / "big.bin"
        data = b"0123456789abcdef" * 200_000  # spans several read chunks
        big.write_bytes(data)
        assert int(compute_fingerprint([big])) == xxhash.xxh3_128(data).intdigest()

    def test_missing_file_raises_io_failure(self, tmp_path):
        with pytest.raises(IOFailure, match="failed to hash file"):
            compute_fingerprint([tmp_path / "missing.bin"])

    def test_words_split_hi_lo(self):
        fp = Fingerprint.from_int((7 << 64) | 9)
        assert (fp.hi, fp.lo) == (7, 9)
        assert fp.hexdigest() == f"{7:016x}{9:016x}"


class TestWriteMetadata:
    """Test dist.json generation."""

    def test_writes_go_compatible_json(self, tmp_path, files):
        a, _ = files
        meta = write_metadata(tmp_path, "1.0.0", [a])

        raw = (tmp_path / "dist.json").read_text()
        value = xxhash.xxh3_128(b"first file").intdigest()
        assert json.loads(raw) == {
            "Version": "1.0.0",
            "Hash": {"Hi": value >> 64, "Lo": value & ((1 << 64) - 1)},
        }
        assert meta.version == "1.0.0"
        assert int(meta.hash) == value

    def test_metadata_round_trips_through_model(self, tmp_path, files):
        meta = write_metadata(tmp_path, "v2.0.0", files)
        loaded = Meta.model_validate_json((tmp_path / "dist.json").read_text())
        assert loaded == meta

    def test_unwritable_directory_raises_io_failure(self, tmp_path, files):
        with pytest.raises(IOFailure, match="failed to write metadata"):
            write_metadata(tmp_path / "missing-dir", "1.0.0", files)
