"""Tests for candidate selection and single-entry extraction."""

from __future__ import annotations

import os
import tempfile
import zipfile
from pathlib import Path

import pytest

from bcdev.core.selective_extractor import (
    DEFAULT_HEADER_SLACK,
    extract,
    extract_from,
    local_header_length,
    select_best,
)
from bcdev.core.zip_index import find_end_of_central_directory, parse_central_directory
from bcdev.errors import ArchiveFormatError, CorruptEntryError, UnsupportedCompressionMethod
from bcdev.models.artifacts import ArchiveEntryRef

CLIENT = "Microsoft.Dynamics.Framework.UI.Client.dll"


def _ref(path: str) -> ArchiveEntryRef:
    return ArchiveEntryRef(
        internal_path=path,
        compression_method=8,
        compressed_size=10,
        uncompressed_size=20,
        local_header_offset=0,
    )


def _entry_and_slice(archive: bytes, name: str) -> tuple[ArchiveEntryRef, bytes]:
    eocd = find_end_of_central_directory(archive)
    cd = archive[eocd.central_dir_offset : eocd.central_dir_offset + eocd.central_dir_size]
    (entry,) = parse_central_directory(cd, {name.rsplit("/", 1)[-1]})
    start = entry.local_header_offset
    return entry, archive[start : start + DEFAULT_HEADER_SLACK + entry.compressed_size]


# ---------------------------------------------------------------------------
# Test: SelectBest
# ---------------------------------------------------------------------------


class TestSelectBest:
    def test_client_prefers_test_assemblies_in_any_order(self):
        a = _ref(f"ServiceTier/{CLIENT}")
        b = _ref(f"Applications/testframework/Test Assemblies/{CLIENT}")
        assert select_best([a, b], CLIENT) == b
        assert select_best([b, a], CLIENT) == b

    def test_vsix_prefers_development_environment(self):
        a = _ref("x/ALLanguage.vsix")
        b = _ref("ModernDev/AL Development Environment/ALLanguage.vsix")
        assert select_best([a, b], "ALLanguage.vsix") == b
        assert select_best([b, a], "ALLanguage.vsix") == b

    def test_fallback_shortest_path(self):
        a = _ref("deep/er/path/Other.dll")
        b = _ref("top/Other.dll")
        assert select_best([a, b]) == b
        assert select_best([b, a]) == b

    def test_equal_length_tie_is_order_independent(self):
        a = _ref("B/Other.dll")
        b = _ref("a/Other.dll")
        assert select_best([a, b]) == b
        assert select_best([b, a]) == b

    def test_shortest_among_preferred(self):
        a = _ref(f"long/prefix/Test Assemblies/{CLIENT}")
        b = _ref(f"Test Assemblies/{CLIENT}")
        c = _ref(f"s/{CLIENT}")
        assert select_best([a, b, c], CLIENT) == b

    def test_single_candidate(self):
        only = _ref("anything/x.dll")
        assert select_best([only]) is only

    def test_empty_raises(self):
        with pytest.raises(ValueError):
            select_best([])


# ---------------------------------------------------------------------------
# Test: Extract
# ---------------------------------------------------------------------------


class TestExtract:
    @pytest.mark.parametrize("compression", [zipfile.ZIP_STORED, zipfile.ZIP_DEFLATED])
    def test_extracts_payload(self, zip_factory, tmp_dir: Path, compression):
        payload = b"assembly bytes " * 500
        archive = zip_factory(
            {"pad/first.txt": b"first", "Test Assemblies/Lib.dll": payload},
            compression=compression,
        )
        entry, data = _entry_and_slice(archive, "Test Assemblies/Lib.dll")

        written = extract(data, entry, tmp_dir / "out")
        assert written == tmp_dir / "out" / "Lib.dll"
        assert written.read_bytes() == payload
        assert not (tmp_dir / "out" / "Lib.dll.partial").exists()

    @pytest.mark.parametrize("compression", [zipfile.ZIP_STORED, zipfile.ZIP_DEFLATED])
    def test_extracts_large_entry_from_file(self, zip_factory, tmp_dir: Path, compression):
        payload = os.urandom(700_000)
        archive = zip_factory({"bin/ALLanguage.vsix": payload}, compression=compression)
        entry, data = _entry_and_slice(archive, "bin/ALLanguage.vsix")

        with tempfile.TemporaryFile(dir=tmp_dir) as spool:
            spool.write(data)
            written = extract_from(spool, entry, tmp_dir / "out")
        assert written.read_bytes() == payload

    def test_inflating_past_recorded_size(self, zip_factory, tmp_dir: Path):
        archive = zip_factory({"f.bin": b"a" * 100_000}, compression=zipfile.ZIP_DEFLATED)
        entry, data = _entry_and_slice(archive, "f.bin")
        understated = entry.model_copy(update={"uncompressed_size": 10})
        with pytest.raises(CorruptEntryError, match="inflates past"):
            extract(data, understated, tmp_dir)
        assert not (tmp_dir / "f.bin.partial").exists()

    def test_local_header_length(self, zip_factory):
        archive = zip_factory({"abc/def.txt": b"x"})
        assert local_header_length(archive) == 30 + len("abc/def.txt")

    def test_bad_signature(self, tmp_dir: Path):
        with pytest.raises(ArchiveFormatError):
            extract(b"\x00" * 64, _ref("x.dll"), tmp_dir)

    def test_short_buffer(self, zip_factory, tmp_dir: Path):
        archive = zip_factory({"f.bin": b"z" * 4000})
        entry, data = _entry_and_slice(archive, "f.bin")
        with pytest.raises(ArchiveFormatError):
            extract(data[: local_header_length(data) + 5], entry, tmp_dir)

    def test_unsupported_method(self, zip_factory, tmp_dir: Path):
        archive = zip_factory({"f.bin": b"data" * 10})
        entry, data = _entry_and_slice(archive, "f.bin")
        patched = bytearray(data)
        patched[8:10] = (99).to_bytes(2, "little")
        with pytest.raises(UnsupportedCompressionMethod):
            extract(bytes(patched), entry, tmp_dir)

    def test_crc_mismatch(self, zip_factory, tmp_dir: Path):
        archive = zip_factory({"f.bin": b"data" * 10})
        entry, data = _entry_and_slice(archive, "f.bin")
        tampered = entry.model_copy(update={"crc32": entry.crc32 ^ 0x1})
        with pytest.raises(CorruptEntryError):
            extract(data, tampered, tmp_dir)
        assert not (tmp_dir / "f.bin").exists()

    def test_size_mismatch(self, zip_factory, tmp_dir: Path):
        archive = zip_factory({"f.bin": b"data" * 10})
        entry, data = _entry_and_slice(archive, "f.bin")
        tampered = entry.model_copy(update={"uncompressed_size": 1})
        with pytest.raises(CorruptEntryError):
            extract(data, tampered, tmp_dir)
