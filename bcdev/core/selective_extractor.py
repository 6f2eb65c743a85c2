"""Selective extraction of single entries from ranged archive reads.

Candidate selection
-------------------
When a target name occurs at several internal paths, the choice is made
by a fixed rule per target family, independent of input order:

* client libraries (name contains ``client``): prefer a path containing
  ``Test Assemblies`` (the standalone copy);
* nested installer archives (``.vsix``): prefer a path containing
  ``al development environment``;
* otherwise, and among several preferred candidates: the shortest
  internal path, ties broken by case-folded path text.

Extraction
----------
The local file header has a variable-length tail (name + extra field),
so callers read some slack past the central-directory compressed size.
``local_header_length`` tells them whether the slack was enough.
"""

from __future__ import annotations

import io
import logging
import os
import struct
import zlib
from collections.abc import Sequence
from pathlib import Path
from typing import BinaryIO

from bcdev.errors import ArchiveFormatError, CorruptEntryError, UnsupportedCompressionMethod
from bcdev.models.artifacts import ArchiveEntryRef, CompressionMethod

logger = logging.getLogger(__name__)

LFH_SIGNATURE = b"PK\x03\x04"
LFH_STRUCT = struct.Struct("<4sHHHHHIIIHH")

# Slack read past the compressed payload so the local header usually fits
# in one request: fixed header, a long name, and a modest extra field.
DEFAULT_HEADER_SLACK = LFH_STRUCT.size + 1024

_CHUNK_SIZE = 256 * 1024

# (substring of target name or suffix, preferred path segment)
_PREFERENCES: tuple[tuple[str, str], ...] = (
    ("client", "test assemblies"),
    (".vsix", "al development environment"),
)


def _preferred_segment(target_name: str) -> str | None:
    lower = target_name.lower()
    for marker, segment in _PREFERENCES:
        if marker.startswith("."):
            if lower.endswith(marker):
                return segment
        elif marker in lower:
            return segment
    return None


def _canonical_order(entry: ArchiveEntryRef) -> tuple[int, str, str]:
    path = entry.internal_path
    return (len(path), path.casefold(), path)


def select_best(
    candidates: Sequence[ArchiveEntryRef], target_name: str | None = None
) -> ArchiveEntryRef:
    """Pick one entry among same-named candidates, deterministically."""
    if not candidates:
        raise ValueError("select_best() needs at least one candidate")
    if len(candidates) == 1:
        return candidates[0]

    target_name = target_name or candidates[0].base_name
    segment = _preferred_segment(target_name)
    pool = list(candidates)
    if segment is not None:
        preferred = [c for c in pool if segment in c.internal_path.lower()]
        if preferred:
            pool = preferred

    chosen = min(pool, key=_canonical_order)
    logger.debug(
        "Selected %s among %d candidates for %s",
        chosen.internal_path, len(candidates), target_name,
    )
    return chosen


def local_header_length(data: bytes) -> int:
    """Length of the local file header at the start of *data*, in bytes."""
    if len(data) < LFH_STRUCT.size:
        raise ArchiveFormatError("Buffer too short for a local file header")
    fields = LFH_STRUCT.unpack_from(data, 0)
    if fields[0] != LFH_SIGNATURE:
        raise ArchiveFormatError(
            f"Invalid local file header signature: {fields[0].hex()}"
        )
    name_len, extra_len = fields[9], fields[10]
    return LFH_STRUCT.size + name_len + extra_len


def _inflater(method: int, entry: ArchiveEntryRef):
    try:
        kind = CompressionMethod(method)
    except ValueError:
        raise UnsupportedCompressionMethod(
            f"Compression method {method} not supported for {entry.internal_path}"
        ) from None
    if kind is CompressionMethod.STORE:
        return None
    return zlib.decompressobj(-zlib.MAX_WBITS)


def extract_from(stream: BinaryIO, entry: ArchiveEntryRef, destination_dir: Path) -> Path:
    """Decompress *entry* from a seekable local-header-plus-payload stream.

    The stream is read from its start in chunks, so an entry of any size is
    inflated without holding it in memory. The file is written under
    *destination_dir* using only its base name; the internal directory
    structure is discarded. Sizes come from the central directory record,
    which stays valid when the local header defers them to a data
    descriptor.
    """
    stream.seek(0, os.SEEK_END)
    available = stream.tell()
    stream.seek(0)
    header = stream.read(LFH_STRUCT.size)
    header_len = local_header_length(header)
    method = LFH_STRUCT.unpack_from(header, 0)[3]
    end = header_len + entry.compressed_size
    if available < end:
        raise ArchiveFormatError(
            f"Buffer holds {available} bytes, {end} needed for {entry.internal_path}"
        )
    inflater = _inflater(method, entry)

    destination_dir = Path(destination_dir)
    destination_dir.mkdir(parents=True, exist_ok=True)
    target = destination_dir / entry.base_name
    partial = target.with_name(target.name + ".partial")

    stream.seek(header_len)
    remaining = entry.compressed_size
    size = 0
    crc = 0
    try:
        with partial.open("wb") as out:
            while remaining > 0 or inflater is not None:
                chunk = stream.read(min(_CHUNK_SIZE, remaining)) if remaining > 0 else b""
                remaining -= len(chunk)
                if inflater is None:
                    data = chunk
                else:
                    try:
                        data = inflater.decompress(chunk) if chunk else inflater.flush()
                    except zlib.error as exc:
                        raise CorruptEntryError(
                            f"Inflate failed for {entry.internal_path}: {exc}"
                        ) from exc
                size += len(data)
                if size > entry.uncompressed_size:
                    raise CorruptEntryError(
                        f"{entry.internal_path}: inflates past its recorded "
                        f"{entry.uncompressed_size} bytes"
                    )
                crc = zlib.crc32(data, crc)
                out.write(data)
                if not chunk:
                    break

        if size != entry.uncompressed_size:
            raise CorruptEntryError(
                f"{entry.internal_path}: expected {entry.uncompressed_size} bytes, "
                f"got {size}"
            )
        crc &= 0xFFFFFFFF
        if crc != entry.crc32:
            raise CorruptEntryError(
                f"{entry.internal_path}: CRC-32 mismatch "
                f"(expected {entry.crc32:08x}, got {crc:08x})"
            )
        os.replace(partial, target)
    finally:
        partial.unlink(missing_ok=True)

    logger.debug("Extracted %s (%d bytes)", target.name, size)
    return target


def extract(data: bytes, entry: ArchiveEntryRef, destination_dir: Path) -> Path:
    """Decompress *entry* from an in-memory local-header-plus-payload buffer."""
    return extract_from(io.BytesIO(data), entry, destination_dir)
