"""Minimal ZIP index reader for partial downloads.

Only the records needed to locate entries without the full archive are
parsed: the end-of-central-directory record and central directory file
headers. ZIP64 is out of scope and rejected explicitly.

Layouts (little-endian)::

    EOCD  sig(4) disk(2) cd_disk(2) disk_entries(2) entries(2)
          cd_size(4) cd_offset(4) comment_len(2) comment(n)

    CDFH  sig(4) made_by(2) needed(2) flags(2) method(2) time(2) date(2)
          crc32(4) csize(4) usize(4) name_len(2) extra_len(2)
          comment_len(2) disk(2) int_attr(2) ext_attr(4) lho(4)
          name(n) extra(m) comment(k)
"""

from __future__ import annotations

import logging
import struct
from collections.abc import Iterable

from bcdev.errors import ArchiveFormatError, Zip64NotSupported
from bcdev.models.artifacts import ArchiveEntryRef, EndOfCentralDirectory

logger = logging.getLogger(__name__)

EOCD_SIGNATURE = b"PK\x05\x06"
CDFH_SIGNATURE = b"PK\x01\x02"

EOCD_STRUCT = struct.Struct("<4sHHHHIIH")
CDFH_STRUCT = struct.Struct("<4sHHHHHHIIIHHHHHII")

# 22-byte record plus the largest possible trailing comment
EOCD_SEARCH_WINDOW = EOCD_STRUCT.size + 0xFFFF

_UTF8_FLAG = 0x0800
_ZIP64_U32 = 0xFFFFFFFF
_ZIP64_U16 = 0xFFFF


def find_end_of_central_directory(tail: bytes) -> EndOfCentralDirectory:
    """Locate and parse the EOCD record in the last bytes of an archive.

    Scans backward from the last position where a complete record fits.
    """
    for pos in range(len(tail) - EOCD_STRUCT.size, -1, -1):
        if tail[pos : pos + 4] == EOCD_SIGNATURE:
            break
    else:
        raise ArchiveFormatError("Could not find ZIP End of Central Directory")

    (_, _, _, _, entry_count, cd_size, cd_offset, _) = EOCD_STRUCT.unpack_from(tail, pos)

    if cd_offset == _ZIP64_U32 or cd_size == _ZIP64_U32 or entry_count == _ZIP64_U16:
        raise Zip64NotSupported(
            "ZIP64 format not supported in partial downloads"
        )

    return EndOfCentralDirectory(
        central_dir_offset=cd_offset,
        central_dir_size=cd_size,
        entry_count=entry_count,
    )


def _decode_name(raw: bytes, flags: int) -> str:
    if flags & _UTF8_FLAG:
        return raw.decode("utf-8", errors="replace")
    return raw.decode("cp437")


def iter_central_directory(data: bytes) -> Iterable[ArchiveEntryRef]:
    """Yield every file header in a central directory buffer, in order."""
    pos = 0
    while pos + CDFH_STRUCT.size <= len(data):
        fields = CDFH_STRUCT.unpack_from(data, pos)
        if fields[0] != CDFH_SIGNATURE:
            break
        (
            _sig, _made_by, _needed, flags, method, _time, _date,
            crc, csize, usize, name_len, extra_len, comment_len,
            _disk, _int_attr, _ext_attr, lho,
        ) = fields

        name_start = pos + CDFH_STRUCT.size
        name_end = name_start + name_len
        if name_end > len(data):
            raise ArchiveFormatError(f"Central directory truncated at offset {pos}")
        name = _decode_name(data[name_start:name_end], flags)

        yield ArchiveEntryRef(
            internal_path=name,
            compression_method=method,
            compressed_size=csize,
            uncompressed_size=usize,
            local_header_offset=lho,
            crc32=crc,
        )
        pos = name_end + extra_len + comment_len


def parse_central_directory(
    data: bytes, target_names: Iterable[str]
) -> list[ArchiveEntryRef]:
    """Return every entry whose base file name is in *target_names*.

    Matching ignores the internal directory path and letter case. All
    matches are kept, since installer archives often ship the same file
    name at several internal paths.
    """
    wanted = {name.lower() for name in target_names}
    matches: list[ArchiveEntryRef] = []
    scanned = 0
    for entry in iter_central_directory(data):
        scanned += 1
        if entry.base_name.lower() in wanted:
            matches.append(entry)
    logger.debug("Scanned %d central directory records, %d matched", scanned, len(matches))
    return matches


def group_by_target(
    entries: Iterable[ArchiveEntryRef], target_names: Iterable[str]
) -> dict[str, list[ArchiveEntryRef]]:
    """Group matched entries under the caller's spelling of each target name."""
    by_lower = {name.lower(): name for name in target_names}
    grouped: dict[str, list[ArchiveEntryRef]] = {}
    for entry in entries:
        target = by_lower.get(entry.base_name.lower())
        if target is not None:
            grouped.setdefault(target, []).append(entry)
    return grouped
