"""Artifact models: releases, archive entries, cache entries (all immutable)."""

from __future__ import annotations

import posixpath
from datetime import datetime, timezone
from enum import IntEnum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


class ReleaseDescriptor(BaseModel):
    """One published platform release from the remote index.

    The index uses PascalCase field names (``Version``, ``CreationTime``).
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    version: str = Field(alias="Version")
    published_at: datetime = Field(alias="CreationTime")


class CompressionMethod(IntEnum):
    """The two ZIP compression methods the extractor understands."""

    STORE = 0
    DEFLATE = 8


class EndOfCentralDirectory(BaseModel):
    """Location and size of an archive's central directory."""

    model_config = ConfigDict(frozen=True)

    central_dir_offset: int
    central_dir_size: int
    entry_count: int


class ArchiveEntryRef(BaseModel):
    """A central directory record matched against a target file name.

    ``compression_method`` holds the raw method number from the archive;
    only the values of ``CompressionMethod`` can be extracted.
    """

    model_config = ConfigDict(frozen=True)

    internal_path: str
    compression_method: int
    compressed_size: int
    uncompressed_size: int
    local_header_offset: int
    crc32: int = 0

    @property
    def base_name(self) -> str:
        """File name without its internal directory path."""
        return posixpath.basename(self.internal_path.replace("\\", "/"))


class CompletionMarker(BaseModel):
    """Content of the marker file written after a cache entry is complete.

    ``files`` maps each required file name to its SHA-256 hex digest.
    """

    model_config = ConfigDict(frozen=True)

    version: str
    full_version: str
    files: dict[str, str]
    completed_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


class CacheEntry(BaseModel):
    """A version directory under the cache root."""

    model_config = ConfigDict(frozen=True)

    version: str
    directory: Path
    ready: bool = False
    full_version: str | None = None
