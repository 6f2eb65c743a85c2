"""bcdev data models: all Pydantic v2, all frozen (immutable)."""

from bcdev.models.artifacts import (
    ArchiveEntryRef,
    CacheEntry,
    CompletionMarker,
    CompressionMethod,
    EndOfCentralDirectory,
    ReleaseDescriptor,
)
from bcdev.models.manifest import (
    AppDependency,
    AppManifest,
    IdRange,
    coarse_version_from_manifest,
    extract_major_minor,
    load_manifest,
)
from bcdev.models.results import ArtifactsResult, Failure
from bcdev.models.symbols import SymbolFailure, SymbolRequest, SymbolsResult

__all__ = [
    # artifacts
    "ReleaseDescriptor",
    "CompressionMethod",
    "EndOfCentralDirectory",
    "ArchiveEntryRef",
    "CompletionMarker",
    "CacheEntry",
    # manifest
    "AppManifest",
    "AppDependency",
    "IdRange",
    "load_manifest",
    "extract_major_minor",
    "coarse_version_from_manifest",
    # symbols
    "SymbolRequest",
    "SymbolFailure",
    "SymbolsResult",
    # results
    "ArtifactsResult",
    "Failure",
]
