"""Artifact acquisition engine: release resolution, ranged zip reads, cache."""

from bcdev.core.artifact_cache import ArtifactCache
from bcdev.core.deadline import Deadline
from bcdev.core.range_fetcher import RangeFetcher
from bcdev.core.version_index import VersionIndex

__all__ = ["ArtifactCache", "Deadline", "RangeFetcher", "VersionIndex"]
