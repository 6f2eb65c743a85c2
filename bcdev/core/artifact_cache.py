"""Version-keyed on-disk cache of compiler and client-library artifacts.

Storage layout::

    {base_path}/{version}/                 # one directory per coarse version
        Microsoft.Dynamics.Framework.UI.Client.dll
        Microsoft.Dynamics.Framework.UI.Client.Interactions.dll
        alc | alc.exe  (+ runtime files)   # compiler subtree
        .complete.json                     # completion marker, written last
    {base_path}/{version}.lock             # population lock

The completion marker is the only source of truth for readiness. An entry
directory without it is either being populated right now (by whoever holds
the lock) or left over from a crash, and is discarded before repopulating.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import tempfile
import threading
from pathlib import Path

from pydantic import ValidationError

from bcdev.core.cache_lock import cache_lock
from bcdev.core.deadline import Deadline
from bcdev.core.hasher import canonical_json_bytes, sha256_file
from bcdev.core.nested_extractor import (
    compiler_executable_name,
    extract_platform_subtree,
    platform_id,
)
from bcdev.core.range_fetcher import RangeFetcher
from bcdev.core.selective_extractor import (
    DEFAULT_HEADER_SLACK,
    LFH_STRUCT,
    extract_from,
    local_header_length,
    select_best,
)
from bcdev.core.version_index import VersionIndex
from bcdev.core.zip_index import (
    EOCD_SEARCH_WINDOW,
    find_end_of_central_directory,
    group_by_target,
    parse_central_directory,
)
from bcdev.errors import ArchiveFormatError, NotCached
from bcdev.models.artifacts import ArchiveEntryRef, CacheEntry, CompletionMarker

logger = logging.getLogger(__name__)

CLIENT_LIBRARY = "Microsoft.Dynamics.Framework.UI.Client.dll"
CLIENT_INTERACTIONS_LIBRARY = "Microsoft.Dynamics.Framework.UI.Client.Interactions.dll"
CLIENT_LIBRARIES = (CLIENT_LIBRARY, CLIENT_INTERACTIONS_LIBRARY)
INSTALLER_ARCHIVE = "ALLanguage.vsix"
MARKER_NAME = ".complete.json"

_VERSION_RE = re.compile(r"^[0-9A-Za-z][0-9A-Za-z._-]*$")

# Per-directory locks shared by every ArtifactCache in this process
_PROCESS_LOCKS: dict[Path, threading.Lock] = {}
_PROCESS_LOCKS_GUARD = threading.Lock()


def _process_lock(directory: Path) -> threading.Lock:
    key = directory.resolve()
    with _PROCESS_LOCKS_GUARD:
        return _PROCESS_LOCKS.setdefault(key, threading.Lock())


class ArtifactCache:
    """Populates and serves cache entries keyed by coarse version.

    Parameters
    ----------
    base_path:
        Cache root directory.
    version_index:
        Resolves coarse versions to concrete releases.
    fetcher:
        Performs the HEAD and ranged GET requests.
    platform:
        Installer platform folder (``win32``, ``darwin``, ``linux``).
        Defaults to the running OS.
    lock_timeout:
        Seconds to wait for another population of the same version.
    header_slack:
        Bytes read past each entry's compressed size so its local header
        fits in the same request.
    """

    def __init__(
        self,
        base_path: Path,
        version_index: VersionIndex,
        fetcher: RangeFetcher,
        *,
        platform: str | None = None,
        lock_timeout: float = 1800.0,
        header_slack: int = DEFAULT_HEADER_SLACK,
    ) -> None:
        self._base = Path(base_path)
        self._index = version_index
        self._fetcher = fetcher
        self._platform = platform or platform_id()
        self._lock_timeout = lock_timeout
        self._header_slack = header_slack

    @property
    def base_path(self) -> Path:
        return self._base

    @property
    def platform(self) -> str:
        return self._platform

    @property
    def compiler_name(self) -> str:
        return compiler_executable_name(self._platform)

    def required_files(self) -> list[str]:
        """Files that must exist for an entry to be usable."""
        return [*CLIENT_LIBRARIES, self.compiler_name]

    def version_dir(self, version: str) -> Path:
        """Directory of a coarse version's cache entry."""
        version = version.strip()
        if not _VERSION_RE.match(version) or ".." in version:
            raise ValueError(f"Invalid version for cache key: {version!r}")
        return self._base / version

    def _lock_path(self, version: str) -> Path:
        return self._base / f"{version.strip()}.lock"

    # ------------------------------------------------------------------
    # Readiness
    # ------------------------------------------------------------------

    def _read_marker(self, directory: Path) -> CompletionMarker | None:
        marker_path = directory / MARKER_NAME
        try:
            return CompletionMarker.model_validate_json(marker_path.read_bytes())
        except FileNotFoundError:
            return None
        except (OSError, ValidationError) as exc:
            logger.warning("Ignoring unreadable completion marker %s: %s", marker_path, exc)
            return None

    def is_ready(self, version: str) -> bool:
        """True when the marker exists and every file it lists is present."""
        directory = self.version_dir(version)
        marker = self._read_marker(directory)
        if marker is None:
            return False
        if any(name not in marker.files for name in self.required_files()):
            return False
        return all((directory / name).is_file() for name in marker.files)

    def entry(self, version: str) -> CacheEntry:
        directory = self.version_dir(version)
        marker = self._read_marker(directory)
        return CacheEntry(
            version=version.strip(),
            directory=directory,
            ready=self.is_ready(version),
            full_version=marker.full_version if marker else None,
        )

    def entries(self) -> list[CacheEntry]:
        """All version directories under the cache root, sorted by name."""
        if not self._base.is_dir():
            return []
        return [
            self.entry(child.name)
            for child in sorted(self._base.iterdir())
            if child.is_dir() and _VERSION_RE.match(child.name)
        ]

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def path_to(self, version: str, file_name: str) -> Path:
        """Path of *file_name* inside a ready entry; raises ``NotCached``."""
        if not self.is_ready(version):
            raise NotCached(f"Artifacts for version {version} are not cached")
        directory = self.version_dir(version)
        path = directory / file_name
        if not path.resolve().is_relative_to(directory.resolve()) or not path.is_file():
            raise NotCached(f"{file_name} not found in cache entry {version}")
        return path

    def compiler_path(self, version: str) -> Path:
        return self.path_to(version, self.compiler_name)

    def client_library_path(self, version: str) -> Path:
        return self.path_to(version, CLIENT_LIBRARY)

    def full_version(self, version: str) -> str | None:
        marker = self._read_marker(self.version_dir(version))
        return marker.full_version if marker else None

    def verify(self, version: str) -> list[str]:
        """Re-hash the files recorded in the marker; return mismatch descriptions."""
        if not self.is_ready(version):
            raise NotCached(f"Artifacts for version {version} are not cached")
        directory = self.version_dir(version)
        marker = self._read_marker(directory)
        if marker is None:
            raise NotCached(f"Completion marker for {version} disappeared")
        problems: list[str] = []
        for name, expected in sorted(marker.files.items()):
            actual = sha256_file(directory / name)
            if actual != expected:
                problems.append(f"{name}: recorded={expected}, current={actual}")
        return problems

    # ------------------------------------------------------------------
    # Population
    # ------------------------------------------------------------------

    def ensure_ready(self, version: str, deadline: Deadline | None = None) -> Path:
        """Return the entry directory for *version*, populating it at most once.

        Concurrent callers, in this process or others, serialize on the
        version lock; all of them observe a complete entry afterwards.
        """
        directory = self.version_dir(version)
        if self.is_ready(version):
            logger.info("Using cached artifacts for %s", version)
            return directory

        with _process_lock(directory):
            with cache_lock(
                self._lock_path(version),
                timeout=self._lock_timeout,
                deadline=deadline,
            ):
                if self.is_ready(version):
                    logger.info("Artifacts for %s were populated by another caller", version)
                    return directory
                self._populate(version.strip(), directory, deadline or Deadline.never())
        return directory

    def _populate(self, version: str, directory: Path, deadline: Deadline) -> None:
        if directory.exists():
            logger.warning("Discarding incomplete cache entry %s", directory)
            shutil.rmtree(directory)

        logger.info("Resolving version %s", version)
        full_version = self._index.resolve(version, deadline)
        directory.mkdir(parents=True)
        try:
            url = self._index.artifact_url(full_version)
            logger.info("Downloading %s artifacts (release %s)", version, full_version)
            self._download_targets(url, directory, deadline)

            installer = directory / INSTALLER_ARCHIVE
            extract_platform_subtree(installer, self._platform, directory)
            installer.unlink()

            missing = [n for n in self.required_files() if not (directory / n).is_file()]
            if missing:
                raise ArchiveFormatError(f"Required files missing after extraction: {missing}")

            self._write_marker(directory, version, full_version)
        except BaseException:
            shutil.rmtree(directory, ignore_errors=True)
            raise
        logger.info("Cached %s to %s", version, directory)

    def _download_targets(self, url: str, directory: Path, deadline: Deadline) -> None:
        total = self._fetcher.head(url, deadline).total_size

        tail_start = max(0, total - EOCD_SEARCH_WINDOW)
        tail = self._fetcher.get_range(url, tail_start, total - 1, deadline)
        eocd = find_end_of_central_directory(tail)
        logger.info("Found %s files in archive", f"{eocd.entry_count:,}")

        cd_end = eocd.central_dir_offset + eocd.central_dir_size
        if eocd.central_dir_size == 0 or cd_end > total:
            raise ArchiveFormatError(
                f"Central directory {eocd.central_dir_offset}+{eocd.central_dir_size} "
                f"lies outside the {total}-byte archive"
            )
        cd = self._fetcher.get_range(url, eocd.central_dir_offset, cd_end - 1, deadline)
        logger.info("Downloaded file index (%s KB)", f"{eocd.central_dir_size // 1024:,}")

        targets = [*CLIENT_LIBRARIES, INSTALLER_ARCHIVE]
        grouped = group_by_target(parse_central_directory(cd, targets), targets)
        missing = [t for t in targets if t not in grouped]
        if missing:
            raise ArchiveFormatError(f"Required files not found in archive: {missing}")

        for target in targets:
            entry = select_best(grouped[target], target)
            self._fetch_entry(url, entry, total, directory, deadline)

    def _fetch_entry(
        self,
        url: str,
        entry: ArchiveEntryRef,
        total: int,
        directory: Path,
        deadline: Deadline,
    ) -> Path:
        logger.info(
            "Downloading %s (%s KB)", entry.base_name, f"{entry.compressed_size // 1024:,}"
        )
        start = entry.local_header_offset
        # The first read always covers the fixed part of the local header
        slack = max(self._header_slack, LFH_STRUCT.size)
        end = min(total - 1, start + slack + entry.compressed_size)

        with tempfile.TemporaryFile(dir=directory) as spool:
            fetched = self._fetcher.fetch_into(url, start, end, spool, deadline)
            spool.seek(0)
            needed = local_header_length(spool.read(LFH_STRUCT.size)) + entry.compressed_size
            if fetched < needed:
                logger.debug("Local header of %s exceeds slack; re-reading", entry.base_name)
                spool.seek(0)
                spool.truncate()
                self._fetcher.fetch_into(url, start, start + needed - 1, spool, deadline)
            return extract_from(spool, entry, directory)

    def _write_marker(self, directory: Path, version: str, full_version: str) -> None:
        marker = CompletionMarker(
            version=version,
            full_version=full_version,
            files={name: sha256_file(directory / name) for name in self.required_files()},
        )
        marker_path = directory / MARKER_NAME
        tmp_path = marker_path.with_name(marker_path.name + ".tmp")
        tmp_path.write_bytes(canonical_json_bytes(marker.model_dump(mode="json")))
        os.replace(tmp_path, marker_path)
