"""Release index: maps a coarse version to a concrete published release.

The index document is fetched once per ``VersionIndex`` instance and kept
for its lifetime. There is no fallback on failure: resolving against the
wrong release silently is worse than failing.
"""

from __future__ import annotations

import logging

import httpx
from pydantic import TypeAdapter, ValidationError

from bcdev.core.deadline import Deadline
from bcdev.errors import IndexUnavailable, NoMatchingRelease
from bcdev.models.artifacts import ReleaseDescriptor

logger = logging.getLogger(__name__)

_RELEASES = TypeAdapter(list[ReleaseDescriptor])


class VersionIndex:
    """Fetches and memoizes the release list of one artifact channel.

    Parameters
    ----------
    client:
        The ``httpx.Client`` used for the index request.
    cdn_base_url:
        Base URL of the artifact CDN.
    channel:
        Artifact channel (``sandbox``, ``onprem``).
    timeout:
        Request timeout in seconds, clipped to any deadline passed in.
    """

    def __init__(
        self,
        client: httpx.Client,
        cdn_base_url: str,
        channel: str = "sandbox",
        *,
        timeout: float = 300.0,
    ) -> None:
        self._client = client
        self._base = cdn_base_url.rstrip("/")
        self._channel = channel
        self._timeout = timeout
        self._releases: list[ReleaseDescriptor] | None = None

    @property
    def index_url(self) -> str:
        return f"{self._base}/{self._channel}/indexes/platform.json"

    def artifact_url(self, full_version: str) -> str:
        """URL of the platform archive for a concrete release."""
        return f"{self._base}/{self._channel}/{full_version}/platform"

    def releases(self, deadline: Deadline | None = None) -> list[ReleaseDescriptor]:
        """Return every published release, fetching the index on first use."""
        if self._releases is not None:
            return self._releases

        deadline = deadline or Deadline.never()
        deadline.check("version index request")
        logger.info("Fetching version index from %s", self.index_url)
        try:
            response = self._client.get(
                self.index_url, timeout=deadline.clip(self._timeout)
            )
            response.raise_for_status()
            releases = _RELEASES.validate_json(response.content)
        except httpx.HTTPError as exc:
            raise IndexUnavailable(f"Failed to fetch version index: {exc}") from exc
        except ValidationError as exc:
            raise IndexUnavailable(f"Failed to parse version index: {exc}") from exc

        logger.debug("Version index lists %d releases", len(releases))
        self._releases = releases
        return releases

    def resolve(self, coarse_version: str, deadline: Deadline | None = None) -> str:
        """Return the most recently published release under *coarse_version*.

        A release matches when *coarse_version* is a dot-separated prefix of
        its version, or equal to it.
        """
        coarse_version = coarse_version.strip()
        prefix = coarse_version + "."
        matching = [
            r
            for r in self.releases(deadline)
            if r.version == coarse_version or r.version.startswith(prefix)
        ]
        if not matching:
            raise NoMatchingRelease(
                f"No artifacts found for version {coarse_version} "
                f"in channel {self._channel!r}"
            )
        # Version text breaks ties between releases published at the same instant
        best = max(matching, key=lambda r: (r.published_at, r.version))
        logger.info("Resolved %s to release %s", coarse_version, best.version)
        return best.version
