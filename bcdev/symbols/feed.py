"""NuGet flat-container client: the read path only.

Endpoints::

    GET {feed}/{id}/index.json                        -> {"versions": [...]}
    GET {feed}/{id}/{version}/{id}.{version}.nupkg    -> package (zip)

Ids are lower-cased in URLs. A 404 on the version index means the package
is not published in that feed; every other failure is a
``FeedNetworkError`` and is not retried.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
import zipfile
from collections.abc import Sequence
from pathlib import Path, PurePosixPath

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from bcdev.core.deadline import Deadline
from bcdev.errors import (
    AmbiguousPayloadInPackage,
    FeedNetworkError,
    PackageNotFound,
    PayloadNotFoundInPackage,
)
from bcdev.models.symbols import SymbolRequest
from bcdev.symbols.resolver import package_id_candidates
from bcdev.symbols.versions import select_version

logger = logging.getLogger(__name__)

PAYLOAD_SUFFIX = ".app"
_CHUNK_SIZE = 256 * 1024


class VersionIndexDocument(BaseModel):
    model_config = ConfigDict(extra="ignore")

    versions: list[str] = []


class NuGetFeedClient:
    """Lists versions and fetches packages from flat-container feeds.

    Parameters
    ----------
    client:
        The ``httpx.Client`` to send requests with.
    feeds:
        Feed base URLs in the order they are tried.
    timeout:
        Per-request timeout in seconds, clipped to any deadline passed in.
    """

    def __init__(
        self,
        client: httpx.Client,
        feeds: Sequence[str],
        *,
        timeout: float = 300.0,
    ) -> None:
        self._client = client
        self._feeds = [f.rstrip("/") for f in feeds]
        self._timeout = timeout
        self._versions_cache: dict[tuple[str, str], list[str] | None] = {}

    # ------------------------------------------------------------------
    # Flat-container operations
    # ------------------------------------------------------------------

    def versions(
        self, feed_base: str, package_id: str, deadline: Deadline | None = None
    ) -> list[str] | None:
        """Published versions of *package_id*, or ``None`` if the feed lacks it."""
        key = (feed_base.rstrip("/"), package_id.lower())
        if key in self._versions_cache:
            return self._versions_cache[key]

        deadline = deadline or Deadline.never()
        deadline.check("feed version query")
        url = f"{key[0]}/{key[1]}/index.json"
        try:
            response = self._client.get(url, timeout=deadline.clip(self._timeout))
        except httpx.TimeoutException as exc:
            raise FeedNetworkError(f"Request timed out: {url}") from exc
        except httpx.HTTPError as exc:
            raise FeedNetworkError(f"Network error: {exc}") from exc

        if response.status_code == httpx.codes.NOT_FOUND:
            logger.debug("%s not in feed %s", package_id, feed_base)
            self._versions_cache[key] = None
            return None
        if not response.is_success:
            raise FeedNetworkError(f"HTTP {response.status_code} from {url}")

        try:
            document = VersionIndexDocument.model_validate_json(response.content)
        except ValidationError as exc:
            raise FeedNetworkError(f"Invalid response from feed: {exc}") from exc

        self._versions_cache[key] = document.versions
        return document.versions

    def download(
        self,
        feed_base: str,
        package_id: str,
        version: str,
        destination_dir: Path,
        deadline: Deadline | None = None,
    ) -> str:
        """Download a package and extract its single payload file.

        The payload is written to a temporary sibling and renamed into
        place. Returns the payload file name.
        """
        deadline = deadline or Deadline.never()
        package_lower = package_id.lower()
        url = f"{feed_base.rstrip('/')}/{package_lower}/{version}/{package_lower}.{version}.nupkg"
        destination_dir = Path(destination_dir)
        destination_dir.mkdir(parents=True, exist_ok=True)

        logger.info("Downloading %s %s", package_id, version)
        with tempfile.TemporaryFile() as spool:
            self._stream_to(url, spool, deadline)
            spool.seek(0)
            try:
                archive = zipfile.ZipFile(spool)
            except zipfile.BadZipFile as exc:
                raise FeedNetworkError(f"Package {package_id} {version} is not a valid zip: {exc}") from exc
            with archive:
                return self._extract_payload(archive, package_id, version, destination_dir)

    def _stream_to(self, url: str, sink, deadline: Deadline) -> None:
        deadline.check("package download")
        try:
            with self._client.stream(
                "GET", url, timeout=deadline.clip(self._timeout), follow_redirects=True
            ) as response:
                if not response.is_success:
                    raise FeedNetworkError(f"HTTP {response.status_code} from {url}")
                for chunk in response.iter_bytes(_CHUNK_SIZE):
                    deadline.check("package download")
                    sink.write(chunk)
        except httpx.TimeoutException as exc:
            raise FeedNetworkError(f"Request timed out: {url}") from exc
        except httpx.HTTPError as exc:
            raise FeedNetworkError(f"Network error: {exc}") from exc

    @staticmethod
    def _extract_payload(
        archive: zipfile.ZipFile, package_id: str, version: str, destination_dir: Path
    ) -> str:
        payloads = [
            info for info in archive.infolist()
            if not info.is_dir() and info.filename.lower().endswith(PAYLOAD_SUFFIX)
        ]
        if not payloads:
            raise PayloadNotFoundInPackage(
                f"No {PAYLOAD_SUFFIX} file found in package {package_id} {version}"
            )
        if len(payloads) > 1:
            names = ", ".join(p.filename for p in payloads)
            raise AmbiguousPayloadInPackage(
                f"Package {package_id} {version} contains several payloads: {names}"
            )

        info = payloads[0]
        file_name = PurePosixPath(info.filename.replace("\\", "/")).name
        target = destination_dir / file_name
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{file_name}.", suffix=".tmp", dir=destination_dir
        )
        try:
            with os.fdopen(fd, "wb") as dst, archive.open(info) as src:
                shutil.copyfileobj(src, dst, _CHUNK_SIZE)
            os.replace(tmp_name, target)
        finally:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)

        logger.debug("Wrote %s", target)
        return file_name

    # ------------------------------------------------------------------
    # Resolution across feeds
    # ------------------------------------------------------------------

    def fetch_symbol(
        self,
        request: SymbolRequest,
        destination_dir: Path,
        country: str = "w1",
        deadline: Deadline | None = None,
    ) -> str:
        """Resolve *request* against each feed in order and download it.

        Within a feed, a country-qualified id that yields nothing is retried
        without the country. Raises ``PackageNotFound`` when no feed has the
        package, or the last ``FeedNetworkError`` if a feed query failed.
        """
        last_error: FeedNetworkError | None = None

        for feed_base in self._feeds:
            found: tuple[str, list[str]] | None = None
            for package_id in package_id_candidates(request, country):
                try:
                    versions = self.versions(feed_base, package_id, deadline)
                except FeedNetworkError as exc:
                    logger.warning("Feed query failed for %s: %s", package_id, exc)
                    last_error = exc
                    break
                if versions:
                    found = (package_id, versions)
                    break

            if found is None:
                continue

            package_id, versions = found
            matched = select_version(versions, request.version, package_id)
            if matched != request.version:
                logger.info("Using %s %s for requested %s", package_id, matched, request.version)
            return self.download(feed_base, package_id, matched, destination_dir, deadline)

        if last_error is not None:
            raise FeedNetworkError(f"Failed to query feeds: {last_error}") from last_error
        raise PackageNotFound(f"Package not found in any feed: {request.display_name}")
