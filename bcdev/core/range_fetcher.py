"""HTTP range requests against a remote archive.

The whole acquisition path depends on partial content. A server that does
not advertise ``Accept-Ranges: bytes`` and a ``Content-Length`` is
rejected instead of falling back to a multi-gigabyte full download.
"""

from __future__ import annotations

import io
import logging
from typing import BinaryIO

import httpx
from pydantic import BaseModel, ConfigDict

from bcdev.core.deadline import Deadline
from bcdev.errors import DownloadFailed, RangeUnsupported, UnexpectedRangeResponse

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 256 * 1024


class RangeSupport(BaseModel):
    """What a HEAD request told us about a remote resource."""

    model_config = ConfigDict(frozen=True)

    total_size: int
    supports_ranges: bool


class RangeFetcher:
    """Issues HEAD and ranged GET requests.

    Parameters
    ----------
    client:
        The ``httpx.Client`` to send requests with.
    timeout:
        Per-request timeout in seconds, clipped to any deadline passed in.
    """

    def __init__(self, client: httpx.Client, *, timeout: float = 300.0) -> None:
        self._client = client
        self._timeout = timeout

    def head(self, url: str, deadline: Deadline | None = None) -> RangeSupport:
        """Probe *url*; raise ``RangeUnsupported`` unless ranges and size are known."""
        deadline = deadline or Deadline.never()
        deadline.check("HEAD request")
        try:
            response = self._client.head(
                url, timeout=deadline.clip(self._timeout), follow_redirects=True
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise DownloadFailed(f"HEAD {url} failed: {exc}") from exc

        accept_ranges = response.headers.get("accept-ranges", "")
        supports = "bytes" in [v.strip().lower() for v in accept_ranges.split(",")]
        if not supports:
            raise RangeUnsupported(f"Server does not support Range requests: {url}")

        length = response.headers.get("content-length")
        if length is None or not length.strip().isdigit():
            raise RangeUnsupported(f"Content-Length header missing: {url}")

        support = RangeSupport(total_size=int(length), supports_ranges=True)
        logger.info("Archive size: %s MB", f"{support.total_size // (1024 * 1024):,}")
        return support

    def get_range(
        self,
        url: str,
        start: int,
        end: int,
        deadline: Deadline | None = None,
    ) -> bytes:
        """Return bytes ``start..end`` (both inclusive) of *url* in memory."""
        buffer = io.BytesIO()
        self.fetch_into(url, start, end, buffer, deadline)
        return buffer.getvalue()

    def fetch_into(
        self,
        url: str,
        start: int,
        end: int,
        sink: BinaryIO,
        deadline: Deadline | None = None,
    ) -> int:
        """Write bytes ``start..end`` (both inclusive) of *url* to *sink*.

        The body is streamed chunk by chunk, so large entries never sit in
        memory and the deadline is checked between chunks. Returns the
        number of bytes written.
        """
        if start < 0 or end < start:
            raise ValueError(f"Invalid byte range {start}-{end}")
        deadline = deadline or Deadline.never()
        deadline.check("range request")

        headers = {"Range": f"bytes={start}-{end}"}
        written = 0
        try:
            with self._client.stream(
                "GET",
                url,
                headers=headers,
                timeout=deadline.clip(self._timeout),
                follow_redirects=True,
            ) as response:
                if response.status_code != httpx.codes.PARTIAL_CONTENT:
                    raise UnexpectedRangeResponse(
                        f"Expected 206 Partial Content for bytes {start}-{end}, "
                        f"got {response.status_code}"
                    )
                for chunk in response.iter_bytes(_CHUNK_SIZE):
                    deadline.check("range download")
                    sink.write(chunk)
                    written += len(chunk)
        except httpx.HTTPError as exc:
            raise DownloadFailed(f"Range request {start}-{end} failed: {exc}") from exc

        logger.debug("Fetched bytes %d-%d (%d bytes)", start, end, written)
        return written
