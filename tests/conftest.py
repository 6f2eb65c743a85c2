"""Shared test fixtures for bcdev.

HTTP is served by ``httpx.MockTransport`` handlers backed by real
in-memory ZIP archives built with ``zipfile``.
"""

from __future__ import annotations

import io
import json
import os
import subprocess
import sys
import threading
import zipfile
from collections.abc import Mapping
from pathlib import Path

import httpx
import pytest

import bcdev
from bcdev.core.artifact_cache import ArtifactCache
from bcdev.core.range_fetcher import RangeFetcher
from bcdev.core.version_index import VersionIndex

CDN_BASE = "https://cdn.test"
FEED_A = "https://feed-a.test/flat2"
FEED_B = "https://feed-b.test/flat2"

CLIENT_DLL = "Microsoft.Dynamics.Framework.UI.Client.dll"
INTERACTIONS_DLL = "Microsoft.Dynamics.Framework.UI.Client.Interactions.dll"

RELEASES = [
    {"Version": "27.0.38460.41112", "CreationTime": "2025-10-01T10:00:00Z"},
    {"Version": "27.0.38460.41200", "CreationTime": "2025-11-01T10:00:00Z"},
    {"Version": "27.1.39000.0", "CreationTime": "2025-12-01T10:00:00Z"},
    {"Version": "26.5.1.0", "CreationTime": "2026-01-01T10:00:00Z"},
]
LATEST_27_0 = "27.0.38460.41200"


# ---------------------------------------------------------------------------
# Archive builders
# ---------------------------------------------------------------------------


def make_zip(
    entries: Mapping[str, bytes], compression: int = zipfile.ZIP_DEFLATED
) -> bytes:
    """Build a ZIP archive in memory."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=compression) as archive:
        for name, data in entries.items():
            archive.writestr(name, data)
    return buffer.getvalue()


def make_vsix(platforms: tuple[str, ...] = ("win32", "darwin", "linux")) -> bytes:
    """An installer archive with a compiler build per platform."""
    entries: dict[str, bytes] = {
        "extension/package.json": b'{"name": "al"}',
        "extension.vsixmanifest": b"<PackageManifest/>",
    }
    for pid in platforms:
        exe = "alc.exe" if pid == "win32" else "alc"
        prefix = f"extension/bin/{pid}/"
        entries[prefix + exe] = f"compiler for {pid}".encode()
        entries[prefix + "Microsoft.Dynamics.Nav.CodeAnalysis.dll"] = b"analysis" * 100
        entries[prefix + "runtimes/native/libhelper.so"] = b"native"
    return make_zip(entries)


def make_platform_archive(
    vsix: bytes | None = None, include_vsix: bool = True
) -> bytes:
    """A platform archive with duplicate-named decoys for every target."""
    entries: dict[str, bytes] = {
        "Applications/readme.txt": b"hello" * 50,
        f"Test Assemblies/{CLIENT_DLL}": b"standalone client library" * 40,
        f"ServiceTier/program files/Microsoft Dynamics NAV/270/Service/{CLIENT_DLL}": b"service copy",
        f"Test Assemblies/{INTERACTIONS_DLL}": b"interactions" * 40,
        f"x/{INTERACTIONS_DLL}": b"short decoy",
    }
    if include_vsix:
        entries[
            "ModernDev/program files/Microsoft Dynamics NAV/270/"
            "AL Development Environment/ALLanguage.vsix"
        ] = vsix if vsix is not None else make_vsix()
        entries["x/ALLanguage.vsix"] = b"not an archive"
    return make_zip(entries)


def make_nupkg(package_id: str, payloads: Mapping[str, bytes]) -> bytes:
    entries: dict[str, bytes] = {
        "[Content_Types].xml": b"<Types/>",
        f"{package_id}.nuspec": b"<package/>",
        "_rels/.rels": b"<Relationships/>",
    }
    entries.update(payloads)
    return make_zip(entries)


# ---------------------------------------------------------------------------
# Mock servers
# ---------------------------------------------------------------------------


class ArtifactServer:
    """Mock CDN: release index plus range-capable platform archives."""

    base_url = CDN_BASE
    latest_27_0 = LATEST_27_0

    def __init__(self, archive: bytes, releases: list[dict] | None = None) -> None:
        self.archive = archive
        self.releases = RELEASES if releases is None else releases
        self.supports_ranges = True
        self.ignore_range = False
        self.index_requests = 0
        self.head_requests = 0
        self.range_requests: list[tuple[int, int]] = []
        self._lock = threading.Lock()

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/sandbox/indexes/platform.json":
            with self._lock:
                self.index_requests += 1
            return httpx.Response(200, content=json.dumps(self.releases).encode())
        if not path.startswith("/sandbox/") or not path.endswith("/platform"):
            return httpx.Response(404)

        total = len(self.archive)
        if request.method == "HEAD":
            with self._lock:
                self.head_requests += 1
            headers = {"Content-Length": str(total)}
            if self.supports_ranges:
                headers["Accept-Ranges"] = "bytes"
            return httpx.Response(200, headers=headers)

        range_header = request.headers.get("range")
        if range_header is None or self.ignore_range:
            return httpx.Response(200, content=self.archive)
        start_text, end_text = range_header.removeprefix("bytes=").split("-")
        start, end = int(start_text), min(int(end_text), total - 1)
        with self._lock:
            self.range_requests.append((start, end))
        return httpx.Response(
            206,
            content=self.archive[start : end + 1],
            headers={"Content-Range": f"bytes {start}-{end}/{total}"},
        )

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler), base_url=CDN_BASE)


class FeedServer:
    """Mock NuGet flat-container feeds."""

    feed_a = FEED_A
    feed_b = FEED_B

    def __init__(self) -> None:
        self.packages: dict[tuple[str, str], dict[str, bytes]] = {}
        self.failing: set[str] = set()
        self.requests: list[str] = []
        self._lock = threading.Lock()

    def add(
        self,
        feed: str,
        package_id: str,
        version: str,
        payloads: Mapping[str, bytes] | None = None,
    ) -> None:
        if payloads is None:
            payloads = {f"{package_id}_{version}.app": f"{package_id} {version}".encode()}
        key = (feed, package_id.lower())
        self.packages.setdefault(key, {})[version] = make_nupkg(package_id, payloads)

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        with self._lock:
            self.requests.append(url)
        for feed in (FEED_A, FEED_B):
            if url.startswith(feed + "/"):
                break
        else:
            return httpx.Response(404)
        if feed in self.failing:
            return httpx.Response(500)

        parts = url[len(feed) + 1 :].split("/")
        versions = self.packages.get((feed, parts[0]))
        if versions is None:
            return httpx.Response(404)
        if len(parts) == 2 and parts[1] == "index.json":
            return httpx.Response(200, json={"versions": list(versions)})
        if len(parts) == 3 and parts[1] in versions:
            return httpx.Response(200, content=versions[parts[1]])
        return httpx.Response(404)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def tmp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test artifacts."""
    return tmp_path


@pytest.fixture
def platform_archive() -> bytes:
    return make_platform_archive()


@pytest.fixture
def artifact_server(platform_archive: bytes) -> ArtifactServer:
    return ArtifactServer(platform_archive)


@pytest.fixture
def feed_server() -> FeedServer:
    return FeedServer()


def build_cache(
    server: ArtifactServer, base_path: Path, **kwargs
) -> ArtifactCache:
    """An ArtifactCache wired to *server* with a client of its own."""
    client = server.client()
    index = VersionIndex(client, CDN_BASE)
    fetcher = RangeFetcher(client)
    kwargs.setdefault("platform", "linux")
    return ArtifactCache(base_path, index, fetcher, **kwargs)


@pytest.fixture
def artifact_cache(artifact_server: ArtifactServer, tmp_dir: Path) -> ArtifactCache:
    """Provide an ArtifactCache for the linux compiler in a temp directory."""
    return build_cache(artifact_server, tmp_dir / "cache")


@pytest.fixture
def app_json(tmp_dir: Path) -> Path:
    """An app.json with one partner dependency and a redundant Base Application."""
    manifest = {
        "id": "11111111-2222-3333-4444-555555555555",
        "name": "My App",
        "publisher": "Contoso",
        "version": "1.0.0.0",
        "platform": "27.0.0.0",
        "application": "27.0.38460.0",
        "idRanges": [{"from": 50000, "to": 50099}],
        "dependencies": [
            {
                "id": "437dbf0e-84ff-417a-965d-ed2bb9650972",
                "name": "Base Application",
                "publisher": "Microsoft",
                "version": "27.0.0.0",
            },
            {
                "id": "aaaa0000-0000-0000-0000-000000000001",
                "name": "Shared Library",
                "publisher": "Fabrikam",
                "version": "2.1.0.0",
            },
        ],
    }
    path = tmp_dir / "project" / "app.json"
    path.parent.mkdir(parents=True)
    path.write_text(json.dumps(manifest), encoding="utf-8")
    return path


@pytest.fixture
def zip_factory():
    """Provide the in-memory ZIP builder."""
    return make_zip


@pytest.fixture
def vsix_factory():
    return make_vsix


@pytest.fixture
def platform_archive_factory():
    return make_platform_archive


@pytest.fixture
def server_factory():
    """Build an ArtifactServer around an arbitrary archive."""
    return ArtifactServer


@pytest.fixture
def cache_factory():
    """Build an ArtifactCache (own client) against an ArtifactServer."""
    return build_cache


# ---------------------------------------------------------------------------
# Lock holders in separate processes
# ---------------------------------------------------------------------------

_HOLD_LOCK_SCRIPT = """
import os, sys, time
from pathlib import Path
from bcdev.core.cache_lock import cache_lock

with cache_lock(Path(sys.argv[1])):
    print("locked", flush=True)
    if sys.argv[2] == "crash":
        os._exit(9)
    time.sleep(float(sys.argv[3]))
"""


@pytest.fixture
def lock_holder():
    """Start a child process that takes a cache lock.

    ``mode="crash"`` kills the child with ``os._exit`` while it holds the
    lock; ``mode="hold"`` keeps it for *hold* seconds and exits normally.
    The call returns once the child reports that it owns the lock.
    """
    project_root = str(Path(bcdev.__file__).resolve().parents[1])
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(
        p for p in (project_root, env.get("PYTHONPATH")) if p
    )
    children: list[subprocess.Popen] = []

    def start(lock_path: Path, mode: str = "hold", hold: float = 0.5) -> subprocess.Popen:
        child = subprocess.Popen(
            [sys.executable, "-c", _HOLD_LOCK_SCRIPT, str(lock_path), mode, str(hold)],
            stdout=subprocess.PIPE,
            env=env,
            text=True,
        )
        children.append(child)
        assert child.stdout.readline().strip() == "locked"
        return child

    yield start
    for child in children:
        if child.poll() is None:
            child.kill()
        child.wait(10)
        child.stdout.close()
