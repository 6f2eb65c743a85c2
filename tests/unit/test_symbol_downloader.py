"""Tests for batch symbol download and structured results."""

from __future__ import annotations

from pathlib import Path

import pytest

from bcdev.models.manifest import load_manifest
from bcdev.symbols.downloader import SymbolDownloader
from bcdev.symbols.feed import NuGetFeedClient
from bcdev.symbols.resolver import BASE_APPLICATION_APP_ID

FABRIKAM_ID = "fabrikam.sharedlibrary.symbols.aaaa0000-0000-0000-0000-000000000001"


def _publish_all(server) -> None:
    server.add(server.feed_a, "microsoft.application.symbols", "27.0.38460.0")
    server.add(server.feed_a, "microsoft.platform.symbols", "27.0.0.0")
    server.add(
        server.feed_a, f"microsoft.baseapplication.symbols.{BASE_APPLICATION_APP_ID}", "27.0.38460.0"
    )
    server.add(server.feed_b, FABRIKAM_ID, "2.1.0.0")


def _downloader(server, workers: int = 1) -> SymbolDownloader:
    feed = NuGetFeedClient(server.client(), [server.feed_a, server.feed_b])
    return SymbolDownloader(feed, max_workers=workers)


class TestDownloadAll:
    @pytest.mark.parametrize("workers", [1, 4])
    def test_all_succeed(self, feed_server, app_json: Path, tmp_dir: Path, workers):
        _publish_all(feed_server)
        result = _downloader(feed_server, workers).download_all(
            load_manifest(app_json), tmp_dir / "symbols"
        )
        assert result.success is True
        assert result.failures == []
        assert len(result.downloaded_symbols) == 4
        assert result.downloaded_symbols[0].startswith("microsoft.application.symbols")
        assert result.downloaded_symbols[3].startswith(FABRIKAM_ID)
        for name in result.downloaded_symbols:
            assert (tmp_dir / "symbols" / name).is_file()

    @pytest.mark.parametrize("workers", [1, 3])
    def test_partial_failure(self, feed_server, app_json: Path, tmp_dir: Path, workers):
        feed_server.add(feed_server.feed_a, "microsoft.application.symbols", "27.0.38460.0")
        feed_server.add(feed_server.feed_b, FABRIKAM_ID, "2.1.0.0")

        result = _downloader(feed_server, workers).download_all(
            load_manifest(app_json), tmp_dir / "symbols"
        )

        assert result.success is False
        assert len(result.downloaded_symbols) == 2
        assert [f.symbol for f in result.failures] == [
            "Microsoft_System_27.0.0.0",
            "Microsoft_Base Application_27.0.38460.0",
        ]
        assert {f.code for f in result.failures} == {"PackageNotFound"}

    def test_result_json_is_camel_case(self, feed_server, app_json: Path, tmp_dir: Path):
        result = _downloader(feed_server).download_all(load_manifest(app_json), tmp_dir / "s")
        dumped = result.model_dump(by_alias=True)
        assert set(dumped) == {"success", "outputPath", "downloadedSymbols", "failures"}
        assert set(dumped["failures"][0]) == {"symbol", "error", "code"}


class TestDownloadForManifestFile:
    def test_default_output_beside_manifest(self, feed_server, app_json: Path):
        _publish_all(feed_server)
        result = _downloader(feed_server).download_for_manifest_file(app_json)
        assert result.success is True
        assert Path(result.output_path) == app_json.resolve().parent / ".alpackages"
        assert len(list(Path(result.output_path).glob("*.app"))) == 4

    def test_missing_manifest(self, feed_server, tmp_dir: Path):
        result = _downloader(feed_server).download_for_manifest_file(tmp_dir / "app.json")
        assert result.success is False
        assert len(result.failures) == 1
        assert result.failures[0].symbol == "initialization"
        assert result.failures[0].code == "ManifestError"
        assert feed_server.requests == []
