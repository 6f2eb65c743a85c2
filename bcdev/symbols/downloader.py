"""Batch symbol download with per-symbol failure collection.

One failed dependency never aborts the others. The result's ``success``
flag is the conjunction of all individual outcomes, and result order
follows request order even when downloads run in parallel.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from bcdev.core.deadline import Deadline
from bcdev.errors import error_code
from bcdev.models.manifest import AppManifest, load_manifest
from bcdev.models.symbols import SymbolFailure, SymbolRequest, SymbolsResult
from bcdev.symbols.feed import NuGetFeedClient
from bcdev.symbols.resolver import NO_COUNTRY, symbols_for

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_DIRNAME = ".alpackages"


class SymbolDownloader:
    """Downloads every symbol an app manifest needs.

    Parameters
    ----------
    feed_client:
        Resolves and fetches individual packages.
    max_workers:
        Number of concurrent downloads; 1 runs them sequentially.
    """

    def __init__(self, feed_client: NuGetFeedClient, *, max_workers: int = 1) -> None:
        self._feed = feed_client
        self._max_workers = max(1, max_workers)

    def download_all(
        self,
        manifest: AppManifest,
        output_dir: Path,
        country: str = NO_COUNTRY,
        deadline: Deadline | None = None,
    ) -> SymbolsResult:
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        requests = symbols_for(manifest)
        logger.info("Downloading %d symbol packages to %s", len(requests), output_dir)

        def run(request: SymbolRequest) -> str | SymbolFailure:
            try:
                return self._feed.fetch_symbol(request, output_dir, country, deadline)
            except Exception as exc:
                logger.error("Failed to download %s: %s", request.display_name, exc)
                return SymbolFailure(
                    symbol=request.display_name, error=str(exc), code=error_code(exc)
                )

        if self._max_workers == 1:
            outcomes = [run(r) for r in requests]
        else:
            with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
                outcomes = list(pool.map(run, requests))

        downloaded = [o for o in outcomes if isinstance(o, str)]
        failures = [o for o in outcomes if isinstance(o, SymbolFailure)]
        return SymbolsResult(
            success=not failures,
            output_path=str(output_dir),
            downloaded_symbols=downloaded,
            failures=failures,
        )

    def download_for_manifest_file(
        self,
        app_json: Path,
        output_dir: Path | None = None,
        country: str = NO_COUNTRY,
        deadline: Deadline | None = None,
    ) -> SymbolsResult:
        """Load ``app.json`` and download its symbols.

        Defaults the output to ``.alpackages`` beside the manifest. Manifest
        errors are reported as an ``initialization`` failure.
        """
        app_json = Path(app_json)
        try:
            manifest = load_manifest(app_json)
        except Exception as exc:
            return SymbolsResult(
                success=False,
                output_path=str(output_dir) if output_dir else "",
                failures=[
                    SymbolFailure(symbol="initialization", error=str(exc), code=error_code(exc))
                ],
            )
        target = output_dir or app_json.resolve().parent / DEFAULT_OUTPUT_DIRNAME
        return self.download_all(manifest, target, country, deadline)
