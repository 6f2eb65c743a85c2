"""``bcdev symbols``: download the symbol packages an app depends on.

Prints a ``SymbolsResult`` JSON document. Exits 1 unless every symbol
was downloaded.
"""

from __future__ import annotations

from pathlib import Path

import typer

from bcdev.cli import runtime


def symbols_cmd(
    app_json: Path = typer.Option(
        Path("app.json"),
        "--app-json",
        help="Path to the app manifest.",
    ),
    package_cache_path: Path = typer.Option(
        None,
        "--package-cache-path",
        help="Output directory; defaults to .alpackages beside app.json.",
    ),
    country: str = typer.Option(
        None,
        "--country",
        help="Localization (e.g. us, de); defaults to BCDEV_DEFAULT_COUNTRY.",
    ),
    workers: int = typer.Option(
        None,
        "--workers",
        min=1,
        help="Parallel downloads; defaults to BCDEV_SYMBOL_WORKERS.",
    ),
) -> None:
    """Download Application, System, Base Application and dependency symbols."""
    cfg = runtime.load_config()
    with runtime.http_client(cfg) as client:
        downloader = runtime.build_symbol_downloader(cfg, client, workers)
        result = downloader.download_for_manifest_file(
            app_json,
            package_cache_path,
            country or cfg.default_country,
            runtime.deadline_for(cfg),
        )

    runtime.emit(result)
    if not result.success:
        raise typer.Exit(code=1)
