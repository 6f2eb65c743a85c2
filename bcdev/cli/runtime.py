"""Wiring shared by the CLI commands: config, HTTP client, core objects."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

import httpx
import typer
from pydantic import BaseModel
from rich.console import Console
from rich.logging import RichHandler

from bcdev import __version__
from bcdev.config import BcdevConfig
from bcdev.core.artifact_cache import ArtifactCache
from bcdev.core.deadline import Deadline
from bcdev.core.range_fetcher import RangeFetcher
from bcdev.core.version_index import VersionIndex
from bcdev.symbols.downloader import SymbolDownloader
from bcdev.symbols.feed import NuGetFeedClient


def load_config() -> BcdevConfig:
    """Fresh settings, so environment changes made after import are honoured."""
    return BcdevConfig()


def configure_logging(level: str) -> None:
    """Route ``bcdev.*`` loggers to a Rich handler on stderr."""
    package_logger = logging.getLogger("bcdev")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
    handler = RichHandler(console=Console(stderr=True), show_path=False)
    handler.setFormatter(logging.Formatter("%(message)s"))
    package_logger.addHandler(handler)
    package_logger.setLevel(level.upper())


@contextmanager
def http_client(cfg: BcdevConfig) -> Iterator[httpx.Client]:
    with httpx.Client(
        timeout=cfg.http_timeout_seconds,
        follow_redirects=True,
        headers={"User-Agent": f"bcdev/{__version__}"},
    ) as client:
        yield client


def deadline_for(cfg: BcdevConfig) -> Deadline:
    return Deadline(cfg.operation_timeout_seconds)


def build_artifact_cache(cfg: BcdevConfig, client: httpx.Client) -> ArtifactCache:
    index = VersionIndex(
        client, cfg.cdn_base_url, cfg.artifact_channel, timeout=cfg.http_timeout_seconds
    )
    fetcher = RangeFetcher(client, timeout=cfg.http_timeout_seconds)
    return ArtifactCache(
        cfg.cache_root,
        index,
        fetcher,
        lock_timeout=cfg.lock_timeout_seconds,
    )


def build_symbol_downloader(
    cfg: BcdevConfig, client: httpx.Client, workers: int | None = None
) -> SymbolDownloader:
    feed = NuGetFeedClient(client, cfg.feeds, timeout=cfg.http_timeout_seconds)
    return SymbolDownloader(feed, max_workers=workers or cfg.symbol_workers)


def emit(result: BaseModel) -> None:
    """Write a structured result to stdout as camelCase JSON."""
    typer.echo(result.model_dump_json(by_alias=True, indent=2))
