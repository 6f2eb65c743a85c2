"""``bcdev resolve VERSION``: print the concrete release for a coarse version."""

from __future__ import annotations

import typer
from rich.console import Console

from bcdev.cli import runtime
from bcdev.core.version_index import VersionIndex
from bcdev.errors import BcdevError

err_console = Console(stderr=True)


def resolve_cmd(
    version: str = typer.Argument(
        ...,
        help="Coarse version (major.minor), e.g. 27.0.",
    ),
    channel: str = typer.Option(
        None,
        "--channel",
        "-c",
        help="Artifact channel; defaults to BCDEV_ARTIFACT_CHANNEL.",
    ),
) -> None:
    """Resolve a coarse version to the most recently published release."""
    cfg = runtime.load_config()
    with runtime.http_client(cfg) as client:
        index = VersionIndex(
            client,
            cfg.cdn_base_url,
            channel or cfg.artifact_channel,
            timeout=cfg.http_timeout_seconds,
        )
        try:
            full_version = index.resolve(version, runtime.deadline_for(cfg))
        except BcdevError as exc:
            err_console.print(f"[bold red]{exc.code}:[/bold red] {exc}")
            raise typer.Exit(code=1)
    typer.echo(full_version)
