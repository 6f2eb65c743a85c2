"""``bcdev artifacts ...``: populate and inspect the artifact cache.

``ensure`` is the only subcommand that touches the network; ``status``,
``path`` and ``verify`` read the local cache only.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from bcdev.cli import runtime
from bcdev.errors import BcdevError
from bcdev.models.manifest import coarse_version_from_manifest
from bcdev.models.results import ArtifactsResult, Failure

console = Console()
err_console = Console(stderr=True)

artifacts_app = typer.Typer(
    help="Populate and inspect the compiler artifact cache.",
    no_args_is_help=True,
)


def ensure_cmd(
    version: str = typer.Argument(
        None,
        help="Coarse version (major.minor). Taken from --app-json when omitted.",
    ),
    app_json: Path = typer.Option(
        None,
        "--app-json",
        help="app.json whose platform version selects the release.",
    ),
) -> None:
    """Download compiler artifacts for a version unless already cached."""
    if not version and app_json is None:
        raise typer.BadParameter("Pass a VERSION or --app-json.")

    cfg = runtime.load_config()
    coarse = (version or "").strip()
    try:
        if not coarse:
            coarse = coarse_version_from_manifest(app_json)
        with runtime.http_client(cfg) as client:
            cache = runtime.build_artifact_cache(cfg, client)
            directory = cache.ensure_ready(coarse, runtime.deadline_for(cfg))
            result = ArtifactsResult(
                success=True,
                version=coarse,
                full_version=cache.full_version(coarse),
                cache_path=str(directory),
                compiler_path=str(cache.compiler_path(coarse)),
            )
    except Exception as exc:
        result = ArtifactsResult(
            success=False, version=coarse, error=Failure.from_exception(exc)
        )

    runtime.emit(result)
    if not result.success:
        raise typer.Exit(code=1)


def status_cmd(
    version: str = typer.Argument(None, help="Show only this version."),
) -> None:
    """List cached versions and whether each is ready."""
    cfg = runtime.load_config()
    with runtime.http_client(cfg) as client:
        cache = runtime.build_artifact_cache(cfg, client)
        try:
            entries = [cache.entry(version)] if version else cache.entries()
        except ValueError as exc:
            err_console.print(f"[bold red]{exc}[/bold red]")
            raise typer.Exit(code=1)

    if not entries:
        console.print(f"[dim]No cached versions in {cache.base_path}[/dim]")
        return

    table = Table(title=f"Artifact cache ({cache.base_path})")
    table.add_column("Version", style="cyan")
    table.add_column("Release", style="green")
    table.add_column("Ready", justify="center")
    table.add_column("Directory")
    for entry in entries:
        ready = "[green]Yes[/green]" if entry.ready else "[yellow]No[/yellow]"
        table.add_row(entry.version, entry.full_version or "-", ready, str(entry.directory))
    console.print(table)


def path_cmd(
    version: str = typer.Argument(..., help="Coarse version (major.minor)."),
    file_name: str = typer.Argument(
        None,
        help="File inside the cache entry; defaults to the compiler executable.",
    ),
) -> None:
    """Print the cached path of a file."""
    cfg = runtime.load_config()
    with runtime.http_client(cfg) as client:
        cache = runtime.build_artifact_cache(cfg, client)
        try:
            path = cache.path_to(version, file_name or cache.compiler_name)
        except (BcdevError, ValueError) as exc:
            err_console.print(f"[bold red]{exc}[/bold red]")
            raise typer.Exit(code=1)
    typer.echo(str(path))


def verify_cmd(
    version: str = typer.Argument(..., help="Coarse version (major.minor)."),
) -> None:
    """Re-hash cached files against the completion marker."""
    cfg = runtime.load_config()
    with runtime.http_client(cfg) as client:
        cache = runtime.build_artifact_cache(cfg, client)
        try:
            problems = cache.verify(version)
        except (BcdevError, ValueError) as exc:
            err_console.print(f"[bold red]{exc}[/bold red]")
            raise typer.Exit(code=1)

    if problems:
        console.print(f"[bold red]Cache entry {version} was modified:[/bold red]")
        for problem in problems:
            console.print(f"  [red]- {problem}[/red]")
        raise typer.Exit(code=1)
    console.print(f"[bold green]Cache entry {version} is intact.[/bold green]")


artifacts_app.command(name="ensure", help="Populate the cache for a version.")(ensure_cmd)
artifacts_app.command(name="status", help="Show cached versions.")(status_cmd)
artifacts_app.command(name="path", help="Print the path of a cached file.")(path_cmd)
artifacts_app.command(name="verify", help="Check cached files for modification.")(verify_cmd)
