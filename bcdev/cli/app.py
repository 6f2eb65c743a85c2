"""Main Typer application: imports and registers all CLI commands.

Entry point: ``bcdev`` (configured via pyproject.toml project.scripts).

Commands: resolve, artifacts (ensure, status, path, verify), symbols.
"""

from __future__ import annotations

import typer

from bcdev.cli import runtime
from bcdev.cli.commands.artifacts import artifacts_app
from bcdev.cli.commands.resolve import resolve_cmd
from bcdev.cli.commands.symbols import symbols_cmd

app = typer.Typer(
    name="bcdev",
    help="bcdev: Business Central compiler artifacts and symbol packages.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)


@app.callback()
def main_callback(
    log_level: str = typer.Option(
        None,
        "--log-level",
        help="Logging level for progress output on stderr (default: BCDEV_LOG_LEVEL).",
    ),
) -> None:
    """Configure logging before any command runs."""
    runtime.configure_logging(log_level or runtime.load_config().log_level)


# Register subcommands
app.command(name="resolve", help="Resolve a coarse version to a concrete release.")(resolve_cmd)
app.command(name="symbols", help="Download symbol packages for an app.")(symbols_cmd)
app.add_typer(artifacts_app, name="artifacts")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
