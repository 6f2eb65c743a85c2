"""bcdev CLI: Typer-based command-line interface.

Provides the ``bcdev`` command with subcommands for resolving releases,
populating and inspecting the artifact cache, and downloading symbol
packages for an app.

Structured results go to stdout as JSON; progress logging goes to stderr
through Rich.
"""
