"""CLI subcommand registration."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register all subcommands on the CLI group."""
    from codeexec.cli_commands.check import check
    from codeexec.cli_commands.languages import languages
    from codeexec.cli_commands.prune import prune
    from codeexec.cli_commands.run import run

    cli.add_command(run)
    cli.add_command(check)
    cli.add_command(languages)
    cli.add_command(prune)
