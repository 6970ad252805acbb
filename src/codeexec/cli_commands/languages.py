"""``codeexec languages`` — list language profiles."""

from __future__ import annotations

import click

from codeexec.cli_commands._output import print_languages_table
from codeexec.config import EngineSettings  # noqa: TC001


@click.command()
@click.pass_obj
def languages(settings: EngineSettings) -> None:
    """Show the supported languages and their sandbox limits."""
    from codeexec.config import build_profiles

    print_languages_table(build_profiles(settings).values())
