"""``codeexec check`` — validate and screen a file without running it."""

from __future__ import annotations

import sys
from pathlib import Path

import click

from codeexec.cli_commands._output import console, print_rejection
from codeexec.config import EngineSettings  # noqa: TC001
from codeexec.engine.models import SupportedLanguage

_LANGUAGES = [lang.value for lang in SupportedLanguage]


@click.command()
@click.argument("source", type=click.Path(exists=True, dir_okay=False))
@click.option("--language", "-l", type=click.Choice(_LANGUAGES), required=True)
@click.pass_obj
def check(settings: EngineSettings, source: str, language: str) -> None:
    """Run the request validator and security screen over SOURCE.

    No container is created.
    """
    from codeexec.config import build_profiles
    from codeexec.engine.errors import SecurityError
    from codeexec.engine.models import ExecutionRequest
    from codeexec.engine.screen import SecurityScreen
    from codeexec.engine.service import CodeExecutionEngine

    engine = CodeExecutionEngine(
        profiles=build_profiles(settings),
        screen=SecurityScreen(extra_patterns=settings.extra_patterns),
    )
    request = ExecutionRequest(code=Path(source).read_text(encoding="utf-8"), language=language)

    try:
        profile, _ = engine.prepare(request)
    except SecurityError as exc:
        print_rejection(exc)
        sys.exit(1)

    console.print(f"[green]Accepted[/green] for {profile.language.value} ({profile.image}).")
