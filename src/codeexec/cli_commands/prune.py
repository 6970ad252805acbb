"""``codeexec prune`` — remove sandbox containers left behind by a crash."""

from __future__ import annotations

import asyncio
import sys

import click

from codeexec.cli_commands._output import console
from codeexec.config import EngineSettings  # noqa: TC001


@click.command()
@click.pass_obj
def prune(settings: EngineSettings) -> None:
    """Remove every container carrying the codeexec label."""
    from codeexec.engine.errors import CodeExecutionError
    from codeexec.engine.service import CodeExecutionEngine

    engine = CodeExecutionEngine.from_settings(settings)

    try:
        removed = asyncio.run(engine.prune_orphans())
    except CodeExecutionError as exc:
        console.print(f"[red]Prune error:[/red] {exc}")
        sys.exit(1)

    if not removed:
        console.print("[yellow]No orphaned sandboxes found.[/yellow]")
        return

    for name in removed:
        console.print(f"  removed {name}")
    console.print(f"[green]Removed {len(removed)} container(s).[/green]")
