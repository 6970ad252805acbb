"""codeexec CLI entrypoint."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler

from codeexec import __version__


def configure_logging(level: str) -> None:
    """Route library logging through rich on stderr."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@click.group()
@click.version_option(version=__version__, prog_name="codeexec")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Engine settings YAML (defaults to $CODEEXEC_CONFIG).",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """codeexec — sandboxed code execution."""
    from codeexec.cli_commands._output import console
    from codeexec.config import EngineSettings, SettingsLoader
    from codeexec.engine.errors import ConfigError

    loader = SettingsLoader(Path(config_path)) if config_path else SettingsLoader.from_env()
    try:
        settings = loader.load() if loader else EngineSettings()
    except ConfigError as exc:
        console.print(f"[red]Configuration error:[/red] {exc}")
        sys.exit(1)

    configure_logging("DEBUG" if verbose else settings.log_level)
    ctx.obj = settings


# Register subcommands
from codeexec.cli_commands import register_commands  # noqa: E402

register_commands(main)

if __name__ == "__main__":
    main()
