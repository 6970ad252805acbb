"""``codeexec run`` — execute a source file in a sandbox."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import click

from codeexec.cli_commands._output import console, print_rejection, print_result
from codeexec.config import EngineSettings  # noqa: TC001
from codeexec.engine.models import SupportedLanguage

_LANGUAGES = [lang.value for lang in SupportedLanguage]


@click.command()
@click.argument("source", type=click.Path(exists=True, dir_okay=False))
@click.option("--language", "-l", type=click.Choice(_LANGUAGES), required=True)
@click.option(
    "--input-file",
    "-i",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="File whose contents become the program's stdin.",
)
@click.option("--timeout-ms", type=int, default=None, help="Override the language timeout.")
@click.option("--memory", default=None, help="Tighter memory cap, e.g. '64m'.")
@click.option("--cpus", type=float, default=None, help="Tighter CPU share, e.g. 0.25.")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON.")
@click.option("--telemetry", is_flag=True, help="Export a trace of the run.")
@click.pass_obj
def run(
    settings: EngineSettings,
    source: str,
    language: str,
    input_file: str | None,
    timeout_ms: int | None,
    memory: str | None,
    cpus: float | None,
    as_json: bool,
    telemetry: bool,
) -> None:
    """Execute SOURCE and exit with the program's exit code."""
    from codeexec.engine.errors import CodeExecutionError, SecurityError
    from codeexec.engine.models import ExecutionRequest, ExecutionResult
    from codeexec.engine.service import CodeExecutionEngine
    from codeexec.utils.telemetry import configure_telemetry

    request = ExecutionRequest(
        code=Path(source).read_text(encoding="utf-8"),
        language=language,
        input=Path(input_file).read_text(encoding="utf-8") if input_file else None,
        timeout_ms=timeout_ms,
        memory_limit=memory,
        cpu_limit=cpus,
    )

    tel = settings.telemetry
    if telemetry or (tel and tel.enabled):
        configure_telemetry(otlp_endpoint=tel.otlp_endpoint if tel else None)

    async def _execute() -> ExecutionResult:
        async with CodeExecutionEngine.from_settings(settings) as engine:
            return await engine.execute_code(request)

    try:
        result = asyncio.run(_execute())
    except SecurityError as exc:
        print_rejection(exc)
        sys.exit(1)
    except CodeExecutionError as exc:
        console.print(f"[red]Execution error:[/red] {exc}")
        sys.exit(1)

    print_result(result, as_json=as_json)
    if result.exit_code != 0:
        sys.exit(result.exit_code)
