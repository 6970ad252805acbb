"""Shared CLI output formatters."""

from __future__ import annotations

from collections.abc import Iterable

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from codeexec.engine.errors import SecurityError  # noqa: TC001
from codeexec.engine.models import ExecutionResult, LanguageProfile  # noqa: TC001

console = Console()


def print_result(result: ExecutionResult, *, as_json: bool = False) -> None:
    """Pretty-print an execution result."""
    if as_json:
        console.print_json(result.model_dump_json())
        return

    if result.timed_out:
        status = "[yellow]timed out[/yellow]"
    elif result.success:
        status = "[green]success[/green]"
    else:
        status = "[red]failed[/red]"

    console.print(
        f"\n[bold]Result:[/bold] {status}  exit={result.exit_code}  "
        f"time={result.execution_time_ms}ms"
    )
    if result.output:
        console.print(Panel(result.output, title="stdout", title_align="left"))
    if result.error:
        console.print(Panel(result.error, title="stderr", title_align="left", border_style="red"))


def print_rejection(exc: SecurityError) -> None:
    """Explain why a submission was rejected."""
    console.print(f"[red]Rejected:[/red] {exc}")
    for violation in exc.violations:
        console.print(f"  - {violation}")
    if exc.pattern:
        console.print(f"  pattern: {exc.pattern}")


def print_languages_table(profiles: Iterable[LanguageProfile]) -> None:
    """Pretty-print language profiles as a table."""
    table = Table(title="Supported Languages")
    table.add_column("Language", style="cyan")
    table.add_column("Image")
    table.add_column("Memory")
    table.add_column("CPU")
    table.add_column("Timeout")
    table.add_column("User")

    for profile in profiles:
        table.add_row(
            profile.language.value,
            _truncate(profile.image, 40),
            profile.memory_limit,
            str(profile.cpu_limit),
            f"{profile.timeout_ms // 1000}s",
            profile.user,
        )

    console.print(table)


def _truncate(text: str, max_len: int = 80) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."
