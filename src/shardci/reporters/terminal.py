"""Terminal reporter with rich output formatting."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

if TYPE_CHECKING:
    from pathlib import Path

    from shardci.models import TaskSpec, WorkerContext

console = Console()

_SECONDS_PER_MINUTE = 60.0


def _format_duration(seconds: float) -> str:
    """Format a duration in seconds to a human-readable string."""
    if seconds >= _SECONDS_PER_MINUTE:
        return f"{seconds / _SECONDS_PER_MINUTE:.1f}m"
    return f"{seconds:.1f}s"


class CLIReporter:
    """Rich terminal output for worker progress."""

    def __init__(self, output: Console | None = None) -> None:
        """Initialize the CLI reporter."""
        self.console = output or console

    def print_success(self, message: str) -> None:
        """Print a success message."""
        self.console.print(f"[green]✓[/green] {message}")

    def print_error(self, message: str) -> None:
        """Print an error message."""
        self.console.print(f"[red]✗[/red] {message}")

    def print_info(self, message: str) -> None:
        """Print an info message."""
        self.console.print(f"[dim]{message}[/dim]")

    def print_heartbeat(self, line: str) -> None:
        self.console.print(f"[dim]♥ {line}[/dim]", highlight=False)

    def print_worker_banner(self, context: WorkerContext) -> None:
        """Print a styled banner naming this worker."""
        self.console.print()
        self.console.print(
            Panel(
                f"[bold white]shardci[/bold white]  {context.label}",
                border_style="cyan",
                padding=(0, 2),
            )
        )

    def print_step_header(self, description: str) -> None:
        self.console.print(f"\n[bold cyan]▸[/bold cyan] {description}")

    def print_step_done(self, description: str, duration_s: float) -> None:
        """Print step completion with elapsed time."""
        time_str = _format_duration(duration_s)
        self.console.print(f"  [green]✓[/green] {description} [dim]({time_str})[/dim]")

    def print_step_skip(self, description: str) -> None:
        """Print a skipped step."""
        self.console.print(f"  [yellow]⊘[/yellow] {description} [dim](skipped)[/dim]")

    def print_artifact(self, label: str, path: Path) -> None:
        self.console.print(f"  [dim]{label}:[/dim] {path}", highlight=False)

    def print_shard_table(
        self,
        context: WorkerContext,
        tests: list[str],
        total_discovered: int,
    ) -> None:
        """Print the tests assigned to this worker."""
        table = Table(
            title=f"Shard {context.index}/{context.total}: "
            f"{len(tests)} of {total_discovered} test files",
            show_lines=False,
        )
        table.add_column("#", justify="right", style="dim")
        table.add_column("Test file")
        for position, rel_path in enumerate(tests, start=1):
            table.add_row(str(position), rel_path)
        self.console.print(table)

    def print_task_table(
        self,
        context: WorkerContext,
        assignment: dict[int, list[TaskSpec]],
    ) -> None:
        """Print which worker runs which pre-test task."""
        table = Table(title=f"Task assignment across {context.total} workers")
        table.add_column("Worker", justify="right")
        table.add_column("Tasks")
        for index, tasks in assignment.items():
            marker = " [cyan](this worker)[/cyan]" if index == context.index else ""
            names = ", ".join(t.name for t in tasks) or "[dim]none[/dim]"
            table.add_row(f"{index}{marker}", names)
        self.console.print(table)


reporter = CLIReporter()
