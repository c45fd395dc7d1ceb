"""
Console output for resolution and cache sweep results.

Provides color-coded console output using Rich library.
"""

import json
from pathlib import Path
from typing import List, Optional

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .dependency import DependencyKind, FetchOutcome
from .dependency_resolver import ResolutionResult


class ResolutionReporter:
    """Formats and displays resolution and sweep results."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def print_resolution_results(self, result: ResolutionResult) -> None:
        """
        Print resolution results in a user-friendly format.

        Args:
            result: The resolution result to display
        """
        self.console.print()
        self._print_header(result)

        if result:
            self._print_summary(result)
            self._print_dependencies(result)
        else:
            self.console.print("✅ No dependencies declared.", style="green")

        self._print_footer(result)

    def _print_header(self, result: ResolutionResult) -> None:
        configuration = result.configuration or "all configurations"
        self.console.print(
            Panel(
                f"📦 Dependencies of {configuration}",
                title="[bold blue]gopath-deps[/bold blue]",
                border_style="blue",
            )
        )

    def _print_summary(self, result: ResolutionResult) -> None:
        table = Table(title="📊 Summary", box=box.ROUNDED, title_style="bold cyan")
        table.add_column("Outcome", style="bold")
        table.add_column("Count", justify="center")

        downloaded = len(result.downloaded)
        if downloaded > 0:
            table.add_row("⬇️  DOWNLOADED", f"[bold green]{downloaded}[/bold green]")
        table.add_row("✅ ALREADY PRESENT", str(len(result.already_present)))

        self.console.print(table)
        self.console.print()

    def _print_dependencies(self, result: ResolutionResult) -> None:
        table = Table(title="Dependencies", box=box.SIMPLE)
        table.add_column("Identifier", style="bold")
        table.add_column("Kind")
        table.add_column("Outcome", justify="center")
        table.add_column("Demanded by", style="dim")

        for dependency, outcome in result.items():
            outcome_color = "green" if outcome == FetchOutcome.DOWNLOADED else "white"
            kind_style = {
                DependencyKind.SOURCE: "cyan",
                DependencyKind.SYSTEM: "dim",
                DependencyKind.UNRESOLVED: "yellow",
            }.get(dependency.kind, "white")

            table.add_row(
                str(dependency),
                f"[{kind_style}]{dependency.kind.value}[/{kind_style}]",
                f"[{outcome_color}]{outcome.value}[/{outcome_color}]",
                dependency.parent or "",
            )

        self.console.print(table)

    def _print_footer(self, result: ResolutionResult) -> None:
        duration_seconds = result.duration_ms / 1000
        self.console.print(
            f"\n[dim]Resolved {len(result)} dependencies in {duration_seconds:.2f} seconds[/dim]"
        )

    def print_resolution_json(self, result: ResolutionResult) -> None:
        """Print resolution results as a JSON document."""
        payload = {
            "configuration": result.configuration,
            "duration_ms": result.duration_ms,
            "dependencies": [
                {
                    "identifier": dependency.identifier,
                    "kind": dependency.kind.value,
                    "outcome": outcome.value,
                    "parent": dependency.parent,
                    "location": str(dependency.location) if dependency.location else None,
                }
                for dependency, outcome in result.items()
            ],
        }
        self.console.print_json(json.dumps(payload))

    def print_sweep_results(self, title: str, deleted: List[Path]) -> None:
        """Print the paths removed by a cache sweep."""
        if not deleted:
            self.console.print(f"✅ {title}: nothing deleted.", style="green")
            return

        body = "\n".join(f"• {path}" for path in deleted)
        self.console.print(
            Panel(
                body,
                title=f"[bold yellow]🧹 {title} ({len(deleted)})[/bold yellow]",
                border_style="yellow",
            )
        )

    def print_error(self, error: Exception) -> None:
        """Print a fatal error."""
        self.console.print(
            Panel(
                str(error),
                title="[bold red]❌ Resolution failed[/bold red]",
                border_style="red",
            )
        )
