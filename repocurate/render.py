"""
Rendering functions for repocurate output.

This module handles all pretty-printing and table formatting.
Services return data, this module makes it human-readable. Everything
goes to stderr so stdout stays free for data.
"""

from typing import Any, Dict, List

from rich import box
from rich.console import Console
from rich.table import Table

from .domain import Diagnostic, RemovalEntry

console = Console(stderr=True)


def render_stage_summary(summary: Dict[str, Any]) -> None:
    """
    Render per-stage statistics of a curation run.

    Args:
        summary: CurationResult.to_dict()
    """
    table = Table(
        title="Curation Summary",
        box=box.ROUNDED,
        show_header=True,
        header_style="bold magenta"
    )
    table.add_column("Stage", style="cyan")
    table.add_column("Removed", justify="right", style="yellow")
    table.add_column("Passes", justify="right", style="dim")
    table.add_column("Time (s)", justify="right", style="dim")

    for stage in summary.get('stages', []):
        passes = stage.get('passes')
        table.add_row(
            stage['stage'],
            str(stage['removed']),
            str(passes) if passes is not None else "",
            f"{stage['seconds']:.3f}",
        )

    console.print(table)

    loaded = summary.get('loaded', 0)
    remaining = summary.get('remaining', 0)
    console.print(f"\n[bold]Records:[/bold] {remaining} of {loaded} kept "
                  f"([green]{summary.get('percent_kept', 0.0):.1f}%[/green])")

    by_reason = summary.get('removed_by_reason', {})
    if by_reason:
        parts = [f"{reason} {count}" for reason, count in by_reason.items()]
        console.print(f"[bold]Removed:[/bold] {', '.join(parts)}")


def render_explanations(entries: List[RemovalEntry]) -> None:
    """Print one explanation line per removed record."""
    for entry in entries:
        console.print(entry.explain(), markup=False, highlight=False, soft_wrap=True)


def render_diagnostics(diagnostics: List[Diagnostic]) -> None:
    """Print non-fatal problems found during the run."""
    if not diagnostics:
        return
    console.print(f"\n[yellow]Diagnostics ({len(diagnostics)}):[/yellow]")
    for diagnostic in diagnostics:
        console.print(f"  [yellow]![/yellow] {diagnostic.kind}: ", end="")
        console.print(f"{diagnostic.subject}: {diagnostic.message}",
                      markup=False, highlight=False, soft_wrap=True)
