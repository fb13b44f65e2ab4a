"""Compare two benchmark reports file by file."""

from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from ..report import diff_reports, load_report
from .utils import format_optional, handle_generic_error


@click.command("compare")
@click.argument("old_report", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("new_report", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--limit", type=int, default=50, help="Maximum rows to show (default: 50, 0 = all)")
def compare(old_report: Path, new_report: Path, limit: int) -> None:
    """Show compressed-size and fidelity changes between OLD_REPORT and NEW_REPORT.

    Files are matched by content (size and SHA-256), not by name.
    """
    console = Console()
    try:
        diff = diff_reports(load_report(old_report), load_report(new_report))
    except (OSError, ValueError) as e:
        handle_generic_error("Report comparison", e)
        return

    if not diff.changes:
        console.print("✅ No size or fidelity changes between the reports")
    else:
        table = Table(title="Changed results", show_header=True, header_style="bold magenta")
        table.add_column("File", style="cyan")
        table.add_column("Variant")
        table.add_column("Size (old → new)", justify="right")
        table.add_column("Δ bytes", justify="right")
        table.add_column("Δ compress ms", justify="right")
        table.add_column("Identical (old → new)", justify="center")

        rows = diff.changes if limit <= 0 else diff.changes[:limit]
        for change in rows:
            table.add_row(
                change.filename,
                change.variant,
                f"{format_optional(change.old_size)} → {format_optional(change.new_size)}",
                format_optional(change.size_delta),
                format_optional(change.compress_ms_delta),
                f"{format_optional(change.old_identical)} → {format_optional(change.new_identical)}",
            )
        console.print(table)
        if len(rows) < len(diff.changes):
            console.print(f"[dim]… {len(diff.changes) - len(rows)} more[/dim]")

    if diff.only_in_old:
        console.print(f"➖ Only in {old_report.name}: {len(diff.only_in_old)} files")
    if diff.only_in_new:
        console.print(f"➕ Only in {new_report.name}: {len(diff.only_in_new)} files")
