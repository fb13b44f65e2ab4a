"""Shared utilities for CLI commands."""

import sys

import click
from rich.console import Console
from rich.table import Table

from ..error_handling import ToolchainError
from ..pipeline import RunSummary

# Exit code for a missing external dependency
EXIT_MISSING_DEPENDENCY = 2


def handle_generic_error(command_name: str, error: Exception) -> None:
    """Handle generic command errors with consistent formatting."""
    click.echo(f"❌ {command_name} failed: {error}", err=True)
    sys.exit(1)


def handle_keyboard_interrupt(command_name: str) -> None:
    """Handle keyboard interrupt with consistent formatting."""
    click.echo(f"\n⏹️  {command_name} interrupted by user", err=True)
    sys.exit(130)


def handle_toolchain_error(error: ToolchainError) -> None:
    """Report a missing dependency and exit with code 2."""
    click.echo(f"❌ Error: {error}", err=True)
    tried = error.context.get("tried") or error.context.get("tool")
    if tried:
        click.echo(f"💡 Looked for: {tried}", err=True)
    sys.exit(EXIT_MISSING_DEPENDENCY)


def format_optional(value: object, suffix: str = "") -> str:
    if value is None:
        return "-"
    if isinstance(value, float):
        return f"{value:,.1f}{suffix}"
    return f"{value}{suffix}"


def print_summary(console: Console, summary: RunSummary) -> None:
    """Render the end-of-run summary, including every skipped or failed file."""
    console.print("\n📊 [bold]Benchmark Summary[/bold]")
    console.print(f"   🔎 Discovered: {summary.discovered}")
    console.print(f"   🧬 Unique: {summary.unique} ({summary.duplicates} duplicates)")
    console.print(f"   ♻️  Resumed from previous report: {summary.resumed}")
    console.print(f"   ⏱️  Benchmarked: {summary.benchmarked}")
    console.print(f"   ✅ Round trip identical: {summary.identical}")

    if summary.failures:
        table = Table(title="Skipped / failed files", show_header=True, header_style="bold magenta")
        table.add_column("File", style="cyan")
        table.add_column("Stage", style="yellow")
        table.add_column("Error", style="dim")
        for failure in summary.failures:
            table.add_row(failure.filename, failure.stage, failure.error)
        console.print(table)

    if summary.interrupted:
        console.print("[yellow]⏹️  Run interrupted - report contains finished files only[/yellow]")

    if summary.report_path:
        console.print(f"📁 Report saved to: {summary.report_path}")
    if summary.csv_path:
        console.print(f"📁 CSV saved to: {summary.csv_path}")
