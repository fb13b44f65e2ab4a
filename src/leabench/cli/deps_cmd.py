"""Environment diagnostics: converter, compatibility layer and Lea binaries."""

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..config import DEFAULT_ENGINE_CONFIG, default_variants, parse_variant_spec
from ..error_handling import ConfigurationError
from ..system_tools import (
    check_variant_binaries,
    get_available_tools,
    needs_compat_layer,
)
from .utils import EXIT_MISSING_DEPENDENCY


@click.command("deps")
@click.option(
    "--variant",
    "variant_specs",
    multiple=True,
    help="NAME=COMPRESSOR,DECOMPRESSOR to check instead of the default Lea builds",
)
def deps(variant_specs: tuple[str, ...]) -> None:
    """Check that every external tool a benchmark run needs is installed."""
    console = Console()
    try:
        variants = (
            [parse_variant_spec(spec) for spec in variant_specs]
            if variant_specs
            else default_variants(DEFAULT_ENGINE_CONFIG.BIN_DIR)
        )
    except ConfigurationError as e:
        raise click.BadParameter(str(e)) from e

    tools = get_available_tools(DEFAULT_ENGINE_CONFIG)
    compat_required = needs_compat_layer(variants)

    table = Table(title="📦 External Tools", show_header=True, header_style="bold magenta")
    table.add_column("Tool", style="cyan", no_wrap=True)
    table.add_column("Status", justify="center")
    table.add_column("Details", style="dim")

    converter_ok = tools["graphicsmagick"].available or tools["imagemagick"].available
    for key, info in tools.items():
        if key == "wine" and not compat_required:
            role = "not needed on this platform"
        elif key == "wine":
            role = "required"
        else:
            role = "converter (one of GraphicsMagick/ImageMagick required)"
        status = "[green]✅ Available[/green]" if info.available else "[red]❌ Missing[/red]"
        version = f"v{info.version}, " if info.version else ""
        table.add_row(f"{key} ({info.name})", status, f"{version}{role}")

    binaries = check_variant_binaries(variants)
    for info in binaries:
        status = "[green]✅ Found[/green]" if info.available else "[red]❌ Missing[/red]"
        table.add_row(f"Lea {info.version}", status, info.name)

    console.print(table)

    all_ok = (
        converter_ok
        and (tools["wine"].available or not compat_required)
        and all(info.available for info in binaries)
    )
    if all_ok:
        console.print(Panel("✅ [green]Ready to benchmark.[/green]", title="System Status", border_style="green"))
        return

    console.print(Panel(
        "⚠️  [yellow]Some required tools are missing; 'leabench run' will refuse to start.[/yellow]",
        title="System Status",
        border_style="yellow",
    ))
    raise SystemExit(EXIT_MISSING_DEPENDENCY)
