"""Benchmark every image under a directory with each Lea variant."""

from pathlib import Path

import click
from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn

from ..config import (
    DEFAULT_ENGINE_CONFIG,
    BenchmarkConfig,
    PathConfig,
    default_variants,
    parse_variant_spec,
)
from ..error_handling import ConfigurationError, ToolchainError
from ..external_engines.converter import converter_from_config
from ..io import setup_logging
from ..pipeline import BenchmarkPipeline
from ..system_tools import verify_environment
from .utils import (
    handle_generic_error,
    handle_keyboard_interrupt,
    handle_toolchain_error,
    print_summary,
)

_STAGE_LABELS = {
    "materialize": "Copying to testbed",
    "normalize": "Converting to PPM",
    "benchmark": "Benchmarking",
}


@click.command()
@click.argument(
    "root",
    type=click.Path(file_okay=False, dir_okay=True, path_type=Path),
    default=Path("."),
    required=False,
)
@click.option(
    "--work-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path("data"),
    help="Directory for testbed copies and intermediate files (default: data)",
)
@click.option(
    "--report",
    type=click.Path(dir_okay=False, path_type=Path),
    default=Path("results.json"),
    help="JSON report path (default: results.json)",
)
@click.option(
    "--csv",
    "csv_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Also write a flat CSV report",
)
@click.option("--repeats", "-k", type=int, default=3, help="Runs per operation; the fastest is kept (default: 3)")
@click.option("--timeout", type=float, default=60.0, help="Seconds before an invocation is killed (default: 60)")
@click.option("--workers", "-j", type=int, default=1, help="Threads for hashing and conversion (default: 1)")
@click.option(
    "--variant",
    "variant_specs",
    multiple=True,
    help="NAME=COMPRESSOR,DECOMPRESSOR; repeat for each version, baseline first "
    "(default: 0.4 and 0.5 from bin/)",
)
@click.option("--resume/--no-resume", default=True, help="Skip files already in the report (default: true)")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    help="Console and file log level (default: WARNING)",
)
def run(
    root: Path,
    work_dir: Path,
    report: Path,
    csv_path: Path | None,
    repeats: int,
    timeout: float,
    workers: int,
    variant_specs: tuple[str, ...],
    resume: bool,
    log_level: str,
) -> None:
    """Benchmark the Lea variants on every image under ROOT (default: current directory).

    Images are deduplicated by content, converted to PPM and then compressed
    and decompressed with each variant. The first variant is the baseline:
    every diff in the report is (other variant - baseline).
    """
    console = Console()
    try:
        try:
            benchmark_config = BenchmarkConfig(
                REPEATS=repeats, TIMEOUT_SECONDS=timeout, WORKERS=workers, RESUME=resume
            )
            variants = (
                [parse_variant_spec(spec) for spec in variant_specs]
                if variant_specs
                else default_variants(DEFAULT_ENGINE_CONFIG.BIN_DIR)
            )
        except ConfigurationError as e:
            raise click.BadParameter(str(e)) from e

        path_config = PathConfig(WORK_DIR=work_dir, REPORT_PATH=report, LOGS_DIR=work_dir / "logs")
        setup_logging(path_config.LOGS_DIR, log_level)

        try:
            verify_environment(DEFAULT_ENGINE_CONFIG, variants)
            converter = converter_from_config(DEFAULT_ENGINE_CONFIG, timeout=timeout)
        except ToolchainError as e:
            handle_toolchain_error(e)
            return

        console.print("🧪 [bold]LeaBench[/bold]")
        console.print(f"📁 Input directory: {root}")
        console.print(f"🔁 Variants: {', '.join(v.name for v in variants)} (baseline: {variants[0].name})")
        console.print(f"⏱️  Repeats: {repeats}, timeout: {timeout:g}s")

        with Progress(
            TextColumn("{task.description:>22}"),
            BarColumn(bar_width=50),
            MofNCompleteColumn(),
            TextColumn("[dim]{task.fields[filename]}"),
            console=console,
            transient=False,
        ) as progress:
            tasks: dict[str, int] = {}

            def on_progress(stage: str, done: int, total: int, filename: str) -> None:
                if stage not in tasks:
                    tasks[stage] = progress.add_task(
                        _STAGE_LABELS.get(stage, stage), total=total, filename=""
                    )
                progress.update(tasks[stage], completed=done, total=total, filename=filename)

            pipeline = BenchmarkPipeline(
                variants=variants,
                converter=converter,
                benchmark_config=benchmark_config,
                path_config=path_config,
                engine_config=DEFAULT_ENGINE_CONFIG,
                progress=on_progress,
            )
            summary = pipeline.run(root, report_path=report, csv_path=csv_path)

        print_summary(console, summary)

    except KeyboardInterrupt:
        handle_keyboard_interrupt("Benchmark")
    except click.ClickException:
        raise
    except Exception as e:
        handle_generic_error("Benchmark", e)
