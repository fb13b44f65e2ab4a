"""Benchmark pipeline orchestrator with resume and graceful shutdown."""

from __future__ import annotations

import logging
import signal
import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .aggregate import aggregate_record
from .collect import collect_files, deduplicate
from .config import BenchmarkConfig, EngineConfig, PathConfig, VariantConfig
from .error_handling import clean_error_message
from .external_engines.lea import LeaVariant, build_variants
from .io import ensure_directories, run_lock
from .normalize import Converter, apply_normalization, normalize_record
from .records import DedupKey, FileRecord, Stage
from .report import load_report, write_csv_report, write_report
from .runner import BenchmarkRunner
from .testbed import materialize

logger = logging.getLogger(__name__)

# Called as progress(stage, completed, total, filename)
ProgressCallback = Callable[[str, int, int, str], None]


@dataclass
class FailedFile:
    filename: str
    stage: str
    error: str


@dataclass
class RunSummary:
    """Counts and failures of a pipeline run, shown to the user at the end."""

    discovered: int = 0
    unique: int = 0
    duplicates: int = 0
    resumed: int = 0
    benchmarked: int = 0
    identical: int = 0
    interrupted: bool = False
    report_path: Path | None = None
    csv_path: Path | None = None
    failures: list[FailedFile] = field(default_factory=list)

    @property
    def status(self) -> str:
        if self.interrupted:
            return "interrupted"
        if self.discovered == 0:
            return "no_files"
        return "completed"

    def as_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "discovered": self.discovered,
            "unique": self.unique,
            "duplicates": self.duplicates,
            "resumed": self.resumed,
            "benchmarked": self.benchmarked,
            "identical": self.identical,
            "failed": len(self.failures),
            "report_path": str(self.report_path) if self.report_path else None,
        }


class BenchmarkPipeline:
    """Runs collection, normalization and the per-variant benchmarks for a corpus."""

    def __init__(
        self,
        variants: list[VariantConfig],
        converter: Converter,
        benchmark_config: BenchmarkConfig | None = None,
        path_config: PathConfig | None = None,
        engine_config: EngineConfig | None = None,
        runner: BenchmarkRunner | None = None,
        progress: ProgressCallback | None = None,
        install_signal_handlers: bool = True,
    ):
        """Initialize the benchmark pipeline.

        Args:
            variants: Variants to benchmark; the first is the comparison baseline
            converter: Image converter used by the normalizer
            benchmark_config: Repeats, timeout, workers and resume settings
            path_config: Working directory and report locations
            engine_config: External tool paths (wine launcher)
            runner: Pre-built runner (defaults to one built from benchmark_config)
            progress: Optional callback for progress display
            install_signal_handlers: Turn SIGINT/SIGTERM into a graceful stop
        """
        if not variants:
            raise ValueError("At least one variant is required")
        names = [v.name for v in variants]
        if len(set(names)) != len(names):
            raise ValueError(f"Variant names must be unique, got {names}")

        self.benchmark_config = benchmark_config or BenchmarkConfig()
        self.path_config = path_config or PathConfig()
        self.variants: list[LeaVariant] = build_variants(variants, engine_config)
        self.variant_names = names
        self.converter = converter
        self.runner = runner or BenchmarkRunner(
            repeats=self.benchmark_config.REPEATS,
            timeout=self.benchmark_config.TIMEOUT_SECONDS,
            verify_determinism=self.benchmark_config.VERIFY_DETERMINISM,
        )
        self.progress = progress

        self.records: dict[DedupKey, FileRecord] = {}
        self._shutdown = threading.Event()
        self._install_signal_handlers = install_signal_handlers

    def _setup_signal_handlers(self) -> dict[int, Any]:
        """Setup signal handlers for graceful shutdown.

        Returns:
            The handlers that were replaced, keyed by signal number
        """
        def signal_handler(signum, frame):
            logger.info(f"Received signal {signum}, stopping after the current step...")
            self._shutdown.set()

        previous: dict[int, Any] = {}
        if threading.current_thread() is threading.main_thread():
            for signum in (signal.SIGINT, signal.SIGTERM):
                previous[signum] = signal.signal(signum, signal_handler)
        return previous

    @staticmethod
    def _restore_signal_handlers(previous: dict[int, Any]) -> None:
        for signum, handler in previous.items():
            # None means the handler was not installed from Python
            signal.signal(signum, handler if handler is not None else signal.SIG_DFL)

    def request_shutdown(self) -> None:
        self._shutdown.set()

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown.is_set()

    def _report_progress(self, stage: str, done: int, total: int, filename: str) -> None:
        if self.progress is not None:
            self.progress(stage, done, total, filename)

    # ------------------------------------------------------------------
    # Resume
    # ------------------------------------------------------------------

    def load_previous_records(self, report_path: Path) -> dict[DedupKey, FileRecord]:
        """Return fully aggregated records from a previous report with the same variants."""
        if not self.benchmark_config.RESUME or not report_path.exists():
            return {}

        try:
            document = load_report(report_path)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring previous report {report_path}: {e}")
            return {}

        if document.variants != self.variant_names:
            logger.info(
                f"Previous report used variants {document.variants}, "
                f"not {self.variant_names}; starting fresh"
            )
            return {}

        done = {
            r.key: r
            for r in document.records
            if r.stage is Stage.AGGREGATED and r.has_all_variants(self.variant_names)
        }
        logger.info(f"Loaded {len(done)} completed records from {report_path}")
        return done

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _fail(self, record: FileRecord, stage: str, error: object, summary: RunSummary) -> None:
        message = clean_error_message(error)
        record.mark_failed(stage, message)
        summary.failures.append(FailedFile(record.filename, stage, message))
        logger.warning(f"{record.filename} excluded at {stage}: {message}")

    def materialize_all(self, pending: list[FileRecord], summary: RunSummary) -> list[FileRecord]:
        # Resumed records keep their names; they are the only finalized ones so far
        claimed = {r.filename for r in self.records.values() if r.finalized}
        ready = []
        for i, record in enumerate(pending, 1):
            try:
                materialize(record, self.path_config.IMG_DIR, claimed)
                ready.append(record)
            except OSError as e:
                self._fail(record, "materialize", e, summary)
            self._report_progress("materialize", i, len(pending), record.filename)
        return ready

    def normalize_all(self, pending: list[FileRecord], summary: RunSummary) -> list[FileRecord]:
        """Normalize *pending* records, in parallel when WORKERS > 1.

        Outcomes are applied on this thread, one file at a time, after that
        file's conversion has finished.
        """
        ppm_dir = self.path_config.PPM_DIR
        canonical = self.benchmark_config.CANONICAL_EXTENSIONS
        workers = self.benchmark_config.WORKERS
        total = len(pending)

        def _apply(record: FileRecord, outcome, done: int) -> None:
            apply_normalization(record, outcome)
            if record.failed:
                summary.failures.append(
                    FailedFile(record.filename, "normalize", clean_error_message(record.error))
                )
            self._report_progress("normalize", done, total, record.filename)

        if workers <= 1:
            for i, record in enumerate(pending, 1):
                if self.shutdown_requested:
                    break
                _apply(record, normalize_record(record, ppm_dir, self.converter, canonical), i)
        else:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                futures = {
                    executor.submit(normalize_record, r, ppm_dir, self.converter, canonical): r
                    for r in pending
                }
                for i, future in enumerate(as_completed(futures), 1):
                    _apply(futures[future], future.result(), i)
                    if self.shutdown_requested:
                        for f in futures:
                            f.cancel()
                        break

        return [r for r in pending if r.stage is Stage.NORMALIZED]

    def benchmark_record(self, record: FileRecord) -> bool:
        """Run every variant for *record*, then aggregate it.

        Returns:
            False if a shutdown request interrupted the record before it was finalized
        """
        for variant in self.variants:
            if self.shutdown_requested:
                return False
            result = self.runner.benchmark_variant(
                record,
                variant,
                self.path_config.COMPRESSED_DIR,
                self.path_config.RESTORED_DIR,
            )
            if self.shutdown_requested:
                # The variant may have been cut short; retry the whole file on resume
                return False
            record.add_variant_result(result)

        aggregate_record(record, self.variant_names)
        return True

    def _finalized(self) -> list[FileRecord]:
        return [r for r in self.records.values() if r.finalized]

    def _flush(self, report_path: Path) -> None:
        write_report(self._finalized(), report_path, self.variant_names)

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------

    def run(
        self,
        root: Path,
        report_path: Path | None = None,
        csv_path: Path | None = None,
    ) -> RunSummary:
        """Run the complete benchmark over the images under *root*.

        The report is rewritten after every finalized file, so an interrupted
        run leaves a valid report containing exactly the finished records.

        Raises:
            OSError: If *root* cannot be scanned or the report cannot be written
            RunLockedError: If another run owns the working directory
        """
        report_path = report_path or self.path_config.REPORT_PATH
        summary = RunSummary(report_path=report_path, csv_path=csv_path)

        previous_handlers = self._setup_signal_handlers() if self._install_signal_handlers else {}
        try:
            self._run(root, report_path, csv_path, summary)
        finally:
            self._restore_signal_handlers(previous_handlers)

        logger.info(f"Benchmark finished: {summary.as_dict()}")
        return summary

    def _run(self, root: Path, report_path: Path, csv_path: Path | None, summary: RunSummary) -> None:
        ensure_directories(*self.path_config.all_dirs())
        with run_lock(self.path_config.LOCK_PATH):
            logger.info(f"Starting benchmark: {root} -> {report_path}")

            paths = collect_files(root, self.benchmark_config.SUPPORTED_EXTENSIONS)
            summary.discovered = len(paths)
            if not paths:
                logger.warning(f"No image files found in {root}")
                self._flush(report_path)
                return

            dedup = deduplicate(paths, workers=self.benchmark_config.WORKERS)
            summary.unique = len(dedup.records)
            summary.duplicates = len(dedup.duplicates)
            summary.failures.extend(
                FailedFile(path.name, "collect", "file could not be read")
                for path in dedup.unreadable
            )

            previous = self.load_previous_records(report_path)
            pending: list[FileRecord] = []
            for key, record in dedup.records.items():
                if key in previous:
                    self.records[key] = previous[key]
                    summary.resumed += 1
                else:
                    self.records[key] = record
                    pending.append(record)

            if summary.resumed:
                logger.info(f"Skipping {summary.resumed} already benchmarked files")

            ready = self.materialize_all(pending, summary)
            if not self.shutdown_requested:
                ready = self.normalize_all(ready, summary)
            self._flush(report_path)

            for i, record in enumerate(ready, 1):
                if self.shutdown_requested:
                    break
                self._report_progress("benchmark", i - 1, len(ready), record.filename)
                if not self.benchmark_record(record):
                    break

                summary.benchmarked += 1
                if record.is_identical:
                    summary.identical += 1
                for name, result in record.variants.items():
                    if result.error:
                        summary.failures.append(
                            FailedFile(record.filename, f"benchmark [{name}]", result.error)
                        )
                self._flush(report_path)
                logger.info(
                    f"Benchmarked {i}/{len(ready)}: {record.filename} "
                    f"(identical={record.is_identical})"
                )
                self._report_progress("benchmark", i, len(ready), record.filename)

            summary.interrupted = self.shutdown_requested
            if summary.interrupted:
                logger.info("Run interrupted; report contains the finished records only")

            self._flush(report_path)
            if csv_path is not None:
                write_csv_report(self._finalized(), csv_path, self.variant_names)
