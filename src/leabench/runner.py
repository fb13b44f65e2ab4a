"""Timed compress/decompress runs for one file under one Lea variant.

Every operation is invoked ``repeats`` times in sequence and the fastest
successful wall-clock time is reported (min-of-k), which filters out
scheduling noise and cold-cache effects. Invocations are never run
concurrently, so the timings don't contend with each other.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

from .error_handling import (
    NonDeterministicOutputError,
    ToolInvocationError,
    clean_error_message,
)
from .external_engines.common import CommandResult, run_command
from .external_engines.lea import LeaVariant
from .meta import compute_file_sha256
from .records import FileRecord, Stage, VariantResult

logger = logging.getLogger(__name__)

CommandRunner = Callable[..., CommandResult]


@dataclass
class TimingResult:
    """All attempts of one repeated invocation."""

    samples_ms: list[float] = field(default_factory=list)
    failures: list[CommandResult] = field(default_factory=list)

    @property
    def best_ms(self) -> float | None:
        return select_best_time(self.samples_ms)

    @property
    def last_failure(self) -> str:
        if not self.failures:
            return ""
        return self.failures[-1].describe_failure()


def select_best_time(samples_ms: list[float]) -> float | None:
    """Return the minimum of the successful samples, or None if there are none."""
    if not samples_ms:
        return None
    return min(samples_ms)


def compute_speed_bps(size_bytes: int | None, time_ms: float | None) -> float | None:
    """Bytes per second for *size_bytes* processed in *time_ms*.

    Returns None (instead of dividing by zero) for a missing or non-positive time.
    """
    if size_bytes is None or time_ms is None or time_ms <= 0:
        return None
    return size_bytes / (time_ms / 1000)


def _round_ms(value: float | None) -> float | None:
    return None if value is None else round(value, 3)


def _sha_or_none(path: Path) -> str | None:
    try:
        return compute_file_sha256(path)
    except OSError:
        return None


class BenchmarkRunner:
    """Drives the external Lea binaries for a normalized :class:`FileRecord`."""

    def __init__(
        self,
        repeats: int = 3,
        timeout: float | None = 60.0,
        verify_determinism: bool = True,
        command_runner: CommandRunner = run_command,
    ):
        """Initialize the runner.

        Args:
            repeats: Invocations per operation (k in min-of-k)
            timeout: Per-invocation timeout in seconds
            verify_determinism: Fail the variant if compressed artifacts differ between runs
            command_runner: Callable with the :func:`run_command` signature
        """
        if repeats < 1:
            raise ValueError(f"repeats must be at least 1, got {repeats}")
        self.repeats = repeats
        self.timeout = timeout
        self.verify_determinism = verify_determinism
        self._run = command_runner

    def time_command(
        self,
        cmd: list[str],
        *,
        env: Mapping[str, str] | None = None,
        on_success: Callable[[], None] | None = None,
        label: str = "command",
    ) -> TimingResult:
        """Run *cmd* ``repeats`` times and collect the successful wall-clock times.

        *on_success* runs after each successful invocation, outside the timed
        window. It may raise :class:`ToolInvocationError` to abort the series.
        """
        timing = TimingResult()
        for attempt in range(1, self.repeats + 1):
            result = self._run(cmd, timeout=self.timeout, env=env)
            if result.ok:
                timing.samples_ms.append(round(result.elapsed_ms, 3))
                if on_success is not None:
                    on_success()
            else:
                timing.failures.append(result)
                logger.warning(
                    f"{label} attempt {attempt}/{self.repeats} failed: {result.describe_failure()}"
                )
        return timing

    def benchmark_variant(
        self,
        record: FileRecord,
        variant: LeaVariant,
        compressed_dir: Path,
        restored_dir: Path,
    ) -> VariantResult:
        """Compress, decompress and verify *record* with *variant*.

        Failures are recorded on the returned result (``error`` and ``None``
        measurements) instead of being raised, so one bad file or binary
        never stops the run.
        """
        if record.stage is not Stage.NORMALIZED or record.normalized_path is None:
            raise ValueError(f"{record.filename} must be normalized before benchmarking")

        result = VariantResult(variant=variant.name)
        try:
            self._run_variant(record, variant, compressed_dir, restored_dir, result)
        except ToolInvocationError as e:
            level = logging.ERROR if isinstance(e, NonDeterministicOutputError) else logging.WARNING
            logger.log(level, f"{record.filename} [{variant.name}]: {e}")
            result.error = clean_error_message(e)
            result.is_identical = False
        return result

    def _run_variant(
        self,
        record: FileRecord,
        variant: LeaVariant,
        compressed_dir: Path,
        restored_dir: Path,
        result: VariantResult,
    ) -> None:
        source = record.normalized_path
        compressed = variant.compressed_path(compressed_dir, record.filename)
        restored = variant.restored_path(restored_dir, record.filename)
        for path in (compressed, restored):
            path.parent.mkdir(parents=True, exist_ok=True)
            path.unlink(missing_ok=True)

        # 1-2. Compress k times, fingerprinting the artifact after every success
        artifacts: list[tuple[int, str]] = []

        def _fingerprint() -> None:
            try:
                artifacts.append((compressed.stat().st_size, compute_file_sha256(compressed)))
            except OSError as e:
                raise ToolInvocationError(
                    f"compressor exited 0 but produced no readable output: {e}"
                ) from e
            if self.verify_determinism and len({sha for _, sha in artifacts}) > 1:
                raise NonDeterministicOutputError(
                    f"compressor produced different output across runs "
                    f"({len({sha for _, sha in artifacts})} distinct artifacts)"
                )

        compress = self.time_command(
            variant.compress_command(source, compressed),
            env=variant.env,
            on_success=_fingerprint,
            label=f"{record.filename} [{variant.name}] compress",
        )
        result.compress_samples_ms = compress.samples_ms
        result.compress_time_ms = compress.best_ms
        if result.compress_time_ms is None:
            raise ToolInvocationError(
                f"all {self.repeats} compress attempts failed ({compress.last_failure})"
            )

        result.compressed_size, expected_sha = artifacts[-1]
        result.compress_speed_bps = compute_speed_bps(record.normalized_size, result.compress_time_ms)

        # A failed run after the last success may have clobbered the artifact
        if compress.failures and _sha_or_none(compressed) != expected_sha:
            raise ToolInvocationError("compressed artifact changed after a failed run")

        # 3. Decompress k times, hashing the restored file after every success
        restored_hashes: list[str] = []

        def _hash_restored() -> None:
            try:
                restored_hashes.append(compute_file_sha256(restored))
            except OSError as e:
                raise ToolInvocationError(
                    f"decompressor exited 0 but produced no readable output: {e}"
                ) from e

        decompress = self.time_command(
            variant.decompress_command(compressed, restored),
            env=variant.env,
            on_success=_hash_restored,
            label=f"{record.filename} [{variant.name}] decompress",
        )
        result.decompress_samples_ms = decompress.samples_ms
        result.decompress_time_ms = decompress.best_ms
        if result.decompress_time_ms is None:
            raise ToolInvocationError(
                f"all {self.repeats} decompress attempts failed ({decompress.last_failure})"
            )

        result.decompress_speed_bps = compute_speed_bps(
            record.normalized_size, result.decompress_time_ms
        )
        result.round_trip_time_ms = _round_ms(result.compress_time_ms + result.decompress_time_ms)

        # 4. Fidelity, judged on the last successful run; a later failed run may
        # have left a partial file behind
        result.restored_sha256 = restored_hashes[-1]

        result.is_identical = result.restored_sha256 == record.normalized_sha256
        if not result.is_identical:
            logger.warning(f"{record.filename} [{variant.name}]: restored file differs from source")
