"""Per-file benchmark records and their lifecycle."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

DedupKey = tuple[int, str]


class Stage(Enum):
    """Lifecycle stages of a :class:`FileRecord`, in the order they must occur."""

    DISCOVERED = "discovered"
    MATERIALIZED = "materialized"
    NORMALIZED = "normalized"
    BENCHMARKED = "benchmarked"
    AGGREGATED = "aggregated"
    FAILED = "failed"


_STAGE_ORDER = [
    Stage.DISCOVERED,
    Stage.MATERIALIZED,
    Stage.NORMALIZED,
    Stage.BENCHMARKED,
    Stage.AGGREGATED,
]


@dataclass
class VariantResult:
    """Timing and fidelity results for one file under one variant.

    ``None`` is the failure sentinel for every measured value.
    """

    variant: str
    compressed_size: int | None = None
    compress_time_ms: float | None = None
    decompress_time_ms: float | None = None
    compress_speed_bps: float | None = None
    decompress_speed_bps: float | None = None
    round_trip_time_ms: float | None = None
    restored_sha256: str | None = None
    is_identical: bool = False
    compress_samples_ms: list[float] = field(default_factory=list)
    decompress_samples_ms: list[float] = field(default_factory=list)
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.compress_time_ms is not None


@dataclass
class VariantComparison:
    """Deltas between a baseline variant (A) and a candidate (B).

    Every ``*_diff`` is ``B - A``: a positive time diff means the baseline was
    faster, a positive ratio diff means the baseline compressed better.
    """

    baseline: str
    candidate: str
    size_diff: int | None = None
    ratio_to_original: dict[str, float | None] = field(default_factory=dict)
    ratio_to_normalized: dict[str, float | None] = field(default_factory=dict)
    ratio_diff: float | None = None
    normalized_ratio_diff: float | None = None
    compress_time_diff: float | None = None
    decompress_time_diff: float | None = None
    round_trip_diff: float | None = None


@dataclass
class FileRecord:
    """One unique input file and everything measured about it."""

    filename: str
    original_size: int
    original_sha256: str
    source_path: Path | None = None
    testbed_path: Path | None = None
    normalized_path: Path | None = None
    normalized_size: int | None = None
    normalized_sha256: str | None = None
    width: int | None = None
    height: int | None = None
    variants: dict[str, VariantResult] = field(default_factory=dict)
    comparisons: list[VariantComparison] = field(default_factory=list)
    is_identical: bool | None = None
    stage: Stage = Stage.DISCOVERED
    failed_stage: str | None = None
    error: str | None = None

    @property
    def key(self) -> DedupKey:
        return (self.original_size, self.original_sha256)

    @property
    def failed(self) -> bool:
        return self.stage is Stage.FAILED

    @property
    def finalized(self) -> bool:
        return self.stage in (Stage.AGGREGATED, Stage.FAILED)

    def advance(self, stage: Stage) -> None:
        """Move to the next lifecycle stage.

        Raises:
            ValueError: If *stage* is not the immediate successor of the current stage
        """
        if stage is Stage.FAILED:
            raise ValueError("Use mark_failed() to fail a record")
        if self.stage is Stage.FAILED:
            raise ValueError(f"{self.filename} already failed at {self.failed_stage}")

        current = _STAGE_ORDER.index(self.stage)
        if _STAGE_ORDER.index(stage) != current + 1:
            raise ValueError(
                f"{self.filename}: cannot move from {self.stage.value} to {stage.value}"
            )
        self.stage = stage

    def mark_failed(self, stage_name: str, error: object) -> None:
        self.stage = Stage.FAILED
        self.failed_stage = stage_name
        self.error = str(error)

    def set_normalized(self, path: Path, size: int, sha256: str) -> None:
        """Store the canonical artifact; it can only be set once."""
        if self.normalized_sha256 is not None:
            raise ValueError(f"{self.filename} is already normalized")
        self.normalized_path = path
        self.normalized_size = size
        self.normalized_sha256 = sha256
        self.advance(Stage.NORMALIZED)

    def add_variant_result(self, result: VariantResult) -> None:
        """Record a variant's result; existing results are never replaced."""
        if self.stage is not Stage.NORMALIZED:
            raise ValueError(
                f"{self.filename}: variant results need a normalized record, "
                f"stage is {self.stage.value}"
            )
        if result.variant in self.variants:
            raise ValueError(f"{self.filename}: variant {result.variant} already recorded")
        self.variants[result.variant] = result

    def has_all_variants(self, variant_names: list[str]) -> bool:
        return all(name in self.variants for name in variant_names)
