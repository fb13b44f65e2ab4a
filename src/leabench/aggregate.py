"""Cross-variant deltas for a fully benchmarked :class:`FileRecord`.

Sign convention: every difference is ``candidate - baseline`` (``B - A``),
where the baseline is the variant listed first. A positive time diff means
the baseline was faster; a positive ratio diff means the baseline produced
the smaller file.
"""

from __future__ import annotations

from itertools import combinations

from .records import FileRecord, Stage, VariantComparison, VariantResult

__all__ = [
    "aggregate_record",
    "compare_variants",
    "difference",
    "ratio_percent",
]


def ratio_percent(compressed_size: int | None, reference_size: int | None) -> float | None:
    """``compressed_size / reference_size * 100``, or None if undefined."""
    if compressed_size is None or not reference_size:
        return None
    return compressed_size / reference_size * 100


def difference(candidate: float | None, baseline: float | None) -> float | None:
    """``candidate - baseline``, or None if either side is missing."""
    if candidate is None or baseline is None:
        return None
    return candidate - baseline


def _round(value: float | None, digits: int = 3) -> float | None:
    return None if value is None else round(value, digits)


def compare_variants(
    record: FileRecord, baseline: VariantResult, candidate: VariantResult
) -> VariantComparison:
    """Compute the ``B - A`` deltas between *baseline* (A) and *candidate* (B)."""
    ratio_to_original = {
        v.variant: ratio_percent(v.compressed_size, record.original_size)
        for v in (baseline, candidate)
    }
    ratio_to_normalized = {
        v.variant: ratio_percent(v.compressed_size, record.normalized_size)
        for v in (baseline, candidate)
    }

    size_diff = difference(candidate.compressed_size, baseline.compressed_size)

    return VariantComparison(
        baseline=baseline.variant,
        candidate=candidate.variant,
        size_diff=None if size_diff is None else int(size_diff),
        ratio_to_original=ratio_to_original,
        ratio_to_normalized=ratio_to_normalized,
        ratio_diff=difference(
            ratio_to_original[candidate.variant], ratio_to_original[baseline.variant]
        ),
        normalized_ratio_diff=difference(
            ratio_to_normalized[candidate.variant], ratio_to_normalized[baseline.variant]
        ),
        compress_time_diff=_round(
            difference(candidate.compress_time_ms, baseline.compress_time_ms)
        ),
        decompress_time_diff=_round(
            difference(candidate.decompress_time_ms, baseline.decompress_time_ms)
        ),
        round_trip_diff=_round(
            difference(candidate.round_trip_time_ms, baseline.round_trip_time_ms)
        ),
    )


def aggregate_record(record: FileRecord, variant_names: list[str]) -> FileRecord:
    """Finalize *record*: compute ``is_identical`` and every pairwise comparison.

    Pairs are taken in *variant_names* order, so with ``["0.4", "0.5"]`` the
    single comparison is ``0.5 - 0.4``.

    Raises:
        ValueError: If a variant in *variant_names* has no result yet
    """
    missing = [name for name in variant_names if name not in record.variants]
    if missing:
        raise ValueError(
            f"{record.filename}: cannot aggregate before all variants ran "
            f"(missing {', '.join(missing)})"
        )

    record.advance(Stage.BENCHMARKED)

    results = [record.variants[name] for name in variant_names]
    record.is_identical = all(r.is_identical for r in results) if results else None
    record.comparisons = [
        compare_variants(record, baseline, candidate)
        for baseline, candidate in combinations(results, 2)
    ]

    record.advance(Stage.AGGREGATED)
    return record
