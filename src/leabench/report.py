"""Report serialization: JSON document, flat CSV export and report diffing.

The JSON schema is stable: every record carries every key, every configured
variant and every variant pair, with ``null`` standing in for values that
were never measured.
"""

from __future__ import annotations

import csv
import logging
from collections.abc import Iterable
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from itertools import combinations
from pathlib import Path
from typing import Any

from . import __version__ as LEABENCH_VERSION
from .io import atomic_write, load_json, save_json
from .records import DedupKey, FileRecord, Stage, VariantComparison, VariantResult

logger = logging.getLogger(__name__)

REPORT_GENERATOR = "leabench"

_VARIANT_FIELDS = [f.name for f in fields(VariantResult) if f.name != "variant"]
_COMPARISON_FIELDS = [
    f.name for f in fields(VariantComparison) if f.name not in ("baseline", "candidate")
]


# ---------------------------------------------------------------------------
# Record <-> dict
# ---------------------------------------------------------------------------


def _round(value: float | None, digits: int = 3) -> float | None:
    return None if value is None else round(value, digits)


def _variant_to_dict(result: VariantResult | None) -> dict[str, Any]:
    if result is None:
        return {name: None for name in _VARIANT_FIELDS}

    data = asdict(result)
    data.pop("variant")
    data["compress_speed_bps"] = _round(result.compress_speed_bps, 1)
    data["decompress_speed_bps"] = _round(result.decompress_speed_bps, 1)
    return data


def _comparison_to_dict(
    comparison: VariantComparison | None, baseline: str, candidate: str
) -> dict[str, Any]:
    data: dict[str, Any] = {"baseline": baseline, "candidate": candidate}
    if comparison is None:
        data.update({name: None for name in _COMPARISON_FIELDS})
        data["ratio_to_original"] = {baseline: None, candidate: None}
        data["ratio_to_normalized"] = {baseline: None, candidate: None}
        return data

    data.update(asdict(comparison))
    for name in ("ratio_to_original", "ratio_to_normalized"):
        data[name] = {k: _round(v, 4) for k, v in data[name].items()}
    for name in ("ratio_diff", "normalized_ratio_diff"):
        data[name] = _round(data[name], 4)
    return data


def record_to_dict(record: FileRecord, variant_names: list[str]) -> dict[str, Any]:
    """Serialize *record* with the full, stable key set."""
    by_pair = {(c.baseline, c.candidate): c for c in record.comparisons}

    return {
        "filename": record.filename,
        "original_size": record.original_size,
        "original_sha256": record.original_sha256,
        "normalized_path": str(record.normalized_path) if record.normalized_path else None,
        "normalized_size": record.normalized_size,
        "normalized_sha256": record.normalized_sha256,
        "width": record.width,
        "height": record.height,
        "status": record.stage.value,
        "failed_stage": record.failed_stage,
        "error": record.error,
        "is_identical": record.is_identical,
        "variants": {
            name: _variant_to_dict(record.variants.get(name)) for name in variant_names
        },
        "comparisons": [
            _comparison_to_dict(by_pair.get((a, b)), a, b)
            for a, b in combinations(variant_names, 2)
        ],
    }


def _variant_from_dict(name: str, data: dict[str, Any] | None) -> VariantResult | None:
    if not data or (data.get("compress_time_ms") is None and data.get("error") is None):
        return None
    kwargs = {k: data.get(k) for k in _VARIANT_FIELDS}
    kwargs["compress_samples_ms"] = kwargs["compress_samples_ms"] or []
    kwargs["decompress_samples_ms"] = kwargs["decompress_samples_ms"] or []
    kwargs["is_identical"] = bool(kwargs["is_identical"])
    return VariantResult(variant=name, **kwargs)


def record_from_dict(data: dict[str, Any]) -> FileRecord:
    """Rebuild a :class:`FileRecord` from its report representation."""
    record = FileRecord(
        filename=data["filename"],
        original_size=int(data["original_size"]),
        original_sha256=data["original_sha256"],
        normalized_path=Path(data["normalized_path"]) if data.get("normalized_path") else None,
        normalized_size=data.get("normalized_size"),
        normalized_sha256=data.get("normalized_sha256"),
        width=data.get("width"),
        height=data.get("height"),
        is_identical=data.get("is_identical"),
        stage=Stage(data.get("status", Stage.DISCOVERED.value)),
        failed_stage=data.get("failed_stage"),
        error=data.get("error"),
    )

    for name, variant_data in (data.get("variants") or {}).items():
        result = _variant_from_dict(name, variant_data)
        if result is not None:
            record.variants[name] = result

    for item in data.get("comparisons") or []:
        if item.get("size_diff") is None and item.get("compress_time_diff") is None:
            continue
        record.comparisons.append(
            VariantComparison(
                baseline=item["baseline"],
                candidate=item["candidate"],
                **{k: item.get(k) for k in _COMPARISON_FIELDS},
            )
        )
    return record


# ---------------------------------------------------------------------------
# JSON report
# ---------------------------------------------------------------------------


@dataclass
class ReportDocument:
    """A parsed report file."""

    variants: list[str]
    records: list[FileRecord]
    created: str | None = None
    version: str | None = None

    def by_key(self) -> dict[DedupKey, FileRecord]:
        return {record.key: record for record in self.records}


def build_report(records: Iterable[FileRecord], variant_names: list[str]) -> dict[str, Any]:
    return {
        "generator": REPORT_GENERATOR,
        "version": LEABENCH_VERSION,
        "created": datetime.now().isoformat(timespec="seconds"),
        "variants": list(variant_names),
        "records": [record_to_dict(r, variant_names) for r in records],
    }


def write_report(records: Iterable[FileRecord], path: Path, variant_names: list[str]) -> Path:
    """Atomically write the JSON report for *records*.

    Raises:
        IOError: If the report cannot be written
    """
    report = build_report(records, variant_names)
    save_json(report, path)
    logger.debug(f"Wrote {len(report['records'])} records to {path}")
    return path


def load_report(path: Path) -> ReportDocument:
    """Load a report written by :func:`write_report`.

    Raises:
        IOError: If the file cannot be read
        ValueError: If the file is not a LeaBench report
    """
    data = load_json(path)
    if not isinstance(data, dict) or not isinstance(data.get("records"), list):
        raise ValueError(f"{path} is not a LeaBench report")

    records = []
    for i, item in enumerate(data["records"]):
        try:
            records.append(record_from_dict(item))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Skipping invalid report record {i} in {path}: {e}")

    return ReportDocument(
        variants=list(data.get("variants") or []),
        records=records,
        created=data.get("created"),
        version=data.get("version"),
    )


# ---------------------------------------------------------------------------
# CSV export
# ---------------------------------------------------------------------------


def csv_fieldnames(variant_names: list[str]) -> list[str]:
    names = [
        "filename", "original_size", "original_sha256", "ppm_size", "ppm_sha256",
        "width", "height", "status", "is_identical",
    ]
    for v in variant_names:
        names += [
            f"c_size_{v}", f"c_ratio_{v}", f"c_ratio_ppm_{v}", f"c_time_{v}",
            f"c_speed_{v}", f"d_time_{v}", f"d_speed_{v}", f"round_trip_time_{v}",
            f"identical_{v}",
        ]
    for suffix in _pair_suffixes(variant_names):
        names += [
            f"c_size_diff{suffix}", f"c_ratio_diff{suffix}", f"c_ratio_ppm_diff{suffix}",
            f"c_time_diff{suffix}", f"d_time_diff{suffix}", f"round_trip_time_diff{suffix}",
        ]
    names.append("error")
    return names


def _pair_suffixes(variant_names: list[str]) -> list[str]:
    pairs = list(combinations(variant_names, 2))
    if len(pairs) == 1:
        return [""]
    return [f"_{b}_vs_{a}" for a, b in pairs]


def record_to_row(record: FileRecord, variant_names: list[str]) -> dict[str, Any]:
    """Flatten *record* into one CSV row."""
    data = record_to_dict(record, variant_names)
    row: dict[str, Any] = {
        "filename": data["filename"],
        "original_size": data["original_size"],
        "original_sha256": data["original_sha256"],
        "ppm_size": data["normalized_size"],
        "ppm_sha256": data["normalized_sha256"],
        "width": data["width"],
        "height": data["height"],
        "status": data["status"],
        "is_identical": data["is_identical"],
        "error": data["error"],
    }

    ratios_original: dict[str, Any] = {}
    ratios_normalized: dict[str, Any] = {}
    for comparison in data["comparisons"]:
        ratios_original.update(comparison["ratio_to_original"])
        ratios_normalized.update(comparison["ratio_to_normalized"])

    for v in variant_names:
        metrics = data["variants"][v]
        row.update(
            {
                f"c_size_{v}": metrics["compressed_size"],
                f"c_ratio_{v}": ratios_original.get(v),
                f"c_ratio_ppm_{v}": ratios_normalized.get(v),
                f"c_time_{v}": metrics["compress_time_ms"],
                f"c_speed_{v}": metrics["compress_speed_bps"],
                f"d_time_{v}": metrics["decompress_time_ms"],
                f"d_speed_{v}": metrics["decompress_speed_bps"],
                f"round_trip_time_{v}": metrics["round_trip_time_ms"],
                f"identical_{v}": metrics["is_identical"],
            }
        )
        if metrics["error"] and not row["error"]:
            row["error"] = f"{v}: {metrics['error']}"

    for suffix, comparison in zip(_pair_suffixes(variant_names), data["comparisons"]):
        row.update(
            {
                f"c_size_diff{suffix}": comparison["size_diff"],
                f"c_ratio_diff{suffix}": comparison["ratio_diff"],
                f"c_ratio_ppm_diff{suffix}": comparison["normalized_ratio_diff"],
                f"c_time_diff{suffix}": comparison["compress_time_diff"],
                f"d_time_diff{suffix}": comparison["decompress_time_diff"],
                f"round_trip_time_diff{suffix}": comparison["round_trip_diff"],
            }
        )
    return row


def write_csv_report(records: Iterable[FileRecord], path: Path, variant_names: list[str]) -> Path:
    """Atomically write one flat CSV row per record."""
    fieldnames = csv_fieldnames(variant_names)
    with atomic_write(path, newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames)
        writer.writeheader()
        for record in records:
            writer.writerow(record_to_row(record, variant_names))
    return path


# ---------------------------------------------------------------------------
# Report diffing
# ---------------------------------------------------------------------------


@dataclass
class VariantChange:
    """Change of one variant's measurements for one file between two reports."""

    filename: str
    variant: str
    old_size: int | None
    new_size: int | None
    old_compress_ms: float | None
    new_compress_ms: float | None
    old_identical: bool | None
    new_identical: bool | None

    @property
    def size_delta(self) -> int | None:
        if self.old_size is None or self.new_size is None:
            return None
        return self.new_size - self.old_size

    @property
    def compress_ms_delta(self) -> float | None:
        if self.old_compress_ms is None or self.new_compress_ms is None:
            return None
        return round(self.new_compress_ms - self.old_compress_ms, 3)


@dataclass
class ReportDiff:
    changes: list[VariantChange] = field(default_factory=list)
    only_in_old: list[str] = field(default_factory=list)
    only_in_new: list[str] = field(default_factory=list)


def diff_reports(old: ReportDocument, new: ReportDocument) -> ReportDiff:
    """Pair the records of two reports by dedup key and list per-variant changes.

    Only variants present in both reports are compared; unchanged sizes with
    unchanged fidelity are left out.
    """
    diff = ReportDiff()
    old_by_key = old.by_key()
    new_by_key = new.by_key()
    shared_variants = [v for v in new.variants if v in old.variants]

    diff.only_in_old = [r.filename for k, r in old_by_key.items() if k not in new_by_key]
    diff.only_in_new = [r.filename for k, r in new_by_key.items() if k not in old_by_key]

    for key, new_record in new_by_key.items():
        old_record = old_by_key.get(key)
        if old_record is None:
            continue
        for variant in shared_variants:
            before = old_record.variants.get(variant)
            after = new_record.variants.get(variant)
            change = VariantChange(
                filename=new_record.filename,
                variant=variant,
                old_size=before.compressed_size if before else None,
                new_size=after.compressed_size if after else None,
                old_compress_ms=before.compress_time_ms if before else None,
                new_compress_ms=after.compress_time_ms if after else None,
                old_identical=before.is_identical if before else None,
                new_identical=after.is_identical if after else None,
            )
            if change.old_size != change.new_size or change.old_identical != change.new_identical:
                diff.changes.append(change)

    return diff
