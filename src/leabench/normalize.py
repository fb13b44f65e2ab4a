"""Normalization of input images to the canonical PPM raster.

Conversion itself is delegated to an external converter (see
:mod:`leabench.external_engines.converter`). Inputs that are already PPM are
copied byte-for-byte so the converter never re-encodes them.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from shutil import copyfile
from typing import Protocol

from .config import CANONICAL_EXTENSIONS
from .error_handling import ConversionError, ErrorLevel, error_context
from .external_engines.common import CommandResult
from .meta import file_identity, read_raster_info
from .records import FileRecord

logger = logging.getLogger(__name__)


class Converter(Protocol):
    def convert(self, input_path: Path, output_path: Path) -> CommandResult: ...


@dataclass(frozen=True)
class NormalizationOutcome:
    """Result of normalizing one file; applied to its record by the caller."""

    output_path: Path
    size: int | None = None
    sha256: str | None = None
    width: int | None = None
    height: int | None = None
    converted: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def normalized_path_for(record: FileRecord, ppm_dir: Path) -> Path:
    return ppm_dir / f"{record.filename}.ppm"


def is_canonical(path: Path, canonical_extensions: Iterable[str] = CANONICAL_EXTENSIONS) -> bool:
    return path.suffix.lower() in {ext.lower() for ext in canonical_extensions}


def _convert(converter: Converter, input_path: Path, output_path: Path) -> None:
    result = converter.convert(input_path, output_path)
    if not result.ok:
        raise ConversionError(
            f"Converter failed for {input_path.name} ({result.describe_failure()})",
            context={"command": " ".join(result.command)},
        )
    if not output_path.exists() or output_path.stat().st_size == 0:
        raise ConversionError(f"Converter produced no output for {input_path.name}")


def normalize_file(
    input_path: Path,
    output_path: Path,
    converter: Converter,
    canonical_extensions: Iterable[str] = CANONICAL_EXTENSIONS,
) -> NormalizationOutcome:
    """Produce the canonical artifact for *input_path* at *output_path*.

    Never raises for conversion or filesystem failures; they are returned
    as a failed :class:`NormalizationOutcome`.
    """
    converted = not is_canonical(input_path, canonical_extensions)

    try:
        with error_context(
            f"normalize {input_path.name}",
            ConversionError,
            level=ErrorLevel.WARNING,
            logger=logger,
        ):
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.unlink(missing_ok=True)
            if converted:
                _convert(converter, input_path, output_path)
            else:
                copyfile(input_path, output_path)
            size, sha256 = file_identity(output_path)
    except ConversionError as e:
        logger.warning(f"Excluding {input_path.name} from benchmarking: {e}")
        try:
            output_path.unlink(missing_ok=True)
        except OSError as cleanup_error:
            logger.debug(f"Could not remove partial output {output_path}: {cleanup_error}")
        return NormalizationOutcome(output_path=output_path, converted=converted, error=str(e))

    info = read_raster_info(output_path)
    return NormalizationOutcome(
        output_path=output_path,
        size=size,
        sha256=sha256,
        width=info.width if info else None,
        height=info.height if info else None,
        converted=converted,
    )


def normalize_record(
    record: FileRecord,
    ppm_dir: Path,
    converter: Converter,
    canonical_extensions: Iterable[str] = CANONICAL_EXTENSIONS,
) -> NormalizationOutcome:
    """Normalize *record*'s testbed copy without touching the record itself.

    Safe to call from worker threads; use :func:`apply_normalization` on the
    owning thread to store the outcome.
    """
    if record.testbed_path is None:
        return NormalizationOutcome(
            output_path=normalized_path_for(record, ppm_dir),
            error=f"{record.filename} was not materialized",
        )
    return normalize_file(
        record.testbed_path,
        normalized_path_for(record, ppm_dir),
        converter,
        canonical_extensions,
    )


def apply_normalization(record: FileRecord, outcome: NormalizationOutcome) -> None:
    """Store a normalization outcome on *record*, or mark the record failed."""
    if not outcome.ok or outcome.size is None or outcome.sha256 is None:
        record.mark_failed("normalize", outcome.error or "normalization failed")
        return

    record.set_normalized(outcome.output_path, outcome.size, outcome.sha256)
    record.width = outcome.width
    record.height = outcome.height
