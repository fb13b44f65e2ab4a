"""Place unique input files into the isolated testbed directory."""

import logging
import os
from pathlib import Path
from shutil import copy2

from .meta import file_identity
from .records import FileRecord, Stage

logger = logging.getLogger(__name__)


def testbed_name(record: FileRecord, claimed_names: set[str]) -> str:
    """Return a base name for *record* that no other record in the run uses.

    Distinct files that share a base name get the first 8 hex digits of
    their hash appended to the stem.
    """
    name = record.filename
    if name not in claimed_names:
        return name

    path = Path(name)
    candidate = f"{path.stem}_{record.original_sha256[:8]}{path.suffix}"
    counter = 1
    while candidate in claimed_names:
        candidate = f"{path.stem}_{record.original_sha256[:8]}_{counter}{path.suffix}"
        counter += 1
    return candidate


def _matches(target: Path, record: FileRecord) -> bool:
    try:
        return file_identity(target) == record.key
    except OSError:
        return False


def link_or_copy(source: Path, target: Path) -> str:
    """Hard-link *source* to *target*, falling back to a byte copy.

    Returns:
        "link" or "copy"

    Raises:
        OSError: If both linking and copying fail
    """
    try:
        os.link(source, target)
        return "link"
    except OSError as link_error:
        logger.debug(f"Hard link failed for {source} ({link_error}), copying instead")
        try:
            copy2(source, target)
        except OSError as copy_error:
            raise OSError(
                f"Failed to link or copy {source} to {target}: {copy_error}"
            ) from link_error
        return "copy"


def materialize(record: FileRecord, img_dir: Path, claimed_names: set[str]) -> Path:
    """Put *record*'s source file into *img_dir* and advance it to MATERIALIZED.

    The testbed copy is only ever read by later stages.

    Args:
        record: Discovered record with a ``source_path``
        img_dir: Testbed directory
        claimed_names: Names already used in this run; updated in place

    Returns:
        Path of the testbed copy

    Raises:
        OSError: If the file can be neither linked nor copied
    """
    if record.source_path is None:
        raise OSError(f"{record.filename} has no source path")

    img_dir.mkdir(parents=True, exist_ok=True)
    name = testbed_name(record, claimed_names)
    target = img_dir / name

    if target.exists():
        if _matches(target, record):
            logger.debug(f"Reusing testbed copy {target}")
            method = "reuse"
        else:
            target.unlink()
            method = link_or_copy(record.source_path, target)
    else:
        method = link_or_copy(record.source_path, target)

    claimed_names.add(name)
    if name != record.filename:
        logger.info(f"Renamed {record.filename} -> {name} to avoid a name clash")
        record.filename = name

    record.testbed_path = target
    record.advance(Stage.MATERIALIZED)
    logger.debug(f"Materialized {record.source_path} -> {target} ({method})")
    return target
