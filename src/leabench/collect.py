"""File discovery and content-based deduplication."""

from __future__ import annotations

import logging
import os
import stat
from collections.abc import Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from .config import SUPPORTED_EXTENSIONS
from .error_handling import log_warning_with_context
from .meta import file_identity
from .records import DedupKey, FileRecord

logger = logging.getLogger(__name__)


@dataclass
class DedupResult:
    """Unique records keyed by ``(size, sha256)`` in first-seen order."""

    records: dict[DedupKey, FileRecord] = field(default_factory=dict)
    duplicates: list[Path] = field(default_factory=list)
    unreadable: list[Path] = field(default_factory=list)


def collect_files(root: Path, extensions: Iterable[str] = SUPPORTED_EXTENSIONS) -> list[Path]:
    """Recursively list non-empty image files under *root*.

    Args:
        root: Directory to scan
        extensions: Allowed lower-case suffixes (including the dot)

    Returns:
        Matching regular files in walk order

    Raises:
        OSError: If *root* does not exist, is not a directory or is not readable
    """
    root = Path(root)
    if not root.exists():
        raise OSError(f"Directory not found: {root}")
    if not root.is_dir():
        raise OSError(f"Not a directory: {root}")
    if not os.access(root, os.R_OK | os.X_OK):
        raise OSError(f"Directory not readable: {root}")

    allowed = {ext.lower() for ext in extensions}
    found: list[Path] = []

    def _on_walk_error(error: OSError) -> None:
        logger.warning(f"Skipping unreadable directory: {error}")

    for dirpath, _dirnames, filenames in os.walk(root, onerror=_on_walk_error):
        for name in filenames:
            path = Path(dirpath) / name
            if path.suffix.lower() not in allowed:
                continue

            try:
                st = path.stat()
            except OSError as e:
                log_warning_with_context(f"Skipping {path.name}", {"path": path, "error": e}, logger)
                continue

            if not stat.S_ISREG(st.st_mode) or st.st_size == 0:
                continue
            found.append(path)

    logger.info(f"Discovered {len(found)} image files in {root}")
    return found


def _identify(path: Path) -> tuple[Path, tuple[int, str] | None, OSError | None]:
    try:
        return path, file_identity(path), None
    except OSError as e:
        return path, None, e


def deduplicate(paths: Sequence[Path], workers: int = 1) -> DedupResult:
    """Collapse files with identical ``(size, sha256)`` into one :class:`FileRecord`.

    Every file is hashed; size alone is not a usable key. The first file
    seen for a key wins and later copies are reported as duplicates.

    Args:
        paths: Candidate files, in discovery order
        workers: Threads used for hashing (results are consumed in input order)

    Returns:
        DedupResult with the unique records
    """
    result = DedupResult()

    if workers > 1:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            identities = list(executor.map(_identify, paths))
    else:
        identities = [_identify(p) for p in paths]

    for path, identity, error in identities:
        if identity is None:
            log_warning_with_context(
                f"Skipping {path.name}: cannot hash file", {"path": path, "error": error}, logger
            )
            result.unreadable.append(path)
            continue

        size, sha256 = identity
        if size == 0:
            continue

        key = (size, sha256)
        if key in result.records:
            logger.debug(f"Duplicate of {result.records[key].source_path}: {path}")
            result.duplicates.append(path)
            continue

        result.records[key] = FileRecord(
            filename=path.name,
            original_size=size,
            original_sha256=sha256,
            source_path=path,
        )

    logger.info(
        f"Deduplicated {len(paths)} files -> {len(result.records)} unique "
        f"({len(result.duplicates)} duplicates, {len(result.unreadable)} unreadable)"
    )
    return result
