"""Content hashing and raster metadata for benchmark inputs."""

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

# Read in 1 MiB chunks; corpus images can be tens of megabytes once rasterized
_CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class RasterInfo:
    """Dimensions and mode of a decoded image."""

    width: int
    height: int
    mode: str
    format: str | None


def compute_file_sha256(file_path: Path) -> str:
    """Compute SHA256 hash of a file.

    The digest is only used as an equality surrogate for file contents.

    Args:
        file_path: Path to the file to hash

    Returns:
        Hexadecimal SHA256 hash string
    """
    sha256_hash = hashlib.sha256()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            sha256_hash.update(chunk)
    return sha256_hash.hexdigest()


def file_identity(file_path: Path) -> tuple[int, str]:
    """Return ``(size, sha256)`` for *file_path*.

    Raises:
        OSError: If the file cannot be stat-ed or read
    """
    size = file_path.stat().st_size
    return size, compute_file_sha256(file_path)


def read_raster_info(file_path: Path) -> RasterInfo | None:
    """Read image dimensions with Pillow, or None if the file can't be decoded."""
    try:
        with Image.open(file_path) as img:
            width, height = img.size
            return RasterInfo(width=width, height=height, mode=img.mode, format=img.format)
    except (OSError, UnidentifiedImageError, ValueError) as e:
        logger.debug(f"Could not read raster info for {file_path}: {e}")
        return None
