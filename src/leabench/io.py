"""I/O utilities for logging, atomic writes and the working-directory lock."""

import json
import logging
import os
import sys
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from shutil import move
from typing import IO, Any

from .error_handling import RunLockedError

# Cross-platform non-blocking file locking
if sys.platform == "win32":
    import msvcrt

    def try_lock_file(file_handle: IO) -> bool:
        """Try to lock *file_handle* on Windows; False if another process holds it."""
        try:
            msvcrt.locking(file_handle.fileno(), msvcrt.LK_NBLCK, 1)
        except OSError:
            return False
        return True

    def unlock_file(file_handle: IO) -> None:
        """Unlock file on Windows using msvcrt."""
        try:
            file_handle.seek(0)
            msvcrt.locking(file_handle.fileno(), msvcrt.LK_UNLCK, 1)
        except OSError:
            pass  # Released when the handle is closed anyway
else:
    import fcntl

    def try_lock_file(file_handle: IO) -> bool:
        """Try to lock *file_handle* on Unix; False if another process holds it."""
        try:
            fcntl.flock(file_handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            return False
        return True

    def unlock_file(file_handle: IO) -> None:
        """Unlock file on Unix systems using fcntl."""
        fcntl.flock(file_handle.fileno(), fcntl.LOCK_UN)


def setup_logging(log_dir: Path, log_level: str = "INFO") -> logging.Logger:
    """Set up logging configuration for LeaBench.

    Args:
        log_dir: Directory to store log files
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)

    Returns:
        Configured logger instance
    """
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"leabench_{timestamp}.log"

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler()
        ],
        force=True,
    )

    return logging.getLogger("leabench")


@contextmanager
def atomic_write(target_path: Path, mode: str = "w", **open_kwargs: Any) -> Iterator[IO]:
    """Context manager for atomic file writes using temporary files.

    Args:
        target_path: Final path where file should be written
        mode: File open mode

    Yields:
        File handle for writing

    Example:
        with atomic_write(Path("data.json")) as f:
            json.dump(data, f)
    """
    target_path.parent.mkdir(parents=True, exist_ok=True)

    with tempfile.NamedTemporaryFile(
        mode=mode,
        dir=target_path.parent,
        delete=False,
        suffix=f".tmp_{target_path.name}",
        **open_kwargs,
    ) as temp_file:
        try:
            yield temp_file
            temp_file.flush()
            os.fsync(temp_file.fileno())
        except Exception:
            temp_file.close()
            Path(temp_file.name).unlink(missing_ok=True)
            raise

    # Atomic replace on POSIX; the handle must be closed first on Windows
    move(temp_file.name, target_path)


def save_json(data: dict[str, Any], json_path: Path) -> None:
    """Atomically save data as JSON file.

    Raises:
        IOError: If file cannot be written
    """
    with atomic_write(json_path, encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)


def load_json(json_path: Path) -> Any:
    """Load JSON data from file.

    Raises:
        IOError: If file cannot be read
        json.JSONDecodeError: If JSON is invalid
    """
    with open(json_path, encoding="utf-8") as f:
        return json.load(f)


@contextmanager
def run_lock(lock_path: Path) -> Iterator[Path]:
    """Hold an exclusive lock on *lock_path* for the duration of a run.

    Raises:
        RunLockedError: If another run already holds the lock
    """
    lock_path.parent.mkdir(parents=True, exist_ok=True)

    with open(lock_path, "a+", encoding="utf-8") as handle:
        if not try_lock_file(handle):
            raise RunLockedError(
                f"Another benchmark run is using {lock_path.parent}",
                context={"lock_file": str(lock_path)},
            )
        try:
            handle.seek(0)
            handle.truncate()
            handle.write(f"{os.getpid()}\n")
            handle.flush()
            yield lock_path
        finally:
            unlock_file(handle)


def ensure_directories(*paths: Path) -> None:
    """Ensure that all specified directories exist."""
    for path in paths:
        path.mkdir(parents=True, exist_ok=True)
