from __future__ import annotations

import os
import subprocess
import time
from collections.abc import Mapping
from dataclasses import dataclass

__all__ = [
    "CommandResult",
    "run_command",
]


@dataclass(frozen=True)
class CommandResult:
    """Structured outcome of one external process invocation."""

    command: tuple[str, ...]
    returncode: int | None
    stdout: str
    stderr: str
    elapsed_ms: float
    timed_out: bool = False
    launch_error: str | None = None

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out and self.launch_error is None

    def describe_failure(self) -> str:
        """Human-readable reason for a failed invocation ("" when ok)."""
        if self.launch_error is not None:
            return f"could not start: {self.launch_error}"
        if self.timed_out:
            return f"timed out after {self.elapsed_ms / 1000:.1f}s"
        if self.returncode != 0:
            stderr = self.stderr.strip()
            detail = f": {stderr.splitlines()[-1]}" if stderr else ""
            return f"exit {self.returncode}{detail}"
        return ""


def run_command(
    cmd: list[str],
    *,
    timeout: float | None = 60,
    env: Mapping[str, str] | None = None,
) -> CommandResult:
    """Execute *cmd* and return a :class:`CommandResult`.

    The helper blocks until *cmd* completes or *timeout* expires and never
    raises for tool failures; callers decide what a failure means.

    Parameters
    ----------
    cmd
        Full command as a list of strings (preferred over shell=True).
    timeout
        Hard timeout in seconds; the child is killed when it expires.
        *None* disables the limit.
    env
        Extra environment variables layered over the current environment.

    Returns
    -------
    CommandResult
        Exit code, captured output and wall-clock time in milliseconds.
    """
    run_env = None
    if env:
        run_env = {**os.environ, **env}

    start = time.perf_counter()
    try:
        completed = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            errors="replace",
            timeout=timeout,
            env=run_env,
        )
    except subprocess.TimeoutExpired as e:
        return CommandResult(
            command=tuple(cmd),
            returncode=None,
            stdout=_as_text(e.stdout),
            stderr=_as_text(e.stderr),
            elapsed_ms=(time.perf_counter() - start) * 1000,
            timed_out=True,
        )
    except OSError as e:
        return CommandResult(
            command=tuple(cmd),
            returncode=None,
            stdout="",
            stderr="",
            elapsed_ms=(time.perf_counter() - start) * 1000,
            launch_error=str(e),
        )
    elapsed_ms = (time.perf_counter() - start) * 1000

    return CommandResult(
        command=tuple(cmd),
        returncode=completed.returncode,
        stdout=completed.stdout,
        stderr=completed.stderr,
        elapsed_ms=elapsed_ms,
    )


def _as_text(output: str | bytes | None) -> str:
    if output is None:
        return ""
    if isinstance(output, bytes):
        return output.decode("utf-8", errors="replace")
    return output
