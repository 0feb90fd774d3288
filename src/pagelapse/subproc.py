"""Thin subprocess wrapper shared by every external tool invocation."""

from __future__ import annotations

import logging
import shlex
import subprocess
from pathlib import Path
from typing import IO, Any, Protocol, Sequence

logger = logging.getLogger(__name__)

__all__ = ["CommandRunner", "format_command", "run_capture", "run_checked", "stderr_text"]


class CommandRunner(Protocol):
    def __call__(
        self,
        cmd: Sequence[str],
        *,
        timeout: float | None = None,
        cwd: Path | None = None,
    ) -> subprocess.CompletedProcess[Any]: ...


def format_command(cmd: Sequence[str]) -> str:
    """Render *cmd* as a copy-pasteable shell string for logs."""

    return " ".join(shlex.quote(str(part)) for part in cmd)


def run_checked(
    cmd: Sequence[str],
    *,
    timeout: float | None = None,
    cwd: Path | None = None,
    stdin: int | IO[Any] | None = subprocess.DEVNULL,
    stdout: int | IO[Any] | None = subprocess.DEVNULL,
    stderr: int | IO[Any] | None = subprocess.PIPE,
    text: bool = False,
) -> subprocess.CompletedProcess[Any]:
    """
    Run *cmd* without raising on a non-zero exit.

    Callers inspect ``returncode`` themselves. ``FileNotFoundError`` (missing binary)
    and ``subprocess.TimeoutExpired`` propagate unchanged. A ``timeout`` of ``None``
    or ``<= 0`` disables the limit.
    """

    effective_timeout = timeout if timeout is not None and timeout > 0 else None
    logger.debug("exec: %s", format_command(cmd))
    return subprocess.run(
        [str(part) for part in cmd],
        stdin=stdin,
        stdout=stdout,
        stderr=stderr,
        timeout=effective_timeout,
        cwd=str(cwd) if cwd is not None else None,
        text=text,
        check=False,
    )


def stderr_text(process: subprocess.CompletedProcess[Any]) -> str:
    """Return the decoded, stripped stderr of *process* (empty when unavailable)."""

    raw = process.stderr
    if raw is None:
        return ""
    if isinstance(raw, bytes):
        try:
            return raw.decode("utf-8", "ignore").strip()
        except (AttributeError, ValueError):
            return ""
    return str(raw).strip()


def run_capture(
    cmd: Sequence[str],
    *,
    timeout: float | None = None,
    cwd: Path | None = None,
) -> subprocess.CompletedProcess[Any]:
    """Like :func:`run_checked` but returns decoded stdout and stderr."""

    return run_checked(
        cmd,
        timeout=timeout,
        cwd=cwd,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    )
