"""Deterministic stand-ins for the external processes, browser, and network."""

from __future__ import annotations

import subprocess
from collections.abc import Callable, Iterable, Sequence
from pathlib import Path
from typing import Any

from rich.console import Console

from src.pagelapse.actions import NullOutputSink
from src.pagelapse.gate import CommitRecord, HistoryUnavailableError
from src.pagelapse.orchestration.state import RunDependencies
from src.pagelapse.render.errors import CaptureError, VideoSessionError

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-frame"


class FakeRunner:
    """
    Records commands and fakes their outputs.

    A command "succeeds" by writing ``payload`` to its last argument, which is the
    output path for every ffmpeg/ImageMagick invocation the pipeline builds.
    """

    def __init__(
        self,
        *,
        fail: Callable[[list[str]], bool] | None = None,
        missing: Callable[[list[str]], bool] | None = None,
        denied: Callable[[list[str]], bool] | None = None,
        payload: bytes = b"GIF89a-fake",
    ) -> None:
        self.calls: list[list[str]] = []
        self.cwds: list[Path | None] = []
        self._fail = fail
        self._missing = missing
        self._denied = denied
        self._payload = payload

    def __call__(
        self,
        cmd: Sequence[str],
        *,
        timeout: float | None = None,
        cwd: Path | None = None,
    ) -> subprocess.CompletedProcess[Any]:
        args = [str(part) for part in cmd]
        self.calls.append(args)
        self.cwds.append(cwd)
        if self._missing is not None and self._missing(args):
            raise FileNotFoundError(args[0])
        if self._denied is not None and self._denied(args):
            raise PermissionError(13, "Permission denied", args[0])
        if self._fail is not None and self._fail(args):
            return subprocess.CompletedProcess(args, 1, stdout=b"", stderr=b"forced failure")
        target = Path(args[-1])
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(self._payload)
        return subprocess.CompletedProcess(args, 0, stdout=b"", stderr=b"")

    def joined(self) -> list[str]:
        return [" ".join(call) for call in self.calls]


class FakeRenderer:
    def __init__(self, payloads: Iterable[bytes] | None = None, *, error: str | None = None) -> None:
        self._payloads = list(payloads or [])
        self.error = error
        self.calls: list[tuple[str, int]] = []

    def render(self, url: str, navigation_timeout_ms: int) -> bytes:
        self.calls.append((url, navigation_timeout_ms))
        if self.error is not None:
            raise CaptureError(self.error)
        if self._payloads:
            return self._payloads.pop(0)
        return PNG_BYTES + str(len(self.calls)).encode()


class FakeRecorder:
    def __init__(self, workdir: Path, *, fail_stop: bool = False, suffix: str = ".webm") -> None:
        self.workdir = workdir
        self.fail_stop = fail_stop
        self.suffix = suffix
        self.started: list[str] = []
        self.stopped = False
        self.closed = False

    def start(self, url: str) -> None:
        self.started.append(url)

    def stop(self) -> Path:
        if self.fail_stop:
            raise VideoSessionError("recorder crashed")
        self.workdir.mkdir(parents=True, exist_ok=True)
        path = self.workdir / f"raw{self.suffix}"
        path.write_bytes(b"webm-bytes")
        self.stopped = True
        return path

    def close(self) -> None:
        self.closed = True


class StaticHistory:
    def __init__(self, commits: Sequence[CommitRecord] = (), *, error: str | None = None) -> None:
        self.commits = list(commits)
        self.error = error
        self.limits: list[int] = []

    def list_recent_commits(self, limit: int) -> list[CommitRecord]:
        self.limits.append(limit)
        if self.error is not None:
            raise HistoryUnavailableError(self.error)
        return self.commits[:limit]


class SequenceClock:
    """Returns the given epochs in order, then keeps counting up by one."""

    def __init__(self, values: Iterable[int]) -> None:
        self._values = list(values)
        self._last = 0

    def __call__(self) -> int:
        if self._values:
            self._last = self._values.pop(0)
        else:
            self._last += 1
        return self._last


class RecordingReadiness:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[tuple[str, float]] = []

    def __call__(self, url: str, timeout_seconds: float) -> int:
        self.calls.append((url, timeout_seconds))
        if self.error is not None:
            raise self.error
        return 1


class StubReporter:
    def __init__(self) -> None:
        self.quiet = False
        self.verbose = False
        self.console = Console(record=True, force_terminal=False)
        self.lines: list[str] = []
        self.verbose_lines: list[str] = []
        self.warnings: list[str] = []
        self.errors: list[str] = []

    def warn(self, text: str) -> None:
        self.warnings.append(text)

    def error(self, text: str) -> None:
        self.errors.append(text)

    def banner(self, text: str) -> None:
        self.lines.append(text)

    def section(self, title: str) -> None:
        self.lines.append(title)

    def line(self, text: str) -> None:
        self.lines.append(text)

    def verbose_line(self, text: str) -> None:
        self.verbose_lines.append(text)


def commit(message: str, *, author: str = "alice", committer: str | None = None, sha: str = "abcdef1234") -> CommitRecord:
    return CommitRecord(id=sha, author=author, committer=committer or author, message=message)


def make_dependencies(tmp_path: Path, **overrides: Any) -> RunDependencies:
    """Build a fully faked :class:`RunDependencies`; keyword arguments replace fields."""

    recorder_dir = tmp_path / "_recorder"
    values: dict[str, Any] = {
        "renderer": FakeRenderer(),
        "recorder_factory": lambda _cfg: FakeRecorder(recorder_dir),
        "history_provider": StaticHistory(),
        "host_resolver": None,
        "readiness_check": RecordingReadiness(),
        "runner": FakeRunner(),
        "output_sink": NullOutputSink(),
        "sleep": lambda _seconds: None,
        "clock": SequenceClock([1000, 2000, 3000]),
    }
    values.update(overrides)
    return RunDependencies(**values)
