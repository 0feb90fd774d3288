from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol

from src.datatypes import AppConfig
from src.pagelapse.actions import OutputSink
from src.pagelapse.cli_runtime import CliOutputManagerProtocol
from src.pagelapse.frames import Frame, FrameStore, now_millis
from src.pagelapse.gate import CaptureDecision, CommitHistoryProvider
from src.pagelapse.render.timelapse import TimelapseOutcome
from src.pagelapse.render.video import Recorder, VideoExportResult
from src.pagelapse.subproc import CommandRunner
from src.pagelapse.target import HostAddressResolver, ResolvedTarget


class Renderer(Protocol):
    def render(self, url: str, navigation_timeout_ms: int) -> bytes: ...


ReadinessCheck = Callable[[str, float], Any]
RecorderFactory = Callable[[AppConfig], Recorder]


class RunStatus(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class RunRequest:
    config: AppConfig
    quiet: bool = False
    verbose: bool = False
    no_color: bool = False
    reporter: CliOutputManagerProtocol | None = None
    environ: Mapping[str, str] | None = None


@dataclass(slots=True)
class RunDependencies:
    """Container describing the collaborators a run talks to."""

    renderer: Renderer
    recorder_factory: RecorderFactory
    history_provider: CommitHistoryProvider | None
    host_resolver: HostAddressResolver | None
    readiness_check: ReadinessCheck
    runner: CommandRunner
    output_sink: OutputSink
    sleep: Callable[[float], None] = time.sleep
    clock: Callable[[], int] = now_millis


@dataclass
class RunResult:
    """
    Final outcome of a run.

    ``outputs`` maps step output names to absolute paths and only lists artifacts that
    were actually produced, including those produced before a fatal error.
    """

    status: RunStatus
    outputs: Dict[str, str] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    error: Optional[str] = None
    decision: Optional[CaptureDecision] = None
    url: Optional[str] = None
    gif_tier: Optional[str] = None
    frame_count: int = 0

    @property
    def ok(self) -> bool:
        return self.status is not RunStatus.FAILED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "outputs": dict(self.outputs),
            "warnings": list(self.warnings),
            "error": self.error,
            "decision": (
                {"run": self.decision.run, "reason": self.decision.reason}
                if self.decision is not None
                else None
            ),
            "url": self.url,
            "gif_tier": self.gif_tier,
            "frame_count": self.frame_count,
        }


@dataclass
class CoordinatorContext:
    """
    State container for the WorkflowCoordinator execution pipeline.
    Holds all state that persists between execution phases.
    """

    request: RunRequest
    dependencies: RunDependencies
    reporter: CliOutputManagerProtocol

    # Gate (GatePhase)
    decision: CaptureDecision | None = None
    skipped: bool = False

    # Target (TargetPhase)
    target: ResolvedTarget | None = None

    # Capture (CapturePhase)
    store: FrameStore | None = None
    frame: Frame | None = None

    # Animation (AnimationPhase)
    timelapse: TimelapseOutcome | None = None

    # Video (VideoPhase)
    video: VideoExportResult | None = None

    outputs: Dict[str, str] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)

    # Result (ResultPhase)
    result: RunResult | None = None

    @property
    def cfg(self) -> AppConfig:
        return self.request.config

    def warn(self, message: str) -> None:
        """Record a non-fatal problem for the result and the reporter."""

        self.warnings.append(message)
        self.reporter.warn(message)

    def add_output(self, name: str, path: Path | str) -> None:
        value = str(Path(path).resolve())
        self.outputs[name] = value
        self.dependencies.output_sink.set_output(name, value)
