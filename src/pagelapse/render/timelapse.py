"""Stage-and-encode entry point with a scoped scratch workspace."""

from __future__ import annotations

import logging
import shutil
import time
from dataclasses import dataclass, field
from pathlib import Path
from types import TracebackType
from typing import Callable, List, Optional, Sequence

from src.datatypes import GifConfig, LabelMode
from src.pagelapse import subproc as _subproc
from src.pagelapse.frames import Frame, now_millis
from src.pagelapse.render.encoders import EncodeRequest, EncodeResult, Encoder
from src.pagelapse.render.errors import StagingError
from src.pagelapse.render.overlay import LabelStyle
from src.pagelapse.render.stager import stage

logger = logging.getLogger(__name__)

__all__ = [
    "ScratchWorkspace",
    "TimelapseOutcome",
    "assemble_timelapse",
    "label_style_from_config",
    "scratch_dir_name",
]

SCRATCH_PREFIX = "__ffmpeg_tmp_"


def scratch_dir_name(epoch_ms: int) -> str:
    return f"{SCRATCH_PREFIX}{int(epoch_ms)}__"


class ScratchWorkspace:
    """
    Per-invocation scratch directory that is always removed on exit.

    The directory is named after the current epoch so a prior run's leftover
    workspace never collides with this one. On exit, cleanup waits
    ``grace_seconds`` for the encoder process to release its file handles before
    removing the tree; a failed removal is logged, never raised.
    """

    def __init__(
        self,
        parent: Path,
        *,
        grace_seconds: float = 1.0,
        clock: Callable[[], int] = now_millis,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.parent = Path(parent)
        self.grace_seconds = max(0.0, float(grace_seconds))
        self._clock = clock
        self._sleep = sleep
        self.path: Optional[Path] = None
        self.cleanup_error: Optional[str] = None

    def __enter__(self) -> Path:
        epoch = int(self._clock())
        candidate = self.parent / scratch_dir_name(epoch)
        while candidate.exists():
            epoch += 1
            candidate = self.parent / scratch_dir_name(epoch)
        try:
            candidate.mkdir(parents=True)
        except OSError as exc:
            raise StagingError(f"Unable to create scratch workspace {candidate}: {exc}") from exc
        self.path = candidate
        logger.debug("Created scratch workspace %s", candidate)
        return candidate

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.cleanup()

    def cleanup(self) -> None:
        path = self.path
        if path is None:
            return
        if self.grace_seconds > 0:
            self._sleep(self.grace_seconds)
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            self.cleanup_error = f"Failed to remove scratch workspace {path}: {exc}"
            logger.warning(self.cleanup_error)
        else:
            logger.info("Temporary directory cleaned up: %s", path)
        self.path = None


@dataclass
class TimelapseOutcome:
    """Encoder result plus the warnings collected while staging and cleaning up."""

    result: EncodeResult
    frame_count: int
    warnings: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.result.ok


def label_style_from_config(cfg: GifConfig) -> LabelStyle:
    return LabelStyle(
        font_file=cfg.font_file,
        font_size=cfg.font_size,
        font_color=cfg.font_color,
        box_color=cfg.box_color,
    )


def assemble_timelapse(
    frames: Sequence[Frame],
    output: Path,
    cfg: GifConfig,
    *,
    runner: _subproc.CommandRunner = _subproc.run_checked,
    encoder: Encoder | None = None,
    clock: Callable[[], int] = now_millis,
    sleep: Callable[[float], None] = time.sleep,
) -> TimelapseOutcome:
    """
    Stage *frames* into a scratch workspace beside *output* and encode them.

    The workspace is removed after the encoder finishes, whether a tier succeeded,
    the ladder fell back, or every tier failed.

    Raises:
        InsufficientFramesError: Fewer than two frames were supplied.
        StagingError: The workspace could not be populated.
    """

    style = label_style_from_config(cfg)
    timeout = cfg.ffmpeg_timeout_seconds or None
    engine = encoder or Encoder(runner=runner)
    workspace = ScratchWorkspace(
        output.parent,
        grace_seconds=cfg.cleanup_delay_seconds,
        clock=clock,
        sleep=sleep,
    )
    warnings: List[str] = []
    with workspace as scratch_dir:
        staged = stage(
            frames,
            scratch_dir,
            LabelMode(cfg.label_mode),
            style=style,
            runner=runner,
            timeout=timeout,
        )
        warnings.extend(staged.warnings)
        request = EncodeRequest(
            staged=staged,
            output=output,
            frame_duration=cfg.frame_duration,
            scale_width=cfg.scale_width,
            max_colors=cfg.max_colors,
            dither=cfg.dither,
            label_style=style,
            timeout=timeout,
        )
        logger.info(
            "Encoding %d frames at %s fps into %s", len(staged), request.frame_rate, output
        )
        result = engine.encode(request)
    if workspace.cleanup_error:
        warnings.append(workspace.cleanup_error)
    return TimelapseOutcome(result=result, frame_count=len(staged), warnings=warnings)
