"""Continuous page recording with optional retiming and multi-format export."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol, Sequence

from src.pagelapse import subproc as _subproc
from src.pagelapse.render.encoders import FFMPEG_BASE, scale_filter
from src.pagelapse.render.errors import VideoExportError, VideoSessionError

logger = logging.getLogger(__name__)

__all__ = [
    "Recorder",
    "VideoExportResult",
    "VideoSession",
    "VideoState",
    "retime_factor",
]

_FASTSTART_FORMATS = frozenset({"mp4", "mov", "m4v"})


class VideoState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    STOPPED = "stopped"
    RETIMED = "retimed"
    EXPORTED = "exported"


class Recorder(Protocol):
    """Screen-recording capability driven by :class:`VideoSession`."""

    def start(self, url: str) -> None: ...

    def stop(self) -> Path: ...

    def close(self) -> None: ...


def retime_factor(speed: float) -> float:
    """Presentation-timestamp multiplier for a playback *speed* (``> 1`` shortens)."""

    if speed <= 0:
        raise ValueError("speed must be > 0")
    return 1.0 / float(speed)


@dataclass
class VideoExportResult:
    """
    What the video leg produced.

    Attributes:
        native (Optional[Path]): Recorded container, ``None`` once deleted as an intermediate.
        native_format (str): Container extension of the recording.
        exports (Dict[str, Path]): Successfully produced file per requested format.
        failures (Dict[str, str]): Error message per failed format.
        retimed (bool): Whether a speed retime replaced the recording.
        warnings (List[str]): Non-fatal problems (retime or export failures).
    """

    native: Optional[Path]
    native_format: str
    exports: Dict[str, Path] = field(default_factory=dict)
    failures: Dict[str, str] = field(default_factory=dict)
    retimed: bool = False
    warnings: List[str] = field(default_factory=list)


class VideoSession:
    """
    ``Idle -> Recording -> Stopped -> [Retimed] -> [Exported]`` around a :class:`Recorder`.

    A recorder that fails to stop leaves the session in ``RECORDING`` and surfaces
    :class:`VideoSessionError`; retiming and each export degrade to warnings.
    """

    def __init__(
        self,
        recorder: Recorder,
        output: Path,
        *,
        runner: _subproc.CommandRunner = _subproc.run_checked,
        sleep: Callable[[float], None] = time.sleep,
        timeout: float | None = None,
        gif_fps: int = 15,
        scale_width: int = 640,
    ) -> None:
        self._recorder = recorder
        self.output = Path(output)
        self._runner = runner
        self._sleep = sleep
        self._timeout = timeout if timeout else None
        self.gif_fps = int(gif_fps)
        self.scale_width = int(scale_width)
        self.state = VideoState.IDLE
        self.native_path: Optional[Path] = None
        self.retimed = False

    @property
    def native_format(self) -> str:
        path = self.native_path or self.output
        return path.suffix.lstrip(".").lower()

    def _require(self, *states: VideoState) -> None:
        if self.state not in states:
            expected = ", ".join(state.value for state in states)
            raise VideoSessionError(
                f"Video session is {self.state.value}; expected one of: {expected}"
            )

    def start(self, url: str) -> None:
        self._require(VideoState.IDLE)
        try:
            self._recorder.start(url)
        except VideoSessionError:
            raise
        except Exception as exc:
            raise VideoSessionError(f"Failed to start recording: {exc}") from exc
        self.state = VideoState.RECORDING
        logger.info("Video recording started for %s", url)

    def hold(self, seconds: float) -> None:
        self._require(VideoState.RECORDING)
        logger.info("Recording for %.1f seconds...", seconds)
        self._sleep(max(0.0, float(seconds)))

    def stop(self) -> Path:
        """Finalize the recording and move it next to the configured output name."""

        self._require(VideoState.RECORDING)
        try:
            recorded = Path(self._recorder.stop())
        except VideoSessionError:
            raise
        except Exception as exc:
            raise VideoSessionError(f"Recorder did not stop cleanly: {exc}") from exc
        if not recorded.is_file() or recorded.stat().st_size == 0:
            raise VideoSessionError(f"Recorder produced no video file at {recorded}")

        suffix = recorded.suffix or self.output.suffix
        native = self.output.with_suffix(suffix)
        try:
            native.parent.mkdir(parents=True, exist_ok=True)
            if recorded.resolve() != native.resolve():
                shutil.move(str(recorded), str(native))
        except OSError as exc:
            raise VideoSessionError(f"Failed to move recording to {native}: {exc}") from exc
        self.native_path = native
        self.state = VideoState.STOPPED
        logger.info("Video saved as %s", native)
        return native

    def _run(self, cmd: List[str], target: Path) -> None:
        logger.info("Using command: %s", _subproc.format_command(cmd))
        try:
            process = self._runner(cmd, timeout=self._timeout)
        except FileNotFoundError as exc:
            raise VideoExportError(f"{cmd[0]} executable not found in PATH") from exc
        except subprocess.TimeoutExpired as exc:
            raise VideoExportError(f"{cmd[0]} timed out after {self._timeout}s") from exc
        except OSError as exc:
            raise VideoExportError(f"{cmd[0]} could not be run: {exc}") from exc
        if process.returncode != 0:
            detail = _subproc.stderr_text(process) or "unknown error"
            raise VideoExportError(f"{cmd[0]} exited with {process.returncode}: {detail}")
        if not target.is_file():
            raise VideoExportError(f"{cmd[0]} did not produce {target}")

    def retime(self, speed: float) -> bool:
        """
        Re-encode the recording with ``setpts=(1/speed)*PTS``.

        The retimed file replaces the recording only on success. Returns whether the
        recording was retimed.

        Raises:
            VideoExportError: The re-encode failed; the original recording is untouched.
        """

        self._require(VideoState.STOPPED)
        if speed == 1:
            return False
        native = self.native_path
        assert native is not None
        factor = retime_factor(speed)
        retimed = native.with_name(f"{native.stem}.retimed{native.suffix}")
        cmd = [
            *FFMPEG_BASE,
            "-i",
            str(native),
            "-filter:v",
            f"setpts={factor:.8f}*PTS",
            "-an",
            str(retimed),
        ]
        try:
            self._run(cmd, retimed)
            os.replace(retimed, native)
        except (VideoExportError, OSError) as exc:
            _discard(retimed)
            raise VideoExportError(f"Video speed adjustment failed: {exc}") from exc
        self.retimed = True
        self.state = VideoState.RETIMED
        logger.info("Video speed adjusted by %sx", speed)
        return True

    def export_path(self, fmt: str) -> Path:
        return self.output.with_suffix(f".{fmt}")

    def _export_gif(self, target: Path) -> None:
        native = self.native_path
        assert native is not None
        palette = target.with_name(f".{target.stem}.palette.png")
        chain = f"fps={self.gif_fps},{scale_filter(self.scale_width)}"
        try:
            self._run(
                [*FFMPEG_BASE, "-i", str(native), "-vf", f"{chain},palettegen", "-update", "1", str(palette)],
                palette,
            )
            self._run(
                [
                    *FFMPEG_BASE,
                    "-i",
                    str(native),
                    "-i",
                    str(palette),
                    "-lavfi",
                    f"{chain}[x];[x][1:v]paletteuse",
                    "-loop",
                    "0",
                    str(target),
                ],
                target,
            )
        finally:
            _discard(palette)

    def _export_generic(self, fmt: str, target: Path) -> None:
        native = self.native_path
        assert native is not None
        cmd = [*FFMPEG_BASE, "-i", str(native), "-pix_fmt", "yuv420p"]
        if fmt in _FASTSTART_FORMATS:
            cmd.extend(["-movflags", "+faststart"])
        cmd.append(str(target))
        self._run(cmd, target)

    def export(self, formats: Sequence[str]) -> VideoExportResult:
        """
        Produce one file per requested format, each attempt isolated from the others.

        The native recording is reported as-is when its format is requested and is
        deleted afterwards when other formats were requested but not it. With no
        formats requested the recording itself is kept.
        """

        self._require(VideoState.STOPPED, VideoState.RETIMED)
        native = self.native_path
        assert native is not None
        native_format = self.native_format
        result = VideoExportResult(native=native, native_format=native_format, retimed=self.retimed)
        for fmt in formats:
            if fmt == native_format:
                result.exports[fmt] = native
                continue
            target = self.export_path(fmt)
            try:
                if fmt == "gif":
                    self._export_gif(target)
                else:
                    self._export_generic(fmt, target)
            except VideoExportError as exc:
                message = f"Failed to convert video to {fmt}: {exc}"
                logger.warning(message)
                result.failures[fmt] = str(exc)
                result.warnings.append(message)
                continue
            result.exports[fmt] = target
            logger.info("Video converted to %s: %s", fmt, target)

        if formats and native_format not in formats:
            try:
                native.unlink()
            except FileNotFoundError:
                pass
            except OSError as exc:
                message = f"Failed to remove intermediate recording {native}: {exc}"
                logger.warning(message)
                result.warnings.append(message)
            else:
                logger.info("Removed intermediate recording %s", native)
            result.native = None
            self.native_path = None
        self.state = VideoState.EXPORTED
        return result

    def record(
        self,
        url: str,
        *,
        duration: float,
        speed: float = 1.0,
        formats: Sequence[str] = (),
    ) -> VideoExportResult:
        """
        Run the whole session: start, hold, stop, optional retime, export.

        The recorder is closed as soon as recording ends, whether or not it succeeded.

        Raises:
            VideoSessionError: The recording could not be started or finalized.
        """

        try:
            self.start(url)
            self.hold(duration)
            self.stop()
        finally:
            self._recorder.close()
        warnings: List[str] = []
        try:
            self.retime(speed)
        except VideoExportError as exc:
            logger.warning("%s; keeping the original recording", exc)
            warnings.append(str(exc))
        result = self.export(formats)
        result.warnings[:0] = warnings
        return result


def _discard(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError:
        logger.debug("Could not remove %s", path)
