"""Tiered external encoder that turns a staged frame sequence into an animation."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from fractions import Fraction
from pathlib import Path
from typing import ClassVar, List, Optional, Sequence

from src.datatypes import LabelMode
from src.pagelapse import subproc as _subproc
from src.pagelapse.render.overlay import (
    LabelStyle,
    build_sendcmd_script,
    build_sidefile_overlay,
)
from src.pagelapse.render.stager import StagedSequence

logger = logging.getLogger(__name__)

__all__ = [
    "DEFAULT_TIERS",
    "DirectTier",
    "EncodeRequest",
    "EncodeResult",
    "Encoder",
    "EncoderTier",
    "GenericToolTier",
    "PaletteTier",
    "TierOutcome",
    "derive_frame_rate",
    "format_rate",
    "scale_filter",
]

PALETTE_FILENAME = "__palette.png"
SENDCMD_FILENAME = "labels.cmd"
FFMPEG_BASE = ("ffmpeg", "-nostdin", "-hide_banner", "-loglevel", "error", "-y")


def derive_frame_rate(frame_duration: float) -> Fraction:
    """Input frames per second for a time-lapse that shows each frame *frame_duration* seconds."""

    duration = Fraction(str(frame_duration))
    if duration <= 0:
        raise ValueError("frame_duration must be > 0")
    return 1 / duration


def format_rate(rate: Fraction) -> str:
    """ffmpeg rational notation (``2`` or ``10/3``)."""

    if rate.denominator == 1:
        return str(rate.numerator)
    return f"{rate.numerator}/{rate.denominator}"


def scale_filter(width: int) -> str:
    """Width-bound lanczos scale that keeps the aspect ratio."""

    return f"scale={int(width)}:-1:flags=lanczos"


@dataclass(frozen=True)
class EncodeRequest:
    """
    Inputs for one encode invocation.

    Attributes:
        staged (StagedSequence): Frames staged in the scratch workspace.
        output (Path): Final artifact location.
        frame_duration (float): Seconds each captured frame stays on screen.
        scale_width (int): Output width; height follows the aspect ratio.
        max_colors (int): Palette size for the palette tier (2-256).
        dither (str): ``paletteuse`` dithering algorithm.
        label_style (Optional[LabelStyle]): Overlay style for side-file labels.
        timeout (Optional[float]): Per-command timeout in seconds; ``None``/``0`` disables.
    """

    staged: StagedSequence
    output: Path
    frame_duration: float
    scale_width: int
    max_colors: int = 256
    dither: str = "sierra2_4a"
    label_style: Optional[LabelStyle] = None
    timeout: Optional[float] = None

    @property
    def frame_rate(self) -> Fraction:
        return derive_frame_rate(self.frame_duration)

    @property
    def work_output(self) -> Path:
        suffix = self.output.suffix or ".gif"
        return self.staged.directory / f"__encoded{suffix}"

    @property
    def loops(self) -> bool:
        return self.work_output.suffix.lower() == ".gif"


@dataclass(frozen=True)
class TierOutcome:
    tier: str
    ok: bool
    error: Optional[str] = None
    commands: tuple[str, ...] = ()


@dataclass
class EncodeResult:
    """Which tier produced the artifact, where, and how large it is."""

    tier: Optional[str]
    output: Path
    size: int = 0
    frame_rate: Optional[Fraction] = None
    attempts: List[TierOutcome] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.tier is not None


class EncoderTier(ABC):
    """One rung of the fallback ladder; subclasses only describe their commands."""

    name: ClassVar[str]

    @abstractmethod
    def build_commands(self, request: EncodeRequest) -> List[List[str]]:
        """Return the commands to run in order; all must succeed."""

    def prepare(self, request: EncodeRequest) -> None:
        """Write any helper files the commands rely on."""

    def attempt(self, request: EncodeRequest, runner: _subproc.CommandRunner) -> TierOutcome:
        """
        Run this tier's commands against *request*.

        Success means every command exited with 0 and the work output exists and is
        non-empty. Missing or unrunnable binaries and timeouts count as failure,
        never raise.
        """

        work_output = request.work_output
        try:
            work_output.unlink()
        except FileNotFoundError:
            pass
        try:
            self.prepare(request)
            commands = self.build_commands(request)
        except (OSError, ValueError) as exc:
            return TierOutcome(tier=self.name, ok=False, error=f"{self.name} tier setup failed: {exc}")

        rendered = tuple(_subproc.format_command(cmd) for cmd in commands)
        for cmd in commands:
            logger.info("Using command: %s", _subproc.format_command(cmd))
            try:
                process = runner(cmd, timeout=request.timeout, cwd=request.staged.directory)
            except FileNotFoundError:
                return TierOutcome(
                    tier=self.name,
                    ok=False,
                    error=f"{cmd[0]} executable not found in PATH",
                    commands=rendered,
                )
            except subprocess.TimeoutExpired:
                return TierOutcome(
                    tier=self.name,
                    ok=False,
                    error=f"{cmd[0]} timed out after {request.timeout}s",
                    commands=rendered,
                )
            except OSError as exc:
                return TierOutcome(
                    tier=self.name,
                    ok=False,
                    error=f"{cmd[0]} could not be run: {exc}",
                    commands=rendered,
                )
            if process.returncode != 0:
                detail = _subproc.stderr_text(process) or "unknown error"
                return TierOutcome(
                    tier=self.name,
                    ok=False,
                    error=f"{cmd[0]} exited with {process.returncode}: {detail}",
                    commands=rendered,
                )
        if not work_output.is_file() or work_output.stat().st_size == 0:
            return TierOutcome(
                tier=self.name,
                ok=False,
                error=f"{self.name} tier produced no output file",
                commands=rendered,
            )
        return TierOutcome(tier=self.name, ok=True, commands=rendered)


class _FfmpegTier(EncoderTier):
    """Shared input handling for the ffmpeg-based tiers."""

    def prepare(self, request: EncodeRequest) -> None:
        if self._uses_sidefile(request):
            script = request.staged.directory / SENDCMD_FILENAME
            script.write_text(
                build_sendcmd_script(request.staged.labels, request.frame_duration),
                encoding="utf-8",
            )

    @staticmethod
    def _uses_sidefile(request: EncodeRequest) -> bool:
        return request.staged.label_mode is LabelMode.SIDEFILE and len(request.staged) > 0

    def _input_args(self, request: EncodeRequest) -> List[str]:
        return [
            "-framerate",
            format_rate(request.frame_rate),
            "-i",
            str(request.staged.directory / request.staged.pattern),
        ]

    def _base_filters(self, request: EncodeRequest) -> List[str]:
        filters: List[str] = []
        if self._uses_sidefile(request):
            filters.append(build_sidefile_overlay(SENDCMD_FILENAME, request.label_style or LabelStyle()))
        filters.append(f"fps={format_rate(request.frame_rate)}")
        filters.append(scale_filter(request.scale_width))
        return filters

    @staticmethod
    def _output_args(request: EncodeRequest) -> List[str]:
        args = ["-loop", "0"] if request.loops else []
        args.append(str(request.work_output))
        return args


class PaletteTier(_FfmpegTier):
    """Two-pass palettegen/paletteuse encode; smallest and cleanest output."""

    name = "palette"

    def build_commands(self, request: EncodeRequest) -> List[List[str]]:
        palette = request.staged.directory / PALETTE_FILENAME
        chain = ",".join(self._base_filters(request))
        max_colors = max(2, min(256, int(request.max_colors)))
        generate = [
            *FFMPEG_BASE,
            *self._input_args(request),
            "-vf",
            f"{chain},palettegen=max_colors={max_colors}:stats_mode=diff",
            "-update",
            "1",
            str(palette),
        ]
        apply = [
            *FFMPEG_BASE,
            *self._input_args(request),
            "-i",
            str(palette),
            "-lavfi",
            f"[0:v]{chain}[x];[x][1:v]paletteuse=dither={request.dither}",
            *self._output_args(request),
        ]
        return [generate, apply]


class DirectTier(_FfmpegTier):
    """Single-pass scale and frame-rate conversion straight to the container."""

    name = "direct"

    def build_commands(self, request: EncodeRequest) -> List[List[str]]:
        return [
            [
                *FFMPEG_BASE,
                *self._input_args(request),
                "-vf",
                ",".join(self._base_filters(request)),
                *self._output_args(request),
            ]
        ]


class GenericToolTier(EncoderTier):
    """ImageMagick fallback for when ffmpeg itself is unusable."""

    name = "generic"

    def __init__(self, binary: str | None = None) -> None:
        self._binary = binary

    def resolve_binary(self) -> str:
        if self._binary:
            return self._binary
        return "magick" if shutil.which("magick") else "convert"

    def build_commands(self, request: EncodeRequest) -> List[List[str]]:
        if request.staged.label_mode is LabelMode.SIDEFILE:
            logger.warning("Generic encoder cannot apply side-file labels; frames are left unlabelled")
        delay = max(1, round(request.frame_duration * 100))
        cmd = [self.resolve_binary(), "-delay", str(delay)]
        if request.loops:
            cmd.extend(["-loop", "0"])
        cmd.extend(str(entry.path) for entry in request.staged.entries)
        cmd.extend(["-filter", "Lanczos", "-resize", f"{int(request.scale_width)}x", str(request.work_output)])
        return [cmd]


DEFAULT_TIERS: tuple[EncoderTier, ...] = (PaletteTier(), DirectTier(), GenericToolTier())


class Encoder:
    """Walks the tier ladder until one tier yields an artifact."""

    def __init__(
        self,
        tiers: Sequence[EncoderTier] | None = None,
        *,
        runner: _subproc.CommandRunner = _subproc.run_checked,
    ) -> None:
        self.tiers: tuple[EncoderTier, ...] = tuple(tiers) if tiers is not None else DEFAULT_TIERS
        self._runner = runner

    def encode(self, request: EncodeRequest) -> EncodeResult:
        """
        Produce ``request.output`` from the staged sequence.

        Tiers run in order; each one is tried only when the previous tier failed.
        The artifact is written inside the scratch directory and moved onto the
        output path with ``os.replace``, so an earlier artifact survives a failed run.
        """

        frame_rate = request.frame_rate
        attempts: List[TierOutcome] = []
        for tier in self.tiers:
            outcome = tier.attempt(request, self._runner)
            attempts.append(outcome)
            if not outcome.ok:
                logger.warning("Encoder tier '%s' failed: %s", tier.name, outcome.error)
                continue
            try:
                request.output.parent.mkdir(parents=True, exist_ok=True)
                os.replace(request.work_output, request.output)
                size = request.output.stat().st_size
            except OSError as exc:
                error = f"Failed to move encoded artifact to {request.output}: {exc}"
                logger.error(error)
                return EncodeResult(
                    tier=None,
                    output=request.output,
                    frame_rate=frame_rate,
                    attempts=attempts,
                    error=error,
                )
            logger.info(
                "Animation created at %s via %s tier (%d bytes)", request.output, tier.name, size
            )
            return EncodeResult(
                tier=tier.name,
                output=request.output,
                size=size,
                frame_rate=frame_rate,
                attempts=attempts,
            )

        last_error = attempts[-1].error if attempts else "no encoder tiers configured"
        return EncodeResult(
            tier=None,
            output=request.output,
            frame_rate=frame_rate,
            attempts=attempts,
            error=last_error,
        )
