"""Copy an ordered frame subset into a scratch workspace under sequential names."""

from __future__ import annotations

import logging
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

from src.datatypes import LabelMode
from src.pagelapse import subproc as _subproc
from src.pagelapse.frames import Frame
from src.pagelapse.render.errors import InsufficientFramesError, StagingError
from src.pagelapse.render.overlay import LabelStyle, build_drawtext_filter

logger = logging.getLogger(__name__)

__all__ = [
    "LABELS_FILENAME",
    "MIN_FRAMES",
    "StagedFrame",
    "StagedSequence",
    "pad_width",
    "stage",
]

MIN_FRAMES = 2
LABELS_FILENAME = "labels.txt"
STAGED_PREFIX = "img"


@dataclass(frozen=True)
class StagedFrame:
    index: int
    source: Frame
    path: Path
    label: str


@dataclass
class StagedSequence:
    """
    Frames materialised as ``img{index}.png`` inside one scratch directory.

    Attributes:
        directory (Path): Scratch directory owning the staged files.
        width (int): Zero-pad width of the sequence index.
        entries (List[StagedFrame]): Staged frames in ascending capture order.
        label_mode (LabelMode): How labels were applied.
        labels_path (Optional[Path]): Side file holding one label per line (side-file mode only).
        warnings (List[str]): Non-fatal problems met while staging.
    """

    directory: Path
    width: int
    entries: List[StagedFrame] = field(default_factory=list)
    label_mode: LabelMode = LabelMode.NONE
    labels_path: Optional[Path] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def pattern(self) -> str:
        """ffmpeg image2 input pattern for the sequence."""

        return f"{STAGED_PREFIX}%0{self.width}d.png"

    @property
    def labels(self) -> List[str]:
        return [entry.label for entry in self.entries]

    def __len__(self) -> int:
        return len(self.entries)


def pad_width(count: int) -> int:
    """Index width wide enough for *count* entries, never below four digits."""

    return max(4, len(str(max(count - 1, 0))))


def staged_name(index: int, width: int) -> str:
    return f"{STAGED_PREFIX}{index:0{width}d}.png"


def stage(
    frames: Sequence[Frame],
    scratch_dir: Path,
    label_mode: LabelMode | str = LabelMode.NONE,
    *,
    style: LabelStyle | None = None,
    runner: _subproc.CommandRunner = _subproc.run_checked,
    timeout: float | None = None,
) -> StagedSequence:
    """
    Stage *frames* into *scratch_dir* as a zero-padded sequence.

    Frames are re-sorted by embedded epoch so index ``i`` is always the ``i``-th
    capture. With :attr:`LabelMode.BURN` every copy is produced by one ffmpeg drawtext
    invocation; a frame whose burn fails is copied unlabelled so the sequence stays
    complete. With :attr:`LabelMode.SIDEFILE` the labels are written once to
    ``labels.txt`` for the encoder.

    Raises:
        InsufficientFramesError: Fewer than two frames were supplied.
        StagingError: The scratch directory or a staged file could not be written.
    """

    mode = LabelMode(label_mode)
    ordered = sorted(frames, key=lambda frame: frame.sort_key)
    if len(ordered) < MIN_FRAMES:
        raise InsufficientFramesError(len(ordered), MIN_FRAMES)

    label_style = style or LabelStyle()
    width = pad_width(len(ordered))
    try:
        scratch_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise StagingError(f"Unable to create scratch directory {scratch_dir}: {exc}") from exc

    sequence = StagedSequence(directory=scratch_dir, width=width, label_mode=mode)
    if mode is LabelMode.BURN:
        logger.info("Copying files to temporary directory with burned timestamps...")
    for index, frame in enumerate(ordered):
        destination = scratch_dir / staged_name(index, width)
        label = frame.label
        if mode is LabelMode.BURN:
            _burn_label(frame, destination, label, label_style, runner, timeout, sequence)
        else:
            _copy_frame(frame.path, destination)
        sequence.entries.append(
            StagedFrame(index=index, source=frame, path=destination, label=label)
        )
        logger.debug("Processed %s -> %s with label %r", frame.path.name, destination.name, label)

    if mode is LabelMode.SIDEFILE:
        labels_path = scratch_dir / LABELS_FILENAME
        try:
            labels_path.write_text("\n".join(sequence.labels) + "\n", encoding="utf-8")
        except OSError as exc:
            raise StagingError(f"Unable to write {labels_path}: {exc}") from exc
        sequence.labels_path = labels_path

    logger.info("Staged %d frames in %s", len(sequence), scratch_dir)
    return sequence


def _copy_frame(source: Path, destination: Path) -> None:
    try:
        shutil.copyfile(source, destination)
    except OSError as exc:
        raise StagingError(f"Failed to copy {source} -> {destination}: {exc}") from exc


def _burn_label(
    frame: Frame,
    destination: Path,
    label: str,
    style: LabelStyle,
    runner: _subproc.CommandRunner,
    timeout: float | None,
    sequence: StagedSequence,
) -> None:
    cmd = [
        "ffmpeg",
        "-nostdin",
        "-loglevel",
        "error",
        "-y",
        "-i",
        str(frame.path),
        "-vf",
        build_drawtext_filter(label, style),
        str(destination),
    ]
    reason: str | None = None
    try:
        process = runner(cmd, timeout=timeout)
    except FileNotFoundError:
        reason = "ffmpeg executable not found in PATH"
    except subprocess.TimeoutExpired:
        reason = f"ffmpeg timed out after {timeout:.1f}s" if timeout else "ffmpeg timed out"
    except OSError as exc:
        reason = f"ffmpeg could not be run: {exc}"
    else:
        if process.returncode != 0 or not destination.is_file():
            reason = _subproc.stderr_text(process) or f"ffmpeg exited with {process.returncode}"
    if reason is None:
        return
    message = f"Label burn failed for {frame.path.name}: {reason}; staging it unlabelled"
    logger.warning(message)
    sequence.warnings.append(message)
    _copy_frame(frame.path, destination)
