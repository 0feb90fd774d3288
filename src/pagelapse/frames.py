"""Append-only store of timestamped page screenshots plus a ``-latest`` alias."""

from __future__ import annotations

import logging
import os
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

from src.pagelapse.render.errors import CaptureError
from src.pagelapse.render.overlay import format_frame_label

logger = logging.getLogger(__name__)

__all__ = ["Frame", "FrameStore", "now_millis"]

FRAME_SUFFIX = ".png"
LATEST_SUFFIX = "-latest.png"


def now_millis() -> int:
    """Wall-clock epoch in milliseconds."""

    return time.time_ns() // 1_000_000


@dataclass(frozen=True)
class Frame:
    """
    A single stored screenshot.

    Attributes:
        path (Path): Location of the image file.
        basename (str): Frame family the file belongs to.
        epoch_ms (Optional[int]): Capture time embedded in the file name, ``None`` when unparsable.
    """

    path: Path
    basename: str
    epoch_ms: Optional[int]

    @property
    def label(self) -> str:
        return format_frame_label(self.epoch_ms)

    @property
    def sort_key(self) -> tuple[int, int, str]:
        if self.epoch_ms is None:
            return (1, 0, self.path.name)
        return (0, self.epoch_ms, self.path.name)


class FrameStore:
    """Owns ``{basename}_{epochMillis}.png`` files and ``{basename}-latest.png`` in *folder*."""

    def __init__(
        self,
        folder: Path | str,
        basename: str,
        *,
        clock: Callable[[], int] = now_millis,
    ) -> None:
        self.folder = Path(folder)
        self.basename = basename
        self._clock = clock
        self._pattern = re.compile(
            rf"^{re.escape(basename)}_(?P<stamp>.+){re.escape(FRAME_SUFFIX)}$"
        )

    @property
    def latest_path(self) -> Path:
        return self.folder / f"{self.basename}{LATEST_SUFFIX}"

    def frame_path(self, epoch_ms: int) -> Path:
        return self.folder / f"{self.basename}_{int(epoch_ms)}{FRAME_SUFFIX}"

    def capture(self, render: Callable[[], bytes]) -> Frame:
        """
        Render once and persist the bytes as a new frame plus the latest alias.

        The image is rendered into memory before anything touches disk, the
        timestamped file is written before the alias, and both writes go through a
        temporary sibling plus ``os.replace``. If the alias cannot be written the new
        timestamped file is removed again, so a failed call leaves the folder as it was.

        Raises:
            CaptureError: When rendering fails or either file cannot be written.
        """

        try:
            self.folder.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CaptureError(f"Unable to create frame folder {self.folder}: {exc}") from exc

        payload = render()
        if not payload:
            raise CaptureError("Renderer returned an empty image")

        epoch_ms = self._next_epoch()
        frame_path = self.frame_path(epoch_ms)
        try:
            _atomic_write(frame_path, payload)
        except OSError as exc:
            raise CaptureError(f"Failed to write {frame_path}: {exc}") from exc
        try:
            _atomic_write(self.latest_path, payload)
        except OSError as exc:
            try:
                frame_path.unlink()
            except OSError:
                logger.warning("Could not roll back %s after alias failure", frame_path)
            raise CaptureError(f"Failed to update {self.latest_path}: {exc}") from exc

        logger.info("Screenshot saved as %s and updated %s", frame_path, self.latest_path)
        return Frame(path=frame_path, basename=self.basename, epoch_ms=epoch_ms)

    def list_frames(self) -> List[Frame]:
        """
        Return stored frames in capture order.

        Ordering uses the epoch embedded in each file name; filesystem metadata is
        ignored. Files whose stamp is not an integer sort last.
        """

        if not self.folder.is_dir():
            return []
        frames: List[Frame] = []
        latest_name = self.latest_path.name
        for entry in self.folder.iterdir():
            if entry.name == latest_name or not entry.is_file():
                continue
            match = self._pattern.match(entry.name)
            if match is None:
                continue
            stamp = match.group("stamp")
            epoch_ms = int(stamp) if stamp.isdigit() else None
            frames.append(Frame(path=entry, basename=self.basename, epoch_ms=epoch_ms))
        frames.sort(key=lambda frame: frame.sort_key)
        return frames

    def _next_epoch(self) -> int:
        epoch_ms = int(self._clock())
        # Keep names unique and epochs non-decreasing when two captures share a millisecond.
        while self.frame_path(epoch_ms).exists():
            epoch_ms += 1
        return epoch_ms


def _atomic_write(path: Path, payload: bytes) -> None:
    tmp_path = path.with_name(f".{path.name}.tmp")
    try:
        tmp_path.write_bytes(payload)
        os.replace(tmp_path, path)
    except OSError:
        try:
            tmp_path.unlink()
        except FileNotFoundError:
            pass
        raise
