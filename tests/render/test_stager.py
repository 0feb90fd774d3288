from __future__ import annotations

from pathlib import Path

import pytest

from src.datatypes import LabelMode
from src.pagelapse.frames import Frame
from src.pagelapse.render.errors import InsufficientFramesError
from src.pagelapse.render.stager import LABELS_FILENAME, pad_width, stage
from tests.helpers.fakes import PNG_BYTES, FakeRunner


def _frames(folder: Path, stamps: list[int]) -> list[Frame]:
    frames = []
    for stamp in stamps:
        path = folder / f"home_{stamp}.png"
        path.write_bytes(PNG_BYTES + str(stamp).encode())
        frames.append(Frame(path=path, basename="home", epoch_ms=stamp))
    return frames


def test_stage_copies_in_epoch_order(frame_dir: Path, tmp_path: Path) -> None:
    frames = _frames(frame_dir, [3000, 1000, 2000])
    scratch = tmp_path / "scratch"

    staged = stage(frames, scratch, LabelMode.NONE)

    assert staged.pattern == "img%04d.png"
    assert [entry.path.name for entry in staged.entries] == ["img0000.png", "img0001.png", "img0002.png"]
    assert [entry.source.epoch_ms for entry in staged.entries] == [1000, 2000, 3000]
    assert staged.entries[0].path.read_bytes() == PNG_BYTES + b"1000"
    assert staged.labels_path is None


def test_stage_rejects_single_frame(frame_dir: Path, tmp_path: Path) -> None:
    with pytest.raises(InsufficientFramesError) as excinfo:
        stage(_frames(frame_dir, [1000]), tmp_path / "scratch")

    assert excinfo.value.available == 1
    assert not (tmp_path / "scratch").exists()


def test_sidefile_mode_writes_one_label_per_frame(frame_dir: Path, tmp_path: Path) -> None:
    frames = _frames(frame_dir, [1000, 2000])

    staged = stage(frames, tmp_path / "scratch", "sidefile")

    assert staged.labels_path == tmp_path / "scratch" / LABELS_FILENAME
    lines = staged.labels_path.read_text(encoding="utf-8").splitlines()
    assert lines == [frame.label for frame in frames]


def test_burn_mode_runs_drawtext_per_frame(frame_dir: Path, tmp_path: Path) -> None:
    runner = FakeRunner(payload=b"burned")
    frames = _frames(frame_dir, [1000, 2000])

    staged = stage(frames, tmp_path / "scratch", LabelMode.BURN, runner=runner)

    assert len(runner.calls) == 2
    assert all("drawtext=" in " ".join(call) for call in runner.calls)
    assert "x=w-tw-10:y=h-th-10" in runner.calls[0][runner.calls[0].index("-vf") + 1]
    assert staged.entries[1].path.read_bytes() == b"burned"
    assert staged.warnings == []


def test_failed_burn_falls_back_to_plain_copy(frame_dir: Path, tmp_path: Path) -> None:
    runner = FakeRunner(fail=lambda cmd: cmd[-1].endswith("img0001.png"))
    frames = _frames(frame_dir, [1000, 2000])

    staged = stage(frames, tmp_path / "scratch", LabelMode.BURN, runner=runner)

    assert len(staged) == 2
    assert staged.entries[1].path.read_bytes() == PNG_BYTES + b"2000"
    assert len(staged.warnings) == 1
    assert "home_2000.png" in staged.warnings[0]


@pytest.mark.parametrize(("count", "expected"), [(2, 4), (10_000, 4), (10_001, 5)])
def test_pad_width(count: int, expected: int) -> None:
    assert pad_width(count) == expected


def test_unrunnable_ffmpeg_stages_plain_copies(frame_dir: Path, tmp_path: Path) -> None:
    runner = FakeRunner(denied=lambda cmd: cmd[0] == "ffmpeg")
    frames = _frames(frame_dir, [1000, 2000])

    staged = stage(frames, tmp_path / "scratch", LabelMode.BURN, runner=runner)

    assert [entry.path.read_bytes() for entry in staged.entries] == [PNG_BYTES + b"1000", PNG_BYTES + b"2000"]
    assert len(staged.warnings) == 2
    assert all("could not be run" in warning for warning in staged.warnings)
