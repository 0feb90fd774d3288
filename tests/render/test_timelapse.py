from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest

from src.datatypes import GifConfig, LabelMode
from src.pagelapse.frames import Frame
from src.pagelapse.render.errors import InsufficientFramesError, StagingError
from src.pagelapse.render.timelapse import ScratchWorkspace, assemble_timelapse, scratch_dir_name
from tests.helpers.fakes import PNG_BYTES, FakeRunner


def _frames(folder: Path, count: int) -> list[Frame]:
    frames = []
    for index in range(count):
        stamp = 1000 * (index + 1)
        path = folder / f"home_{stamp}.png"
        path.write_bytes(PNG_BYTES)
        frames.append(Frame(path=path, basename="home", epoch_ms=stamp))
    return frames


def _scratch_dirs(folder: Path) -> list[Path]:
    return [entry for entry in folder.iterdir() if entry.name.startswith("__ffmpeg_tmp_")]


@pytest.fixture
def gif_cfg() -> GifConfig:
    return GifConfig(enabled=True, label_mode=LabelMode.NONE)


def test_scratch_workspace_named_after_epoch_and_unique(tmp_path: Path) -> None:
    (tmp_path / scratch_dir_name(5000)).mkdir()
    sleeps: list[float] = []

    workspace = ScratchWorkspace(tmp_path, grace_seconds=1.0, clock=lambda: 5000, sleep=sleeps.append)
    with workspace as scratch:
        assert scratch.name == "__ffmpeg_tmp_5001__"
        (scratch / "img0000.png").write_bytes(PNG_BYTES)

    assert not scratch.exists()
    assert sleeps == [1.0]
    assert workspace.cleanup_error is None


def test_scratch_workspace_reports_uncreatable_directory(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_bytes(b"")

    with pytest.raises(StagingError, match="Unable to create scratch workspace"):
        with ScratchWorkspace(blocker, clock=lambda: 1, sleep=lambda _s: None):
            pass


def test_success_removes_scratch_workspace(frame_dir: Path, gif_cfg: GifConfig) -> None:
    sleeps: list[float] = []
    runner = FakeRunner()

    outcome = assemble_timelapse(
        _frames(frame_dir, 3),
        frame_dir / "timeline.gif",
        gif_cfg,
        runner=runner,
        clock=lambda: 42,
        sleep=sleeps.append,
    )

    assert outcome.ok
    assert outcome.frame_count == 3
    assert outcome.result.tier == "palette"
    assert (frame_dir / "timeline.gif").is_file()
    assert _scratch_dirs(frame_dir) == []
    assert sleeps == [gif_cfg.cleanup_delay_seconds]
    assert all(cwd is not None and cwd.name == "__ffmpeg_tmp_42__" for cwd in runner.cwds)


def test_fallback_still_removes_scratch_workspace(frame_dir: Path, gif_cfg: GifConfig) -> None:
    runner = FakeRunner(fail=lambda cmd: any("palettegen" in part for part in cmd))

    outcome = assemble_timelapse(
        _frames(frame_dir, 2), frame_dir / "timeline.gif", gif_cfg, runner=runner, sleep=lambda _s: None
    )

    assert outcome.result.tier == "direct"
    assert _scratch_dirs(frame_dir) == []


def test_total_failure_removes_scratch_workspace(frame_dir: Path, gif_cfg: GifConfig) -> None:
    runner = FakeRunner(fail=lambda _cmd: True)

    outcome = assemble_timelapse(
        _frames(frame_dir, 2), frame_dir / "timeline.gif", gif_cfg, runner=runner, sleep=lambda _s: None
    )

    assert not outcome.ok
    assert not (frame_dir / "timeline.gif").exists()
    assert _scratch_dirs(frame_dir) == []


def test_insufficient_frames_raise_and_leave_no_workspace(frame_dir: Path, gif_cfg: GifConfig) -> None:
    with pytest.raises(InsufficientFramesError):
        assemble_timelapse(
            _frames(frame_dir, 1),
            frame_dir / "timeline.gif",
            gif_cfg,
            runner=FakeRunner(),
            sleep=lambda _s: None,
        )

    assert _scratch_dirs(frame_dir) == []


def test_burned_labels_run_drawtext_once_per_frame(frame_dir: Path, gif_cfg: GifConfig) -> None:
    cfg = replace(gif_cfg, label_mode=LabelMode.BURN, ffmpeg_timeout_seconds=0)
    runner = FakeRunner()

    outcome = assemble_timelapse(
        _frames(frame_dir, 2), frame_dir / "timeline.gif", cfg, runner=runner, sleep=lambda _s: None
    )

    assert outcome.ok
    drawtext_calls = [call for call in runner.calls if any(part.startswith("drawtext=") for part in call)]
    assert len(drawtext_calls) == 2
