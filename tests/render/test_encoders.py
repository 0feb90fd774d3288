from __future__ import annotations

from fractions import Fraction
from pathlib import Path

import pytest

from src.datatypes import LabelMode
from src.pagelapse.frames import Frame
from src.pagelapse.render.encoders import (
    DirectTier,
    EncodeRequest,
    Encoder,
    GenericToolTier,
    PaletteTier,
    derive_frame_rate,
    format_rate,
)
from src.pagelapse.render.stager import stage
from tests.helpers.fakes import PNG_BYTES, FakeRunner


def _is_palette(cmd: list[str]) -> bool:
    return any("palettegen" in part or "paletteuse" in part for part in cmd)


def _staged(tmp_path: Path, mode: LabelMode = LabelMode.NONE):
    source = tmp_path / "frames"
    source.mkdir()
    frames = []
    for stamp in (1000, 2000, 3000):
        path = source / f"home_{stamp}.png"
        path.write_bytes(PNG_BYTES)
        frames.append(Frame(path=path, basename="home", epoch_ms=stamp))
    return stage(frames, tmp_path / "scratch", mode)


def _request(tmp_path: Path, mode: LabelMode = LabelMode.NONE, **kwargs) -> EncodeRequest:
    values = {"frame_duration": 0.5, "scale_width": 640}
    values.update(kwargs)
    return EncodeRequest(staged=_staged(tmp_path, mode), output=tmp_path / "out" / "timeline.gif", **values)


@pytest.mark.parametrize(
    ("duration", "expected", "text"),
    [(0.5, Fraction(2), "2"), (0.3, Fraction(10, 3), "10/3"), (2, Fraction(1, 2), "1/2")],
)
def test_frame_rate_is_exact(duration: float, expected: Fraction, text: str) -> None:
    assert derive_frame_rate(duration) == expected
    assert format_rate(expected) == text


def test_frame_rate_rejects_non_positive() -> None:
    with pytest.raises(ValueError):
        derive_frame_rate(0)


def test_palette_tier_succeeds_first(tmp_path: Path) -> None:
    runner = FakeRunner()
    request = _request(tmp_path)

    result = Encoder(runner=runner).encode(request)

    assert result.ok
    assert result.tier == "palette"
    assert result.frame_rate == Fraction(2)
    assert request.output.read_bytes() == b"GIF89a-fake"
    assert result.size == len(b"GIF89a-fake")
    assert len(runner.calls) == 2
    generate, apply = runner.calls
    assert generate[generate.index("-framerate") + 1] == "2"
    assert "palettegen=max_colors=256:stats_mode=diff" in generate[generate.index("-vf") + 1]
    lavfi = apply[apply.index("-lavfi") + 1]
    assert "fps=2,scale=640:-1:flags=lanczos" in lavfi
    assert lavfi.endswith("paletteuse=dither=sierra2_4a")
    assert apply[-3:-1] == ["-loop", "0"]
    assert all(cwd == request.staged.directory for cwd in runner.cwds)
    assert not request.work_output.exists()


def test_falls_back_to_direct_when_palette_fails(tmp_path: Path) -> None:
    runner = FakeRunner(fail=_is_palette)
    request = _request(tmp_path)

    result = Encoder(runner=runner).encode(request)

    assert result.tier == "direct"
    assert [attempt.tier for attempt in result.attempts] == ["palette", "direct"]
    assert result.attempts[0].ok is False
    assert "forced failure" in (result.attempts[0].error or "")
    assert request.output.is_file()


def test_falls_back_to_generic_tool_when_ffmpeg_is_missing(tmp_path: Path) -> None:
    runner = FakeRunner(missing=lambda cmd: cmd[0] == "ffmpeg")
    request = _request(tmp_path, frame_duration=0.25)
    encoder = Encoder([PaletteTier(), DirectTier(), GenericToolTier("convert")], runner=runner)

    result = encoder.encode(request)

    assert result.tier == "generic"
    generic = runner.calls[-1]
    assert generic[:5] == ["convert", "-delay", "25", "-loop", "0"]
    assert generic[-4:-1] == ["Lanczos", "-resize", "640x"]
    assert [Path(arg).name for arg in generic if arg.endswith(".png")] == [
        "img0000.png",
        "img0001.png",
        "img0002.png",
    ]


def test_all_tiers_failing_keeps_previous_artifact(tmp_path: Path) -> None:
    request = _request(tmp_path)
    request.output.parent.mkdir(parents=True)
    request.output.write_bytes(b"previous")
    runner = FakeRunner(fail=lambda _cmd: True)

    result = Encoder([PaletteTier(), DirectTier(), GenericToolTier("convert")], runner=runner).encode(request)

    assert not result.ok
    assert result.tier is None
    assert len(result.attempts) == 3
    assert result.error == result.attempts[-1].error
    assert request.output.read_bytes() == b"previous"


def test_empty_output_counts_as_failure(tmp_path: Path) -> None:
    runner = FakeRunner(payload=b"")
    request = _request(tmp_path)

    result = Encoder([DirectTier()], runner=runner).encode(request)

    assert not result.ok
    assert "no output file" in (result.error or "")


def test_sidefile_labels_drive_drawtext_from_sendcmd(tmp_path: Path) -> None:
    runner = FakeRunner()
    request = _request(tmp_path, LabelMode.SIDEFILE)

    Encoder([DirectTier()], runner=runner).encode(request)

    script = request.staged.directory / "labels.cmd"
    lines = script.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 3
    assert lines[1].startswith("0.500000 drawtext@label reinit")
    vf = runner.calls[0][runner.calls[0].index("-vf") + 1]
    assert vf.startswith("sendcmd=f='labels.cmd',drawtext@label=")


def test_unrunnable_ffmpeg_falls_through_to_generic_tool(tmp_path: Path) -> None:
    runner = FakeRunner(denied=lambda cmd: cmd[0] == "ffmpeg")
    request = _request(tmp_path)
    encoder = Encoder([PaletteTier(), DirectTier(), GenericToolTier("convert")], runner=runner)

    result = encoder.encode(request)

    assert result.ok
    assert result.tier == "generic"
    assert [attempt.ok for attempt in result.attempts] == [False, False, True]
    assert "could not be run" in (result.attempts[0].error or "")
    assert request.output.is_file()
