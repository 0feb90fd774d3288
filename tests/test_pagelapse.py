from __future__ import annotations

from pathlib import Path

import pytest

import pagelapse
from tests.helpers.fakes import make_dependencies


def test_run_cli_applies_overrides(tmp_path: Path) -> None:
    folder = tmp_path / "shots"

    result = pagelapse.run_cli(
        overrides={"folder": str(folder), "basename": "home"},
        environ={},
        dependencies=make_dependencies(tmp_path),
    )

    assert result.ok
    assert result.outputs["screenshot_path"] == str((folder / "home_1000.png").resolve())


def test_run_cli_reads_action_inputs(tmp_path: Path) -> None:
    folder = tmp_path / "ci"

    result = pagelapse.run_cli(
        use_action_inputs=True,
        environ={"INPUT_FOLDER": str(folder), "INPUT_AUTO_SCREENSHOTS": "true"},
        dependencies=make_dependencies(tmp_path),
    )

    assert result.ok
    assert (folder / "screenshot-latest.png").is_file()


def test_run_cli_rejects_bad_config(tmp_path: Path) -> None:
    with pytest.raises(pagelapse.CLIAppError):
        pagelapse.run_cli(str(tmp_path / "missing.toml"), environ={})


def test_public_surface() -> None:
    assert pagelapse.main.name == "main"
    assert issubclass(pagelapse.PagelapseError, RuntimeError)
