from __future__ import annotations

from pathlib import Path

import pytest
from click.testing import CliRunner

from tests.helpers.fakes import FakeRunner, StubReporter


@pytest.fixture
def runner() -> CliRunner:
    """Provide a Click runner configured for CLI smoke tests."""

    return CliRunner()


@pytest.fixture
def fake_runner() -> FakeRunner:
    """Command runner that fakes every external tool as succeeding."""

    return FakeRunner()


@pytest.fixture
def stub_reporter() -> StubReporter:
    return StubReporter()


@pytest.fixture
def frame_dir(tmp_path: Path) -> Path:
    folder = tmp_path / "run"
    folder.mkdir()
    return folder


@pytest.fixture(autouse=True)
def _isolate_actions_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep a CI runner's own GitHub Actions environment out of the tests."""

    for name in ("GITHUB_ACTIONS", "GITHUB_OUTPUT", "PAGELAPSE_CONFIG", "GITHUB_TOKEN"):
        monkeypatch.delenv(name, raising=False)
