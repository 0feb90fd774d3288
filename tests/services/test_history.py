from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Any

import pytest
import requests

from src.datatypes import GitHubConfig
from src.pagelapse.gate import HistoryUnavailableError
from src.pagelapse.services.history import GitHubCommitHistory, LocalGitHistory


class FakeResponse:
    def __init__(self, status_code: int, payload: Any = None, *, bad_json: bool = False) -> None:
        self.status_code = status_code
        self._payload = payload
        self._bad_json = bad_json

    def json(self) -> Any:
        if self._bad_json:
            raise ValueError("not json")
        return self._payload


class FakeSession:
    def __init__(self, response: FakeResponse | None = None, error: Exception | None = None) -> None:
        self.response = response
        self.error = error
        self.requests: list[tuple[str, dict[str, Any]]] = []
        self.mounted: list[str] = []
        self.closed = False

    def mount(self, prefix: str, adapter: Any) -> None:
        self.mounted.append(prefix)

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        self.requests.append((url, kwargs))
        if self.error is not None:
            raise self.error
        assert self.response is not None
        return self.response

    def close(self) -> None:
        self.closed = True


def _api_commit(sha: str, message: str, login: str | None, name: str) -> dict[str, Any]:
    return {
        "sha": sha,
        "author": {"login": login} if login else None,
        "committer": {"login": login} if login else None,
        "commit": {
            "message": message,
            "author": {"name": name},
            "committer": {"name": name},
        },
    }


def _history(session: FakeSession, token: str | None = "t0ken") -> GitHubCommitHistory:
    return GitHubCommitHistory("octo/site", token, session_factory=lambda: session)  # type: ignore[arg-type,return-value]


def test_github_history_maps_commits() -> None:
    session = FakeSession(
        FakeResponse(
            200,
            [
                _api_commit("a" * 40, "Update deps", "github-actions[bot]", "github-actions"),
                _api_commit("b" * 40, "Tweak hero #screenshot", None, "Alice"),
            ],
        )
    )

    commits = _history(session).list_recent_commits(10)

    assert [c.author for c in commits] == ["github-actions[bot]", "Alice"]
    assert commits[1].message == "Tweak hero #screenshot"
    url, kwargs = session.requests[0]
    assert url == "https://api.github.com/repos/octo/site/commits"
    assert kwargs["params"] == {"per_page": 10}
    assert kwargs["headers"]["Authorization"] == "Bearer t0ken"
    assert session.mounted == ["https://", "http://"]
    assert session.closed


@pytest.mark.parametrize(
    "session",
    [
        FakeSession(FakeResponse(404, {"message": "Not Found"})),
        FakeSession(FakeResponse(200, bad_json=True)),
        FakeSession(FakeResponse(200, {"message": "oops"})),
        FakeSession(error=requests.ConnectionError("down")),
    ],
)
def test_github_history_failures_are_unavailable(session: FakeSession) -> None:
    with pytest.raises(HistoryUnavailableError):
        _history(session).list_recent_commits(5)


def test_github_history_requires_token_and_repository() -> None:
    session = FakeSession(FakeResponse(200, []))
    with pytest.raises(HistoryUnavailableError, match="token"):
        _history(session, token=None).list_recent_commits(5)
    with pytest.raises(HistoryUnavailableError, match="owner/name"):
        GitHubCommitHistory("site", "t").list_recent_commits(5)
    assert session.requests == []


def test_from_config_reads_actions_environment() -> None:
    history = GitHubCommitHistory.from_config(
        GitHubConfig(token_env="MY_TOKEN"),
        {
            "GITHUB_REPOSITORY": "octo/site",
            "GITHUB_API_URL": "https://ghe.example.com/api/v3/",
            "MY_TOKEN": "abc",
        },
    )

    assert history.repository == "octo/site"
    assert history.api_url == "https://ghe.example.com/api/v3"
    assert history.token == "abc"


def test_local_git_history_parses_log(tmp_path: Path) -> None:
    stdout = (
        "1111\x1fAlice\x1fAlice\x1fFix nav\n\n#screenshot\n\x1e\n"
        "2222\x1fgithub-actions[bot]\x1fGitHub\x1fchore: bump\n\x1e\n"
    )
    calls: list[tuple[list[str], Path | None]] = []

    def runner(cmd, *, timeout=None, cwd=None):
        calls.append((list(cmd), cwd))
        return subprocess.CompletedProcess(list(cmd), 0, stdout=stdout, stderr="")

    commits = LocalGitHistory(tmp_path, runner=runner).list_recent_commits(2)

    assert [(c.id, c.author, c.committer) for c in commits] == [
        ("1111", "Alice", "Alice"),
        ("2222", "github-actions[bot]", "GitHub"),
    ]
    assert commits[0].message == "Fix nav\n\n#screenshot"
    assert calls[0][0][:3] == ["git", "log", "-n2"]
    assert calls[0][1] == tmp_path


def test_local_git_history_failure_is_unavailable(tmp_path: Path) -> None:
    def runner(cmd, *, timeout=None, cwd=None):
        return subprocess.CompletedProcess(list(cmd), 128, stdout="", stderr="not a git repository")

    with pytest.raises(HistoryUnavailableError, match="not a git repository"):
        LocalGitHistory(tmp_path, runner=runner).list_recent_commits(3)
