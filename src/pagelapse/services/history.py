"""Commit history providers for the commit-gated capture mode."""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import Any, Callable, List, Mapping, Optional

import requests
from requests.adapters import HTTPAdapter

from src.datatypes import GitHubConfig
from src.pagelapse import subproc as _subproc
from src.pagelapse.gate import CommitRecord, HistoryUnavailableError
from src.pagelapse.net import (
    build_urllib3_retry,
    default_requests_timeouts,
    redact_url_for_logs,
)

logger = logging.getLogger(__name__)

__all__ = ["GitHubCommitHistory", "LocalGitHistory", "configure_history_session"]

_GIT_FIELD_SEP = "\x1f"
_GIT_RECORD_SEP = "\x1e"


def configure_history_session(session: requests.Session) -> None:
    """Mount retry-capable adapters on *session* for the commits endpoint."""

    retries = build_urllib3_retry()
    adapter = HTTPAdapter(max_retries=retries)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    logger.debug(
        "History session configured: retries=%d backoff=%.1f",
        retries.total or 0,
        retries.backoff_factor,
    )


def _identity(entry: Mapping[str, Any], account_key: str, git_key: str) -> str:
    account = entry.get(account_key)
    if isinstance(account, Mapping):
        login = account.get("login")
        if isinstance(login, str) and login:
            return login
    commit = entry.get("commit")
    if isinstance(commit, Mapping):
        person = commit.get(git_key)
        if isinstance(person, Mapping):
            name = person.get("name")
            if isinstance(name, str):
                return name
    return ""


class GitHubCommitHistory:
    """Lists recent commits through the GitHub REST API."""

    def __init__(
        self,
        repository: str,
        token: Optional[str],
        *,
        api_url: str = "https://api.github.com",
        timeout: float = 30.0,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ) -> None:
        self.repository = repository.strip()
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._session_factory = session_factory

    @classmethod
    def from_config(
        cls,
        cfg: GitHubConfig,
        environ: Mapping[str, str] | None = None,
    ) -> "GitHubCommitHistory":
        env = os.environ if environ is None else environ
        repository = cfg.repository or env.get("GITHUB_REPOSITORY", "")
        api_url = env.get("GITHUB_API_URL") or cfg.api_url
        return cls(
            repository,
            env.get(cfg.token_env) or None,
            api_url=api_url,
            timeout=cfg.timeout_seconds,
        )

    def list_recent_commits(self, limit: int) -> List[CommitRecord]:
        if not self.token:
            raise HistoryUnavailableError("GitHub token is not set")
        if self.repository.count("/") != 1:
            raise HistoryUnavailableError(
                f"Repository must be in owner/name form, got '{self.repository}'"
            )
        url = f"{self.api_url}/repos/{self.repository}/commits"
        headers = {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {self.token}",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        session = self._session_factory()
        configure_history_session(session)
        try:
            response = session.get(
                url,
                params={"per_page": max(1, int(limit))},
                headers=headers,
                timeout=default_requests_timeouts(read=self.timeout),
            )
        except requests.RequestException as exc:
            raise HistoryUnavailableError(
                f"Commit lookup on {redact_url_for_logs(url)} failed: {exc.__class__.__name__}"
            ) from exc
        finally:
            session.close()

        if response.status_code >= 400:
            raise HistoryUnavailableError(
                f"Commit lookup failed ({response.status_code}) for {self.repository}"
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise HistoryUnavailableError("Commit lookup returned invalid JSON") from exc
        if not isinstance(payload, list):
            raise HistoryUnavailableError("Commit lookup returned an unexpected payload")

        commits: List[CommitRecord] = []
        for entry in payload[: max(1, int(limit))]:
            if not isinstance(entry, Mapping):
                continue
            commit = entry.get("commit")
            message = commit.get("message", "") if isinstance(commit, Mapping) else ""
            commits.append(
                CommitRecord(
                    id=str(entry.get("sha", "")),
                    author=_identity(entry, "author", "author"),
                    committer=_identity(entry, "committer", "committer"),
                    message=message if isinstance(message, str) else "",
                )
            )
        logger.debug("Fetched %d commits for %s", len(commits), self.repository)
        return commits


class LocalGitHistory:
    """Lists recent commits with ``git log`` in a working tree."""

    def __init__(
        self,
        workdir: Path | str = ".",
        *,
        runner: _subproc.CommandRunner = _subproc.run_capture,
        timeout: float = 30.0,
    ) -> None:
        self.workdir = Path(workdir)
        self._runner = runner
        self._timeout = timeout

    def list_recent_commits(self, limit: int) -> List[CommitRecord]:
        fmt = _GIT_FIELD_SEP.join(("%H", "%an", "%cn", "%B")) + _GIT_RECORD_SEP
        cmd = ["git", "log", f"-n{max(1, int(limit))}", f"--format={fmt}"]
        try:
            process = self._runner(cmd, timeout=self._timeout, cwd=self.workdir)
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise HistoryUnavailableError(f"git log failed: {exc}") from exc
        if process.returncode != 0:
            detail = _subproc.stderr_text(process) or f"exit code {process.returncode}"
            raise HistoryUnavailableError(f"git log failed: {detail}")
        output = process.stdout
        if isinstance(output, bytes):
            output = output.decode("utf-8", "replace")
        commits: List[CommitRecord] = []
        for record in (output or "").split(_GIT_RECORD_SEP):
            record = record.strip("\n")
            if not record:
                continue
            parts = record.split(_GIT_FIELD_SEP, 3)
            if len(parts) != 4:
                continue
            sha, author, committer, message = parts
            commits.append(
                CommitRecord(id=sha, author=author, committer=committer, message=message.strip())
            )
        return commits
