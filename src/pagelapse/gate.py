"""Decide whether this invocation should capture anything."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

logger = logging.getLogger(__name__)

__all__ = [
    "DEFAULT_BOT_PATTERNS",
    "CaptureDecision",
    "CommitHistoryProvider",
    "CommitRecord",
    "HistoryUnavailableError",
    "decide",
    "is_bot_commit",
    "should_capture",
]

DEFAULT_BOT_PATTERNS: tuple[str, ...] = ("github-actions", "[bot]")


class HistoryUnavailableError(RuntimeError):
    """Raised by history providers when recent commits cannot be listed."""


@dataclass(frozen=True)
class CommitRecord:
    id: str
    author: str
    committer: str
    message: str


class CommitHistoryProvider(Protocol):
    def list_recent_commits(self, limit: int) -> Sequence[CommitRecord]:
        """Return up to *limit* commits, newest first."""
        ...


@dataclass(frozen=True)
class CaptureDecision:
    """Outcome of the gate plus a human-readable rationale."""

    run: bool
    reason: str
    commit: Optional[CommitRecord] = None

    def __bool__(self) -> bool:
        return self.run


def is_bot_commit(commit: CommitRecord, patterns: Sequence[str] = DEFAULT_BOT_PATTERNS) -> bool:
    """True when the author or committer identity contains any automation pattern."""

    identities = (commit.author.lower(), commit.committer.lower())
    for pattern in patterns:
        needle = pattern.lower()
        if needle and any(needle in identity for identity in identities):
            return True
    return False


def decide(
    auto_mode: bool,
    provider: CommitHistoryProvider | None,
    *,
    marker: str = "#screenshot",
    lookback: int = 10,
    bot_patterns: Sequence[str] = DEFAULT_BOT_PATTERNS,
) -> CaptureDecision:
    """
    Gate a run on configuration and recent human commits.

    Automatic mode always runs. Otherwise the newest non-bot commit within
    *lookback* must mention *marker*. Finding no such commit, or failing to read the
    history at all, yields a skip. Never raises for history problems.
    """

    if auto_mode:
        return CaptureDecision(run=True, reason="automatic mode")
    if provider is None:
        logger.warning("No commit history provider configured; skipping capture")
        return CaptureDecision(run=False, reason="commit history unavailable")

    try:
        commits = list(provider.list_recent_commits(max(1, int(lookback))))
    except (HistoryUnavailableError, OSError, ValueError) as exc:
        logger.warning("Failed to read commit history: %s", exc)
        return CaptureDecision(run=False, reason=f"commit history unavailable: {exc}")

    for commit in commits[: max(1, int(lookback))]:
        if is_bot_commit(commit, bot_patterns):
            logger.info("Skipping bot commit %s by %s", commit.id[:7], commit.author)
            continue
        if marker in commit.message:
            logger.info("Commit %s contains %s; capturing", commit.id[:7], marker)
            return CaptureDecision(
                run=True,
                reason=f"commit {commit.id[:7]} contains {marker}",
                commit=commit,
            )
        logger.info("Latest human commit %s has no %s; skipping", commit.id[:7], marker)
        return CaptureDecision(
            run=False,
            reason=f"commit {commit.id[:7]} does not contain {marker}",
            commit=commit,
        )

    logger.info("No non-bot commit found in the last %d commits", lookback)
    return CaptureDecision(run=False, reason="no non-bot commit found")


def should_capture(
    auto_mode: bool,
    provider: CommitHistoryProvider | None,
    **options: object,
) -> bool:
    """Boolean form of :func:`decide`."""

    return decide(auto_mode, provider, **options).run  # type: ignore[arg-type]
