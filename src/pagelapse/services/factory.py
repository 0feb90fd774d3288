"""Factory helpers for service construction."""

from __future__ import annotations

import os
import time
from typing import Mapping

from src.datatypes import AppConfig, HistorySource
from src.pagelapse import net, subproc
from src.pagelapse.actions import build_output_sink
from src.pagelapse.frames import now_millis
from src.pagelapse.gate import CommitHistoryProvider
from src.pagelapse.orchestration.state import RunDependencies
from src.pagelapse.render.browser import PlaywrightRecorder, PlaywrightRenderer
from src.pagelapse.render.video import Recorder
from src.pagelapse.services.history import GitHubCommitHistory, LocalGitHistory
from src.pagelapse.target import RouteTableResolver

__all__ = [
    "build_history_provider",
    "build_recorder",
    "default_run_dependencies",
]


def build_history_provider(
    cfg: AppConfig,
    environ: Mapping[str, str] | None = None,
) -> CommitHistoryProvider:
    if cfg.gate.history_source is HistorySource.GIT:
        return LocalGitHistory(".")
    return GitHubCommitHistory.from_config(cfg.github, environ)


def build_recorder(cfg: AppConfig) -> Recorder:
    return PlaywrightRecorder.from_config(cfg.target)


def default_run_dependencies(
    cfg: AppConfig,
    *,
    environ: Mapping[str, str] | None = None,
) -> RunDependencies:
    """Build the production collaborators used by :class:`WorkflowCoordinator`."""

    env = os.environ if environ is None else environ
    return RunDependencies(
        renderer=PlaywrightRenderer.from_config(cfg.target),
        recorder_factory=build_recorder,
        history_provider=build_history_provider(cfg, env),
        host_resolver=RouteTableResolver(),
        readiness_check=net.wait_until_reachable,
        runner=subproc.run_checked,
        output_sink=build_output_sink(env),
        sleep=time.sleep,
        clock=now_millis,
    )
