from __future__ import annotations

from src.pagelapse.orchestration.coordinator import WorkflowCoordinator
from src.pagelapse.orchestration.state import (
    RunDependencies,
    RunRequest,
    RunResult,
    RunStatus,
)
from src.pagelapse.services.factory import default_run_dependencies

__all__ = [
    "RunDependencies",
    "RunRequest",
    "RunResult",
    "RunStatus",
    "default_run_dependencies",
    "run",
]


def run(request: RunRequest, *, dependencies: RunDependencies | None = None) -> RunResult:
    """
    Orchestrate one capture run.

    This function delegates the execution to the WorkflowCoordinator.
    """
    coordinator = WorkflowCoordinator(dependencies)
    return coordinator.execute(request)
