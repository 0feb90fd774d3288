from __future__ import annotations

import logging

from src.pagelapse.cli_runtime import NullCliOutputManager
from src.pagelapse.orchestration.phases.animation import AnimationPhase
from src.pagelapse.orchestration.phases.base import Phase
from src.pagelapse.orchestration.phases.capture import CapturePhase
from src.pagelapse.orchestration.phases.gate import GatePhase
from src.pagelapse.orchestration.phases.result import ResultPhase
from src.pagelapse.orchestration.phases.target import TargetPhase
from src.pagelapse.orchestration.phases.video import VideoPhase
from src.pagelapse.orchestration.state import (
    CoordinatorContext,
    RunDependencies,
    RunRequest,
    RunResult,
    RunStatus,
)
from src.pagelapse.render.errors import PagelapseError
from src.pagelapse.services.factory import default_run_dependencies

logger = logging.getLogger('pagelapse')


class WorkflowCoordinator:
    def __init__(self, dependencies: RunDependencies | None = None):
        self.dependencies = dependencies

    def execute(self, request: RunRequest) -> RunResult:
        """Gate, resolve, capture, then assemble the optional GIF and video legs."""
        dependencies = self.dependencies or default_run_dependencies(
            request.config, environ=request.environ
        )
        reporter = request.reporter or NullCliOutputManager()
        context = CoordinatorContext(request=request, dependencies=dependencies, reporter=reporter)

        pipeline: list[Phase] = [
            GatePhase(),
            TargetPhase(),
            CapturePhase(),
            AnimationPhase(),
            VideoPhase(),
        ]

        try:
            for phase in pipeline:
                if context.skipped:
                    break
                phase.execute(context)
        except PagelapseError as exc:
            logger.error("Run failed: %s", exc)
            reporter.error(str(exc))
            return RunResult(
                status=RunStatus.FAILED,
                outputs=dict(context.outputs),
                warnings=list(dict.fromkeys(context.warnings)),
                error=str(exc),
                decision=context.decision,
                url=context.target.url if context.target is not None else None,
            )

        ResultPhase().execute(context)
        if context.result is None:
            raise RuntimeError("Workflow finished without producing a result.")
        return context.result
