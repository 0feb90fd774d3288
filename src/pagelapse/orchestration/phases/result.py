from __future__ import annotations

import logging

from src.pagelapse.orchestration.phases.base import Phase
from src.pagelapse.orchestration.state import CoordinatorContext, RunResult, RunStatus

logger = logging.getLogger('pagelapse')


class ResultPhase(Phase):
    def execute(self, context: CoordinatorContext) -> None:
        status = RunStatus.SKIPPED if context.skipped else RunStatus.SUCCESS
        timelapse = context.timelapse
        context.result = RunResult(
            status=status,
            outputs=dict(context.outputs),
            warnings=list(dict.fromkeys(context.warnings)),
            decision=context.decision,
            url=context.target.url if context.target is not None else None,
            gif_tier=timelapse.result.tier if timelapse is not None else None,
            frame_count=timelapse.frame_count if timelapse is not None else 0,
        )
        logger.info("Run finished with status %s", status.value)
