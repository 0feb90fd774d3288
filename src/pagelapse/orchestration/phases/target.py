from __future__ import annotations

import logging

from src.pagelapse.orchestration.phases.base import Phase
from src.pagelapse.orchestration.state import CoordinatorContext
from src.pagelapse.target import resolve_target

logger = logging.getLogger('pagelapse')


class TargetPhase(Phase):
    def execute(self, context: CoordinatorContext) -> None:
        target_cfg = context.cfg.target
        reporter = context.reporter
        deps = context.dependencies

        target = resolve_target(
            target_cfg.url,
            deps.host_resolver,
            rewrite_loopback=target_cfg.rewrite_loopback,
        )
        context.target = target
        for message in target.warnings:
            context.warn(message)
        if target.rewritten:
            reporter.line(
                f"Rewriting URL for container-host access: {target.original_url} -> {target.url}"
            )

        reporter.line(f"Waiting for resource: {target.url}")
        # ReadinessTimeoutError is fatal for the run and propagates to the coordinator.
        deps.readiness_check(target.url, target_cfg.ready_timeout_seconds)
        logger.info("Resource available: %s", target.url)
