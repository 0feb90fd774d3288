from __future__ import annotations

import logging

from src.pagelapse.gate import decide
from src.pagelapse.orchestration.phases.base import Phase
from src.pagelapse.orchestration.state import CoordinatorContext

logger = logging.getLogger('pagelapse')


class GatePhase(Phase):
    def execute(self, context: CoordinatorContext) -> None:
        gate_cfg = context.cfg.gate
        reporter = context.reporter
        if gate_cfg.auto:
            reporter.verbose_line("Auto screenshots enabled - taking screenshot")
        else:
            reporter.verbose_line(
                f"Auto screenshots disabled - checking commit messages for {gate_cfg.marker}"
            )

        decision = decide(
            gate_cfg.auto,
            context.dependencies.history_provider,
            marker=gate_cfg.marker,
            lookback=gate_cfg.lookback,
            bot_patterns=gate_cfg.bot_patterns,
        )
        context.decision = decision
        if not decision.run:
            context.skipped = True
            logger.info("Skipping capture: %s", decision.reason)
            reporter.line(f"Skipping screenshot ({decision.reason})")
