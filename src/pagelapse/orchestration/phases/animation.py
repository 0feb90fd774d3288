from __future__ import annotations

import logging
from pathlib import Path

from src.pagelapse.orchestration.phases.base import Phase
from src.pagelapse.orchestration.state import CoordinatorContext
from src.pagelapse.render.errors import StagingError
from src.pagelapse.render.stager import MIN_FRAMES
from src.pagelapse.render.timelapse import assemble_timelapse

logger = logging.getLogger('pagelapse')


class AnimationPhase(Phase):
    def execute(self, context: CoordinatorContext) -> None:
        gif_cfg = context.cfg.gif
        if not gif_cfg.enabled:
            return
        assert context.store is not None, "Frame store required for animation phase"
        deps = context.dependencies
        reporter = context.reporter
        store = context.store

        try:
            frames = store.list_frames()
        except OSError as exc:
            context.warn(f"GIF creation skipped: unable to read {store.folder}: {exc}")
            return
        logger.info("Found %d stored frames in %s", len(frames), store.folder)
        if len(frames) < MIN_FRAMES:
            context.warn(
                f"Not enough screenshots for a GIF. Need at least {MIN_FRAMES}, found {len(frames)}."
            )
            return

        output = Path(store.folder) / gif_cfg.name
        reporter.section("Timelapse")
        try:
            outcome = assemble_timelapse(
                frames,
                output,
                gif_cfg,
                runner=deps.runner,
                clock=deps.clock,
                sleep=deps.sleep,
            )
        except (StagingError, OSError) as exc:
            context.warn(f"GIF creation skipped: {exc}")
            return

        context.timelapse = outcome
        for message in outcome.warnings:
            context.warn(message)
        result = outcome.result
        if not result.ok:
            context.warn(f"GIF creation failed after trying every encoder: {result.error}")
            return
        context.add_output("gif_path", result.output)
        reporter.line(
            f"GIF created successfully at: {result.output} ({result.size} bytes, {result.tier} encoder)"
        )
