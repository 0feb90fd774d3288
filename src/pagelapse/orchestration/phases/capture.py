from __future__ import annotations

import logging

from src.pagelapse.frames import FrameStore
from src.pagelapse.orchestration.phases.base import Phase
from src.pagelapse.orchestration.state import CoordinatorContext

logger = logging.getLogger('pagelapse')


class CapturePhase(Phase):
    def execute(self, context: CoordinatorContext) -> None:
        cfg = context.cfg
        deps = context.dependencies
        assert context.target is not None, "Target must be resolved before capture"

        url = context.target.url
        timeout_ms = int(cfg.target.navigation_timeout_seconds * 1000)
        store = FrameStore(cfg.capture.folder, cfg.capture.basename, clock=deps.clock)
        context.store = store

        frame = store.capture(lambda: deps.renderer.render(url, timeout_ms))
        context.frame = frame
        context.add_output("screenshot_path", frame.path)
        context.add_output("latest_path", store.latest_path)
        context.reporter.line(f"Screenshot saved as {frame.path} and updated {store.latest_path}")
