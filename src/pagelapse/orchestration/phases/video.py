from __future__ import annotations

import logging
from pathlib import Path

from src.config_loader import parse_video_formats
from src.pagelapse.orchestration.phases.base import Phase
from src.pagelapse.orchestration.state import CoordinatorContext
from src.pagelapse.render.errors import VideoSessionError
from src.pagelapse.render.video import VideoSession

logger = logging.getLogger('pagelapse')


class VideoPhase(Phase):
    def execute(self, context: CoordinatorContext) -> None:
        cfg = context.cfg
        video_cfg = cfg.video
        if not video_cfg.enabled:
            return
        assert context.target is not None, "Target must be resolved before recording"
        deps = context.dependencies
        reporter = context.reporter

        output = Path(cfg.capture.folder) / video_cfg.name
        reporter.section("Video")
        try:
            session = VideoSession(
                deps.recorder_factory(cfg),
                output,
                runner=deps.runner,
                sleep=deps.sleep,
                timeout=video_cfg.ffmpeg_timeout_seconds,
                gif_fps=video_cfg.gif_fps,
                scale_width=video_cfg.scale_width,
            )
            result = session.record(
                context.target.url,
                duration=video_cfg.duration_seconds,
                speed=video_cfg.speed,
                formats=parse_video_formats(video_cfg.formats),
            )
        except (VideoSessionError, OSError) as exc:
            logger.error("Video recording failed: %s", exc)
            context.warn(f"Video recording failed: {exc}")
            return

        context.video = result
        for message in result.warnings:
            context.warn(message)
        if result.native is not None:
            context.add_output("video_path", result.native)
        for fmt, path in result.exports.items():
            context.add_output(f"video_{fmt}_path", path)
            reporter.line(f"Video ({fmt}) saved as {path}")
