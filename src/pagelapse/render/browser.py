"""Playwright-backed page renderer and screen recorder."""

from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path
from typing import Any, Optional, Sequence

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from src.datatypes import TargetConfig
from src.pagelapse.render.errors import CaptureError, VideoSessionError

logger = logging.getLogger(__name__)

__all__ = ["PlaywrightRecorder", "PlaywrightRenderer"]


class PlaywrightRenderer:
    """Navigate headless Chromium to a URL and return a PNG screenshot."""

    def __init__(
        self,
        *,
        viewport: tuple[int, int] = (1920, 1080),
        headless: bool = True,
        launch_args: Sequence[str] = (),
    ) -> None:
        self.viewport = {"width": int(viewport[0]), "height": int(viewport[1])}
        self.headless = headless
        self.launch_args = list(launch_args)

    @classmethod
    def from_config(cls, cfg: TargetConfig) -> "PlaywrightRenderer":
        return cls(
            viewport=(cfg.viewport_width, cfg.viewport_height),
            headless=cfg.headless,
            launch_args=cfg.launch_args,
        )

    def render(self, url: str, navigation_timeout_ms: int) -> bytes:
        """
        Load *url* and capture the viewport.

        Raises:
            CaptureError: Navigation timed out or the browser failed.
        """

        try:
            with sync_playwright() as playwright:
                browser = playwright.chromium.launch(headless=self.headless, args=self.launch_args)
                try:
                    page = browser.new_page(viewport=self.viewport)
                    page.goto(url, wait_until="networkidle", timeout=navigation_timeout_ms)
                    return page.screenshot(full_page=False)
                finally:
                    browser.close()
        except PlaywrightTimeoutError as exc:
            raise CaptureError(f"Navigation to {url} timed out after {navigation_timeout_ms} ms") from exc
        except PlaywrightError as exc:
            raise CaptureError(f"Browser failed to render {url}: {exc}") from exc


class PlaywrightRecorder:
    """
    Record a page with Playwright's built-in video capture.

    ``start`` launches the browser and navigates; ``stop`` closes the page and
    context so Playwright finalizes the ``.webm`` file, and returns its path.
    """

    def __init__(
        self,
        *,
        viewport: tuple[int, int] = (1920, 1080),
        headless: bool = True,
        launch_args: Sequence[str] = (),
        navigation_timeout_ms: int = 120_000,
        video_dir: Path | None = None,
    ) -> None:
        self.viewport = {"width": int(viewport[0]), "height": int(viewport[1])}
        self.headless = headless
        self.launch_args = list(launch_args)
        self.navigation_timeout_ms = int(navigation_timeout_ms)
        self._owns_video_dir = video_dir is None
        self.video_dir = Path(video_dir) if video_dir is not None else Path(
            tempfile.mkdtemp(prefix="pagelapse-video-")
        )
        self._playwright: Any = None
        self._browser: Any = None
        self._context: Any = None
        self._page: Any = None

    @classmethod
    def from_config(cls, cfg: TargetConfig, *, video_dir: Path | None = None) -> "PlaywrightRecorder":
        return cls(
            viewport=(cfg.viewport_width, cfg.viewport_height),
            headless=cfg.headless,
            launch_args=cfg.launch_args,
            navigation_timeout_ms=int(cfg.navigation_timeout_seconds * 1000),
            video_dir=video_dir,
        )

    def start(self, url: str) -> None:
        self.video_dir.mkdir(parents=True, exist_ok=True)
        try:
            self._playwright = sync_playwright().start()
            self._browser = self._playwright.chromium.launch(
                headless=self.headless, args=self.launch_args
            )
            self._context = self._browser.new_context(
                viewport=self.viewport,
                record_video_dir=str(self.video_dir),
                record_video_size=self.viewport,
            )
            self._page = self._context.new_page()
            self._page.goto(url, wait_until="networkidle", timeout=self.navigation_timeout_ms)
        except PlaywrightError as exc:
            self._shutdown()
            raise VideoSessionError(f"Failed to start recording {url}: {exc}") from exc

    def stop(self) -> Path:
        if self._page is None:
            raise VideoSessionError("Recorder was not started")
        video_path: Optional[Path] = None
        try:
            page = self._page
            page.close()
            video = page.video
            video_path = Path(video.path()) if video is not None else None
            self._context.close()
        except PlaywrightError as exc:
            raise VideoSessionError(f"Failed to finalize recording: {exc}") from exc
        finally:
            self._shutdown()
        if video_path is None or not video_path.exists() or video_path.stat().st_size == 0:
            raise VideoSessionError("Playwright did not produce a video file")
        logger.debug("Recorded video at %s", video_path)
        return video_path

    def close(self) -> None:
        """Release the browser and remove the scratch video directory this recorder created."""

        self._shutdown()
        if not self._owns_video_dir:
            return
        try:
            shutil.rmtree(self.video_dir)
        except FileNotFoundError:
            pass
        except OSError:
            logger.debug("Could not remove %s", self.video_dir, exc_info=True)

    def _shutdown(self) -> None:
        try:
            if self._browser is not None:
                self._browser.close()
        except PlaywrightError:
            logger.debug("Ignoring browser close error", exc_info=True)
        finally:
            if self._playwright is not None:
                self._playwright.stop()
        self._page = None
        self._context = None
        self._browser = None
        self._playwright = None
