"""Configuration dataclasses for the page time-lapse tool."""
from dataclasses import dataclass, field
from enum import Enum
from typing import List


class LabelMode(str, Enum):
    """How capture timestamps are rendered into the time-lapse frames."""

    NONE = "none"
    BURN = "burn"
    SIDEFILE = "sidefile"


class HistorySource(str, Enum):
    """Where the commit-gated mode reads recent commits from."""

    GITHUB = "github"
    GIT = "git"


@dataclass
class TargetConfig:
    """Target page, readiness wait, and browser viewport."""

    url: str = "http://localhost:3000"
    rewrite_loopback: bool = True
    ready_timeout_seconds: float = 120.0
    navigation_timeout_seconds: float = 120.0
    viewport_width: int = 1920
    viewport_height: int = 1080
    headless: bool = True
    launch_args: List[str] = field(
        default_factory=lambda: ["--no-sandbox", "--disable-setuid-sandbox"]
    )


@dataclass
class CaptureConfig:
    """Frame directory layout."""

    folder: str = "screenshots"
    basename: str = "screenshot"


@dataclass
class GifConfig:
    """Time-lapse animation assembly."""

    enabled: bool = False
    name: str = "timeline.gif"
    frame_duration: float = 0.5
    scale_width: int = 640
    label_mode: LabelMode = LabelMode.BURN
    font_file: str = "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf"
    font_size: int = 24
    font_color: str = "lime"
    box_color: str = "black@0.5"
    max_colors: int = 256
    dither: str = "sierra2_4a"
    ffmpeg_timeout_seconds: float = 300.0
    cleanup_delay_seconds: float = 1.0


@dataclass
class VideoConfig:
    """Continuous recording leg."""

    enabled: bool = False
    name: str = "recording.webm"
    duration_seconds: float = 10.0
    speed: float = 1.0
    formats: str = "webm"
    gif_fps: int = 15
    scale_width: int = 640
    ffmpeg_timeout_seconds: float = 600.0


@dataclass
class GateConfig:
    """Decides whether a run captures at all."""

    auto: bool = True
    marker: str = "#screenshot"
    lookback: int = 10
    bot_patterns: List[str] = field(default_factory=lambda: ["github-actions", "[bot]"])
    history_source: HistorySource = HistorySource.GITHUB


@dataclass
class GitHubConfig:
    """Repository coordinates for the commit history query."""

    repository: str = ""
    api_url: str = "https://api.github.com"
    token_env: str = "GITHUB_TOKEN"
    timeout_seconds: float = 30.0


@dataclass
class AppConfig:
    """Aggregated configuration loaded from TOML, action inputs, and CLI flags."""

    target: TargetConfig = field(default_factory=TargetConfig)
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    gif: GifConfig = field(default_factory=GifConfig)
    video: VideoConfig = field(default_factory=VideoConfig)
    gate: GateConfig = field(default_factory=GateConfig)
    github: GitHubConfig = field(default_factory=GitHubConfig)
