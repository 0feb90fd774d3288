"""Error taxonomy for capture, staging, encoding, and recording."""

from __future__ import annotations

__all__ = [
    "CaptureError",
    "EncodeError",
    "InsufficientFramesError",
    "PagelapseError",
    "ReadinessTimeoutError",
    "StagingError",
    "VideoExportError",
    "VideoSessionError",
]


class PagelapseError(RuntimeError):
    """Base class for pipeline failures."""


class ReadinessTimeoutError(PagelapseError):
    """Raised when the target URL never answered within the readiness budget."""


class CaptureError(PagelapseError):
    """Raised when rendering or persisting a frame fails."""


class StagingError(PagelapseError):
    """Raised when frames cannot be copied into the scratch workspace."""


class InsufficientFramesError(StagingError):
    """Raised when fewer frames exist than an animation needs."""

    def __init__(self, available: int, required: int = 2) -> None:
        super().__init__(
            f"Not enough screenshots for an animation: found {available}, need at least {required}"
        )
        self.available = available
        self.required = required


class EncodeError(PagelapseError):
    """Raised when every encoder tier failed."""


class VideoSessionError(PagelapseError):
    """Raised when a recording cannot be started or finalised."""


class VideoExportError(PagelapseError):
    """Raised when a single export format or a retime pass fails."""
