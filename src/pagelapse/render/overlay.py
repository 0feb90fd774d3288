"""Timestamp labels and ffmpeg drawtext filter builders."""

from __future__ import annotations

import datetime as _dt
from dataclasses import dataclass
from typing import Optional, Sequence

__all__ = [
    "UNKNOWN_TIME_LABEL",
    "LabelStyle",
    "build_drawtext_filter",
    "build_sendcmd_script",
    "build_sidefile_overlay",
    "escape_drawtext",
    "escape_option_value",
    "quote_graph_token",
    "format_frame_label",
]

UNKNOWN_TIME_LABEL = "unknown time"
LABEL_FILTER_NAME = "drawtext@label"


@dataclass(frozen=True)
class LabelStyle:
    """
    Appearance of a burned-in timestamp label.

    Attributes:
        font_file (str): TrueType font passed to drawtext's ``fontfile``.
        font_size (int): Point size.
        font_color (str): ffmpeg colour spec for the glyphs.
        box_color (str): ffmpeg colour spec for the backing box.
        margin (int): Distance in pixels from the bottom-right corner.
    """

    font_file: str = "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf"
    font_size: int = 24
    font_color: str = "lime"
    box_color: str = "black@0.5"
    margin: int = 10


def escape_option_value(text: str) -> str:
    """Escape the characters the filter option parser treats specially."""

    return text.replace("\\", "\\\\").replace(":", r"\:").replace("'", r"\'")


def quote_graph_token(text: str) -> str:
    """Single-quote *text* for the filtergraph and sendcmd tokenizers."""

    return "'" + text.replace("'", r"'\''") + "'"


def escape_drawtext(text: str) -> str:
    """
    Return *text* as a filter option value that survives both parsing layers.

    ffmpeg first tokenizes the whole filtergraph (quotes and backslashes are
    consumed there), then splits each filter's arguments on ``:``. The value is
    therefore option-escaped first and graph-quoted second.
    """

    return quote_graph_token(escape_option_value(text))


def format_frame_label(epoch_ms: Optional[int], *, tz: _dt.tzinfo | None = None) -> str:
    """
    Render a capture epoch as ``month-day-year time``.

    The time of day uses the locale's representation (``%X``). ``tz`` defaults to the
    local zone; ``None`` epochs yield :data:`UNKNOWN_TIME_LABEL`.
    """

    if epoch_ms is None:
        return UNKNOWN_TIME_LABEL
    moment = _dt.datetime.fromtimestamp(epoch_ms / 1000.0, tz=tz)
    return f"{moment.month}-{moment.day}-{moment.year} {moment.strftime('%X')}"


def _position(style: LabelStyle) -> str:
    margin = max(0, int(style.margin))
    return f"x=w-tw-{margin}:y=h-th-{margin}"


def build_drawtext_filter(text: str, style: LabelStyle, *, name: str = "drawtext") -> str:
    """Return a drawtext filter that pins *text* to the bottom-right corner."""

    return (
        "{name}=fontfile={font}:text={text}:expansion=none:{position}:fontsize={size}:"
        "fontcolor={color}:box=1:boxcolor={box}"
    ).format(
        name=name,
        font=escape_drawtext(style.font_file),
        text=escape_drawtext(text),
        position=_position(style),
        size=int(style.font_size),
        color=style.font_color,
        box=style.box_color,
    )


def build_sendcmd_script(labels: Sequence[str], frame_duration: float) -> str:
    """
    Build an ffmpeg ``sendcmd`` script that swaps the label text once per frame.

    Frame ``i`` is presented at ``i * frame_duration`` seconds because the staged
    sequence is read at ``1 / frame_duration`` frames per second.
    """

    lines = []
    for index, label in enumerate(labels):
        start = index * frame_duration
        command = quote_graph_token("text=" + escape_option_value(label))
        lines.append(f"{start:.6f} {LABEL_FILTER_NAME} reinit {command};")
    return "\n".join(lines) + "\n"


def build_sidefile_overlay(script_name: str, style: LabelStyle) -> str:
    """Return the filter prefix that drives a named drawtext from a sendcmd script."""

    return "sendcmd=f={script},{drawtext}".format(
        script=escape_drawtext(script_name),
        drawtext=build_drawtext_filter("", style, name=LABEL_FILTER_NAME),
    )
