"""GitHub Actions inputs, step outputs, and workflow-command annotations."""

from __future__ import annotations

import logging
import os
import uuid
from dataclasses import replace
from pathlib import Path
from typing import Callable, Dict, Mapping, Optional, Protocol

import click

from src.config_loader import ConfigError, coerce_field_value, validate_config
from src.datatypes import AppConfig

logger = logging.getLogger(__name__)

__all__ = [
    "ACTION_INPUTS",
    "GitHubOutputSink",
    "NullOutputSink",
    "OutputSink",
    "annotate",
    "apply_action_inputs",
    "build_output_sink",
    "running_in_actions",
    "read_action_inputs",
]

# action input name -> (config section, field)
ACTION_INPUTS: Dict[str, tuple[str, str]] = {
    "url": ("target", "url"),
    "folder": ("capture", "folder"),
    "basename": ("capture", "basename"),
    "make_gif": ("gif", "enabled"),
    "gif_name": ("gif", "name"),
    "frame_duration": ("gif", "frame_duration"),
    "scale_width": ("gif", "scale_width"),
    "auto_screenshots": ("gate", "auto"),
    "make_video": ("video", "enabled"),
    "video_name": ("video", "name"),
    "video_duration": ("video", "duration_seconds"),
    "video_speed": ("video", "speed"),
    "video_formats": ("video", "formats"),
}


def _env_name(input_name: str) -> str:
    return "INPUT_" + input_name.replace(" ", "_").upper()


def running_in_actions(environ: Mapping[str, str] | None = None) -> bool:
    env = os.environ if environ is None else environ
    return env.get("GITHUB_ACTIONS", "").strip().lower() == "true"


def read_action_inputs(environ: Mapping[str, str] | None = None) -> Dict[str, str]:
    """Collect the non-empty ``INPUT_*`` values this tool understands."""

    env = os.environ if environ is None else environ
    inputs: Dict[str, str] = {}
    for name in ACTION_INPUTS:
        raw = env.get(_env_name(name))
        if raw is None or not raw.strip():
            continue
        inputs[name] = raw.strip()
    return inputs


def apply_action_inputs(cfg: AppConfig, inputs: Mapping[str, str]) -> AppConfig:
    """
    Overlay action inputs onto *cfg* and revalidate.

    Raises:
        ConfigError: An input is unknown or fails the same coercion and range checks
            as the TOML loader.
    """

    updates: Dict[str, Dict[str, object]] = {}
    for name, raw in inputs.items():
        if name not in ACTION_INPUTS:
            raise ConfigError(f"Unknown action input '{name}'")
        section, field_name = ACTION_INPUTS[name]
        section_cls = type(getattr(cfg, section))
        updates.setdefault(section, {})[field_name] = coerce_field_value(
            section_cls, field_name, raw, f"input {name}"
        )
    if not updates:
        return cfg
    sections = {
        section: replace(getattr(cfg, section), **values) for section, values in updates.items()
    }
    return validate_config(replace(cfg, **sections))


class OutputSink(Protocol):
    def set_output(self, name: str, value: str) -> None: ...


class NullOutputSink:
    """Discards outputs; used outside of Actions."""

    def __init__(self) -> None:
        self.values: Dict[str, str] = {}

    def set_output(self, name: str, value: str) -> None:
        self.values[name] = value


class GitHubOutputSink:
    """Appends step outputs to the file named by ``GITHUB_OUTPUT``."""

    def __init__(self, path: Path | str, *, delimiter_factory: Callable[[], str] | None = None) -> None:
        self.path = Path(path)
        self._delimiter_factory = delimiter_factory or (lambda: f"ghadelimiter_{uuid.uuid4()}")

    def set_output(self, name: str, value: str) -> None:
        if "\n" in value or "\r" in value:
            delimiter = self._delimiter_factory()
            entry = f"{name}<<{delimiter}\n{value}\n{delimiter}\n"
        else:
            entry = f"{name}={value}\n"
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(entry)
        logger.debug("Set output %s", name)


def build_output_sink(environ: Mapping[str, str] | None = None) -> OutputSink:
    env = os.environ if environ is None else environ
    target: Optional[str] = env.get("GITHUB_OUTPUT")
    if target:
        return GitHubOutputSink(target)
    return NullOutputSink()


def _escape_data(message: str) -> str:
    return message.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


def annotate(
    level: str,
    message: str,
    *,
    environ: Mapping[str, str] | None = None,
    echo: Callable[[str], None] = click.echo,
) -> bool:
    """Emit ``::warning::``/``::error::`` when running inside Actions. Returns whether it did."""

    if level not in {"warning", "error", "notice"}:
        raise ValueError(f"Unsupported annotation level: {level}")
    if not running_in_actions(environ):
        return False
    echo(f"::{level}::{_escape_data(message)}")
    return True
