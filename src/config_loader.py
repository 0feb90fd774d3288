"""Configuration loader that parses and validates user-provided TOML."""

from __future__ import annotations

import math
import tomllib
from dataclasses import fields, is_dataclass
from enum import Enum
from typing import Any, Dict, Mapping

from .datatypes import (
    AppConfig,
    CaptureConfig,
    GateConfig,
    GifConfig,
    GitHubConfig,
    TargetConfig,
    VideoConfig,
)


class ConfigError(ValueError):
    """Raised when the configuration file is malformed or fails validation."""


_SECTIONS: tuple[tuple[str, type], ...] = (
    ("target", TargetConfig),
    ("capture", CaptureConfig),
    ("gif", GifConfig),
    ("video", VideoConfig),
    ("gate", GateConfig),
    ("github", GitHubConfig),
)

_DISABLED_FORMATS = frozenset({"", "none"})


def _coerce_bool(value: Any, dotted_key: str) -> bool:
    """Return a bool, coercing simple 0/1 representations when necessary."""

    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"0", "1"}:
            return normalized == "1"
        if normalized in {"true", "false"}:
            return normalized == "true"
    raise ConfigError(f"{dotted_key} must be a boolean (use true/false).")


def _coerce_enum(value: Any, dotted_key: str, enum_type: type[Enum]) -> Enum:
    """Return an enum member, coercing string values case-insensitively."""

    if isinstance(value, enum_type):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        for member in enum_type:
            member_value = str(member.value).lower()
            if normalized == member_value:
                return member
    raise ConfigError(
        f"{dotted_key} must be one of: {', '.join(str(member.value) for member in enum_type)}"
    )


def coerce_field_value(cls: type, name: str, value: Any, dotted_key: str) -> Any:
    """
    Coerce a single raw value for ``cls.name`` using the field's declared type.

    Booleans and enums are normalised; ints and floats are parsed from strings so
    values arriving from environment variables behave like their TOML equivalents.

    Raises:
        ConfigError: If ``name`` is not a field of ``cls`` or the value cannot be coerced.
    """

    cls_fields = {item.name: item for item in fields(cls)}
    if name not in cls_fields:
        raise ConfigError(f"Unknown key {dotted_key}")
    field_type = cls_fields[name].type
    if field_type is bool:
        return _coerce_bool(value, dotted_key)
    if isinstance(field_type, type) and issubclass(field_type, Enum):
        return _coerce_enum(value, dotted_key, field_type)
    if field_type is int:
        if isinstance(value, bool):
            raise ConfigError(f"{dotted_key} must be an integer")
        try:
            return int(str(value).strip()) if isinstance(value, str) else int(value)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"{dotted_key} must be an integer") from exc
    if field_type is float:
        return _normalize_float(value, dotted_key)
    if field_type is str:
        if not isinstance(value, str):
            raise ConfigError(f"{dotted_key} must be a string")
        return value
    return value


def _sanitize_section(raw: Any, name: str, cls):
    """
    Coerce a raw TOML table into an instance of ``cls`` with cleaned values.

    Parameters:
        raw (Any): Raw TOML section data.
        name (str): Section name used when reporting validation errors.
        cls: Dataclass type used to construct the section object.

    Returns:
        Any: Instantiated dataclass populated with values from ``raw``.

    Raises:
        ConfigError: If the section is not a table or contains invalid keys or values.
    """
    if not isinstance(raw, dict):
        raise ConfigError(f"[{name}] must be a table")
    cleaned: Dict[str, Any] = {}
    nested_fields = {
        field.name: field.type
        for field in fields(cls)
        if is_dataclass(field.type)
    }
    for key, value in raw.items():
        if key in nested_fields:
            cleaned[key] = _sanitize_section(value, f"{name}.{key}", nested_fields[key])
        else:
            cleaned[key] = coerce_field_value(cls, key, value, f"{name}.{key}")
    try:
        return cls(**cleaned)
    except TypeError as exc:
        raise ConfigError(f"Invalid keys in [{name}]: {exc}") from exc


def _normalize_float(value: Any, dotted_key: str) -> float:
    """Return ``value`` as a finite float, raising ConfigError otherwise."""

    if isinstance(value, bool):
        raise ConfigError(f"{dotted_key} must be a number")
    try:
        numeric = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{dotted_key} must be a number") from exc
    if not math.isfinite(numeric):
        raise ConfigError(f"{dotted_key} must be a finite number")
    return numeric


def _require_positive(value: float, dotted_key: str) -> None:
    if value <= 0:
        raise ConfigError(f"{dotted_key} must be > 0")


def _require_non_negative(value: float, dotted_key: str) -> None:
    if value < 0:
        raise ConfigError(f"{dotted_key} must be >= 0")


def _validate_string_list(values: Any, dotted_key: str) -> None:
    if not isinstance(values, list) or not all(isinstance(item, str) for item in values):
        raise ConfigError(f"{dotted_key} must be a list of strings")


def parse_video_formats(raw: str | None) -> tuple[str, ...]:
    """
    Split a comma-separated export format list.

    Names are lower-cased, stripped of whitespace and leading dots, and de-duplicated
    in first-seen order. ``""`` and ``"none"`` disable exports entirely.
    """

    if raw is None:
        return ()
    if raw.strip().lower() in _DISABLED_FORMATS:
        return ()
    formats: list[str] = []
    for chunk in raw.split(","):
        name = chunk.strip().lower().lstrip(".")
        if name in _DISABLED_FORMATS:
            continue
        if not name.isalnum():
            raise ConfigError(f"video.formats entry '{chunk.strip()}' is not a valid format name")
        if name not in formats:
            formats.append(name)
    return tuple(formats)


def validate_config(cfg: AppConfig) -> AppConfig:
    """Apply range checks shared by every configuration source."""

    if not cfg.target.url.strip():
        raise ConfigError("target.url must not be empty")
    _require_non_negative(cfg.target.ready_timeout_seconds, "target.ready_timeout_seconds")
    _require_non_negative(cfg.target.navigation_timeout_seconds, "target.navigation_timeout_seconds")
    _require_positive(cfg.target.viewport_width, "target.viewport_width")
    _require_positive(cfg.target.viewport_height, "target.viewport_height")
    _validate_string_list(cfg.target.launch_args, "target.launch_args")

    if not cfg.capture.basename.strip():
        raise ConfigError("capture.basename must not be empty")
    if any(sep in cfg.capture.basename for sep in ("/", "\\")):
        raise ConfigError("capture.basename must not contain path separators")

    _require_positive(cfg.gif.frame_duration, "gif.frame_duration")
    _require_positive(cfg.gif.scale_width, "gif.scale_width")
    _require_positive(cfg.gif.font_size, "gif.font_size")
    if not 2 <= cfg.gif.max_colors <= 256:
        raise ConfigError("gif.max_colors must be between 2 and 256")
    _require_non_negative(cfg.gif.ffmpeg_timeout_seconds, "gif.ffmpeg_timeout_seconds")
    _require_non_negative(cfg.gif.cleanup_delay_seconds, "gif.cleanup_delay_seconds")

    _require_positive(cfg.video.duration_seconds, "video.duration_seconds")
    _require_positive(cfg.video.speed, "video.speed")
    _require_positive(cfg.video.gif_fps, "video.gif_fps")
    _require_positive(cfg.video.scale_width, "video.scale_width")
    _require_non_negative(cfg.video.ffmpeg_timeout_seconds, "video.ffmpeg_timeout_seconds")
    parse_video_formats(cfg.video.formats)

    if cfg.gate.lookback < 1:
        raise ConfigError("gate.lookback must be >= 1")
    _validate_string_list(cfg.gate.bot_patterns, "gate.bot_patterns")
    _require_positive(cfg.github.timeout_seconds, "github.timeout_seconds")
    return cfg


def build_config(raw: Mapping[str, Any]) -> AppConfig:
    """Build a validated :class:`AppConfig` from an already-parsed mapping."""

    unknown = sorted(set(raw) - {name for name, _ in _SECTIONS})
    if unknown:
        raise ConfigError(f"Unknown configuration sections: {', '.join(unknown)}")
    sections = {
        name: _sanitize_section(raw.get(name, {}), name, cls)
        for name, cls in _SECTIONS
    }
    return validate_config(AppConfig(**sections))


def load_config(path: str) -> AppConfig:
    """
    Load and validate an application configuration from a TOML file.

    Reads the file at `path`, parses it as UTF-8 TOML (BOM is accepted), coerces and
    validates all sections, and returns a fully populated AppConfig.

    Raises:
        ConfigError: If the file is not UTF-8, TOML parsing fails, or any validation rule is violated.
    """

    with open(path, "rb") as handle:
        raw_bytes = handle.read()
    if raw_bytes.startswith(b"\xef\xbb\xbf"):
        raw_bytes = raw_bytes[3:]
    try:
        raw = tomllib.loads(raw_bytes.decode("utf-8"))
    except UnicodeDecodeError as exc:
        raise ConfigError("Configuration file must be UTF-8 encoded") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Failed to parse TOML: {exc}") from exc
    return build_config(raw)
