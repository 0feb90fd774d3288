"""Click CLI wiring and entry points for pagelapse."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import replace
from typing import Any, Dict, Mapping, cast

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from src.config_loader import ConfigError, coerce_field_value, load_config, validate_config
from src.datatypes import AppConfig, LabelMode
from src.pagelapse import actions
from src.pagelapse.cli_runtime import CLIAppError, CliOutputManager, NullCliOutputManager
from src.pagelapse.frames import FrameStore
from src.pagelapse.runner import RunDependencies, RunRequest, RunResult, run

CONFIG_ENV_VAR = "PAGELAPSE_CONFIG"

# CLI parameter -> (config section, field)
_OVERRIDE_FIELDS: Dict[str, tuple[str, str]] = {
    "url": ("target", "url"),
    "folder": ("capture", "folder"),
    "basename": ("capture", "basename"),
    "gif": ("gif", "enabled"),
    "gif_name": ("gif", "name"),
    "frame_duration": ("gif", "frame_duration"),
    "scale_width": ("gif", "scale_width"),
    "label_mode": ("gif", "label_mode"),
    "auto": ("gate", "auto"),
    "video": ("video", "enabled"),
    "video_name": ("video", "name"),
    "video_duration": ("video", "duration_seconds"),
    "video_speed": ("video", "speed"),
    "video_formats": ("video", "formats"),
}


def configure_logging(console: Console, *, quiet: bool, verbose: bool) -> None:
    """Route log records through a RichHandler bound to *console*."""

    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler, RichHandler):
            root.removeHandler(handler)
    handler = RichHandler(console=console, show_path=False, markup=False, rich_tracebacks=True)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(handler)
    root.setLevel(level)


def apply_cli_overrides(cfg: AppConfig, overrides: Mapping[str, Any]) -> AppConfig:
    """Overlay explicitly passed CLI options (``None`` means not given)."""

    updates: Dict[str, Dict[str, Any]] = {}
    for key, value in overrides.items():
        if value is None:
            continue
        section, field_name = _OVERRIDE_FIELDS[key]
        section_cls = type(getattr(cfg, section))
        updates.setdefault(section, {})[field_name] = coerce_field_value(
            section_cls, field_name, value, f"--{key.replace('_', '-')}"
        )
    if not updates:
        return cfg
    sections = {
        section: replace(getattr(cfg, section), **values) for section, values in updates.items()
    }
    return validate_config(replace(cfg, **sections))


def resolve_config(
    config_path: str | None,
    *,
    overrides: Mapping[str, Any],
    use_action_inputs: bool,
    environ: Mapping[str, str],
) -> AppConfig:
    """
    Layer defaults, the TOML file, action inputs, and CLI flags in that order.

    Raises:
        CLIAppError: The configuration file is missing or any layer is invalid.
    """

    path = config_path or environ.get(CONFIG_ENV_VAR) or None
    try:
        if path:
            cfg = load_config(path)
        else:
            cfg = validate_config(AppConfig())
        if use_action_inputs:
            cfg = actions.apply_action_inputs(cfg, actions.read_action_inputs(environ))
        return apply_cli_overrides(cfg, overrides)
    except FileNotFoundError as exc:
        raise CLIAppError(
            f"Config file not found: {path}",
            rich_message=f"[red]Config file not found:[/red] {escape(str(path))}",
        ) from exc
    except ConfigError as exc:
        raise CLIAppError(
            f"Invalid configuration: {exc}",
            rich_message=f"[red]Invalid configuration:[/red] {escape(str(exc))}",
        ) from exc


def _print_summary(reporter: CliOutputManager, result: RunResult) -> None:
    if not result.outputs:
        return
    reporter.section("Outputs")
    for name, value in result.outputs.items():
        reporter.line(f"  {name}: {escape(value)}")


def _run_cli_entry(
    *,
    config_path: str | None,
    overrides: Mapping[str, Any],
    action_inputs: bool | None,
    quiet: bool,
    verbose: bool,
    no_color: bool,
    json_mode: bool,
    dependencies: RunDependencies | None = None,
    environ: Mapping[str, str] | None = None,
) -> int:
    """Execute the primary CLI workflow and return the process exit code."""

    env = os.environ if environ is None else environ
    in_actions = actions.running_in_actions(env)
    use_action_inputs = in_actions if action_inputs is None else action_inputs

    console = Console(no_color=no_color, highlight=False)
    configure_logging(Console(stderr=True, no_color=no_color), quiet=quiet, verbose=verbose)

    try:
        cfg = resolve_config(
            config_path,
            overrides=overrides,
            use_action_inputs=use_action_inputs,
            environ=env,
        )
    except CLIAppError as exc:
        console.print(exc.rich_message)
        actions.annotate("error", str(exc), environ=env)
        return exc.code

    reporter: CliOutputManager | NullCliOutputManager
    if json_mode:
        reporter = NullCliOutputManager()
    else:
        reporter = CliOutputManager(quiet=quiet, verbose=verbose, no_color=no_color, console=console)
        reporter.banner(f"pagelapse: {cfg.target.url}")

    request = RunRequest(
        config=cfg,
        quiet=quiet,
        verbose=verbose,
        no_color=no_color,
        reporter=reporter,
        environ=env,
    )
    result = run(request, dependencies=dependencies)

    for warning in result.warnings:
        actions.annotate("warning", warning, environ=env)
    if json_mode:
        click.echo(json.dumps(result.to_dict(), indent=2))
    elif isinstance(reporter, CliOutputManager):
        _print_summary(reporter, result)

    if not result.ok:
        actions.annotate("error", result.error or "Run failed", environ=env)
        return 1
    return 0


@click.group(invoke_without_command=True)
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(dir_okay=False),
    help=f"Path to a TOML config file (defaults to ${CONFIG_ENV_VAR} when set).",
)
@click.option("--url", default=None, help="Page to capture.")
@click.option("--folder", default=None, help="Directory holding the captured frames.")
@click.option("--basename", default=None, help="Frame file name prefix.")
@click.option("--gif/--no-gif", "gif", default=None, help="Assemble a time-lapse GIF after capturing.")
@click.option("--gif-name", default=None, help="File name of the time-lapse inside the frame folder.")
@click.option("--frame-duration", type=float, default=None, help="Seconds each frame is shown.")
@click.option("--scale-width", type=int, default=None, help="Output width in pixels.")
@click.option(
    "--label-mode",
    type=click.Choice([mode.value for mode in LabelMode], case_sensitive=False),
    default=None,
    help="How capture timestamps are drawn onto frames.",
)
@click.option(
    "--auto/--commit-gated",
    "auto",
    default=None,
    help="Always capture, or only when the latest human commit carries the marker.",
)
@click.option("--video/--no-video", "video", default=None, help="Record a video of the page.")
@click.option("--video-name", default=None, help="File name of the recording inside the frame folder.")
@click.option("--video-duration", type=float, default=None, help="Recording length in seconds.")
@click.option("--video-speed", type=float, default=None, help="Playback speed multiplier for the recording.")
@click.option("--video-formats", default=None, help="Comma-separated export formats, or 'none'.")
@click.option(
    "--action-inputs/--no-action-inputs",
    "action_inputs",
    default=None,
    help="Read INPUT_* variables (default: on when GITHUB_ACTIONS=true).",
)
@click.option("--quiet", is_flag=True, help="Only print warnings and errors.")
@click.option("--verbose", is_flag=True, help="Show additional diagnostic output during run.")
@click.option("--no-color", is_flag=True, help="Disable ANSI colour output.")
@click.option("--json", "json_mode", is_flag=True, help="Print the run result as JSON.")
@click.pass_context
def main(
    ctx: click.Context,
    config_path: str | None,
    *,
    url: str | None,
    folder: str | None,
    basename: str | None,
    gif: bool | None,
    gif_name: str | None,
    frame_duration: float | None,
    scale_width: int | None,
    label_mode: str | None,
    auto: bool | None,
    video: bool | None,
    video_name: str | None,
    video_duration: float | None,
    video_speed: float | None,
    video_formats: str | None,
    action_inputs: bool | None,
    quiet: bool,
    verbose: bool,
    no_color: bool,
    json_mode: bool,
) -> None:
    """Capture a page screenshot and grow a time-lapse of it."""

    overrides = {
        "url": url,
        "folder": folder,
        "basename": basename,
        "gif": gif,
        "gif_name": gif_name,
        "frame_duration": frame_duration,
        "scale_width": scale_width,
        "label_mode": label_mode,
        "auto": auto,
        "video": video,
        "video_name": video_name,
        "video_duration": video_duration,
        "video_speed": video_speed,
        "video_formats": video_formats,
    }
    params_map = cast(Dict[str, Any], ctx.ensure_object(dict))
    params_map.update(
        {
            "config_path": config_path,
            "overrides": overrides,
            "action_inputs": action_inputs,
            "quiet": quiet,
            "verbose": verbose,
            "no_color": no_color,
        }
    )
    ctx.obj = params_map

    if ctx.invoked_subcommand is None:
        code = _run_cli_entry(
            config_path=config_path,
            overrides=overrides,
            action_inputs=action_inputs,
            quiet=quiet,
            verbose=verbose,
            no_color=no_color,
            json_mode=json_mode,
            dependencies=params_map.get("dependencies"),
            environ=params_map.get("environ"),
        )
        ctx.exit(code)


@main.command("frames")
@click.pass_context
def frames_command(ctx: click.Context) -> None:
    """List stored frames in capture order with their labels."""

    params = cast(Dict[str, Any], ctx.ensure_object(dict))
    env: Mapping[str, str] = params.get("environ") or os.environ
    console = Console(no_color=bool(params.get("no_color")), highlight=False)
    try:
        cfg = resolve_config(
            params.get("config_path"),
            overrides=params.get("overrides", {}),
            use_action_inputs=bool(params.get("action_inputs")),
            environ=env,
        )
    except CLIAppError as exc:
        console.print(exc.rich_message)
        ctx.exit(exc.code)
        return

    store = FrameStore(cfg.capture.folder, cfg.capture.basename)
    frames = store.list_frames()
    if not frames:
        console.print(f"No frames for '{escape(cfg.capture.basename)}' in {escape(str(store.folder))}")
        return
    table = Table(title=f"{len(frames)} frame(s) in {store.folder}")
    table.add_column("#", justify="right")
    table.add_column("Captured")
    table.add_column("File")
    for index, frame in enumerate(frames):
        table.add_row(str(index), frame.label, frame.path.name)
    console.print(table)


__all__ = [
    "apply_cli_overrides",
    "configure_logging",
    "main",
    "resolve_config",
]
