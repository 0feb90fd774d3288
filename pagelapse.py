"""Public shim exposing the pagelapse CLI and library surface."""

from __future__ import annotations

import os
from typing import Callable, Mapping, cast

import src.pagelapse.cli_entry as _cli_entry
from src.datatypes import AppConfig
from src.pagelapse import runner
from src.pagelapse.cli_runtime import CLIAppError
from src.pagelapse.render.errors import PagelapseError

RunResult = runner.RunResult
RunRequest = runner.RunRequest
RunDependencies = runner.RunDependencies

__all__ = (
    "run_cli",
    "main",
    "AppConfig",
    "RunDependencies",
    "RunRequest",
    "RunResult",
    "CLIAppError",
    "PagelapseError",
)


def run_cli(
    config_path: str | None = None,
    *,
    overrides: Mapping[str, object] | None = None,
    use_action_inputs: bool = False,
    environ: Mapping[str, str] | None = None,
    quiet: bool = False,
    verbose: bool = False,
    no_color: bool = False,
    dependencies: runner.RunDependencies | None = None,
) -> RunResult:
    """Resolve configuration like the CLI does and delegate to the shared runner module."""
    env = dict(environ) if environ is not None else None
    cfg = _cli_entry.resolve_config(
        config_path,
        overrides=overrides or {},
        use_action_inputs=use_action_inputs,
        environ=env if env is not None else os.environ,
    )
    request = RunRequest(
        config=cfg,
        quiet=quiet,
        verbose=verbose,
        no_color=no_color,
        environ=env,
    )
    return runner.run(request, dependencies=dependencies)


main = _cli_entry.main


if __name__ == "__main__":
    _entry_point = cast(Callable[[], None], main)
    _entry_point()
