"""Runtime data structures and CLI helpers shared between Click wiring and the runner."""

from __future__ import annotations

import io
from typing import Optional, Protocol

from rich.console import Console
from rich.markup import escape


class CLIAppError(RuntimeError):
    """Raised when the CLI cannot complete its work."""

    def __init__(self, message: str, *, code: int = 1, rich_message: Optional[str] = None) -> None:
        super().__init__(message)
        self.code = code
        self.rich_message = rich_message or message


class CliOutputManagerProtocol(Protocol):
    quiet: bool
    verbose: bool
    console: Console

    def warn(self, text: str) -> None: ...

    def error(self, text: str) -> None: ...

    def banner(self, text: str) -> None: ...

    def section(self, title: str) -> None: ...

    def line(self, text: str) -> None: ...

    def verbose_line(self, text: str) -> None: ...


class CliOutputManager:
    """Rich console presentation controller."""

    def __init__(
        self,
        *,
        quiet: bool,
        verbose: bool,
        no_color: bool,
        console: Console | None = None,
    ) -> None:
        self.quiet = quiet
        self.verbose = verbose and not quiet
        self.no_color = no_color
        self.console = console or Console(no_color=no_color, highlight=False)

    def warn(self, text: str) -> None:
        if not self.quiet:
            self.console.print(f"[yellow]Warning:[/] {escape(text)}")

    def error(self, text: str) -> None:
        self.console.print(f"[bold red]Error:[/] {escape(text)}")

    def banner(self, text: str) -> None:
        if self.quiet:
            self.console.print(text)
            return
        self.console.print(f"[bold bright_cyan]{escape(text)}[/]")

    def section(self, title: str) -> None:
        if self.quiet:
            return
        self.console.print(f"[bold cyan]{title}[/]")

    def line(self, text: str) -> None:
        if self.quiet:
            return
        self.console.print(text)

    def verbose_line(self, text: str) -> None:
        if self.quiet or not self.verbose:
            return
        if not text:
            return
        self.console.print(f"[dim]{escape(text)}[/]")


class NullCliOutputManager(CliOutputManagerProtocol):
    """
    Minimal CliOutputManager implementation that discards console output.

    Used by automation callers (or ``--json`` runs) that want to suppress Rich
    rendering; warnings still reach the run result through the coordinator.
    """

    def __init__(
        self,
        *,
        quiet: bool = True,
        verbose: bool = False,
        no_color: bool = True,
        console: Console | None = None,
    ) -> None:
        self.quiet = True
        self.verbose = False
        self.no_color = no_color
        self.console = console or Console(
            file=io.StringIO(),
            no_color=True,
            highlight=False,
            force_terminal=False,
            width=80,
        )

    def warn(self, text: str) -> None:  # noqa: ARG002
        return None

    def error(self, text: str) -> None:  # noqa: ARG002
        return None

    def banner(self, text: str) -> None:  # noqa: ARG002
        return None

    def section(self, title: str) -> None:  # noqa: ARG002
        return None

    def line(self, text: str) -> None:  # noqa: ARG002
        return None

    def verbose_line(self, text: str) -> None:  # noqa: ARG002
        return None


__all__ = [
    "CLIAppError",
    "CliOutputManager",
    "CliOutputManagerProtocol",
    "NullCliOutputManager",
]
