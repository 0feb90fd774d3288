"""Resolve the URL the browser should load when it runs in an isolated network."""

from __future__ import annotations

import logging
import re
import subprocess
from dataclasses import dataclass, field
from typing import List, Optional, Protocol
from urllib.parse import urlsplit, urlunsplit

from src.pagelapse import subproc as _subproc

logger = logging.getLogger(__name__)

__all__ = [
    "LOOPBACK_HOSTS",
    "HostAddressResolver",
    "ResolvedTarget",
    "RouteTableResolver",
    "StaticHostResolver",
    "is_loopback_url",
    "replace_host",
    "resolve_target",
]

LOOPBACK_HOSTS = frozenset({"localhost", "127.0.0.1"})

_GATEWAY_RE = re.compile(r"\bvia\s+(?P<addr>[0-9A-Fa-f:.]+)")


class HostAddressResolver(Protocol):
    """Returns an address of the container host reachable from the browser, or ``None``."""

    def host_address(self) -> Optional[str]: ...


class RouteTableResolver:
    """Reads the default-route gateway from ``ip route show default``."""

    def __init__(
        self,
        *,
        runner: _subproc.CommandRunner = _subproc.run_capture,
        timeout: float = 5.0,
    ) -> None:
        self._runner = runner
        self._timeout = timeout

    def host_address(self) -> Optional[str]:
        cmd = ["ip", "route", "show", "default"]
        try:
            process = self._runner(cmd, timeout=self._timeout)
        except (OSError, subprocess.TimeoutExpired) as exc:
            logger.debug("Route lookup failed: %s", exc)
            return None
        if process.returncode != 0:
            logger.debug("Route lookup exited with %s", process.returncode)
            return None
        output = process.stdout
        if isinstance(output, bytes):
            output = output.decode("utf-8", "ignore")
        match = _GATEWAY_RE.search(output or "")
        return match.group("addr") if match else None


class StaticHostResolver:
    def __init__(self, address: Optional[str]) -> None:
        self._address = address

    def host_address(self) -> Optional[str]:
        return self._address


@dataclass
class ResolvedTarget:
    url: str
    original_url: str
    rewritten: bool = False
    warnings: List[str] = field(default_factory=list)


def is_loopback_url(url: str) -> bool:
    hostname = urlsplit(url).hostname
    return hostname is not None and hostname.lower() in LOOPBACK_HOSTS


def replace_host(url: str, host: str) -> str:
    """Swap only the host of *url*; scheme, credentials, port, path and query survive."""

    parts = urlsplit(url)
    netloc = host if ":" not in host else f"[{host}]"
    if parts.port is not None:
        netloc = f"{netloc}:{parts.port}"
    userinfo, sep, _ = parts.netloc.rpartition("@")
    if sep:
        netloc = f"{userinfo}@{netloc}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


def resolve_target(
    url: str,
    resolver: HostAddressResolver | None,
    *,
    rewrite_loopback: bool = True,
) -> ResolvedTarget:
    """
    Point loopback URLs at the container host.

    Failure to find a host address is not fatal: the original URL is kept and a
    warning is attached to the result.
    """

    target = ResolvedTarget(url=url, original_url=url)
    if not rewrite_loopback or resolver is None or not is_loopback_url(url):
        return target
    try:
        address = resolver.host_address()
    except OSError as exc:
        logger.debug("Host address resolver raised: %s", exc)
        address = None
    if not address:
        message = f"Could not determine host IP address; using {url} unchanged"
        logger.warning(message)
        target.warnings.append(message)
        return target
    target.url = replace_host(url, address)
    target.rewritten = True
    logger.info("Using URL: %s", target.url)
    return target
