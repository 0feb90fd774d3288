# pyright: standard

"""Shared networking helpers for configurable retries/backoff."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Iterable
from urllib.parse import urlsplit

import httpx
from urllib3.util import Retry

from src.pagelapse.render.errors import ReadinessTimeoutError

__all__ = [
    "ALLOWED_METHODS",
    "DEFAULT_CONNECT_TIMEOUT",
    "DEFAULT_HTTP_TIMEOUT",
    "DEFAULT_READ_TIMEOUT",
    "RETRY_STATUS",
    "build_urllib3_retry",
    "default_requests_timeouts",
    "log_backoff_attempt",
    "redact_url_for_logs",
    "wait_until_reachable",
]

logger = logging.getLogger(__name__)

RETRY_STATUS = frozenset({429, 500, 502, 503, 504})
"""HTTP status codes treated as transient and eligible for backoff."""

ALLOWED_METHODS = frozenset({"GET"})
"""Request methods that participate in retry logic."""

DEFAULT_CONNECT_TIMEOUT = 10.0
"""Standard connect timeout (seconds) for outbound HTTP calls."""

DEFAULT_READ_TIMEOUT = 30.0
"""Standard read timeout (seconds) for outbound HTTP calls."""

DEFAULT_HTTP_TIMEOUT = httpx.Timeout(
    DEFAULT_READ_TIMEOUT,
    connect=DEFAULT_CONNECT_TIMEOUT,
    read=DEFAULT_READ_TIMEOUT,
)
"""Default per-request timeout matching the project connect/read guidelines."""


def build_urllib3_retry(
    total: int = 3,
    backoff_factor: float = 0.5,
    status_forcelist: Iterable[int] | None = None,
    allowed_methods: Iterable[str] | None = None,
) -> Retry:
    """Return a configured urllib3 Retry object with project defaults."""

    statuses = frozenset(status_forcelist) if status_forcelist else RETRY_STATUS
    methods = frozenset(allowed_methods) if allowed_methods else ALLOWED_METHODS
    return Retry(
        total=total,
        backoff_factor=backoff_factor,
        status_forcelist=statuses,
        allowed_methods=methods,
        raise_on_status=False,
    )


def default_requests_timeouts(
    connect: float = DEFAULT_CONNECT_TIMEOUT, read: float = DEFAULT_READ_TIMEOUT
) -> tuple[float, float]:
    """Return standard connect/read timeout values for Requests sessions."""

    return (float(connect), float(read))


def log_backoff_attempt(host: str, attempt: int, delay: float) -> None:
    """Emit a concise log entry describing the next retry window."""

    logger.info("GET %s retry #%d scheduled in %.2f s", host, attempt, delay)


def wait_until_reachable(
    url: str,
    timeout_seconds: float,
    *,
    client: httpx.Client | None = None,
    initial_backoff: float = 0.5,
    max_backoff: float = 4.0,
    sleep: Callable[[float], None] | None = None,
    monotonic: Callable[[], float] | None = None,
) -> int:
    """Poll *url* until it answers with a 2xx status or the budget runs out.

    Connection errors and non-2xx statuses are retried with exponential backoff,
    each wait capped by the time left before the deadline. Returns the number of
    attempts it took.

    Raises:
        ReadinessTimeoutError: The URL never returned 2xx within ``timeout_seconds``.
    """

    sleep_impl = sleep or time.sleep
    clock = monotonic or time.monotonic
    deadline = clock() + max(0.0, float(timeout_seconds))
    backoff = max(0.1, initial_backoff)
    upper_backoff = max(0.1, max_backoff)
    host_label = redact_url_for_logs(url)
    owns_client = client is None
    http = client or httpx.Client(timeout=DEFAULT_HTTP_TIMEOUT, follow_redirects=True)
    last_problem = "no response"
    attempt = 0
    try:
        while True:
            attempt += 1
            remaining = deadline - clock()
            request_timeout = max(0.1, min(DEFAULT_READ_TIMEOUT, remaining))
            try:
                response = http.get(url, timeout=request_timeout)
            except httpx.HTTPError as exc:
                last_problem = f"{type(exc).__name__}: {exc}"
            else:
                if 200 <= response.status_code < 300:
                    logger.info(
                        "GET %s reachable after %d attempt%s",
                        host_label,
                        attempt,
                        "" if attempt == 1 else "s",
                    )
                    return attempt
                last_problem = f"status {response.status_code}"

            remaining = deadline - clock()
            if remaining <= 0:
                break
            delay = min(backoff, remaining)
            log_backoff_attempt(host_label, attempt, delay)
            sleep_impl(delay)
            backoff = min(backoff * 2, upper_backoff)
    finally:
        if owns_client:
            http.close()
    raise ReadinessTimeoutError(
        f"{url} was not reachable within {timeout_seconds:g}s ({last_problem})"
    )


def redact_url_for_logs(url: str) -> str:
    """Return a safe identifier for URLs when logging sensitive endpoints."""

    try:
        parsed = urlsplit(url)
    except (ValueError, AttributeError):
        return "url"
    if parsed.netloc:
        if parsed.hostname:
            return parsed.hostname
        return parsed.netloc
    return parsed.path or "url"
