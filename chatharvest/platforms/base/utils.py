"""Platform-agnostic utility functions for the harvest engine.

This module contains the clock abstraction used by every polling loop, the
human-paced delay helper, cookie-string parsing and a few formatting helpers
shared by all platform adapters.
"""

import asyncio
import json
import logging
import random
import re
import time
from collections.abc import Awaitable, Callable
from typing import Any, Protocol
from urllib.parse import urlparse

logger = logging.getLogger(__name__)


class Clock(Protocol):
    """Time source and sleep primitive used by the polling loops."""

    def monotonic(self) -> float: ...

    async def sleep(self, seconds: float) -> None: ...


class SystemClock:
    """Real wall-clock implementation backed by asyncio."""

    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


async def poll_until(
    predicate: Callable[[], Awaitable[bool]],
    timeout: float,
    interval: float,
    clock: Clock,
) -> bool:
    """Poll an async predicate until it is true or the timeout elapses.

    Exceptions raised by the predicate count as a negative poll.
    """
    deadline = clock.monotonic() + timeout
    while True:
        try:
            if await predicate():
                return True
        except Exception as e:
            logger.debug(f"Poll predicate raised: {e}")
        if clock.monotonic() >= deadline:
            return False
        await clock.sleep(interval)


async def human_delay(
    min_seconds: float = 2.0,
    max_seconds: float = 7.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> float:
    """Add a human-like jittered delay to avoid anti-automation defenses.

    Returns
    -------
        The delay that was slept, in seconds

    """
    delay = random.uniform(min_seconds, max_seconds)  # noqa: S311
    await sleep(delay)
    return delay


def parse_cookie_string(raw_cookies: str, domain: str) -> list[dict[str, Any]]:
    """Parse stored cookies into Playwright cookie dictionaries.

    Accepts either a JSON array of cookie objects or a browser header string
    (``name=value; name2=value2``). Cookies without a domain or path get the
    given domain and ``/``.

    Args:
    ----
        raw_cookies: Raw cookie material from the environment
        domain: Domain used for cookies that do not carry one

    Returns:
    -------
        List of cookie dictionaries ready for ``context.add_cookies``

    """
    if not raw_cookies or not raw_cookies.strip():
        return []

    cookies: list[dict[str, Any]] = []
    raw = raw_cookies.strip()

    if raw.startswith("["):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse JSON cookies: {e}")
            return []
        for item in parsed:
            if not isinstance(item, dict) or "name" not in item:
                continue
            cookies.append(
                {
                    **item,
                    "domain": item.get("domain") or domain,
                    "path": item.get("path") or "/",
                }
            )
        return cookies

    for pair in raw.split(";"):
        index = pair.find("=")
        if index == -1:
            continue
        name = pair[:index].strip()
        value = pair[index + 1 :].strip()
        if not name:
            continue
        cookies.append(
            {
                "name": name,
                "value": value,
                "domain": domain,
                "path": "/",
                "secure": True,
            }
        )
    return cookies


def extract_domain(url: str) -> str:
    """Return the hostname of a URL without a leading ``www.``."""
    if not url:
        return ""
    candidate = url.strip()
    if candidate.startswith("//"):
        candidate = "https:" + candidate
    try:
        host = urlparse(candidate).hostname or ""
    except ValueError:
        return ""
    host = host.lower()
    return host[4:] if host.startswith("www.") else host


def clean_url(url: str | None) -> str:
    """Normalize protocol-relative URLs and strip whitespace."""
    if not url:
        return ""
    url = url.strip()
    if url.startswith("//"):
        return "https:" + url
    return url


def clean_text(text: str | None) -> str:
    """Collapse whitespace runs into single spaces."""
    if not text:
        return ""
    return re.sub(r"\s+", " ", text).strip()


def truncate(text: str, limit: int = 20) -> str:
    """Shorten text for log lines."""
    return text if len(text) <= limit else text[:limit] + "..."


def format_duration(seconds: float) -> str:
    """Format duration in human-readable format.

    Args:
    ----
        seconds: Duration in seconds

    Returns:
    -------
        Formatted duration string

    """
    if seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        minutes = seconds / 60
        return f"{minutes:.1f}m"
    else:
        hours = seconds / 3600
        return f"{hours:.1f}h"
