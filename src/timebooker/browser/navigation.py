"""Resilient page navigation with automatic wait-strategy fallback.

Portal pages keep long-polling connections open and often never reach
``networkidle``.  This module wraps Playwright's ``page.goto`` with a
staged strategy: try ``networkidle`` first, then fall back to ``load`` and
``domcontentloaded`` on timeout.  Network-level failures (DNS, refused
connections, TLS) are not retried with weaker strategies.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Literal

from playwright.async_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeout

from timebooker.exceptions import NavigationError

if TYPE_CHECKING:
    from playwright.async_api import Page, Response

logger = logging.getLogger(__name__)

# Playwright error substrings that indicate non-retryable navigation failures.
_NON_RETRYABLE_ERRORS: tuple[str, ...] = (
    "ERR_NAME_NOT_RESOLVED",
    "ERR_CONNECTION_REFUSED",
    "ERR_CONNECTION_RESET",
    "ERR_CONNECTION_CLOSED",
    "ERR_SSL_PROTOCOL_ERROR",
    "ERR_CERT_AUTHORITY_INVALID",
    "ERR_CERT_COMMON_NAME_INVALID",
    "ERR_ADDRESS_UNREACHABLE",
)

# Transient network hiccups worth a longer pause before the next strategy.
_TRANSIENT_ERRORS: tuple[str, ...] = ("ERR_NETWORK_CHANGED",)

WaitUntil = Literal["commit", "domcontentloaded", "load", "networkidle"]

_FALLBACK_STRATEGY: list[WaitUntil] = ["networkidle", "load", "domcontentloaded"]


async def resilient_goto(
    page: Page,
    url: str,
    *,
    timeout_ms: int = 60_000,
    wait_until: WaitUntil = "networkidle",
    transient_pause_s: float = 8.0,
) -> Response | None:
    """Navigate to *url* with automatic wait-strategy fallback.

    Args:
        page: Playwright page instance.
        url: Target URL to navigate to.
        timeout_ms: Timeout per attempt in milliseconds.
        wait_until: Preferred initial wait strategy.
        transient_pause_s: Pause before the next strategy after a transient
            network error.

    Returns:
        The main-frame ``Response``, or ``None``.

    Raises:
        NavigationError: On a non-retryable network failure.
        PlaywrightTimeout: If all fallback strategies time out.
    """
    strategies = _build_fallback_chain(wait_until)

    last_error: PlaywrightError | None = None
    for strategy in strategies:
        try:
            logger.debug("goto %s (wait_until=%s, timeout=%dms)", url, strategy, timeout_ms)
            return await page.goto(url, wait_until=strategy, timeout=timeout_ms)
        except PlaywrightError as exc:
            error_msg = str(exc)
            for pattern in _NON_RETRYABLE_ERRORS:
                if pattern in error_msg:
                    reason = pattern.replace("ERR_", "").replace("_", " ").lower()
                    logger.warning("Navigation to %s failed (non-retryable): %s", url, pattern)
                    raise NavigationError(url, reason) from exc
            if any(pattern in error_msg for pattern in _TRANSIENT_ERRORS):
                logger.warning("Network changed while loading %s, pausing %.1fs", url, transient_pause_s)
                await asyncio.sleep(transient_pause_s)
                last_error = exc
            elif isinstance(exc, PlaywrightTimeout):
                logger.warning(
                    "Navigation to %s timed out with wait_until=%s, retrying with weaker strategy",
                    url,
                    strategy,
                )
                last_error = exc
            else:
                raise

    raise last_error  # type: ignore[misc]


def _build_fallback_chain(preferred: WaitUntil) -> list[WaitUntil]:
    """Return the fallback chain starting from *preferred*.

    If *preferred* is in the default chain, returns from that point onward.
    Otherwise returns ``[preferred]`` followed by the full default chain.
    """
    if preferred in _FALLBACK_STRATEGY:
        idx = _FALLBACK_STRATEGY.index(preferred)
        return _FALLBACK_STRATEGY[idx:]
    return [preferred, *_FALLBACK_STRATEGY]
