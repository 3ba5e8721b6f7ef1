"""Bounded retry and watchdog deadlines for booking steps.

Two independent mechanisms that compose:

* :func:`retry_async` re-invokes a fallible coroutine function a bounded
  number of times with fixed or exponential delay.  Each attempt builds a
  fresh coroutine, and an optional ``before_retry`` hook re-establishes any
  context a failed attempt may have invalidated (e.g. re-opening a sub-form).
* :func:`with_watchdog` races a whole operation against a wall-clock
  deadline.  On expiry the operation is cancelled and abandoned.

Usage::

    result = await with_watchdog(
        lambda: retry_async(lambda attempt: processor.process(item), attempts=3, delay_s=2.0),
        timeout_s=120,
        label=item.item_id,
    )
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from timebooker.exceptions import WatchdogTimeoutError
from timebooker.models.booking import AttemptRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_retryable(exc: BaseException) -> bool:
    """Errors default to retryable unless they declare ``retryable = False``."""
    return bool(getattr(exc, "retryable", True))


def backoff_delay(attempt: int, delay_s: float, backoff: float = 1.0, max_delay_s: float | None = None) -> float:
    """Delay before the attempt following *attempt* (1-based)."""
    delay = delay_s * (backoff ** (attempt - 1))
    if max_delay_s is not None:
        delay = min(delay, max_delay_s)
    return delay


async def retry_async(
    func: Callable[[int], Awaitable[T]],
    *,
    attempts: int,
    delay_s: float,
    backoff: float = 1.0,
    max_delay_s: float | None = None,
    label: str = "step",
    before_retry: Callable[[int, BaseException], Awaitable[None]] | None = None,
    record: AttemptRecord | None = None,
) -> T:
    """Invoke ``func(attempt)`` until it succeeds or *attempts* are used up.

    Args:
        func: Coroutine function receiving the 1-based attempt number.
        attempts: Total number of attempts (>= 1).
        delay_s: Delay after the first failure.
        backoff: Multiplier applied to the delay after each further failure
            (``1.0`` = fixed delay).
        max_delay_s: Cap on the delay.
        label: Name used in log messages.
        before_retry: Awaited before every re-attempt with the previous
            attempt number and error.  Its failures count as a failed attempt.
        record: Optional counters updated on every failure.

    Returns:
        Whatever ``func`` returned on the successful attempt.

    Raises:
        Exception: The last error once attempts are exhausted, or the first
            error that declares itself non-retryable.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    last_exc: Exception | None = None
    for attempt in range(1, attempts + 1):
        try:
            if attempt > 1 and before_retry is not None and last_exc is not None:
                await before_retry(attempt - 1, last_exc)
            return await func(attempt)
        except Exception as exc:
            last_exc = exc
            if record is not None:
                record.record_failure(exc)
            if attempt >= attempts or not is_retryable(exc):
                if attempts > 1:
                    logger.warning(
                        "%s failed on attempt %d/%d: %s: %s (giving up)",
                        label,
                        attempt,
                        attempts,
                        type(exc).__name__,
                        exc,
                    )
                raise
            delay = backoff_delay(attempt, delay_s, backoff, max_delay_s)
            logger.warning(
                "%s failed (attempt %d/%d): %s: %s, retrying in %.1fs",
                label,
                attempt,
                attempts,
                type(exc).__name__,
                exc,
                delay,
            )
            await asyncio.sleep(delay)
    # Unreachable: the loop either returns or raises
    raise last_exc  # type: ignore[misc]


async def with_watchdog(
    factory: Callable[[], Awaitable[T]],
    timeout_s: float,
    label: str,
    *,
    item_id: str | None = None,
) -> T:
    """Race ``factory()`` against a wall-clock deadline.

    Raises:
        WatchdogTimeoutError: If the deadline fires first.  The operation is
            cancelled; remote actions it had in flight are abandoned.
    """
    try:
        return await asyncio.wait_for(factory(), timeout=timeout_s)
    except asyncio.TimeoutError as exc:
        logger.error("Watchdog fired for %s after %.1fs", label, timeout_s)
        raise WatchdogTimeoutError(label, timeout_s, item_id=item_id) from exc
