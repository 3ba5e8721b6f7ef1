"""timebooker exception hierarchy.

Every terminal failure of a booking is attributable to one work item and
one stage, so ``BookingError`` carries both.  ``retryable`` tells the retry
wrapper whether a fresh attempt can help.
"""

from __future__ import annotations


class TimebookerError(Exception):
    """Base exception for all timebooker errors."""


class ConfigurationError(TimebookerError):
    """Raised when settings are inconsistent (e.g. a category without aliases)."""


class ElementNotFoundError(TimebookerError):
    """Raised by the locate primitive when no node matches a selector in time.

    Attributes:
        selector: The selector that was searched for.
        timeout_ms: How long the search waited.
    """

    def __init__(self, selector: str, timeout_ms: int = 0) -> None:
        self.selector = selector
        self.timeout_ms = timeout_ms
        super().__init__(f"Element not found: {selector!r} (waited {timeout_ms}ms)")


class NavigationError(TimebookerError):
    """Raised when a page navigation fails for a non-retryable reason."""

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"Navigation to {url} failed: {reason}")


class LoginError(TimebookerError):
    """Raised when the portal session could not be established."""


class BookingError(TimebookerError):
    """Base for failures while processing a single work item.

    Attributes:
        stage: Pipeline stage the failure belongs to (set by the orchestrator
            if the raiser did not know it).
        item_id: Identifier of the affected work item, when known.
        retryable: Whether a fresh attempt may succeed.
    """

    retryable: bool = True
    default_stage: str = ""

    def __init__(self, message: str, *, stage: str | None = None, item_id: str | None = None) -> None:
        self.stage = stage or self.default_stage
        self.item_id = item_id
        super().__init__(message)


class OverlayNotFoundError(BookingError):
    """No discovery strategy produced a visible selection overlay."""

    default_stage = "open_overlay"


class CategoryNotFoundError(BookingError):
    """No leaf in the overlay tree matches any alias of the requested category."""

    default_stage = "select_category"


class ValidationFailedError(BookingError):
    """The overlay's selection does not match the requested category after selecting.

    Not retryable: applying anyway would book the wrong category, and the
    remote state that caused the mismatch is not something a retry fixes.
    """

    retryable = False
    default_stage = "select_category"

    def __init__(self, expected: list[str], found: str, **kwargs: str | None) -> None:
        self.expected = expected
        self.found = found
        super().__init__(
            f"Selection mismatch: expected one of {' / '.join(expected)}, found {found or '-'!r}",
            **kwargs,
        )


class NoSelectionError(BookingError):
    """Apply was requested while the overlay shows no selected node."""

    default_stage = "apply"


class DidNotCloseError(BookingError):
    """The overlay stayed open after applying (and acknowledging any alert)."""

    default_stage = "apply"


class SubFormInvalidError(BookingError):
    """The item's sub-form could not be found or was replaced by a re-render."""

    default_stage = "sub_form"


class WatchdogTimeoutError(BookingError):
    """The per-item wall-clock deadline expired.

    Attributes:
        timeout_s: The deadline that was exceeded.
    """

    retryable = False
    default_stage = "watchdog"

    def __init__(self, label: str, timeout_s: float, **kwargs: str | None) -> None:
        self.timeout_s = timeout_s
        super().__init__(f"Watchdog timeout ({label}) after {timeout_s:.1f}s", **kwargs)
