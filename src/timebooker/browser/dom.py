"""Element locator primitives over the remote element tree.

The booking engine never touches Playwright directly.  It works against two
small protocols:

* ``Scope``: something nodes can be searched in (a page or a frame).
* ``Node``: a handle to one remote element; also a ``Scope`` for its
  descendants.

``PlaywrightScope`` / ``PlaywrightNode`` implement them on top of
``playwright.async_api``.  Gestures (click, focus, key presses) are best
effort: a node may have been detached by a re-render between lookup and
click, so they report ``False`` instead of raising, and callers re-observe
state rather than trusting the gesture.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from playwright.async_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeout

from timebooker.exceptions import ElementNotFoundError

if TYPE_CHECKING:
    from playwright.async_api import ElementHandle, Frame, Page

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class Scope(Protocol):
    """A searchable part of the remote tree (page, frame, or element)."""

    async def query(self, selector: str) -> Node | None: ...

    async def query_all(self, selector: str) -> list[Node]: ...

    async def wait_visible(self, selector: str, timeout_ms: int) -> Node | None: ...

    async def wait_hidden(self, selector: str, timeout_ms: int) -> bool: ...

    async def press(self, key: str) -> bool: ...


@runtime_checkable
class Node(Scope, Protocol):
    """A handle to one element in the remote tree."""

    async def text(self) -> str: ...

    async def attribute(self, name: str) -> str | None: ...

    async def has_class(self, name: str) -> bool: ...

    async def is_visible(self) -> bool: ...

    async def is_checked(self) -> bool: ...

    async def click(self, *, click_count: int = 1) -> bool: ...

    async def focus(self) -> bool: ...

    async def fill(self, value: str) -> bool: ...

    async def content_scope(self) -> Scope | None: ...


# ---------------------------------------------------------------------------
# Locate helpers
# ---------------------------------------------------------------------------


async def locate(scope: Scope, selector: str, *, visible: bool = True, timeout_ms: int = 0) -> Node:
    """Return the first node matching *selector*, optionally waiting until visible.

    Raises:
        ElementNotFoundError: If nothing (visible) matched within the timeout.
    """
    if visible:
        node = await scope.wait_visible(selector, timeout_ms)
    else:
        node = await scope.query(selector)
    if node is None:
        raise ElementNotFoundError(selector, timeout_ms)
    return node


async def first_present(scope: Scope, selectors: list[str]) -> Node | None:
    """Return the node for the first selector that matches anything."""
    for selector in selectors:
        node = await scope.query(selector)
        if node is not None:
            logger.debug("Matched selector %s", selector)
            return node
    return None


async def label_of(node: Node) -> str:
    """Visible text of a node, falling back to ``aria-label`` and ``title``."""
    text = (await node.text()).strip()
    if text:
        return text
    for attr in ("aria-label", "title"):
        value = await node.attribute(attr)
        if value and value.strip():
            return value.strip()
    return ""


async def poll_until(
    predicate: Callable[[], Awaitable[bool]],
    timeout_ms: int,
    interval_ms: int = 100,
) -> bool:
    """Poll an async predicate until it is true or *timeout_ms* elapses.

    Used where polling textual/structural state is the only available signal.
    The predicate is always evaluated at least once.
    """
    deadline = time.monotonic() + timeout_ms / 1000
    while True:
        if await predicate():
            return True
        if time.monotonic() >= deadline:
            return False
        await asyncio.sleep(interval_ms / 1000)


async def settle(delay_ms: int) -> None:
    """Fixed settle delay after a gesture the remote UI animates."""
    if delay_ms > 0:
        await asyncio.sleep(delay_ms / 1000)


# ---------------------------------------------------------------------------
# Playwright adapter
# ---------------------------------------------------------------------------


class PlaywrightScope:
    """``Scope`` over a Playwright ``Page`` or ``Frame``."""

    def __init__(self, target: Page | Frame) -> None:
        self._target = target

    @property
    def raw(self) -> Page | Frame:
        return self._target

    def _keyboard(self):
        keyboard = getattr(self._target, "keyboard", None)
        if keyboard is None:
            keyboard = self._target.page.keyboard
        return keyboard

    async def query(self, selector: str) -> Node | None:
        handle = await self._target.query_selector(selector)
        return PlaywrightNode(handle, self._keyboard()) if handle else None

    async def query_all(self, selector: str) -> list[Node]:
        keyboard = self._keyboard()
        return [PlaywrightNode(h, keyboard) for h in await self._target.query_selector_all(selector)]

    async def wait_visible(self, selector: str, timeout_ms: int) -> Node | None:
        try:
            handle = await self._target.wait_for_selector(selector, state="visible", timeout=max(timeout_ms, 1))
        except PlaywrightTimeout:
            return None
        return PlaywrightNode(handle, self._keyboard()) if handle else None

    async def wait_hidden(self, selector: str, timeout_ms: int) -> bool:
        try:
            await self._target.wait_for_selector(selector, state="hidden", timeout=max(timeout_ms, 1))
        except PlaywrightTimeout:
            return False
        return True

    async def press(self, key: str) -> bool:
        try:
            await self._keyboard().press(key)
        except PlaywrightError as exc:
            logger.debug("Key press %s failed: %s", key, exc)
            return False
        return True


class PlaywrightNode:
    """``Node`` over a Playwright ``ElementHandle``."""

    def __init__(self, handle: ElementHandle, keyboard) -> None:
        self._handle = handle
        self._kb = keyboard

    @property
    def raw(self) -> ElementHandle:
        return self._handle

    async def query(self, selector: str) -> Node | None:
        handle = await self._handle.query_selector(selector)
        return PlaywrightNode(handle, self._kb) if handle else None

    async def query_all(self, selector: str) -> list[Node]:
        return [PlaywrightNode(h, self._kb) for h in await self._handle.query_selector_all(selector)]

    async def wait_visible(self, selector: str, timeout_ms: int) -> Node | None:
        try:
            handle = await self._handle.wait_for_selector(selector, state="visible", timeout=max(timeout_ms, 1))
        except PlaywrightTimeout:
            return None
        return PlaywrightNode(handle, self._kb) if handle else None

    async def wait_hidden(self, selector: str, timeout_ms: int) -> bool:
        try:
            await self._handle.wait_for_selector(selector, state="hidden", timeout=max(timeout_ms, 1))
        except PlaywrightTimeout:
            return False
        return True

    async def press(self, key: str) -> bool:
        try:
            await self._kb.press(key)
        except PlaywrightError as exc:
            logger.debug("Key press %s failed: %s", key, exc)
            return False
        return True

    async def text(self) -> str:
        try:
            return ((await self._handle.text_content()) or "").strip()
        except PlaywrightError:
            return ""

    async def attribute(self, name: str) -> str | None:
        try:
            return await self._handle.get_attribute(name)
        except PlaywrightError:
            return None

    async def has_class(self, name: str) -> bool:
        try:
            return bool(await self._handle.evaluate("(el, c) => el.classList.contains(c)", name))
        except PlaywrightError:
            return False

    async def is_visible(self) -> bool:
        try:
            return await self._handle.is_visible()
        except PlaywrightError:
            return False

    async def is_checked(self) -> bool:
        try:
            return bool(await self._handle.evaluate("el => !!el.checked"))
        except PlaywrightError:
            return False

    async def click(self, *, click_count: int = 1) -> bool:
        try:
            await self._handle.scroll_into_view_if_needed(timeout=5_000)
            await self._handle.click(click_count=click_count, timeout=5_000)
        except PlaywrightError as exc:
            logger.debug("Click (count=%d) failed: %s", click_count, exc)
            return False
        return True

    async def focus(self) -> bool:
        try:
            await self._handle.scroll_into_view_if_needed(timeout=5_000)
            await self._handle.focus()
        except PlaywrightError as exc:
            logger.debug("Focus failed: %s", exc)
            return False
        return True

    async def fill(self, value: str) -> bool:
        try:
            await self._handle.fill(value, timeout=5_000)
            await self._handle.dispatch_event("change")
            await self._handle.evaluate("el => el.blur()")
        except PlaywrightError as exc:
            logger.debug("Fill failed: %s", exc)
            return False
        return True

    async def content_scope(self) -> Scope | None:
        frame = await self._handle.content_frame()
        return PlaywrightScope(frame) if frame else None
