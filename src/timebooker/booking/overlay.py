"""Overlay discovery — open the category overlay from a sub-form.

The portal renders equivalent overlay triggers differently from form to
form, so no single lookup is reliable.  ``OverlayOpener`` runs an ordered
chain of strategies sharing one signature, stopping at the first one that
leaves a *visible* overlay behind:

1. ``already_open``: the overlay is open; fire nothing.
2. ``structural``: role/attribute candidates whose own label matches the
   trigger vocabulary.
3. ``text_scan``: first visible descendant whose text matches the vocabulary.
4. ``labeled_field``: the field next to a matching label, focused and
   activated with Enter, then Space.
5. ``double_activation``: structural candidates again, double-clicked.

Strategies run strictly one after another; each waits only its own short
timeout.  Exhausting the chain raises ``OverlayNotFoundError``.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from timebooker.booking.categories import contains_any
from timebooker.booking.tree import OverlayTree
from timebooker.browser.dom import Node, Scope, label_of
from timebooker.exceptions import OverlayNotFoundError
from timebooker.models.booking import OverlayState, StrategyResult
from timebooker.settings.config import PolicySettings, SelectorSettings

logger = logging.getLogger(__name__)

Strategy = Callable[[Scope], Awaitable[bool]]


class OverlayOpener:
    """Opens and closes the category overlay.

    Args:
        tree: View of the overlay on the top-level page.
        selectors: Trigger candidates, vocabularies and overlay selectors.
        policy: Per-strategy timeouts.
    """

    def __init__(self, tree: OverlayTree, selectors: SelectorSettings, policy: PolicySettings) -> None:
        self._tree = tree
        self._page = tree.page
        self._sel = selectors
        self._policy = policy

    @property
    def strategies(self) -> list[tuple[str, Strategy]]:
        """The discovery chain, in evaluation order."""
        return [
            ("already_open", self._already_open),
            ("structural", self._structural),
            ("text_scan", self._text_scan),
            ("labeled_field", self._labeled_field),
            ("double_activation", self._double_activation),
        ]

    async def observe(self) -> OverlayState:
        return await self._tree.observe()

    async def open(self, source: Scope) -> StrategyResult:
        """Make the overlay visible, triggering it from *source* if needed.

        Raises:
            OverlayNotFoundError: If every strategy failed.
        """
        tried: list[str] = []
        for name, strategy in self.strategies:
            logger.debug("Overlay strategy %s", name)
            if await strategy(source):
                logger.info("Overlay open via %s", name)
                return StrategyResult(name, True)
            tried.append(name)
        raise OverlayNotFoundError(f"Category overlay did not open (tried: {', '.join(tried)})")

    async def close_stale(self) -> bool:
        """Close an open overlay without applying it.

        Returns:
            ``True`` if the overlay is closed afterwards (or was never open).
        """
        if not await self._tree.is_open():
            return True

        logger.info("Closing stale category overlay")
        overlay = await self._page.query(self._sel.overlay)
        if overlay is not None:
            for control in await overlay.query_all(self._sel.overlay_controls):
                if contains_any(await label_of(control), self._sel.overlay_cancel_vocabulary):
                    await control.click()
                    break
        await self._page.press("Escape")

        closed = await self._tree.wait_closed(self._policy.close_stale_timeout_ms)
        if not closed:
            logger.warning("Stale overlay still open after %dms", self._policy.close_stale_timeout_ms)
        return closed

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    async def _wait_open(self, timeout_ms: int) -> bool:
        return await self._tree.wait_open(timeout_ms)

    async def _already_open(self, source: Scope) -> bool:
        return await self._tree.is_open()

    async def _vocabulary_candidates(self, source: Scope) -> list[tuple[str, Node]]:
        """First vocabulary-matching node per structural selector."""
        found: list[tuple[str, Node]] = []
        for selector in self._sel.trigger_candidates:
            for node in await source.query_all(selector):
                if contains_any(await label_of(node), self._sel.trigger_vocabulary):
                    found.append((selector, node))
                    break
        return found

    async def _structural(self, source: Scope) -> bool:
        for selector, node in await self._vocabulary_candidates(source):
            logger.debug("Clicking trigger candidate %s", selector)
            await node.click()
            if await self._wait_open(self._policy.strategy_timeout_ms):
                return True
        return False

    async def _text_scan(self, source: Scope) -> bool:
        for node in await source.query_all(self._sel.text_scan):
            if not contains_any(await node.text(), self._sel.trigger_vocabulary):
                continue
            if not await node.is_visible():
                continue
            logger.debug("Clicking first text match %r", await node.text())
            await node.click()
            return await self._wait_open(self._policy.strategy_timeout_ms)
        return False

    async def _find_labeled_field(self, source: Scope) -> Node | None:
        for label in await source.query_all(self._sel.label_scan):
            if not contains_any(await label.text(), self._sel.trigger_vocabulary):
                continue
            row = await label.query(self._sel.label_row) or label
            field = await row.query(self._sel.label_field)
            if field is not None:
                return field
        return None

    async def _labeled_field(self, source: Scope) -> bool:
        field = await self._find_labeled_field(source)
        if field is None:
            return False
        await field.focus()
        for key in ("Enter", "Space"):
            await self._page.press(key)
            if await self._wait_open(self._policy.keyboard_timeout_ms):
                return True
            logger.debug("Overlay not open after %s on labeled field", key)
        return False

    async def _double_activation(self, source: Scope) -> bool:
        for selector, node in await self._vocabulary_candidates(source):
            logger.debug("Double-activating trigger candidate %s", selector)
            await node.click(click_count=2)
            if await self._wait_open(self._policy.double_activation_timeout_ms):
                return True
        return False
