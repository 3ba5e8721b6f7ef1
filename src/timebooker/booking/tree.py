"""Read-only view of the selection overlay and its category tree.

Every method re-queries the remote tree; nothing is cached between calls,
because the overlay re-renders its subtrees without notice.
"""

from __future__ import annotations

import logging

from timebooker.browser.dom import Node, Scope
from timebooker.models.booking import OverlayState, OverlayStatus
from timebooker.settings.config import SelectorSettings

logger = logging.getLogger(__name__)


class OverlayTree:
    """Observes the overlay layer on *page* using the configured selectors."""

    def __init__(self, page: Scope, selectors: SelectorSettings) -> None:
        self._page = page
        self._sel = selectors

    @property
    def page(self) -> Scope:
        return self._page

    async def is_open(self) -> bool:
        overlay = await self._page.query(self._sel.overlay)
        return overlay is not None and await overlay.is_visible()

    async def wait_open(self, timeout_ms: int) -> bool:
        return await self._page.wait_visible(self._sel.overlay, timeout_ms) is not None

    async def wait_closed(self, timeout_ms: int) -> bool:
        return await self._page.wait_hidden(self._sel.overlay, timeout_ms)

    async def _root(self) -> Scope | None:
        return await self._page.query(self._sel.tree)

    async def nodes(self, within: Scope | None = None) -> list[Node]:
        """All tree nodes (folders and leaves) in document order."""
        scope = within or await self._root()
        if scope is None:
            return []
        return await scope.query_all(self._sel.tree_node)

    async def is_folder(self, node: Node) -> bool:
        return await node.has_class(self._sel.folder_class)

    async def title(self, node: Node) -> str:
        title = await node.query(self._sel.node_title)
        return await (title or node).text()

    async def is_selected(self, node: Node) -> bool:
        if await node.has_class(self._sel.selected_class):
            return True
        radio = await node.query(self._sel.node_radio)
        return radio is not None and await radio.is_checked()

    async def visible_leaves(self, within: Scope | None = None) -> list[Node]:
        return [n for n in await self.nodes(within) if not await self.is_folder(n) and await n.is_visible()]

    async def visible_folders(self, within: Scope | None = None) -> list[Node]:
        return [n for n in await self.nodes(within) if await self.is_folder(n) and await n.is_visible()]

    async def selected_node(self) -> Node | None:
        for node in await self.nodes():
            if await self.is_selected(node):
                return node
        return None

    async def selection_text(self) -> str:
        node = await self.selected_node()
        return await self.title(node) if node is not None else ""

    async def has_selection(self) -> bool:
        return await self.selected_node() is not None

    async def observe(self) -> OverlayState:
        """Query the overlay's current state from the remote tree."""
        if not await self.is_open():
            return OverlayState(OverlayStatus.CLOSED)
        text = await self.selection_text()
        if text:
            return OverlayState(OverlayStatus.OPEN_WITH_SELECTION, text)
        return OverlayState(OverlayStatus.OPEN_EMPTY)
