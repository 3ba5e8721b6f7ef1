"""Category selector — pick one leaf in the overlay's category tree.

Selection is idempotent: a leaf that already carries the requested category
is never clicked again, so re-running :meth:`CategorySelector.select` on a
correct overlay performs no mutating action.  The final selection is always
re-read and validated against the category's aliases before returning.
"""

from __future__ import annotations

import logging

from timebooker.booking.categories import CategoryAliasSet, MatchKind
from timebooker.booking.tree import OverlayTree
from timebooker.browser.dom import Node, Scope, poll_until, settle
from timebooker.exceptions import CategoryNotFoundError, OverlayNotFoundError, ValidationFailedError
from timebooker.models.booking import SelectionOutcome
from timebooker.settings.config import PolicySettings, SelectorSettings

logger = logging.getLogger(__name__)


class CategorySelector:
    """Selects a category leaf in an open overlay.

    Args:
        tree: View of the overlay tree.
        aliases: Accepted display labels per category.
        selectors: Node part selectors (expander, title, radio, children).
        policy: Probe timeouts and settle delays.
    """

    def __init__(
        self,
        tree: OverlayTree,
        aliases: CategoryAliasSet,
        selectors: SelectorSettings,
        policy: PolicySettings,
    ) -> None:
        self._tree = tree
        self._aliases = aliases
        self._sel = selectors
        self._policy = policy

    async def select(self, category: str) -> SelectionOutcome:
        """Make *category* the overlay's selection.

        Raises:
            OverlayNotFoundError: If the overlay is not open.
            CategoryNotFoundError: If no leaf matches any alias.
            ValidationFailedError: If the re-read selection does not match.
        """
        aliases = self._aliases.aliases_for(category)
        if not await self._tree.wait_open(self._policy.overlay_ready_timeout_ms):
            raise OverlayNotFoundError("Category overlay is not open")

        current = await self._tree.selection_text()
        if current and self._aliases.matches(current, category):
            logger.info("Overlay already shows %r for %s, not reselecting", current, category)
            await settle(self._policy.post_select_delay_ms)
            return SelectionOutcome(category, current, already_selected=True)

        leaf = await self._probe_leaf(category)
        if leaf is None:
            folder = await self._probe_folder(category)
            if folder is not None:
                container = await self._expand(folder)
                if container is not None:
                    leaf = await self._find_leaf(category, within=container)
                if leaf is None:
                    leaf = await self._find_leaf(category)
        if leaf is None:
            raise CategoryNotFoundError(f"No entry for {category!r} (aliases: {', '.join(aliases)})")

        actions = 0
        if not await self._tree.is_selected(leaf):
            actions = await self._activate(leaf)
        else:
            await settle(self._policy.post_select_delay_ms)

        selected = await self._tree.selection_text()
        if not self._aliases.matches(selected, category):
            raise ValidationFailedError(aliases, selected)

        logger.info("Selected %r for %s (%d actions)", selected, category, actions)
        return SelectionOutcome(category, selected, already_selected=False, actions=actions)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def _find_leaf(self, category: str, within: Scope | None = None) -> Node | None:
        """First visible leaf in document order, exact alias matches before substring ones."""
        leaves = await self._tree.visible_leaves(within)
        titles = [await self._tree.title(leaf) for leaf in leaves]
        for kind in (MatchKind.EXACT, MatchKind.SUBSTRING):
            for leaf, title in zip(leaves, titles):
                if self._aliases.match(title, category) == kind:
                    logger.debug("Leaf %r matches %s (%s)", title, category, kind.name.lower())
                    return leaf
        return None

    async def _probe_leaf(self, category: str) -> Node | None:
        found: list[Node] = []

        async def probe() -> bool:
            leaf = await self._find_leaf(category)
            if leaf is not None:
                found.append(leaf)
            return leaf is not None

        await poll_until(probe, self._policy.leaf_probe_timeout_ms, self._policy.poll_interval_ms)
        return found[0] if found else None

    async def _probe_folder(self, category: str) -> Node | None:
        found: list[Node] = []

        async def probe() -> bool:
            for folder in await self._tree.visible_folders():
                if self._aliases.match(await self._tree.title(folder), category) == MatchKind.EXACT:
                    found.append(folder)
                    return True
            return False

        await poll_until(probe, self._policy.folder_probe_timeout_ms, self._policy.poll_interval_ms)
        return found[0] if found else None

    # ------------------------------------------------------------------
    # Folder expansion
    # ------------------------------------------------------------------

    async def _visible_children(self, folder: Node) -> Node | None:
        container = await folder.query(self._sel.children_container)
        if container is not None and await container.is_visible():
            return container
        return None

    async def _wait_children(self, folder: Node, timeout_ms: int) -> Node | None:
        found: list[Node] = []

        async def probe() -> bool:
            container = await self._visible_children(folder)
            if container is not None:
                found.append(container)
            return container is not None

        await poll_until(probe, timeout_ms, self._policy.poll_interval_ms)
        return found[0] if found else None

    async def _expand(self, folder: Node) -> Node | None:
        """Expand *folder* and return its revealed child container.

        Escalates from the expander to the title to double-activating both,
        checking for a visible child container after each phase.
        """
        container = await self._visible_children(folder)
        if container is not None:
            return container

        expander = await folder.query(self._sel.node_expander)
        title = await folder.query(self._sel.node_title)
        phases = [
            [(expander, 1)],
            [(title, 1)],
            [(expander, 2), (title, 2)],
        ]
        for number, phase in enumerate(phases, start=1):
            for part, click_count in phase:
                if part is None:
                    continue
                await part.click(click_count=click_count)
                await settle(self._policy.expand_click_delay_ms)
            timeout = (
                self._policy.expand_verify_timeout_ms if number < len(phases) else self._policy.expand_final_timeout_ms
            )
            container = await self._wait_children(folder, timeout)
            if container is not None:
                logger.debug("Folder expanded after phase %d", number)
                return container

        logger.warning("Folder %r did not reveal its children", await self._tree.title(folder))
        return None

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    async def _activate(self, leaf: Node) -> int:
        """Click the leaf (and its radio if unchecked); return the click count."""
        actions = 0
        title = await leaf.query(self._sel.node_title)
        await (title or leaf).click()
        actions += 1
        await settle(self._policy.node_anim_delay_ms)

        radio = await leaf.query(self._sel.node_radio)
        if radio is not None and not await radio.is_checked():
            await radio.click()
            actions += 1

        async def selected() -> bool:
            return await self._tree.is_selected(leaf)

        if not await poll_until(selected, self._policy.select_wait_timeout_ms, self._policy.poll_interval_ms):
            logger.debug("Leaf did not report selected within %dms", self._policy.select_wait_timeout_ms)
        await settle(self._policy.post_select_delay_ms)
        return actions
