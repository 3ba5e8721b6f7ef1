"""Apply/confirm — commit the overlay selection and wait for it to close.

The apply control is never clicked without a registered selection.  A
validation alert the portal may raise on top of the overlay is acknowledged
inline and the apply is retried; only an overlay that stays open through
every attempt and a final extended wait is reported as an error.
"""

from __future__ import annotations

import logging

from timebooker.booking.categories import contains_any
from timebooker.booking.tree import OverlayTree
from timebooker.browser.dom import Node, label_of, settle
from timebooker.exceptions import DidNotCloseError, NoSelectionError
from timebooker.settings.config import PolicySettings, SelectorSettings

logger = logging.getLogger(__name__)


class ApplyConfirm:
    """Applies the overlay selection.

    Args:
        tree: View of the overlay; its page hosts the apply control and
            alert surface.
        selectors: Apply control, alert and OK selectors.
        policy: Attempt count, settle delays and close timeouts.
    """

    def __init__(self, tree: OverlayTree, selectors: SelectorSettings, policy: PolicySettings) -> None:
        self._tree = tree
        self._page = tree.page
        self._sel = selectors
        self._policy = policy

    async def apply_and_close(self) -> None:
        """Click apply until the overlay closes.

        Raises:
            NoSelectionError: If the overlay shows no selected node.  The
                apply control is not touched in that case.
            DidNotCloseError: If the overlay is still open after all attempts.
        """
        await self._require_selection()

        for attempt in range(1, self._policy.apply_attempts + 1):
            if attempt > 1:
                if not await self._tree.is_open():
                    return
                await self._require_selection()

            await settle(self._policy.apply_settle_ms)
            if not await self._click_apply():
                logger.warning("Apply control not found (attempt %d)", attempt)

            if await self._tree.wait_closed(self._policy.apply_close_timeout_ms):
                logger.info("Overlay closed after apply")
                return

            if await self._acknowledge_alert():
                continue

            if await self._tree.wait_closed(self._policy.apply_late_close_timeout_ms):
                logger.info("Overlay closed after apply (late)")
                return

        if await self._tree.wait_closed(self._policy.apply_final_timeout_ms):
            logger.info("Overlay closed after final wait")
            return
        raise DidNotCloseError(f"Overlay still open after {self._policy.apply_attempts} apply attempts")

    async def _require_selection(self) -> None:
        if not await self._tree.has_selection():
            raise NoSelectionError("Apply refused: no category selected in the overlay")

    async def _find_apply(self) -> Node | None:
        node = await self._page.query(self._sel.apply_button)
        if node is not None and await node.is_visible():
            return node
        for control in await self._page.query_all(self._sel.form_controls):
            if contains_any(await label_of(control), self._sel.apply_vocabulary) and await control.is_visible():
                logger.debug("Apply control found by text")
                return control
        return None

    async def _click_apply(self) -> bool:
        node = await self._find_apply()
        if node is None:
            return False
        await node.click()
        return True

    async def _acknowledge_alert(self) -> bool:
        """Dismiss a visible alert surface; ``False`` if there was none."""
        alert = await self._page.query(self._sel.alert)
        if alert is None or not await alert.is_visible():
            return False

        logger.warning("Alert shown after apply, acknowledging: %s", (await alert.text())[:200])
        for selector in self._sel.alert_ok_candidates:
            ok = await self._page.query(selector)
            if ok is not None and await ok.is_visible():
                await ok.click()
                break
        else:
            await self._page.press("Enter")

        await self._page.wait_hidden(self._sel.alert, self._policy.alert_clear_timeout_ms)
        await settle(self._policy.alert_settle_ms)
        return True
