"""rexx portal adapter — login, time list, and the booking sub-form.

Frame layout of the portal::

    page
    ├── iframe#Start        (menu)
    └── iframe#Unten        (time list: rows keyed by grid_row_pr_<date>)
        └── iframe#time_workflow_form_layer_iframe   (booking sub-form)

The category overlay itself is rendered on the top-level page.  Frames are
looked up again on every call; a frame handle is never kept across steps.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from playwright.async_api import TimeoutError as PlaywrightTimeout

from timebooker.booking.categories import contains_any
from timebooker.browser.dom import Node, PlaywrightScope, Scope, first_present, label_of, locate, poll_until
from timebooker.browser.navigation import resilient_goto
from timebooker.exceptions import (
    BookingError,
    ElementNotFoundError,
    LoginError,
    NavigationError,
    SubFormInvalidError,
)
from timebooker.settings.config import BrowserSettings, PolicySettings, PortalSettings, SelectorSettings

if TYPE_CHECKING:
    from playwright.async_api import Page

logger = logging.getLogger(__name__)


def row_item_id(class_attr: str | None, prefix: str) -> str | None:
    """Extract ``<date>`` from a row's ``grid_row_pr_<date>`` class token."""
    for token in (class_attr or "").split():
        if token.startswith(prefix) and len(token) > len(prefix):
            return token[len(prefix) :]
    return None


class RexxPortal:
    """Portal operations used by the booking engine and the runner.

    Args:
        page: The session's Playwright page.
        portal: URL and credentials.
        browser: Navigation and action timeouts.
        selectors: Remote-UI selectors.
        policy: Sub-form timeouts and polling interval.
        balance: Balance text marking a day as still to be booked.
    """

    def __init__(
        self,
        page: Page,
        portal: PortalSettings,
        browser: BrowserSettings,
        selectors: SelectorSettings,
        policy: PolicySettings,
        *,
        balance: str,
    ) -> None:
        self.page = page
        self.scope = PlaywrightScope(page)
        self._portal = portal
        self._browser = browser
        self._sel = selectors
        self._policy = policy
        self.balance = balance

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    async def login(self) -> None:
        """Open the login page and submit the credentials.

        Raises:
            LoginError: If credentials are missing or the form is not found.
        """
        username = self._portal.username
        password = self._portal.password.get_secret_value()
        if not username or not password:
            raise LoginError("Portal username/password not configured (TIMEBOOKER_PORTAL__USERNAME/PASSWORD)")

        logger.info("Logging in to %s as %s", self._portal.login_url, username)
        await resilient_goto(self.page, self._portal.login_url, timeout_ms=self._browser.navigation_timeout_ms)
        try:
            for selector, value in ((self._sel.login_username, username), (self._sel.login_password, password)):
                field = await locate(self.scope, selector, timeout_ms=self._browser.action_timeout_ms)
                if not await field.fill(value):
                    raise LoginError(f"Could not fill login field {selector}")
            submit = await locate(self.scope, self._sel.login_submit, timeout_ms=self._browser.action_timeout_ms)
        except ElementNotFoundError as exc:
            raise LoginError(f"Login form incomplete: {exc}") from exc
        await submit.click()

    async def navigate_to_workspace(self) -> None:
        """Open the time-management view from the start menu."""
        try:
            start = await self._frame(self.scope, self._sel.start_frame)
            item = await locate(start, self._sel.time_menu_item, timeout_ms=self._browser.action_timeout_ms)
        except ElementNotFoundError as exc:
            raise LoginError(f"Start menu not available after login: {exc}") from exc

        try:
            async with self.page.expect_navigation(
                wait_until="networkidle",
                timeout=self._browser.navigation_timeout_ms,
            ):
                await item.click()
        except PlaywrightTimeout as exc:
            raise NavigationError(self.page.url, "time management view did not load") from exc
        logger.info("Time management view open")

    # ------------------------------------------------------------------
    # Time list
    # ------------------------------------------------------------------

    async def _frame(self, scope: Scope, selector: str) -> Scope:
        handle = await locate(scope, selector, visible=False, timeout_ms=0)
        frame = await handle.content_scope()
        if frame is None:
            raise ElementNotFoundError(selector)
        return frame

    async def acquire_context(self) -> Scope:
        """Fresh scope of the time list frame."""
        await locate(self.scope, self._sel.list_frame, timeout_ms=self._browser.action_timeout_ms)
        return await self._frame(self.scope, self._sel.list_frame)

    async def _balance(self, row: Node) -> str:
        cell = await row.query(self._sel.row_balance_cell)
        return (await cell.text()).strip() if cell is not None else ""

    async def list_work_items(self, context: Scope, balance: str | None = None) -> list[str]:
        """Date keys of rows whose balance equals *balance*, deduplicated, in order."""
        wanted = balance or self.balance
        found: list[str] = []
        for row in await context.query_all(self._sel.list_row):
            if await self._balance(row) != wanted:
                continue
            item_id = row_item_id(await row.attribute("class"), self._sel.row_id_class_prefix)
            if item_id and item_id not in found:
                found.append(item_id)
        logger.info("Found %d day(s) with balance %s", len(found), wanted)
        return found

    async def _row(self, context: Scope, item_id: str) -> Node:
        selector = f'{self._sel.list_row}[class~="{self._sel.row_id_class_prefix}{item_id}"]'
        row = await context.query(selector)
        if row is None:
            raise SubFormInvalidError(f"Row for {item_id} not found", item_id=item_id)
        return row

    async def is_pending(self, context: Scope, item_id: str) -> bool:
        row = await self._row(context, item_id)
        return await self._balance(row) == self.balance

    # ------------------------------------------------------------------
    # Sub-form
    # ------------------------------------------------------------------

    async def open_sub_form(self, context: Scope, item_id: str) -> Scope:
        """Click the row's booking link and return the sub-form frame.

        Raises:
            SubFormInvalidError: If the row, its link or the form is missing.
        """
        stale = await context.query(self._sel.sub_form_frame)
        if stale is not None and await stale.is_visible():
            logger.info("Discarding a sub-form left open by an earlier attempt")
            stale_scope = await stale.content_scope()
            if stale_scope is not None:
                await self.discard_sub_form(stale_scope, context)

        row = await self._row(context, item_id)
        link = await first_present(row, self._sel.row_booking_links)
        if link is None:
            raise SubFormInvalidError(f"No booking link in row {item_id}", item_id=item_id)
        await link.click()

        frame = await context.wait_visible(self._sel.sub_form_frame, self._policy.sub_form_timeout_ms)
        sub_form = await frame.content_scope() if frame is not None else None
        if sub_form is None:
            raise SubFormInvalidError(f"Booking form for {item_id} did not load", item_id=item_id)
        logger.debug("Sub-form open for %s", item_id)
        return sub_form

    async def fill_times(self, sub_form: Scope, start: str, end: str) -> None:
        """Write start and end time into the sub-form.

        Raises:
            SubFormInvalidError: If the time inputs are missing or cannot be
                filled (usually a re-render replaced the form).
        """

        async def inputs_ready() -> bool:
            return len(await sub_form.query_all(self._sel.time_inputs)) >= 2

        if not await poll_until(inputs_ready, self._policy.time_inputs_timeout_ms, self._policy.poll_interval_ms):
            raise SubFormInvalidError("Time inputs did not appear in the sub-form")

        start_input = await first_present(sub_form, self._sel.start_input_candidates)
        end_input = await first_present(sub_form, self._sel.end_input_candidates)
        if start_input is None or end_input is None:
            both = await sub_form.query_all(self._sel.time_inputs)
            if len(both) >= 2:
                logger.debug("Falling back to positional time inputs")
                start_input = start_input or both[0]
                end_input = end_input or both[1]
        if start_input is None or end_input is None:
            raise SubFormInvalidError("Start/end time inputs not found")

        if not await start_input.fill(start) or not await end_input.fill(end):
            raise SubFormInvalidError("Could not write time inputs")
        logger.info("Times set: %s-%s", start, end)

    async def _form_control(self, sub_form: Scope, selector: str | None, vocabulary: list[str]) -> Node | None:
        if selector:
            node = await sub_form.query(selector)
            if node is not None and await node.is_visible():
                return node
        for control in await sub_form.query_all(self._sel.form_controls):
            if contains_any(await label_of(control), vocabulary) and await control.is_visible():
                return control
        return None

    async def save_and_close(self, sub_form: Scope, context: Scope) -> None:
        """Save the sub-form and wait for it to close."""
        button = await self._form_control(sub_form, self._sel.save_button, self._sel.save_vocabulary)
        if button is None:
            raise BookingError("Save button missing in the booking form", stage="save")
        await button.click()

        if not await context.wait_hidden(self._sel.sub_form_frame, self._policy.save_close_timeout_ms):
            raise BookingError("Booking form did not close after saving", stage="save")
        if await context.wait_visible(self._sel.list_widget, self._browser.action_timeout_ms) is None:
            logger.warning("Time list widget not visible after saving")
        logger.info("Booking saved")

    async def discard_sub_form(self, sub_form: Scope, context: Scope) -> None:
        """Close the sub-form without saving."""
        button = await self._form_control(sub_form, None, self._sel.discard_vocabulary)
        if button is not None:
            await button.click()
        else:
            await sub_form.press("Escape")
        if not await context.wait_hidden(self._sel.sub_form_frame, self._policy.close_stale_timeout_ms):
            logger.warning("Booking form still open after discarding")
