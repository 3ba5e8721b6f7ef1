"""Per-item orchestration — one work item from list row to saved booking.

Sequence for one item::

    acquire context -> still pending? -> open sub-form -> fill times
      -> ensure overlay -> select category -> apply/confirm -> save (or discard)

Every step re-acquires what it needs from stable identifiers; no remote
handle outlives the step that obtained it, except the sub-form, which the
fill-times retry re-opens when a re-render invalidates it.  Errors abort the
item and carry the stage they happened in.  The processor does not retry
itself; :mod:`timebooker.booking.batch` layers retry and watchdog outside.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Protocol

from timebooker.booking.apply import ApplyConfirm
from timebooker.booking.categories import CategoryAliasSet
from timebooker.booking.overlay import OverlayOpener
from timebooker.booking.resilience import retry_async
from timebooker.booking.selector import CategorySelector
from timebooker.booking.tree import OverlayTree
from timebooker.browser.dom import Scope
from timebooker.exceptions import BookingError, DidNotCloseError
from timebooker.models.booking import ItemResult, ItemStatus, Stage, StrategyResult, WorkItem
from timebooker.settings.config import PolicySettings, SelectorSettings

logger = logging.getLogger(__name__)


class BookingPortal(Protocol):
    """Portal operations the orchestrator consumes."""

    async def acquire_context(self) -> Scope:
        """Return a fresh handle to the scope listing the work items."""
        ...

    async def is_pending(self, context: Scope, item_id: str) -> bool:
        """Whether the item still needs booking."""
        ...

    async def open_sub_form(self, context: Scope, item_id: str) -> Scope:
        """Open the item's booking sub-form and return its scope."""
        ...

    async def fill_times(self, sub_form: Scope, start: str, end: str) -> None: ...

    async def save_and_close(self, sub_form: Scope, context: Scope) -> None: ...

    async def discard_sub_form(self, sub_form: Scope, context: Scope) -> None: ...


class ItemProcessor:
    """Runs the booking pipeline for one work item at a time.

    Args:
        page: Top-level scope hosting the category overlay.
        portal: Sub-form and listing operations.
        aliases: Category alias sets.
        selectors: Remote-UI selectors.
        policy: Timeouts, delays and fill-times retry bounds.
        start_time: ``HH:MM`` written to the start field.
        end_time: ``HH:MM`` written to the end field.
        dry_run: Discard the sub-form instead of saving it.
    """

    def __init__(
        self,
        page: Scope,
        portal: BookingPortal,
        aliases: CategoryAliasSet,
        selectors: SelectorSettings,
        policy: PolicySettings,
        *,
        start_time: str,
        end_time: str,
        dry_run: bool = False,
    ) -> None:
        self.portal = portal
        self.aliases = aliases
        self.policy = policy
        self.start_time = start_time
        self.end_time = end_time
        self.dry_run = dry_run

        tree = OverlayTree(page, selectors)
        self.opener = OverlayOpener(tree, selectors, policy)
        self.selector = CategorySelector(tree, aliases, selectors, policy)
        self.applier = ApplyConfirm(tree, selectors, policy)
        self.current_stage: Stage | None = None

    @contextmanager
    def _stage(self, stage: Stage, item: WorkItem) -> Iterator[None]:
        """Attribute any error raised in the block to *stage* and *item*."""
        self.current_stage = stage
        try:
            yield
        except BookingError as exc:
            exc.stage = exc.stage or stage.value
            exc.item_id = exc.item_id or item.item_id
            raise
        except Exception as exc:
            raise BookingError(f"{type(exc).__name__}: {exc}", stage=stage.value, item_id=item.item_id) from exc

    async def process(self, item: WorkItem) -> ItemResult:
        """Book *item*.

        Returns:
            ``ItemResult`` with status ``BOOKED``, ``DRY_RUN`` or
            ``ALREADY_BOOKED``.

        Raises:
            BookingError: Tagged with the failing stage and the item id.
        """
        started = time.monotonic()
        logger.info("Processing %s as %s", item.item_id, item.category)

        with self._stage(Stage.RESOLVE_CONTEXT, item):
            context = await self.portal.acquire_context()
            pending = await self.portal.is_pending(context, item.item_id)
        if not pending:
            logger.info("%s is no longer pending, skipping", item.item_id)
            return ItemResult(
                item_id=item.item_id,
                category=item.category,
                status=ItemStatus.ALREADY_BOOKED,
                duration_sec=round(time.monotonic() - started, 2),
            )

        with self._stage(Stage.SUB_FORM, item):
            sub_form = await self.portal.open_sub_form(context, item.item_id)

        with self._stage(Stage.FILL_TIMES, item):
            context, sub_form = await self._fill_times(item, context, sub_form)

        with self._stage(Stage.OPEN_OVERLAY, item):
            strategy = await self._ensure_overlay(sub_form)

        with self._stage(Stage.SELECT_CATEGORY, item):
            outcome = await self.selector.select(item.category)

        with self._stage(Stage.APPLY, item):
            await self.applier.apply_and_close()

        with self._stage(Stage.SAVE, item):
            if self.dry_run:
                logger.info("Dry run: discarding sub-form for %s", item.item_id)
                await self.portal.discard_sub_form(sub_form, context)
            else:
                await self.portal.save_and_close(sub_form, context)

        self.current_stage = None
        status = ItemStatus.DRY_RUN if self.dry_run else ItemStatus.BOOKED
        logger.info("%s %s (%s)", item.item_id, status.value, outcome.selected_text)
        return ItemResult(
            item_id=item.item_id,
            category=item.category,
            status=status,
            overlay_strategy=strategy.strategy,
            selected_text=outcome.selected_text,
            duration_sec=round(time.monotonic() - started, 2),
        )

    async def _fill_times(self, item: WorkItem, context: Scope, sub_form: Scope) -> tuple[Scope, Scope]:
        """Fill start/end, re-opening the sub-form between attempts."""

        async def fill(attempt: int) -> None:
            await self.portal.fill_times(sub_form, self.start_time, self.end_time)

        async def reopen(attempt: int, exc: BaseException) -> None:
            nonlocal context, sub_form
            logger.info("Re-opening sub-form for %s after: %s", item.item_id, exc)
            context = await self.portal.acquire_context()
            sub_form = await self.portal.open_sub_form(context, item.item_id)

        await retry_async(
            fill,
            attempts=self.policy.fill_attempts,
            delay_s=self.policy.fill_retry_delay_s,
            label=f"fill_times {item.item_id}",
            before_retry=reopen,
        )
        return context, sub_form

    async def _ensure_overlay(self, sub_form: Scope) -> StrategyResult:
        """Open the overlay from *sub_form*.

        An overlay already open at this point belongs to an earlier item or
        attempt, whatever it shows, and is closed first.
        """
        state = await self.opener.observe()
        if state.is_open:
            logger.info("Closing overlay left open (showing %r)", state.selection)
            if not await self.opener.close_stale():
                raise DidNotCloseError("Stale overlay did not close", stage=Stage.OPEN_OVERLAY.value)
        return await self.opener.open(sub_form)
