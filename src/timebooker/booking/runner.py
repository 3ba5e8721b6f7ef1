"""End-to-end booking run: browser session, portal, work items, batch.

Usage::

    summary = asyncio.run(run_booking(get_settings(), debug=False))
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from timebooker.booking.batch import BatchDriver
from timebooker.booking.categories import CategoryAliasSet
from timebooker.booking.orchestrator import ItemProcessor
from timebooker.booking.schedule import WeekdayCategoryResolver
from timebooker.browser.session import BrowserSession
from timebooker.exceptions import ConfigurationError
from timebooker.models.booking import BatchSummary, ItemResult, WorkItem
from timebooker.portal.rexx import RexxPortal
from timebooker.settings.config import Settings

logger = logging.getLogger(__name__)


async def run_booking(
    settings: Settings,
    *,
    debug: bool = False,
    start_time: str | None = None,
    end_time: str | None = None,
    category: str | None = None,
    balance: str | None = None,
    dry_run: bool | None = None,
    slow_mo_ms: int | None = None,
    on_result: Callable[[ItemResult], None] | None = None,
) -> BatchSummary:
    """Log in, collect the days to book, and book them one by one.

    Args:
        settings: Resolved settings.
        debug: Headed browser, longer watchdog, and (unless *dry_run* says
            otherwise) no saving.
        start_time: Overrides ``booking.start_time``.
        end_time: Overrides ``booking.end_time``.
        category: Fallback category for weekdays the schedule does not name.
        balance: Overrides ``booking.balance_filter``.
        dry_run: Discard sub-forms instead of saving them.
        slow_mo_ms: Overrides the browser slow-motion delay.
        on_result: Called with every finished item.

    Raises:
        ConfigurationError: If *category* is unknown.
        LoginError: If the portal session cannot be established.
        NavigationError: If the portal cannot be reached.
    """
    aliases = CategoryAliasSet.from_settings(settings.categories)
    default_category = aliases.canonical(category) if category else settings.booking.default_category
    resolver = WeekdayCategoryResolver.from_settings(settings.booking, default_category)
    for name in set(resolver.mapping.values()):
        aliases.aliases_for(name)

    wanted_balance = balance or settings.booking.balance_filter
    if dry_run is None:
        dry_run = settings.booking.dry_run or debug

    async with BrowserSession(settings.browser, debug=debug, slow_mo_ms=slow_mo_ms) as page:
        portal = RexxPortal(
            page,
            settings.portal,
            settings.browser,
            settings.selectors,
            settings.policy,
            balance=wanted_balance,
        )
        await portal.login()
        await portal.navigate_to_workspace()

        context = await portal.acquire_context()
        item_ids = await portal.list_work_items(context)
        if not item_ids:
            logger.info("No days with balance %s", wanted_balance)
            return BatchSummary()

        items: list[WorkItem] = []
        for item_id in item_ids:
            try:
                items.append(WorkItem(item_id, resolver.resolve(item_id)))
            except ConfigurationError as e:
                logger.warning("Skipping row %r: %s", item_id, e)
        processor = ItemProcessor(
            portal.scope,
            portal,
            aliases,
            settings.selectors,
            settings.policy,
            start_time=start_time or settings.booking.start_time,
            end_time=end_time or settings.booking.end_time,
            dry_run=dry_run,
        )
        driver = BatchDriver(
            processor,
            settings.policy,
            debug=debug,
            item_pause_s=settings.booking.item_pause_s,
            on_result=on_result,
        )
        return await driver.run(items)
