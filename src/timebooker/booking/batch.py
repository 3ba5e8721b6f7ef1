"""Batch driver — process work items one at a time and aggregate results.

Each item runs as ``watchdog(retry(process))``.  A failing item is recorded
and the batch moves on; the next item starts from a fresh context, so an
abandoned attempt cannot leak into it.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterable
from datetime import datetime, timezone

from timebooker.booking.orchestrator import ItemProcessor
from timebooker.booking.resilience import retry_async, with_watchdog
from timebooker.exceptions import BookingError
from timebooker.models.booking import AttemptRecord, BatchSummary, ItemResult, ItemStatus, Stage, WorkItem
from timebooker.settings.config import PolicySettings

logger = logging.getLogger(__name__)


class BatchDriver:
    """Sequential driver over an :class:`ItemProcessor`.

    Args:
        processor: Runs the pipeline for one item.
        policy: Item retry bounds and watchdog deadlines.
        debug: Use the longer interactive watchdog deadline.
        item_pause_s: Pause between items.
        on_result: Called with every finished ``ItemResult``.
    """

    def __init__(
        self,
        processor: ItemProcessor,
        policy: PolicySettings,
        *,
        debug: bool = False,
        item_pause_s: float = 0.0,
        on_result: Callable[[ItemResult], None] | None = None,
    ) -> None:
        self.processor = processor
        self.policy = policy
        self.timeout_s = policy.watchdog_for(debug)
        self.item_pause_s = item_pause_s
        self.on_result = on_result

    async def run(self, items: Iterable[WorkItem]) -> BatchSummary:
        """Process *items* in order; never raises for a single item's failure."""
        items = list(items)
        summary = BatchSummary()
        logger.info("Batch of %d item(s), watchdog %.0fs per item", len(items), self.timeout_s)

        for index, item in enumerate(items):
            if index and self.item_pause_s > 0:
                await asyncio.sleep(self.item_pause_s)
            result = await self.run_item(item)
            summary.add(result)
            if self.on_result is not None:
                self.on_result(result)

        summary.completed_at = datetime.now(timezone.utc)
        logger.info("Batch done: %d ok, %d failed", summary.succeeded, summary.failed)
        return summary

    async def run_item(self, item: WorkItem) -> ItemResult:
        record = AttemptRecord()
        started = time.monotonic()

        async def attempt(number: int) -> ItemResult:
            if number > 1:
                logger.info("Retrying %s (attempt %d/%d)", item.item_id, number, self.policy.item_attempts)
            return await self.processor.process(item)

        try:
            result = await with_watchdog(
                lambda: retry_async(
                    attempt,
                    attempts=self.policy.item_attempts,
                    delay_s=self.policy.item_retry_delay_s,
                    backoff=self.policy.item_retry_backoff,
                    max_delay_s=self.policy.item_retry_max_delay_s,
                    label=f"item {item.item_id}",
                    record=record,
                ),
                self.timeout_s,
                item.item_id,
                item_id=item.item_id,
            )
        except BookingError as exc:
            stage = _stage_of(exc)
            if stage is Stage.WATCHDOG and self.processor.current_stage is not None:
                logger.error("%s timed out during %s", item.item_id, self.processor.current_stage.value)
            logger.error("%s failed at %s: %s", item.item_id, stage.value if stage else "-", exc)
            return ItemResult(
                item_id=item.item_id,
                category=item.category,
                status=ItemStatus.FAILED,
                stage=stage,
                error=str(exc),
                attempts=max(record.attempts, 1),
                duration_sec=round(time.monotonic() - started, 2),
            )
        except Exception as exc:
            logger.exception("%s failed unexpectedly", item.item_id)
            return ItemResult(
                item_id=item.item_id,
                category=item.category,
                status=ItemStatus.FAILED,
                stage=self.processor.current_stage,
                error=f"{type(exc).__name__}: {exc}",
                attempts=max(record.attempts, 1),
                duration_sec=round(time.monotonic() - started, 2),
            )

        result.attempts = record.attempts + 1
        record.reset()
        return result


def _stage_of(exc: BookingError) -> Stage | None:
    try:
        return Stage(exc.stage)
    except ValueError:
        return None
