"""Unit tests for timebooker.booking.batch — sequential driver with retry and watchdog."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from tests.fakes import FakeNode, FakeOverlay, make_portal, make_sub_form
from timebooker.booking.batch import BatchDriver
from timebooker.booking.orchestrator import ItemProcessor
from timebooker.exceptions import DidNotCloseError, ValidationFailedError
from timebooker.models.booking import ItemResult, ItemStatus, Stage, WorkItem

ITEMS = [
    WorkItem("2025-03-03", "Remote"),
    WorkItem("2025-03-04", "Remote"),
    WorkItem("2025-03-05", "Remote"),
]


def _booked(item: WorkItem) -> ItemResult:
    return ItemResult(item_id=item.item_id, category=item.category, status=ItemStatus.BOOKED)


def _mock_processor(side_effect) -> MagicMock:
    processor = MagicMock(spec=ItemProcessor)
    processor.process = AsyncMock(side_effect=side_effect)
    processor.current_stage = None
    return processor


class TestBatchDriver:
    @pytest.mark.anyio
    async def test_failing_item_does_not_halt_batch(self, policy) -> None:
        async def process(item: WorkItem) -> ItemResult:
            if item is ITEMS[1]:
                raise DidNotCloseError("overlay stuck", item_id=item.item_id)
            return _booked(item)

        processor = _mock_processor(process)
        summary = await BatchDriver(processor, policy).run(ITEMS)

        assert summary.total == 3
        assert summary.succeeded == 2
        assert summary.failed == 1
        assert summary.completed_at is not None
        assert summary.result_for(ITEMS[0].item_id).status == ItemStatus.BOOKED
        assert summary.result_for(ITEMS[2].item_id).status == ItemStatus.BOOKED
        failed = summary.result_for(ITEMS[1].item_id)
        assert failed.status == ItemStatus.FAILED
        assert failed.stage == Stage.APPLY
        assert failed.attempts == policy.item_attempts
        assert "overlay stuck" in failed.error

    @pytest.mark.anyio
    async def test_items_run_in_order(self, policy) -> None:
        seen: list[str] = []

        async def process(item: WorkItem) -> ItemResult:
            seen.append(item.item_id)
            return _booked(item)

        await BatchDriver(_mock_processor(process), policy).run(ITEMS)

        assert seen == [item.item_id for item in ITEMS]

    @pytest.mark.anyio
    async def test_retry_then_success_counts_attempts(self, policy) -> None:
        processor = _mock_processor([DidNotCloseError("once"), _booked(ITEMS[0])])

        result = await BatchDriver(processor, policy).run_item(ITEMS[0])

        assert result.status == ItemStatus.BOOKED
        assert result.attempts == 2

    @pytest.mark.anyio
    async def test_validation_failure_is_not_retried(self, policy) -> None:
        processor = _mock_processor(ValidationFailedError(["Remote"], "Büro", item_id=ITEMS[0].item_id))

        result = await BatchDriver(processor, policy).run_item(ITEMS[0])

        assert result.status == ItemStatus.FAILED
        assert result.stage == Stage.SELECT_CATEGORY
        assert result.attempts == 1
        assert processor.process.await_count == 1

    @pytest.mark.anyio
    async def test_watchdog_expiry_fails_only_that_item(self, policy) -> None:
        policy.watchdog_timeout_s = 0.05

        async def process(item: WorkItem) -> ItemResult:
            if item is ITEMS[0]:
                await asyncio.sleep(10)
            return _booked(item)

        summary = await BatchDriver(_mock_processor(process), policy).run(ITEMS[:2])

        first = summary.result_for(ITEMS[0].item_id)
        assert first.status == ItemStatus.FAILED
        assert first.stage == Stage.WATCHDOG
        assert summary.result_for(ITEMS[1].item_id).status == ItemStatus.BOOKED

    @pytest.mark.anyio
    async def test_unexpected_error_is_reported(self, policy) -> None:
        processor = _mock_processor(KeyError("boom"))

        result = await BatchDriver(processor, policy).run_item(ITEMS[0])

        assert result.status == ItemStatus.FAILED
        assert "KeyError" in result.error
        assert processor.process.await_count == policy.item_attempts

    @pytest.mark.anyio
    async def test_on_result_called_per_item(self, policy) -> None:
        async def process(item: WorkItem) -> ItemResult:
            return _booked(item)

        reported: list[str] = []
        driver = BatchDriver(_mock_processor(process), policy, on_result=lambda r: reported.append(r.item_id))

        await driver.run(ITEMS)

        assert reported == [item.item_id for item in ITEMS]

    def test_debug_uses_longer_watchdog(self, policy) -> None:
        policy.watchdog_timeout_s = 120
        policy.watchdog_debug_timeout_s = 600
        processor = _mock_processor(None)

        assert BatchDriver(processor, policy).timeout_s == 120
        assert BatchDriver(processor, policy, debug=True).timeout_s == 600


class TestBatchAgainstFakePortal:
    """Three real items where the second item's overlay never closes."""

    @pytest.mark.anyio
    async def test_stuck_apply_on_item_two(self, page, overlay: FakeOverlay, aliases, selectors, policy) -> None:
        overlay.leaf("Büro")
        overlay.leaf("Home Office")
        context = FakeNode("time list")
        portal = make_portal(context, make_sub_form(overlay, selectors))

        async def open_sub_form(ctx, item_id: str):
            overlay.stuck = item_id == ITEMS[1].item_id
            return make_sub_form(overlay, selectors)

        portal.open_sub_form.side_effect = open_sub_form
        processor = ItemProcessor(
            page,
            portal,
            aliases,
            selectors,
            policy,
            start_time="09:00",
            end_time="18:00",
        )

        summary = await BatchDriver(processor, policy).run(ITEMS)

        statuses = [r.status for r in summary.results]
        assert statuses == [ItemStatus.BOOKED, ItemStatus.FAILED, ItemStatus.BOOKED]
        failed = summary.result_for(ITEMS[1].item_id)
        assert failed.stage == Stage.APPLY
        assert failed.attempts == policy.item_attempts
        assert portal.save_and_close.await_count == 2
        assert not overlay.is_open

    @pytest.mark.anyio
    async def test_next_item_opens_its_own_overlay(
        self, page, overlay: FakeOverlay, aliases, selectors, policy
    ) -> None:
        overlay.leaf("Büro")
        overlay.leaf("Home Office")
        forms: dict[str, list[FakeNode]] = {}
        portal = make_portal(FakeNode("time list"), make_sub_form(overlay, selectors))

        async def open_sub_form(ctx, item_id: str):
            overlay.stuck = item_id == ITEMS[0].item_id
            form = make_sub_form(overlay, selectors)
            forms.setdefault(item_id, []).append(form)
            return form

        portal.open_sub_form.side_effect = open_sub_form
        processor = ItemProcessor(
            page,
            portal,
            aliases,
            selectors,
            policy,
            start_time="09:00",
            end_time="18:00",
        )

        summary = await BatchDriver(processor, policy).run(ITEMS[:2])

        assert [r.status for r in summary.results] == [ItemStatus.FAILED, ItemStatus.BOOKED]
        assert overlay.cancel.clicks
        trigger = forms[ITEMS[1].item_id][0].children[selectors.trigger_candidates[0]][0]
        assert trigger.clicks == [1]
        assert summary.result_for(ITEMS[1].item_id).overlay_strategy == "structural"
        assert portal.save_and_close.await_count == 1
