"""Unit tests for timebooker.booking.orchestrator — one item through the pipeline."""

from __future__ import annotations

import pytest

from tests.fakes import FakeNode, FakeOverlay, FakePage, make_portal, make_sub_form
from timebooker.booking.orchestrator import ItemProcessor
from timebooker.exceptions import BookingError, DidNotCloseError, SubFormInvalidError
from timebooker.models.booking import ItemStatus, Stage, WorkItem

ITEM = WorkItem("2025-03-03", "Remote")


@pytest.fixture()
def context() -> FakeNode:
    return FakeNode("time list")


@pytest.fixture()
def sub_form(overlay: FakeOverlay, selectors) -> FakeNode:
    overlay.leaf("Büro")
    overlay.leaf("Home Office")
    return make_sub_form(overlay, selectors)


@pytest.fixture()
def portal(context: FakeNode, sub_form: FakeNode):
    return make_portal(context, sub_form)


def _processor(page: FakePage, portal, aliases, selectors, policy, *, dry_run: bool = False) -> ItemProcessor:
    return ItemProcessor(
        page,
        portal,
        aliases,
        selectors,
        policy,
        start_time="09:00",
        end_time="18:00",
        dry_run=dry_run,
    )


class TestProcess:
    @pytest.mark.anyio
    async def test_books_item_end_to_end(
        self, page, overlay: FakeOverlay, portal, context, sub_form, aliases, selectors, policy
    ) -> None:
        processor = _processor(page, portal, aliases, selectors, policy)

        result = await processor.process(ITEM)

        assert result.status == ItemStatus.BOOKED
        assert result.overlay_strategy == "structural"
        assert result.selected_text == "Home Office"
        portal.open_sub_form.assert_awaited_once_with(context, ITEM.item_id)
        portal.fill_times.assert_awaited_once_with(sub_form, "09:00", "18:00")
        portal.save_and_close.assert_awaited_once_with(sub_form, context)
        portal.discard_sub_form.assert_not_awaited()
        assert not overlay.is_open
        assert processor.current_stage is None

    @pytest.mark.anyio
    async def test_dry_run_discards_instead_of_saving(
        self, page, overlay, portal, context, sub_form, aliases, selectors, policy
    ) -> None:
        processor = _processor(page, portal, aliases, selectors, policy, dry_run=True)

        result = await processor.process(ITEM)

        assert result.status == ItemStatus.DRY_RUN
        portal.discard_sub_form.assert_awaited_once_with(sub_form, context)
        portal.save_and_close.assert_not_awaited()

    @pytest.mark.anyio
    async def test_item_no_longer_pending_is_skipped(self, page, overlay, portal, aliases, selectors, policy) -> None:
        portal.is_pending.return_value = False
        processor = _processor(page, portal, aliases, selectors, policy)

        result = await processor.process(ITEM)

        assert result.status == ItemStatus.ALREADY_BOOKED
        assert result.success
        portal.open_sub_form.assert_not_awaited()

    @pytest.mark.anyio
    async def test_fill_times_reopens_sub_form_after_rerender(
        self, page, overlay, portal, context, sub_form, aliases, selectors, policy
    ) -> None:
        fresh_form = make_sub_form(overlay, selectors)
        portal.open_sub_form.side_effect = [sub_form, fresh_form]
        portal.fill_times.side_effect = [SubFormInvalidError("replaced"), None]
        processor = _processor(page, portal, aliases, selectors, policy)

        result = await processor.process(ITEM)

        assert result.status == ItemStatus.BOOKED
        assert portal.acquire_context.await_count == 2
        assert portal.open_sub_form.await_count == 2
        portal.fill_times.assert_awaited_with(fresh_form, "09:00", "18:00")
        portal.save_and_close.assert_awaited_once_with(fresh_form, context)

    @pytest.mark.anyio
    async def test_unexpected_error_is_tagged_with_stage(
        self, page, overlay, portal, aliases, selectors, policy
    ) -> None:
        portal.fill_times.side_effect = RuntimeError("detached")
        processor = _processor(page, portal, aliases, selectors, policy)

        with pytest.raises(BookingError) as exc_info:
            await processor.process(ITEM)

        assert exc_info.value.stage == Stage.FILL_TIMES.value
        assert exc_info.value.item_id == ITEM.item_id
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert portal.fill_times.await_count == policy.fill_attempts

    @pytest.mark.anyio
    async def test_apply_failure_keeps_its_stage(self, page, overlay, portal, aliases, selectors, policy) -> None:
        overlay.stuck = True
        processor = _processor(page, portal, aliases, selectors, policy)

        with pytest.raises(DidNotCloseError) as exc_info:
            await processor.process(ITEM)

        assert exc_info.value.stage == Stage.APPLY.value
        assert exc_info.value.item_id == ITEM.item_id
        portal.save_and_close.assert_not_awaited()


class TestStaleOverlay:
    @pytest.mark.anyio
    async def test_open_overlay_with_matching_selection_is_still_closed(
        self, page, overlay: FakeOverlay, portal, sub_form, aliases, selectors, policy
    ) -> None:
        overlay.open()
        overlay.select(overlay.leaves[1])
        trigger = sub_form.children[selectors.trigger_candidates[0]][0]
        processor = _processor(page, portal, aliases, selectors, policy)

        result = await processor.process(ITEM)

        assert overlay.cancel.clicks == [1]
        assert trigger.clicks == [1]
        assert result.overlay_strategy == "structural"

    @pytest.mark.anyio
    async def test_stale_overlay_is_closed_before_opening(
        self, page, overlay: FakeOverlay, portal, sub_form, aliases, selectors, policy
    ) -> None:
        overlay.open()
        overlay.select(overlay.leaves[0])
        trigger = sub_form.children[selectors.trigger_candidates[0]][0]
        processor = _processor(page, portal, aliases, selectors, policy)

        result = await processor.process(ITEM)

        assert overlay.cancel.clicks == [1]
        assert trigger.clicks == [1]
        assert result.overlay_strategy == "structural"
        assert result.selected_text == "Home Office"

    @pytest.mark.anyio
    async def test_stale_overlay_that_will_not_close(
        self, page, overlay: FakeOverlay, portal, aliases, selectors, policy
    ) -> None:
        overlay.open()
        overlay.select(overlay.leaves[0])
        overlay.cancel.on_click = None
        processor = _processor(page, portal, aliases, selectors, policy)

        with pytest.raises(DidNotCloseError) as exc_info:
            await processor.process(ITEM)

        assert exc_info.value.stage == Stage.OPEN_OVERLAY.value
