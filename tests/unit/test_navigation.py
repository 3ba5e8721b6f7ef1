"""Unit tests for timebooker.browser.navigation — resilient goto."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, call, patch

import pytest
from playwright.async_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeout

from timebooker.browser.navigation import _build_fallback_chain, resilient_goto
from timebooker.exceptions import NavigationError

URL = "https://hr.example.com/login.php"


# ---------------------------------------------------------------------------
# _build_fallback_chain
# ---------------------------------------------------------------------------


class TestBuildFallbackChain:
    """Tests for the internal fallback-chain builder."""

    def test_networkidle_produces_full_chain(self) -> None:
        assert _build_fallback_chain("networkidle") == ["networkidle", "load", "domcontentloaded"]

    def test_load_skips_networkidle(self) -> None:
        assert _build_fallback_chain("load") == ["load", "domcontentloaded"]

    def test_domcontentloaded_is_terminal(self) -> None:
        assert _build_fallback_chain("domcontentloaded") == ["domcontentloaded"]

    def test_unknown_strategy_prepends_to_chain(self) -> None:
        chain = _build_fallback_chain("commit")
        assert chain[0] == "commit"
        assert "networkidle" in chain


# ---------------------------------------------------------------------------
# resilient_goto
# ---------------------------------------------------------------------------


class TestResilientGoto:
    @pytest.mark.anyio
    async def test_success_on_first_try(self) -> None:
        page = MagicMock()
        sentinel = MagicMock(name="response")
        page.goto = AsyncMock(return_value=sentinel)

        result = await resilient_goto(page, URL, timeout_ms=5000)

        assert result is sentinel
        page.goto.assert_awaited_once_with(URL, wait_until="networkidle", timeout=5000)

    @pytest.mark.anyio
    async def test_timeout_falls_back_to_load(self) -> None:
        page = MagicMock()
        sentinel = MagicMock(name="response")
        page.goto = AsyncMock(side_effect=[PlaywrightTimeout("networkidle"), sentinel])

        result = await resilient_goto(page, URL, timeout_ms=5000)

        assert result is sentinel
        assert page.goto.await_args_list == [
            call(URL, wait_until="networkidle", timeout=5000),
            call(URL, wait_until="load", timeout=5000),
        ]

    @pytest.mark.anyio
    async def test_all_strategies_timeout_reraises(self) -> None:
        page = MagicMock()
        page.goto = AsyncMock(side_effect=PlaywrightTimeout("slow"))

        with pytest.raises(PlaywrightTimeout):
            await resilient_goto(page, URL)

        assert page.goto.await_count == 3

    @pytest.mark.anyio
    async def test_dns_failure_is_not_retried(self) -> None:
        page = MagicMock()
        page.goto = AsyncMock(side_effect=PlaywrightError("net::ERR_NAME_NOT_RESOLVED at " + URL))

        with pytest.raises(NavigationError) as exc_info:
            await resilient_goto(page, URL)

        assert page.goto.await_count == 1
        assert "name not resolved" in str(exc_info.value)

    @pytest.mark.anyio
    async def test_network_changed_pauses_then_retries(self) -> None:
        page = MagicMock()
        sentinel = MagicMock(name="response")
        page.goto = AsyncMock(side_effect=[PlaywrightError("net::ERR_NETWORK_CHANGED"), sentinel])

        with patch("timebooker.browser.navigation.asyncio.sleep", new_callable=AsyncMock) as sleep:
            result = await resilient_goto(page, URL, transient_pause_s=2.5)

        assert result is sentinel
        sleep.assert_awaited_once_with(2.5)

    @pytest.mark.anyio
    async def test_other_errors_propagate(self) -> None:
        page = MagicMock()
        page.goto = AsyncMock(side_effect=PlaywrightError("Target closed"))

        with pytest.raises(PlaywrightError, match="Target closed"):
            await resilient_goto(page, URL)

        assert page.goto.await_count == 1
