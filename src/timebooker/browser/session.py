"""Browser session — Playwright lifecycle for one portal run.

One browser, one context, one page.  The page is the only shared remote
resource; the booking engine uses it strictly sequentially.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from playwright.async_api import async_playwright

from timebooker.settings.config import BrowserSettings

if TYPE_CHECKING:
    from playwright.async_api import Browser, Page, Playwright

logger = logging.getLogger(__name__)

_CHROMIUM_ARGS = ["--disable-dev-shm-usage"]
_NO_SANDBOX_ARGS = ["--no-sandbox", "--disable-setuid-sandbox"]


class BrowserSession:
    """Async context manager owning the Playwright browser.

    Args:
        settings: Browser section of the settings.
        debug: Headed browser with slow-motion for watching a run.

    Usage::

        async with BrowserSession(settings.browser, debug=False) as page:
            ...
    """

    def __init__(self, settings: BrowserSettings, *, debug: bool = False, slow_mo_ms: int | None = None) -> None:
        self._settings = settings
        self._debug = debug
        self._headless = settings.headless and not debug
        if slow_mo_ms is not None:
            self._slow_mo = slow_mo_ms
        else:
            self._slow_mo = settings.debug_slow_mo_ms if debug else settings.slow_mo_ms

        self._pw: Playwright | None = None
        self._browser: Browser | None = None
        self.page: Page | None = None

    async def start(self) -> Page:
        """Launch Chromium and open the working page."""
        args = list(_CHROMIUM_ARGS)
        if not self._settings.sandbox:
            args.extend(_NO_SANDBOX_ARGS)

        self._pw = await async_playwright().start()
        self._browser = await self._pw.chromium.launch(
            headless=self._headless,
            slow_mo=self._slow_mo,
            args=args,
        )
        self._browser.on("disconnected", lambda _: logger.error("Browser disconnected"))
        context = await self._browser.new_context(no_viewport=True)
        context.set_default_timeout(self._settings.action_timeout_ms)
        context.set_default_navigation_timeout(self._settings.navigation_timeout_ms)
        self.page = await context.new_page()
        logger.info(
            "Browser started (chromium %s, headless=%s, slow_mo=%dms)",
            self._browser.version,
            self._headless,
            self._slow_mo,
        )
        return self.page

    async def stop(self) -> None:
        """Shut down the browser cleanly."""
        try:
            if self._browser:
                await self._browser.close()
            if self._pw:
                await self._pw.stop()
        except Exception as e:
            logger.warning("Browser stop error (non-fatal): %s", e)
        finally:
            self._browser = None
            self._pw = None
            self.page = None
        logger.info("Browser stopped")

    async def __aenter__(self) -> Page:
        return await self.start()

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()
