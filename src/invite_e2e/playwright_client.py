"""
Direct Playwright Client
========================

Launches Playwright in-process and owns the single browser context the
activation batch runs in. All accounts share this context; cookies, storage
and permissions are cleared between accounts by :class:`invite_e2e.browser.Browser`.

Usage:
    async with PlaywrightClient(headless=True) as client:
        page = client.page
        await page.goto("https://example.com")
"""

import logging
import os
from typing import Optional

from playwright.async_api import async_playwright, Browser, BrowserContext, Page, Playwright

logger = logging.getLogger(__name__)

# A stock desktop user agent; the registration pages reject obvious automation.
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
)
DEFAULT_VIEWPORT = {"width": 1280, "height": 720}


class PlaywrightClient:
    """
    Playwright client with one default context and page.

    Example:
        async with PlaywrightClient() as client:
            await client.page.goto("https://example.com")
    """

    def __init__(
        self,
        browser_type: str = "chromium",
        headless: Optional[bool] = None,
        timeout: int = 30000,
        slow_mo: int = 0,
        user_agent: str = DEFAULT_USER_AGENT,
        viewport: Optional[dict] = None,
    ):
        """
        Initialize Playwright client.

        Args:
            browser_type: Browser to use (chromium, firefox, webkit)
            headless: Run in headless mode (None = read PLAYWRIGHT_HEADLESS, default true)
            timeout: Default timeout for page operations in milliseconds
            slow_mo: Delay in milliseconds inserted between browser actions
            user_agent: User agent for the context
            viewport: Viewport size for the context
        """
        self.browser_type = browser_type
        if headless is not None:
            self.headless = headless
        else:
            self.headless = os.getenv("PLAYWRIGHT_HEADLESS", "true").lower() in {"true", "1"}
        self.timeout = timeout
        self.slow_mo = slow_mo
        self.user_agent = user_agent
        self.viewport = viewport or dict(DEFAULT_VIEWPORT)

        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def connect(self):
        """Launch the browser and open the default context and page."""
        self._playwright = await async_playwright().start()
        try:
            await self._open()
        except Exception:
            # Stop the driver started above; callers never see a half-open client.
            await self.close()
            raise

    async def _open(self):
        if self.browser_type == "firefox":
            launcher = self._playwright.firefox
        elif self.browser_type == "webkit":
            launcher = self._playwright.webkit
        else:
            launcher = self._playwright.chromium
        self._browser = await launcher.launch(headless=self.headless, slow_mo=self.slow_mo)
        logger.debug("Launched %s (headless=%s, slow_mo=%sms)", self.browser_type, self.headless, self.slow_mo)

        self._context = await self._browser.new_context(
            user_agent=self.user_agent,
            viewport=self.viewport,
        )
        self._context.set_default_timeout(self.timeout)
        self._page = await self._context.new_page()

    async def close(self):
        """Close all connections and cleanup resources."""
        if self._page:
            await self._page.close()
            self._page = None

        if self._context:
            await self._context.close()
            self._context = None

        if self._browser:
            await self._browser.close()
            self._browser = None

        if self._playwright:
            await self._playwright.stop()
            self._playwright = None

    @property
    def context(self) -> BrowserContext:
        if not self._context:
            raise RuntimeError("Client not connected")
        return self._context

    @property
    def page(self) -> Page:
        if not self._page:
            raise RuntimeError("Client not connected or page not created")
        return self._page
