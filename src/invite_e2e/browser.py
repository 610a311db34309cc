"""Thin wrapper around Playwright's page/context for the activation flow.

Every DOM query goes through this class so the page classifier and the flow
executor depend on a handful of primitives only. Selectors passed here may
match several elements; interactions always target the first match.
"""
from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional

import anyio
from playwright.async_api import BrowserContext, Page, TimeoutError as PlaywrightTimeout

from invite_e2e.errors import WaitTimeoutError
from invite_e2e.playwright_client import PlaywrightClient
from invite_e2e.waits import wait_until

logger = logging.getLogger(__name__)

VISIBILITY_POLL_INTERVAL = 0.25

_CHECKBOX_STATES_JS = """
() => Array.from(document.querySelectorAll('input[type="checkbox"]')).map((el, index) => ({
    index,
    name: el.getAttribute('name') || '',
    id: el.id || '',
    checked: el.checked,
    visible: !!(el.offsetWidth || el.offsetHeight || el.getClientRects().length),
}))
"""

_CLEAR_STORAGE_JS = """
() => {
    if (typeof localStorage !== 'undefined') localStorage.clear();
    if (typeof sessionStorage !== 'undefined') sessionStorage.clear();
}
"""


def _ms(seconds: float) -> int:
    # Playwright treats a zero timeout as "wait forever".
    return max(int(seconds * 1000), 1)


@dataclass
class ToolError(Exception):
    """Raised when a browser operation fails."""

    name: str
    payload: Dict[str, Any]
    message: str

    def __str__(self) -> str:  # pragma: no cover - human readable helper
        return f"{self.name} failed ({self.message}) with payload={self.payload}"


@dataclass(frozen=True)
class CheckboxState:
    index: int
    name: str
    id: str
    checked: bool
    visible: bool

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> CheckboxState:
        return cls(
            index=int(data.get("index", 0)),
            name=data.get("name") or "",
            id=data.get("id") or "",
            checked=bool(data.get("checked")),
            visible=bool(data.get("visible", True)),
        )


class Browser:
    """Convenience wrapper over a Playwright page and its context."""

    CHECKBOX_SELECTOR = 'input[type="checkbox"]'

    def __init__(
        self,
        page: Page,
        context: Optional[BrowserContext] = None,
        screenshot_dir: Optional[str] = None,
    ) -> None:
        self._page = page
        self._context = context or page.context
        self.screenshot_dir = screenshot_dir

    @property
    def url(self) -> str:
        return self._page.url

    async def title(self) -> str:
        try:
            return await self._page.title()
        except Exception as exc:
            raise ToolError(name="title", payload={"url": self._page.url}, message=str(exc))

    async def content(self) -> str:
        """Return the page html, or an empty string while the page is navigating."""
        try:
            return await self._page.content()
        except Exception as exc:
            logger.debug("Page content unavailable: %s", exc)
            return ""

    async def goto(self, url: str, timeout: int = 30000) -> Dict[str, Any]:
        """Navigate to URL and wait for the DOM to be ready."""
        try:
            response = await self._page.goto(url, wait_until="domcontentloaded", timeout=timeout)
        except Exception as exc:
            raise ToolError(name="goto", payload={"url": url}, message=str(exc))
        return {"url": self._page.url, "status": response.status if response else None}

    async def settle(self, seconds: float) -> None:
        """Give client-side rendering time to finish after navigation or submit."""
        if seconds > 0:
            await anyio.sleep(seconds)

    async def count(self, selector: str) -> int:
        try:
            return await self._page.locator(selector).count()
        except Exception as exc:
            raise ToolError(name="count", payload={"selector": selector}, message=str(exc))

    async def is_visible(self, selector: str, timeout: float = 3.0) -> bool:
        """Return True if the first match becomes visible within ``timeout`` seconds."""
        try:
            await self._page.locator(selector).first.wait_for(state="visible", timeout=_ms(timeout))
            return True
        except PlaywrightTimeout:
            return False
        except Exception as exc:
            raise ToolError(name="is_visible", payload={"selector": selector}, message=str(exc))

    async def wait_for_visible(self, selector: str, timeout: float = 10.0) -> None:
        """Poll until the first match is visible or fail with WaitTimeoutError."""
        locator = self._page.locator(selector).first

        async def visible() -> bool:
            try:
                return await locator.is_visible()
            except Exception as exc:
                raise ToolError(name="wait_for_visible", payload={"selector": selector}, message=str(exc))

        await wait_until(
            visible,
            timeout=timeout,
            poll_interval=VISIBILITY_POLL_INTERVAL,
            description=f"visible element '{selector}'",
        )

    async def fill(self, selector: str, value: str, timeout: float = 10.0) -> Dict[str, Any]:
        """Fill the first input matching ``selector``."""
        try:
            await self._page.locator(selector).first.fill(value, timeout=_ms(timeout))
            return {"selector": selector}
        except PlaywrightTimeout:
            raise WaitTimeoutError(f"input '{selector}'", timeout)
        except Exception as exc:
            raise ToolError(name="fill", payload={"selector": selector}, message=str(exc))

    async def click(self, selector: str, timeout: float = 10.0) -> Dict[str, Any]:
        """Click the first element matching ``selector``."""
        try:
            await self._page.locator(selector).first.click(timeout=_ms(timeout))
            return {"selector": selector, "url": self._page.url}
        except PlaywrightTimeout:
            raise WaitTimeoutError(f"clickable '{selector}'", timeout)
        except Exception as exc:
            raise ToolError(name="click", payload={"selector": selector}, message=str(exc))

    async def checkbox_states(self) -> List[CheckboxState]:
        """Describe every checkbox on the page, in document order."""
        raw = await self.evaluate(_CHECKBOX_STATES_JS)
        return [CheckboxState.from_dict(item) for item in raw or []]

    async def check_checkbox(self, index: int) -> None:
        """Check the checkbox at ``index`` among all page checkboxes."""
        locator = self._page.locator(self.CHECKBOX_SELECTOR).nth(index)
        try:
            # Styled checkboxes are often visually hidden behind their label.
            await locator.check(force=True)
        except Exception as exc:
            raise ToolError(name="check", payload={"index": index}, message=str(exc))

    async def click_by_id(self, element_id: str) -> bool:
        """Click an element through the DOM; returns False when it does not exist."""
        return bool(
            await self.evaluate(
                "(id) => { const el = document.getElementById(id); if (el) { el.click(); return true; } return false; }",
                element_id,
            )
        )

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        """Execute JavaScript in the page context."""
        try:
            return await self._page.evaluate(script, arg)
        except Exception as exc:
            raise ToolError(name="evaluate", payload={"script": script[:80]}, message=str(exc))

    async def screenshot(self, name: str) -> Optional[str]:
        """Save a full-page png when a screenshot directory is configured."""
        if not self.screenshot_dir:
            return None
        os.makedirs(self.screenshot_dir, exist_ok=True)
        path = os.path.join(self.screenshot_dir, f"{name}.png")
        try:
            await self._page.screenshot(path=path, type="png", full_page=True)
        except Exception as exc:
            logger.warning("Screenshot %s failed: %s", name, exc)
            return None
        logger.info("Screenshot saved: %s", path)
        return path

    async def reset_session(self) -> None:
        """Clear cookies, permissions and web storage of the shared context.

        Storage clearing fails before the first navigation (no document yet);
        that case is ignored.
        """
        await self._context.clear_cookies()
        await self._context.clear_permissions()
        try:
            await self._page.evaluate(_CLEAR_STORAGE_JS)
        except Exception as exc:
            logger.debug("Storage clearing skipped: %s", exc)


@asynccontextmanager
async def browser_session(
    headless: Optional[bool] = None,
    slow_mo: int = 0,
    screenshot_dir: Optional[str] = None,
) -> AsyncIterator[Browser]:
    """Yield a Browser bound to a freshly launched Playwright context."""
    client = PlaywrightClient(headless=headless, slow_mo=slow_mo)
    await client.connect()
    try:
        yield Browser(client.page, client.context, screenshot_dir=screenshot_dir)
    finally:
        await client.close()
