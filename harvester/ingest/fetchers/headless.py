"""Headless Chromium session and the Playwright-backed scroll driver."""

import asyncio
import logging
import re
from typing import Optional

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

from harvester.config import settings
from harvester.ingest.base import ClickResult, ScrollDriver
from harvester.ingest.session_store import SessionStore, session_store

logger = logging.getLogger(__name__)

# Stealth browser launch args
STEALTH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-blink-features=AutomationControlled",
    "--disable-infobars",
]

HIDE_WEBDRIVER_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
"""

CARD_SELECTOR = 'div[data-testid="item-collection-card-full"]'
RETRY_CANDIDATES_SELECTOR = 'button, div[role="button"], div[role="alert"] span'
RETRY_TEXT = re.compile("Try Again", re.IGNORECASE)

# Scrolls the tallest overflowing <div> (or the window) and reports the
# largest scroll height seen.
SCROLL_STEP_SCRIPT = """
({ distance, minRegion }) => {
    let scrollTarget = window;
    let maxScrollHeight = 0;

    if (document.body.scrollHeight > window.innerHeight) {
        maxScrollHeight = document.body.scrollHeight;
    }

    document.querySelectorAll('div').forEach(div => {
        if (div.scrollHeight > div.clientHeight && div.clientHeight > 0 && div.scrollHeight > minRegion) {
            if (div.scrollHeight > maxScrollHeight) {
                maxScrollHeight = div.scrollHeight;
                scrollTarget = div;
            }
        }
    });

    scrollTarget.scrollBy(0, distance);
    return maxScrollHeight;
}
"""

TRULY_VISIBLE_SCRIPT = """
el => {
    const style = window.getComputedStyle(el);
    if (style.display === 'none' || style.visibility === 'hidden' || style.opacity === '0') return false;
    const rect = el.getBoundingClientRect();
    return rect.width > 0 && rect.height > 0;
}
"""

VIEWPORT_SCRIPT = "() => ({ width: window.innerWidth, height: window.innerHeight })"


class BrowserSession:
    """
    One browser, one context, one page for a single harvest request.

    Usage:
        async with BrowserSession(pincode) as session:
            await session.page.goto(...)
    """

    def __init__(
        self,
        pincode: Optional[str] = None,
        sessions: Optional[SessionStore] = None,
        headless: Optional[bool] = None,
    ):
        self.pincode = pincode
        self.sessions = sessions or session_store
        self.headless = settings.headless if headless is None else headless

        self._playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self.page: Optional[Page] = None

    async def __aenter__(self) -> "BrowserSession":
        try:
            await self.open()
        except BaseException:
            await self.close()
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def open(self) -> None:
        self._playwright = await async_playwright().start()
        self.browser = await self._playwright.chromium.launch(
            headless=self.headless,
            args=STEALTH_ARGS,
            ignore_default_args=["--enable-automation"],
        )

        context_options = {
            "no_viewport": True,
            "is_mobile": False,
            "has_touch": False,
        }
        storage_state = self.sessions.storage_state_for(self.pincode)
        if storage_state:
            logger.info(f"Loading saved session for pincode {self.pincode}")
            context_options["storage_state"] = storage_state

        self.context = await self.browser.new_context(**context_options)
        self.page = await self.context.new_page()
        await self.page.add_init_script(HIDE_WEBDRIVER_SCRIPT)

    async def close(self) -> None:
        """Close browser and cleanup."""
        if self.context:
            try:
                await self.context.close()
            except Exception as e:
                logger.error(f"Error closing browser context: {e}")
            self.context = None
            self.page = None

        if self.browser:
            try:
                await self.browser.close()
            except Exception as e:
                logger.error(f"Error closing browser: {e}")
            self.browser = None

        if self._playwright:
            await self._playwright.stop()
            self._playwright = None


class PlaywrightScrollDriver(ScrollDriver):
    """ScrollDriver over a live Playwright page."""

    def __init__(self, page: Page, card_selector: str = CARD_SELECTOR, timeout_ms: Optional[int] = None):
        self.page = page
        self.card_selector = card_selector
        self.timeout_ms = timeout_ms or settings.element_timeout_ms

    def is_closed(self) -> bool:
        return self.page.is_closed()

    async def count_items(self) -> int:
        return await self.page.locator(self.card_selector).count()

    async def scroll_step(self, distance: int, min_region: int) -> float:
        height = await self.page.evaluate(
            SCROLL_STEP_SCRIPT, {"distance": distance, "minRegion": min_region}
        )
        return float(height or 0)

    async def measure_extent(self) -> float:
        return float(await self.page.evaluate("() => document.body.scrollHeight") or 0)

    def _retry_locator(self):
        return self.page.locator(RETRY_CANDIDATES_SELECTOR).filter(has_text=RETRY_TEXT).first

    async def retry_affordance_visible(self) -> bool:
        locator = self._retry_locator()
        if not await locator.is_visible():
            return False
        try:
            return bool(await locator.evaluate(TRULY_VISIBLE_SCRIPT, timeout=self.timeout_ms))
        except Exception as e:
            logger.debug(f"Retry control visibility probe failed: {e}")
            return False

    async def click_retry_affordance(self) -> ClickResult:
        locator = self._retry_locator()
        try:
            await locator.scroll_into_view_if_needed(timeout=self.timeout_ms)

            box = await locator.bounding_box(timeout=self.timeout_ms)
            viewport = self.page.viewport_size or await self.page.evaluate(VIEWPORT_SCRIPT)

            if box and viewport:
                off_screen = box["y"] > viewport["height"] or (box["y"] + box["height"]) < 0
                if off_screen:
                    logger.debug('Skipping off-screen "Try Again"')
                    return ClickResult.OFF_SCREEN

                await self.page.mouse.move(box["x"] + box["width"] / 2, box["y"] + box["height"] / 2)
                await self.page.mouse.down()
                await self.page.mouse.up()
            else:
                # No geometry available
                await locator.click(delay=50, force=True, timeout=self.timeout_ms)
            return ClickResult.CLICKED

        except Exception as e:
            if "outside of the viewport" in str(e):
                return ClickResult.OFF_SCREEN
            if self.page.is_closed():
                raise
            logger.debug(f'"Try Again" click failed: {e}')
            return ClickResult.FAILED

    async def wiggle(self) -> None:
        await self.page.mouse.wheel(0, -100)
        await asyncio.sleep(0.2)
        await self.page.mouse.wheel(0, 300)
