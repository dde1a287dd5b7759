"""Delivery location verification/setup and delivery-time lookup."""

import asyncio
import logging
import re
from typing import Optional

from playwright.async_api import BrowserContext, Page, TimeoutError as PlaywrightTimeoutError

from harvester.config import settings
from harvester.ingest.session_store import SessionStore, session_store

logger = logging.getLogger(__name__)

ADDRESS_BAR_SELECTOR = 'div[data-testid="address-bar"]'
SEARCH_LOCATION_SELECTOR = 'div[data-testid="search-location"]'
LOCATION_INPUT_SELECTOR = 'input[placeholder="Search for area, street name…"]'
ADDRESS_RESULT_SELECTOR = "div._11n32"
DELIVERY_TIME_SELECTOR = 'div[data-testid="address-name"] span._31zZQ'


class LocationManager:
    """Makes sure the storefront serves the requested pincode."""

    def __init__(self, sessions: Optional[SessionStore] = None, timeout_ms: Optional[int] = None):
        self.sessions = sessions or session_store
        self.timeout_ms = timeout_ms or settings.element_timeout_ms

    async def verify_location(self, page: Page, pincode: Optional[str]) -> bool:
        """
        Check whether the address bar already shows the pincode.

        Without a pincode any location is acceptable.
        """
        if not pincode:
            return True

        try:
            address_el = page.locator(ADDRESS_BAR_SELECTOR)
            try:
                await address_el.wait_for(state="visible", timeout=self.timeout_ms)
            except PlaywrightTimeoutError:
                pass

            if not await address_el.is_visible():
                logger.info("Address bar not visible.")
                return False

            address_text = await address_el.inner_text()
            logger.info(f'Current Page Location: "{address_text}" | Target Pincode: {pincode}')
            if pincode in address_text:
                logger.info("Location matches!")
                return True
            logger.info("Location mismatch!")
        except Exception as e:
            logger.info(f"Error verifying location: {e}")
        return False

    async def setup_location(self, page: Page, context: BrowserContext, pincode: Optional[str]) -> None:
        """
        Walk the location picker and persist the resulting session.

        Every step is optional; a missing element is logged and skipped.
        """
        if not pincode:
            return
        if self.sessions.has_session(pincode):
            logger.info(f"Session file exists for {pincode}, assuming it's loaded.")
            return

        logger.info(f"Setting up location for pincode: {pincode}")
        try:
            await self._click_when_ready(page, ADDRESS_BAR_SELECTOR, "Address bar not found or clickable")
            await self._click_when_ready(page, SEARCH_LOCATION_SELECTOR, "Search location button not found.")

            try:
                await page.wait_for_selector(LOCATION_INPUT_SELECTOR, timeout=self.timeout_ms)
                await page.fill(LOCATION_INPUT_SELECTOR, pincode)
            except PlaywrightTimeoutError:
                logger.info("Input field not found.")

            try:
                await page.wait_for_selector(ADDRESS_RESULT_SELECTOR, timeout=self.timeout_ms)
                results = await page.query_selector_all(ADDRESS_RESULT_SELECTOR)
                if results:
                    await results[0].click()
            except PlaywrightTimeoutError:
                logger.info("No address results.")

            await asyncio.sleep(2)
            try:
                confirm_btn = page.get_by_role("button", name=re.compile("confirm", re.IGNORECASE))
                if await confirm_btn.is_visible():
                    await confirm_btn.click()
            except Exception as e:
                logger.debug(f"Confirm button not clickable: {e}")

            await asyncio.sleep(3)
            await self.sessions.save(context, pincode)
        except Exception as e:
            logger.error(f"Error in setup_location: {e}")

    async def extract_delivery_time(self, page: Page) -> Optional[str]:
        """Read the delivery-time label from the storefront landing page."""
        try:
            logger.info("Extracting Delivery Time...")
            if page.url != settings.delivery_time_url:
                await page.goto(
                    settings.delivery_time_url,
                    wait_until="domcontentloaded",
                    timeout=settings.navigation_timeout_ms,
                )

            await page.wait_for_selector(DELIVERY_TIME_SELECTOR, timeout=self.timeout_ms)
            delivery_time = (await page.locator(DELIVERY_TIME_SELECTOR).first.inner_text()).strip()
            logger.info(f'Extracted Delivery Time: "{delivery_time}"')
            return delivery_time or None
        except Exception as e:
            logger.info(f"Could not extract delivery time: {e}")
            return None

    async def _click_when_ready(self, page: Page, selector: str, missing_message: str) -> None:
        try:
            await page.wait_for_selector(selector, timeout=self.timeout_ms)
            await page.click(selector)
        except PlaywrightTimeoutError:
            logger.info(missing_message)
        except Exception as e:
            logger.info(f"{missing_message} ({e})")

