"""End-to-end harvest of one category page.

Sequence per request:
1. Open a browser session (saved storage state for the pincode, if any)
2. Attach the response interceptor to a fresh CaptureStore
3. Verify/set the delivery location and read the delivery time
4. Load the category page and ingest its server-rendered state
5. Open and close the first product to fire the first listing call
6. Scroll until the controller is DONE
7. Reconcile DOM cards with captured records and write the output file
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from playwright.async_api import Page, TimeoutError as PlaywrightTimeoutError

from harvester import metrics
from harvester.config import settings
from harvester.ingest.base import CatalogRecord, PageLoadError, SessionLostError
from harvester.ingest.capture_store import CaptureStore
from harvester.ingest.debug_bundle import DebugBundleWriter
from harvester.ingest.dom_reader import DomReader
from harvester.ingest.fetchers.headless import CARD_SELECTOR, BrowserSession, PlaywrightScrollDriver
from harvester.ingest.json_extractor import extract_next_data
from harvester.ingest.location import LocationManager
from harvester.ingest.reconciler import Reconciler
from harvester.ingest.response_interceptor import ResponseInterceptor
from harvester.ingest.scroll_controller import ScrollController
from harvester.ingest.session_store import SessionStore, session_store
from harvester.logging_config import get_logger
from harvester.normalize.processor import process_payload

logger = logging.getLogger(__name__)

POPUP_SELECTOR = "#product-details-page-container, div._1ne2g"
BACK_BUTTON_SELECTOR = 'button[data-testid="simpleheader-back"]'
WINDOW_NEXT_DATA_SCRIPT = "() => window.__NEXT_DATA__ || null"


@dataclass
class HarvestResult:
    """What a harvest request returns to the HTTP layer."""

    products: List[CatalogRecord]
    appended_count: int
    file: Optional[Path] = None

    @property
    def count(self) -> int:
        return len(self.products)

    def to_dict(self) -> dict:
        return {
            "products": [record.to_dict() for record in self.products],
            "count": self.count,
            "appended_count": self.appended_count,
            "file": str(self.file) if self.file else None,
        }


class CategoryHarvester:
    """Harvests one category listing per call; no state is shared between calls."""

    def __init__(
        self,
        sessions: Optional[SessionStore] = None,
        dom_reader: Optional[DomReader] = None,
        reconciler: Optional[Reconciler] = None,
        dumps: Optional[DebugBundleWriter] = None,
    ):
        self.sessions = sessions or session_store
        self.dom_reader = dom_reader or DomReader()
        self.reconciler = reconciler or Reconciler()
        self.dumps = dumps or DebugBundleWriter()
        self.location = LocationManager(sessions=self.sessions)

    async def harvest(
        self,
        url: str,
        pincode: Optional[str] = None,
        target_count: Optional[int] = None,
    ) -> HarvestResult:
        """
        Harvest a category page.

        Args:
            url: Category listing URL
            pincode: Delivery pincode the listing should be served for
            target_count: Stop scrolling once this many cards are rendered

        Returns:
            HarvestResult with the ranked catalog

        Raises:
            PageLoadError: If the category page cannot be opened
            SessionLostError: If the page went away while scrolling
        """
        request_log = get_logger(__name__, url=url, pincode=pincode)
        request_log.info(f"Processing URL: {url} with pincode: {pincode or 'none'}")
        started = time.monotonic()
        success = False

        store = CaptureStore()
        interceptor = ResponseInterceptor(store, dumps=self.dumps)

        try:
            async with BrowserSession(pincode, sessions=self.sessions) as session:
                page = session.page
                page.on("response", interceptor.on_response)

                await page.goto(
                    settings.base_url,
                    wait_until="domcontentloaded",
                    timeout=settings.navigation_timeout_ms,
                )

                if not await self.location.verify_location(page, pincode):
                    request_log.info("Running setup_location to fix location...")
                    await self.location.setup_location(page, session.context, pincode)

                delivery_time = await self.location.extract_delivery_time(page)

                request_log.info("Navigating to category...")
                try:
                    await page.goto(url, wait_until="domcontentloaded", timeout=settings.navigation_timeout_ms)
                except Exception as e:
                    raise PageLoadError(url, str(e)) from e

                await self._ingest_initial_state(page, store)
                await self._prime_first_listing_call(page)

                request_log.info("Scrolling to trigger API calls...")
                outcome = await ScrollController(PlaywrightScrollDriver(page), target_count).run()
                if outcome.session_lost:
                    raise SessionLostError(f"Page closed while scrolling {url}")

                await interceptor.drain(settings.response_drain_timeout)

                request_log.info("Finalizing extraction...")
                dom_products = await self.dom_reader.read(page)

            request_log.info(f"DOM Extracted: {len(dom_products)} | API Captured: {len(store)}")
            merged = self.reconciler.reconcile(dom_products, store, delivery_time)
            metrics.record_merge(merged.matched_count, merged.dom_only_count, merged.appended_count)

            if merged.records:
                first = merged.records[0]
                request_log.debug(f"First product: {first.product_name} @ {first.current_price}")

            output_file = self.dumps.write_output(merged.records, pincode)
            success = True
            return HarvestResult(
                products=merged.records,
                appended_count=merged.appended_count,
                file=output_file,
            )
        finally:
            metrics.record_harvest(success, time.monotonic() - started)
            if settings.cleanup_debug_dumps:
                self.dumps.cleanup()

    async def _ingest_initial_state(self, page: Page, store: CaptureStore) -> int:
        """Feed the server-rendered __NEXT_DATA__ payload into the store."""
        try:
            request_html = await page.content()
            initial_state = extract_next_data(request_html)
            if initial_state is None:
                initial_state = await page.evaluate(WINDOW_NEXT_DATA_SCRIPT)

            if not initial_state:
                logger.info("No __NEXT_DATA__ script or window object found.")
                return 0

            self.dumps.write_dump("initial_state_dump.json", initial_state)
            ssr_products = process_payload(initial_state)
            if not ssr_products:
                logger.info("Initial State found but yielded 0 products. Check structure in dump.")
                return 0

            added = store.observe(ssr_products)
            metrics.record_captured("initial_state", added)
            logger.info(f"Extracted {len(ssr_products)} products from Initial State ({added} new).")
            return added
        except Exception as e:
            logger.info(f"Error extracting initial state: {e}")
            return 0

    async def _prime_first_listing_call(self, page: Page) -> None:
        """
        Open and close the first product card.

        The first page of results only arrives over the API once the
        listing has been re-entered from a product popup.
        """
        logger.info("Attempting Click-and-Close on first product to trigger initial API...")
        try:
            await page.wait_for_selector(CARD_SELECTOR, timeout=settings.card_wait_timeout_ms)
            first_card = page.locator(CARD_SELECTOR).first
            if not await first_card.is_visible():
                return

            await first_card.click(force=True)
            try:
                await page.wait_for_selector(POPUP_SELECTOR, timeout=settings.element_timeout_ms)
            except PlaywrightTimeoutError:
                logger.info("Popup did not appear or took too long (might be non-fatal)")
            await asyncio.sleep(1.5)

            back_btn = page.locator(BACK_BUTTON_SELECTOR)
            if await back_btn.is_visible():
                await back_btn.click()
            else:
                await page.keyboard.press("Escape")

            try:
                await page.wait_for_selector(CARD_SELECTOR, timeout=settings.element_timeout_ms)
            except PlaywrightTimeoutError:
                logger.debug("Product list not visible again after closing popup")
            await asyncio.sleep(2)
        except Exception as e:
            logger.info(f"Click-and-Close strategy failed: {e}")


# Global harvester instance
category_harvester = CategoryHarvester()
