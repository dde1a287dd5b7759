"""Route intercepted API responses into the capture store."""

import asyncio
import logging
import re
import time
from typing import Any, Optional, Set

from harvester import metrics
from harvester.ingest.capture_store import CaptureStore
from harvester.ingest.debug_bundle import DebugBundleWriter
from harvester.normalize.processor import process_payload

logger = logging.getLogger(__name__)

API_MARKER = "api/instamart/"
CAPTURED_RESOURCE_TYPES = {"fetch", "xhr"}

FILTER_MARKER = "category-listing/filter"
LISTING_MARKERS = ("category/list", "listing", "api/instamart/item/v2/")
ITEM_WIDGETS_MARKER = "api/instamart/item/v2/"

UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9]")


class ResponseInterceptor:
    """
    Feeds product payloads from background API calls into a CaptureStore.

    Channels:
    - filter: authoritative, replaces stored records (always-set)
    - listing: incidental discovery, 2xx only (insert-if-absent)

    One response may hit both channels.
    """

    def __init__(self, store: CaptureStore, dumps: Optional[DebugBundleWriter] = None):
        self.store = store
        self.dumps = dumps
        self._tasks: Set[asyncio.Task] = set()

    @staticmethod
    def qualifies(url: str, resource_type: str) -> bool:
        """Only XHR/fetch calls against the catalog API are of interest."""
        return API_MARKER in url and resource_type in CAPTURED_RESOURCE_TYPES

    def on_response(self, response) -> None:
        """Playwright ``response`` event handler; schedules processing."""
        try:
            url = response.url
            resource_type = response.request.resource_type
        except Exception as e:
            logger.debug(f"Could not inspect response: {e}")
            return

        if not self.qualifies(url, resource_type):
            return

        task = asyncio.ensure_future(self.handle(response))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def handle(self, response) -> None:
        """Read one qualifying response and ingest its body."""
        url = response.url
        is_filter = FILTER_MARKER in url
        is_listing = any(marker in url for marker in LISTING_MARKERS)
        if not is_filter and not is_listing:
            return

        try:
            status = response.status
            body = await response.json()
        except Exception as e:
            logger.debug(f"Unreadable response body from {url}: {e}")
            return

        self.ingest(url, status, body)

    def ingest(self, url: str, status: int, body: Any) -> int:
        """
        Apply the channel rules to one decoded response.

        Args:
            url: Response URL
            status: HTTP status code
            body: Decoded JSON body

        Returns:
            Number of records written to the store
        """
        written = 0

        if FILTER_MARKER in url:
            logger.info(f"Intercepted FILTER API: {url}")
            self._dump("latest_filter_api.json", body)
            try:
                parsed = process_payload(body)
            except Exception as e:
                logger.info(f"Error processing filter API: {e}")
                parsed = []
            if parsed:
                logger.info(f"Filter API gave {len(parsed)} products.")
                count = self.store.observe(parsed, overwrite=True)
                metrics.record_captured("filter", count)
                written += count

        if any(marker in url for marker in LISTING_MARKERS) and 200 <= status < 300:
            if ITEM_WIDGETS_MARKER in url:
                logger.info(f"Intercepted ITEM WIDGETS API: {url}")
                safe_name = UNSAFE_CHARS.sub("_", url)[:50]
                self._dump(f"api_item_widgets_{safe_name}_{int(time.time() * 1000)}.json", body)
            try:
                parsed = process_payload(body)
            except Exception as e:
                logger.debug(f"Error processing listing API {url}: {e}")
                parsed = []
            if parsed:
                logger.info(f"API (List/Item) gave {len(parsed)} products.")
                count = self.store.observe(parsed)
                metrics.record_captured("listing", count)
                written += count

        return written

    def _dump(self, filename: str, payload: Any) -> None:
        if self.dumps is not None:
            self.dumps.write_dump(filename, payload)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: float) -> None:
        """Wait (bounded) for in-flight response handlers to finish."""
        if not self._tasks:
            return
        pending = list(self._tasks)
        logger.debug(f"Waiting for {len(pending)} in-flight response handlers")
        done, not_done = await asyncio.wait(pending, timeout=timeout)
        if not_done:
            logger.warning(f"{len(not_done)} response handlers still running after {timeout}s; cancelling")
            for task in not_done:
                task.cancel()
