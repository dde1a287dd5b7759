"""Read product cards from the rendered listing, in on-screen order."""

import logging
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from playwright.async_api import Page

from harvester.config import settings
from harvester.ingest.base import CatalogRecord, build_product_url
from harvester.ingest.fetchers.headless import CARD_SELECTOR

logger = logging.getLogger(__name__)

CARD_SNAPSHOT_SCRIPT = """
(selector) => Array.from(document.querySelectorAll(selector)).map(card => {
    const link = card.querySelector('a[href*="/item/"]');
    const img = card.querySelector('img');
    return {
        text: card.innerText || '',
        href: link ? link.getAttribute('href') : null,
        image: img ? img.getAttribute('src') : null,
    };
})
"""

PRICE_LINE = re.compile(r"^₹\s*([\d,]+(?:\.\d{1,2})?)$")
QUANTITY_LINE = re.compile(r"^\d+(?:\.\d+)?\s*(?:g|kg|ml|l|ltr|pc|pcs|pieces|pack|units?)\b", re.IGNORECASE)
DISCOUNT_LINE = re.compile(r"(\d+)%\s*OFF", re.IGNORECASE)
DELIVERY_LINE = re.compile(r"^\d+\s*MINS?$", re.IGNORECASE)
ITEM_ID_IN_HREF = re.compile(r"/item/([A-Za-z0-9_-]+)")
BADGE_LINES = {"ad", "add", "sold out", "out of stock", "notify me", "bestseller"}


def _parse_amount(text: str) -> Optional[Decimal]:
    try:
        return Decimal(text.replace(",", ""))
    except InvalidOperation:
        return None


def parse_card(snapshot: Dict[str, Any], rank: int) -> Optional[CatalogRecord]:
    """
    Build a partial CatalogRecord from one card snapshot.

    Returns None when no product name can be recognised.
    """
    lines = [line.strip() for line in (snapshot.get("text") or "").splitlines() if line.strip()]

    prices: List[Decimal] = []
    name = None
    weight = ""
    delivery_time = None
    discount = 0
    is_ad = False
    out_of_stock = False

    for line in lines:
        lowered = line.lower()
        price_match = PRICE_LINE.match(line)
        if price_match:
            amount = _parse_amount(price_match.group(1))
            if amount is not None:
                prices.append(amount)
            continue
        discount_match = DISCOUNT_LINE.search(line)
        if discount_match:
            discount = min(int(discount_match.group(1)), 100)
            continue
        if DELIVERY_LINE.match(line):
            delivery_time = line
            continue
        if lowered in BADGE_LINES:
            is_ad = is_ad or lowered == "ad"
            out_of_stock = out_of_stock or lowered in {"sold out", "out of stock", "notify me"}
            continue
        if not weight and QUANTITY_LINE.match(line):
            weight = line
            continue
        if name is None:
            name = line

    if not name:
        return None

    current = prices[0] if prices else Decimal("0")
    original = max(prices) if prices else current
    if not discount and original > current:
        discount = int(((original - current) / original * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    href = snapshot.get("href") or ""
    id_match = ITEM_ID_IN_HREF.search(href)
    product_id = id_match.group(1) if id_match else f"dom-{rank}"

    return CatalogRecord(
        product_id=product_id,
        product_name=name,
        current_price=current,
        original_price=original,
        discount_percentage=discount,
        product_image=snapshot.get("image") or None,
        product_weight=weight,
        quantity=weight,
        delivery_time=delivery_time,
        is_ad=is_ad,
        is_out_of_stock=out_of_stock,
        product_url=build_product_url(product_id) if id_match else None,
        ranking=rank,
    )


class DomReader:
    """DOM-reading collaborator for reconciliation."""

    def __init__(self, enabled: Optional[bool] = None, card_selector: str = CARD_SELECTOR):
        self.enabled = settings.dom_extraction_enabled if enabled is None else enabled
        self.card_selector = card_selector

    async def read(self, page: Page) -> List[CatalogRecord]:
        """Snapshot every rendered card; empty when disabled or on failure."""
        if not self.enabled:
            logger.info("Skipping DOM card extraction (API data is used on its own)")
            return []

        try:
            snapshots = await page.evaluate(CARD_SNAPSHOT_SCRIPT, self.card_selector)
        except Exception as e:
            logger.warning(f"DOM card extraction failed: {e}")
            return []

        records = []
        for snapshot in snapshots or []:
            record = parse_card(snapshot, rank=len(records) + 1)
            if record is not None:
                records.append(record)

        logger.info(f"DOM Extracted: {len(records)} cards")
        return records
