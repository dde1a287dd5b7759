"""Merge the DOM-ordered listing with the API-captured records.

The DOM view carries the order the shopper sees; the API view carries
precise prices, images and identifiers. Records are matched purely on a
normalized name key. When two captured records share a key, the one
inserted last is the only one reachable by name.
"""

import logging
import re
from dataclasses import dataclass, fields, replace
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Set

from harvester.config import settings
from harvester.ingest.base import CatalogRecord, build_product_url
from harvester.ingest.capture_store import CaptureStore

logger = logging.getLogger(__name__)

NON_ALNUM = re.compile(r"[^a-z0-9]")

# Fields the DOM record keeps even when an API match exists
DOM_OWNED_FIELDS = {"ranking", "delivery_time", "scraped_at"}


def name_key(name: Optional[str]) -> str:
    """Lowercase, alphanumerics only."""
    if not name:
        return ""
    return NON_ALNUM.sub("", name.lower())


@dataclass
class ReconcileResult:
    """Final ranked catalog plus merge statistics."""

    records: List[CatalogRecord]
    matched_count: int = 0
    dom_only_count: int = 0
    appended_count: int = 0

    @property
    def count(self) -> int:
        return len(self.records)


class Reconciler:
    """Fuse the DOM view and the capture store into one ranked list."""

    def reconcile(
        self,
        dom_ordered: Sequence[CatalogRecord],
        captured: CaptureStore,
        delivery_time_override: Optional[str] = None,
    ) -> ReconcileResult:
        """
        Build the final catalog.

        Args:
            dom_ordered: Records read from the page, in on-screen order
            captured: Records captured from network payloads
            delivery_time_override: Delivery time applied to every record

        Returns:
            ReconcileResult with rankings renumbered 1..N
        """
        captured_records = captured.all()
        logger.info(f"Merging Data... DOM: {len(dom_ordered)}, API: {len(captured_records)}")

        by_name: Dict[str, CatalogRecord] = {}
        for record in captured_records:
            key = name_key(record.product_name)
            if key:
                by_name[key] = record

        result = ReconcileResult(records=[])
        consumed: Set[str] = set()
        emitted: Set[str] = set()

        for dom_item in dom_ordered:
            match = by_name.get(name_key(dom_item.product_name))
            if match is not None:
                if match.product_id:
                    consumed.add(match.product_id)
                merged = self._overlay(dom_item, match, delivery_time_override)
                if self._emit(result.records, merged, emitted):
                    result.matched_count += 1
            else:
                unchanged = replace(
                    dom_item,
                    delivery_time=delivery_time_override or dom_item.delivery_time,
                )
                if self._emit(result.records, unchanged, emitted):
                    result.dom_only_count += 1

        next_rank = len(dom_ordered) + 1
        now = datetime.now(timezone.utc)
        for api_item in captured_records:
            if api_item.product_id in consumed:
                continue
            appended = replace(
                api_item,
                ranking=next_rank,
                delivery_time=delivery_time_override,
                product_url=build_product_url(api_item.product_id),
                platform=settings.platform,
                scraped_at=now,
            )
            if self._emit(result.records, appended, emitted):
                result.appended_count += 1
                next_rank += 1

        logger.info(f"Appended {result.appended_count} extra products from API.")

        # Provisional ranks above are overwritten here
        for index, record in enumerate(result.records, start=1):
            record.ranking = index

        logger.info(f"Final Merged Count: {result.count}")
        return result

    @staticmethod
    def _overlay(
        dom_item: CatalogRecord,
        api_item: CatalogRecord,
        delivery_time_override: Optional[str],
    ) -> CatalogRecord:
        """DOM record overlaid with every populated API field."""
        overrides = {}
        for f in fields(CatalogRecord):
            if f.name in DOM_OWNED_FIELDS:
                continue
            value = getattr(api_item, f.name)
            if value is not None:
                overrides[f.name] = value

        return replace(
            dom_item,
            **overrides,
            ranking=dom_item.ranking,
            delivery_time=delivery_time_override or dom_item.delivery_time,
            scraped_at=datetime.now(timezone.utc),
        )

    @staticmethod
    def _emit(
        records: List[CatalogRecord],
        record: CatalogRecord,
        emitted: Set[str],
    ) -> bool:
        """Append unless a record with the same product id is already out."""
        if record.product_id:
            if record.product_id in emitted:
                logger.debug(f"Skipping duplicate product {record.product_id}")
                return False
            emitted.add(record.product_id)
        records.append(record)
        return True


# Global reconciler instance
reconciler = Reconciler()
