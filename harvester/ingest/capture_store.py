"""Per-session accumulator of records captured from network payloads."""

import logging
import threading
from typing import Dict, Iterable, Iterator, List

from harvester.ingest.base import CatalogRecord

logger = logging.getLogger(__name__)


class CaptureStore:
    """
    Insertion-ordered set of CatalogRecords keyed by product id.

    Two insertion modes:
    - insert-if-absent for incidental discovery (listing pages, SSR state)
    - always-set for authoritative channels, replacing the stored record
      while keeping its original position

    Every check-then-insert happens under one lock, so response handlers
    interleaving with the scroll loop cannot double insert.
    """

    def __init__(self):
        self._records: Dict[str, CatalogRecord] = {}
        self._lock = threading.Lock()

    def insert_if_absent(self, record: CatalogRecord) -> bool:
        """Store the record unless its id is already known. True if stored."""
        if not record.product_id:
            return False
        with self._lock:
            if record.product_id in self._records:
                return False
            self._records[record.product_id] = record
            return True

    def set(self, record: CatalogRecord) -> bool:
        """Store the record, replacing any previous one with the same id."""
        if not record.product_id:
            return False
        with self._lock:
            self._records[record.product_id] = record
            return True

    def observe(self, records: Iterable[CatalogRecord], overwrite: bool = False) -> int:
        """
        Add a batch of records.

        Args:
            records: Normalized records from one payload
            overwrite: Use always-set instead of insert-if-absent

        Returns:
            Number of records written
        """
        insert = self.set if overwrite else self.insert_if_absent
        written = 0
        for record in records:
            if insert(record):
                written += 1
        return written

    def has(self, product_id: str) -> bool:
        with self._lock:
            return product_id in self._records

    def all(self) -> List[CatalogRecord]:
        """Snapshot of every record in insertion order."""
        with self._lock:
            return list(self._records.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, product_id: object) -> bool:
        return isinstance(product_id, str) and self.has(product_id)

    def __iter__(self) -> Iterator[CatalogRecord]:
        return iter(self.all())
