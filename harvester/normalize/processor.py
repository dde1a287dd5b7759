"""Normalize raw product candidates into canonical catalog records."""

import logging
import math
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional, Tuple

from harvester.config import settings
from harvester.ingest.base import CatalogRecord, build_product_url
from harvester.ingest.json_extractor import IDENTIFIER_KEYS, NAME_KEYS, extract_candidates, is_truthy

logger = logging.getLogger(__name__)

# Each logical field resolves through an ordered list of (scope, path)
# aliases; the first hit wins. Scopes:
#   item    - the candidate object itself
#   variant - first entry of ``variations`` when present, else the candidate
#   price   - the resolved price object inside the variant scope
AliasPath = Tuple[str, Tuple[Any, ...]]

FIELD_ALIASES: Dict[str, Tuple[AliasPath, ...]] = {
    "product_id": tuple(("item", (key,)) for key in IDENTIFIER_KEYS),
    "product_name": tuple(("item", (key,)) for key in NAME_KEYS),
    "price_object": (
        ("variant", ("price",)),
        ("variant", ("final_price",)),
        ("variant", ("offer_price",)),
    ),
    "current_units": (("price", ("offerPrice", "units")),),
    "current_minor": (("price", ("price",)),),
    "fallback_minor": (("variant", ("price", "price")),),
    "original_units": (("price", ("mrp", "units")),),
    "original_minor": (("price", ("store_price", "price")),),
    "offer_text": (
        ("item", ("offerApplied", "listingDescription")),
        ("variant", ("price", "offerApplied", "listingDescription")),
    ),
    "weight": (
        ("variant", ("quantityDescription",)),
        ("variant", ("quantity_label",)),
        ("variant", ("weight",)),
    ),
    "image_id": (
        ("variant", ("imageIds", 0)),
        ("variant", ("cloudinary_image_id",)),
        ("variant", ("image_id",)),
    ),
    "rating": (
        ("variant", ("rating", "value")),
        ("item", ("rating", "value")),
        ("item", ("avg_rating",)),
    ),
    "in_stock": (
        ("variant", ("inventory", "inStock")),
        ("item", ("inventory", "in_stock")),
    ),
    "sponsored": (("item", ("is_sponsored",)),),
}

DISCOUNT_PATTERN = re.compile(r"(\d+)%")
HUNDRED = Decimal("100")
ZERO = Decimal("0")


def _dig(obj: Any, path: Tuple[Any, ...]) -> Any:
    """Follow a key/index path, returning None where it breaks off."""
    current = obj
    for step in path:
        if isinstance(step, int):
            if not isinstance(current, list) or len(current) <= step:
                return None
            current = current[step]
        else:
            if not isinstance(current, dict):
                return None
            current = current.get(step)
        if current is None:
            return None
    return current


def _is_present(value: Any) -> bool:
    return value is not None


def _to_decimal(value: Any) -> Optional[Decimal]:
    """Parse a non-negative amount, or None when it is not a number."""
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return None
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite() or amount < 0:
        return None
    # Must survive float conversion on output
    if not math.isfinite(float(amount)):
        return None
    return amount


def _from_minor_units(value: Any) -> Optional[Decimal]:
    """Minor-unit integers (paise) to major units."""
    amount = _to_decimal(value)
    if amount is None:
        return None
    return amount / HUNDRED


class RecordNormalizer:
    """Reconcile snake_case and camelCase payload families into CatalogRecord."""

    def __init__(self, aliases: Optional[Dict[str, Tuple[AliasPath, ...]]] = None):
        self.aliases = aliases or FIELD_ALIASES

    def resolve(
        self,
        scopes: Dict[str, Any],
        field_name: str,
        accept: Callable[[Any], bool] = is_truthy,
    ) -> Any:
        """
        Resolve a logical field through its alias list.

        Args:
            scopes: Mapping of scope name to the object it refers to
            field_name: Key into the alias table
            accept: Predicate a value must satisfy to count as present

        Returns:
            The first accepted value, or None
        """
        for scope, path in self.aliases[field_name]:
            value = _dig(scopes.get(scope), path)
            if accept(value):
                return value
        return None

    def normalize(self, raw: Dict[str, Any]) -> Optional[CatalogRecord]:
        """
        Normalize one raw candidate.

        Returns None when the candidate has no identifier or name, or when
        any field fails to resolve. A bad record never aborts the batch.
        """
        try:
            return self._normalize(raw)
        except Exception as e:
            logger.debug(f"Dropping unparseable candidate: {type(e).__name__}: {e}")
            return None

    def _normalize(self, raw: Dict[str, Any]) -> Optional[CatalogRecord]:
        if not isinstance(raw, dict):
            return None

        variant = raw
        variations = raw.get("variations")
        if isinstance(variations, list) and variations and isinstance(variations[0], dict):
            variant = variations[0]

        scopes = {"item": raw, "variant": variant}

        product_id = self.resolve(scopes, "product_id")
        name = self.resolve(scopes, "product_name")
        if product_id is None or name is None:
            return None
        product_id = str(product_id)

        price_obj = self.resolve(scopes, "price_object")
        scopes["price"] = price_obj if isinstance(price_obj, dict) else None

        current_price, original_price = self._resolve_prices(scopes)
        discount = self._resolve_discount(scopes, current_price, original_price)

        image_id = self.resolve(scopes, "image_id")
        image_url = (
            settings.image_url_template.format(image_id=image_id) if image_id is not None else None
        )

        weight = self.resolve(scopes, "weight")
        weight = str(weight) if weight is not None else ""

        in_stock = self.resolve(scopes, "in_stock", accept=_is_present)

        return CatalogRecord(
            product_id=product_id,
            product_name=str(name),
            product_image=image_url,
            product_weight=weight,
            quantity=weight,
            delivery_time=None,
            is_ad=self.resolve(scopes, "sponsored") is not None,
            rating=self._resolve_rating(scopes),
            current_price=current_price,
            original_price=original_price,
            discount_percentage=discount,
            is_out_of_stock=in_stock is False,
            product_url=build_product_url(product_id),
        )

    def _resolve_prices(self, scopes: Dict[str, Any]) -> Tuple[Decimal, Decimal]:
        current: Optional[Decimal] = None
        original: Optional[Decimal] = None

        if scopes["price"] is not None:
            current = _to_decimal(self.resolve(scopes, "current_units"))
            if current is None:
                current = _from_minor_units(self.resolve(scopes, "current_minor"))

            original = _to_decimal(self.resolve(scopes, "original_units"))
            if original is None:
                original = _from_minor_units(self.resolve(scopes, "original_minor"))

        # The plain variant price is consulted even when the resolved price
        # object existed but produced nothing usable.
        if not current:
            current = _from_minor_units(self.resolve(scopes, "fallback_minor"))

        current = current or ZERO
        if not original:
            original = current

        return current, original

    def _resolve_discount(
        self,
        scopes: Dict[str, Any],
        current: Decimal,
        original: Decimal,
    ) -> int:
        offer_text = self.resolve(scopes, "offer_text")
        if offer_text is not None:
            match = DISCOUNT_PATTERN.search(str(offer_text))
            return min(int(match.group(1)), 100) if match else 0

        if original > current and original > 0:
            ratio = (original - current) / original * HUNDRED
            return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        return 0

    def _resolve_rating(self, scopes: Dict[str, Any]) -> float:
        value = self.resolve(scopes, "rating")
        try:
            rating = float(value) if value is not None else 0.0
        except (TypeError, ValueError):
            return 0.0
        if not math.isfinite(rating) or rating <= 0:
            return 0.0
        return rating


def process_payload(
    payload: Any,
    normalizer: Optional[RecordNormalizer] = None,
) -> List[CatalogRecord]:
    """Extract and normalize every product found in one JSON payload."""
    normalizer = normalizer or record_normalizer
    records = []
    for candidate in extract_candidates(payload):
        record = normalizer.normalize(candidate)
        if record is not None:
            records.append(record)
    return records


# Global normalizer instance
record_normalizer = RecordNormalizer()
