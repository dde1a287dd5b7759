"""Find product-shaped records inside arbitrary JSON payloads."""

import json
import logging
from typing import Any, Dict, Iterable, List, Optional

from selectolax.parser import HTMLParser

logger = logging.getLogger(__name__)

# Key aliases that make an object look like a product. Legacy payloads use
# snake_case, the newer widget APIs use camelCase.
IDENTIFIER_KEYS = ("productId", "product_id")
NAME_KEYS = ("displayName", "name")
PRICE_KEYS = ("price",)
VARIATIONS_KEY = "variations"


def is_truthy(value: Any) -> bool:
    """Loose truthiness used by the payloads: empty containers still count."""
    if value is None or value is False:
        return False
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value == value and value != 0  # NaN is falsy too
    if isinstance(value, str):
        return value != ""
    return True


def first_truthy(obj: Dict[str, Any], keys: Iterable[str]) -> Any:
    """Value of the first key in ``keys`` holding a truthy value, else None."""
    for key in keys:
        value = obj.get(key)
        if is_truthy(value):
            return value
    return None


def is_product_shaped(obj: Any) -> bool:
    """Shape predicate: identifier, name, and a price or variations."""
    if not isinstance(obj, dict):
        return False
    if first_truthy(obj, IDENTIFIER_KEYS) is None:
        return False
    if first_truthy(obj, NAME_KEYS) is None:
        return False
    if first_truthy(obj, PRICE_KEYS) is not None:
        return True
    variations = obj.get(VARIATIONS_KEY)
    return isinstance(variations, list) and len(variations) > 0


def extract_candidates(value: Any) -> List[Dict[str, Any]]:
    """
    Depth-first search for product-shaped objects.

    Matching objects are emitted and not descended into. Arrays keep their
    element order. A subtree that fails to walk is skipped; anything other
    than an object or array at the root yields an empty list.
    """
    if not isinstance(value, (dict, list)):
        return []

    found: List[Dict[str, Any]] = []
    stack: List[Any] = [value]

    while stack:
        node = stack.pop()
        try:
            if isinstance(node, dict):
                if is_product_shaped(node):
                    found.append(node)
                    continue
                children = list(node.values())
            else:
                children = node

            nested = [child for child in children if isinstance(child, (dict, list))]
            stack.extend(reversed(nested))
        except Exception as e:
            logger.debug(f"Skipping malformed JSON subtree: {type(e).__name__}: {e}")
            continue

    return found


def extract_next_data(html: str) -> Optional[Dict[str, Any]]:
    """
    Extract __NEXT_DATA__ script tag content.

    Next.js renders the first page of the listing into this tag.
    """
    try:
        tree = HTMLParser(html)
        scripts = tree.css("script#__NEXT_DATA__")
        if scripts:
            script_content = scripts[0].text()
            return json.loads(script_content)
    except (json.JSONDecodeError, AttributeError, IndexError, TypeError) as e:
        logger.debug(f"Failed to extract __NEXT_DATA__: {e}")
    return None
