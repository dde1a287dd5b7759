"""Core record type and collaborator interfaces for catalog harvesting."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from harvester.config import settings


class HarvestError(Exception):
    """Base class for harvesting failures surfaced to the caller."""

    pass


class SessionLostError(HarvestError):
    """The controlled page became unreachable mid-session."""

    pass


class PageLoadError(HarvestError):
    """Page failed to load properly."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to load {url}: {reason}")


def build_product_url(product_id: Optional[str]) -> Optional[str]:
    """Build the canonical product URL, or None without an identifier."""
    if not product_id:
        return None
    return settings.product_url_template.format(product_id=product_id)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CatalogRecord:
    """Canonical catalog entry shared by the DOM and API views."""

    product_id: Optional[str]
    product_name: str
    current_price: Decimal = Decimal("0")
    original_price: Decimal = Decimal("0")
    discount_percentage: int = 0
    product_image: Optional[str] = None
    product_weight: str = ""
    quantity: str = ""
    delivery_time: Optional[str] = None
    is_ad: bool = False
    rating: float = 0.0
    is_out_of_stock: bool = False
    product_url: Optional[str] = None
    platform: str = field(default_factory=lambda: settings.platform)
    ranking: Optional[int] = None
    scraped_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with the camelCase keys consumers expect."""
        return {
            "productId": self.product_id,
            "productName": self.product_name,
            "productImage": self.product_image,
            "productWeight": self.product_weight,
            "quantity": self.quantity,
            "deliveryTime": self.delivery_time,
            "isAd": self.is_ad,
            "rating": self.rating,
            "currentPrice": float(self.current_price),
            "originalPrice": float(self.original_price),
            "discountPercentage": self.discount_percentage,
            "isOutOfStock": self.is_out_of_stock,
            "productUrl": self.product_url,
            "platform": self.platform,
            "scrapedAt": self.scraped_at.isoformat().replace("+00:00", "Z"),
            "ranking": self.ranking,
        }


class ClickResult(Enum):
    """Outcome of one attempt to click the retry affordance."""

    CLICKED = "clicked"
    OFF_SCREEN = "off_screen"
    FAILED = "failed"


class ScrollDriver(ABC):
    """Page-interaction operations the scroll controller depends on."""

    @abstractmethod
    def is_closed(self) -> bool:
        """True once the page or its session is gone."""
        pass

    @abstractmethod
    async def count_items(self) -> int:
        """Number of product cards currently rendered."""
        pass

    @abstractmethod
    async def scroll_step(self, distance: int, min_region: int) -> float:
        """
        Advance the largest scrollable region by one step.

        Args:
            distance: Pixels to scroll
            min_region: Minimum content height for a region to qualify

        Returns:
            The maximal scrollable extent observed this step
        """
        pass

    @abstractmethod
    async def measure_extent(self) -> float:
        """Current document scroll height."""
        pass

    @abstractmethod
    async def retry_affordance_visible(self) -> bool:
        """True when a rendered "Try Again" control is on the page."""
        pass

    @abstractmethod
    async def click_retry_affordance(self) -> ClickResult:
        """Bring the retry control into view and click it once."""
        pass

    @abstractmethod
    async def wiggle(self) -> None:
        """Nudge the viewport back then forward to wake lazy loaders."""
        pass
