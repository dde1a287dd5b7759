"""Per-pincode Playwright storage-state persistence."""

import logging
from pathlib import Path
from typing import Optional

from playwright.async_api import BrowserContext

from harvester.config import settings

logger = logging.getLogger(__name__)


class SessionStore:
    """
    Keeps one storage-state file per delivery pincode.

    A saved state carries the cookies and local storage that pin the
    storefront to a delivery location, so later requests for the same
    pincode skip the location flow.
    """

    def __init__(self, base_path: Optional[str] = None):
        """
        Initialize session store.

        Args:
            base_path: Directory for session files (defaults to config)
        """
        self.base_path = Path(base_path or settings.session_storage_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def get_session_path(self, pincode: str) -> Path:
        return self.base_path / f"session_{pincode}.json"

    def has_session(self, pincode: Optional[str]) -> bool:
        if not pincode:
            return False
        return self.get_session_path(pincode).exists()

    def storage_state_for(self, pincode: Optional[str]) -> Optional[str]:
        """Path to pass as ``storage_state`` when creating a context, if any."""
        if self.has_session(pincode):
            return str(self.get_session_path(pincode))
        return None

    async def save(self, context: BrowserContext, pincode: Optional[str]) -> Optional[Path]:
        """
        Save the context's storage state for a pincode.

        Args:
            context: Playwright browser context
            pincode: Delivery pincode; nothing is saved without one

        Returns:
            Path written, or None
        """
        if not pincode:
            return None
        session_path = self.get_session_path(pincode)
        await context.storage_state(path=str(session_path))
        logger.info(f"Session saved for pincode {pincode} at {session_path}")
        return session_path


# Global session store instance
session_store = SessionStore()
