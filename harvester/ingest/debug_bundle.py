"""Debug payload dumps, final output files and their cleanup."""

import json
import logging
import time
from pathlib import Path
from typing import Any, List, Optional, Sequence

from harvester.config import settings
from harvester.ingest.base import CatalogRecord

logger = logging.getLogger(__name__)

# Dump files removed once a request has been answered
TEMP_FILE_NAMES = {"latest_filter_api.json", "initial_state_dump.json"}
TEMP_FILE_PREFIXES = ("api_item_widgets_",)


class DebugBundleWriter:
    """
    Writes intercepted payloads and final results to disk.

    Dumps go to the debug directory and are temporary; output files are
    kept.
    """

    def __init__(
        self,
        dump_path: Optional[str] = None,
        output_path: Optional[str] = None,
        enabled: Optional[bool] = None,
    ):
        """
        Initialize the writer.

        Args:
            dump_path: Directory for payload dumps (defaults to config)
            output_path: Directory for final output (defaults to config)
            enabled: Whether payload dumps are written (defaults to config)
        """
        self.dump_path = Path(dump_path or settings.debug_dump_path)
        self.output_path = Path(output_path or settings.output_path)
        self.enabled = settings.debug_dumps_enabled if enabled is None else enabled

    def write_dump(self, filename: str, payload: Any) -> Optional[Path]:
        """Write one JSON payload dump. Failures are logged, not raised."""
        if not self.enabled:
            return None
        try:
            self.dump_path.mkdir(parents=True, exist_ok=True)
            path = self.dump_path / filename
            with open(path, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, default=str)
            logger.info(f"Saved payload dump to {path}")
            return path
        except (OSError, TypeError, ValueError) as e:
            logger.warning(f"Failed to write dump {filename}: {e}")
            return None

    def write_output(self, records: Sequence[CatalogRecord], pincode: Optional[str]) -> Path:
        """Write the final catalog and return its path."""
        self.output_path.mkdir(parents=True, exist_ok=True)
        path = self.output_path / f"scraped_data_{pincode}_{int(time.time() * 1000)}.json"
        with open(path, "w", encoding="utf-8") as f:
            json.dump([record.to_dict() for record in records], f, indent=2)
        logger.info(f"Final data saved to: {path}")
        return path

    def cleanup(self) -> List[Path]:
        """Delete temporary dump files; returns what was removed."""
        removed: List[Path] = []
        if not self.dump_path.exists():
            return removed

        try:
            for path in self.dump_path.iterdir():
                name = path.name
                is_temp = name in TEMP_FILE_NAMES or (
                    name.startswith(TEMP_FILE_PREFIXES) and name.endswith(".json")
                )
                if is_temp and path.is_file():
                    path.unlink()
                    removed.append(path)
                    logger.info(f"Deleted temp file: {name}")
        except OSError as e:
            logger.error(f"Error during file cleanup: {e}")

        return removed
