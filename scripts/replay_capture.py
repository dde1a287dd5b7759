#!/usr/bin/env python3
"""
Replay saved API payload dumps through the capture pipeline.

Loads each JSON file, extracts and normalizes its products into one
CaptureStore, reconciles without DOM cards and prints the result.

Usage:
    python scripts/replay_capture.py data/debug/latest_filter_api.json [more.json ...]
    python scripts/replay_capture.py --overwrite dump.json   # treat dumps as authoritative
"""

import argparse
import json
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from harvester.ingest.capture_store import CaptureStore
from harvester.ingest.reconciler import reconciler
from harvester.normalize.processor import process_payload


def replay(paths, overwrite: bool = False) -> int:
    store = CaptureStore()

    for path in paths:
        try:
            with open(path, "r", encoding="utf-8") as f:
                payload = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            print(f"Skipping {path}: {e}", file=sys.stderr)
            continue

        records = process_payload(payload)
        written = store.observe(records, overwrite=overwrite)
        print(f"{path}: {len(records)} products, {written} stored", file=sys.stderr)

    result = reconciler.reconcile([], store)
    print(json.dumps([record.to_dict() for record in result.records], indent=2))
    print(f"Total: {result.count} products", file=sys.stderr)
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("dumps", nargs="+", type=Path, help="JSON payload dump files")
    parser.add_argument("--overwrite", action="store_true", help="Use always-set insertion")
    args = parser.parse_args()
    return replay(args.dumps, overwrite=args.overwrite)


if __name__ == "__main__":
    sys.exit(main())
