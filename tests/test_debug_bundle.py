"""Tests for debug dumps, output files and cleanup."""

import json
from decimal import Decimal

from harvester.ingest.base import CatalogRecord
from harvester.ingest.debug_bundle import DebugBundleWriter


class TestDebugBundleWriter:
    def test_disabled_writer_skips_dumps(self, tmp_path):
        writer = DebugBundleWriter(tmp_path / "debug", tmp_path / "out", enabled=False)

        assert writer.write_dump("latest_filter_api.json", {"a": 1}) is None
        assert not (tmp_path / "debug").exists()

    def test_write_output(self, tmp_path):
        writer = DebugBundleWriter(tmp_path / "debug", tmp_path / "out", enabled=True)
        record = CatalogRecord(product_id="1", product_name="Milk", current_price=Decimal("28.5"), ranking=1)

        path = writer.write_output([record], "560001")

        assert path.name.startswith("scraped_data_560001_")
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data[0]["productId"] == "1"
        assert data[0]["currentPrice"] == 28.5
        assert data[0]["ranking"] == 1

    def test_cleanup_removes_only_temp_files(self, tmp_path):
        writer = DebugBundleWriter(tmp_path / "debug", tmp_path / "out", enabled=True)
        writer.write_dump("latest_filter_api.json", {})
        writer.write_dump("initial_state_dump.json", {})
        writer.write_dump("api_item_widgets_x_1.json", {})
        writer.write_dump("keep_me.json", {})

        removed = writer.cleanup()

        assert sorted(p.name for p in removed) == [
            "api_item_widgets_x_1.json",
            "initial_state_dump.json",
            "latest_filter_api.json",
        ]
        assert (tmp_path / "debug" / "keep_me.json").exists()

    def test_cleanup_without_directory(self, tmp_path):
        writer = DebugBundleWriter(tmp_path / "missing", tmp_path / "out")

        assert writer.cleanup() == []
