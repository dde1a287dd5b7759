"""Tests for product card parsing."""

from decimal import Decimal

import pytest
from unittest.mock import AsyncMock, MagicMock

from harvester.ingest.dom_reader import DomReader, parse_card


class TestParseCard:
    def test_full_card(self):
        snapshot = {
            "text": "Ad\n12 MINS\nAmul Taaza Toned Milk\n500 ml\n₹28\n₹32\n13% OFF\nADD",
            "href": "/instamart/item/XYZ123?storeId=1",
            "image": "https://img/1.png",
        }

        record = parse_card(snapshot, rank=4)

        assert record.product_id == "XYZ123"
        assert record.product_name == "Amul Taaza Toned Milk"
        assert record.product_weight == "500 ml"
        assert record.current_price == Decimal("28")
        assert record.original_price == Decimal("32")
        assert record.discount_percentage == 13
        assert record.delivery_time == "12 MINS"
        assert record.is_ad is True
        assert record.ranking == 4
        assert record.product_url == "https://www.swiggy.com/instamart/item/XYZ123"

    def test_discount_computed_from_prices(self):
        record = parse_card({"text": "Bread\n₹35\n₹40"}, rank=1)

        assert record.discount_percentage == 13  # 12.5 rounds half-up

    def test_card_without_link_gets_positional_id(self):
        record = parse_card({"text": "Butter\n₹56\nSold Out"}, rank=7)

        assert record.product_id == "dom-7"
        assert record.product_url is None
        assert record.is_out_of_stock is True

    def test_nameless_card(self):
        assert parse_card({"text": "₹10\nADD"}, rank=1) is None
        assert parse_card({}, rank=1) is None


class TestDomReader:
    @pytest.mark.asyncio
    async def test_disabled_reader_skips_page(self):
        page = MagicMock()
        page.evaluate = AsyncMock()

        assert await DomReader(enabled=False).read(page) == []
        page.evaluate.assert_not_called()

    @pytest.mark.asyncio
    async def test_ranks_follow_card_order(self):
        page = MagicMock()
        page.evaluate = AsyncMock(return_value=[
            {"text": "Eggs\n₹60"},
            {"text": "₹10"},
            {"text": "Curd\n₹25"},
        ])

        records = await DomReader(enabled=True).read(page)

        assert [(r.product_name, r.ranking) for r in records] == [("Eggs", 1), ("Curd", 2)]

    @pytest.mark.asyncio
    async def test_evaluation_failure_yields_empty(self):
        page = MagicMock()
        page.evaluate = AsyncMock(side_effect=RuntimeError("Execution context was destroyed"))

        assert await DomReader(enabled=True).read(page) == []
