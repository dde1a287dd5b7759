"""Tests for DOM/API reconciliation."""

from decimal import Decimal

from harvester.ingest.base import CatalogRecord
from harvester.ingest.capture_store import CaptureStore
from harvester.ingest.reconciler import Reconciler, name_key


def _dom(name, rank, pid=None, price="0"):
    return CatalogRecord(
        product_id=pid or f"dom-{rank}",
        product_name=name,
        current_price=Decimal(price),
        ranking=rank,
        delivery_time="12 MINS",
    )


def _api(pid, name, price="10", image=None):
    return CatalogRecord(
        product_id=pid,
        product_name=name,
        current_price=Decimal(price),
        original_price=Decimal(price),
        product_image=image,
    )


def _store(*records):
    store = CaptureStore()
    store.observe(records)
    return store


class TestNameKey:
    def test_strips_case_and_punctuation(self):
        assert name_key("Amul Taaza, Milk (500 ml)") == "amultaazamilk500ml"

    def test_empty(self):
        assert name_key("") == ""
        assert name_key(None) == ""


class TestReconciler:
    """Merge ordering and overlay rules."""

    def setup_method(self):
        self.reconciler = Reconciler()

    def test_match_overlays_api_fields_and_keeps_dom_order(self):
        dom = [_dom("Amul Milk 500ml", 1), _dom("Bread", 2)]
        store = _store(_api("p1", "amul milk 500 ml", price="28", image="https://img/p1"))

        result = self.reconciler.reconcile(dom, store)

        assert [r.product_id for r in result.records] == ["p1", "dom-2"]
        merged = result.records[0]
        assert merged.current_price == Decimal("28")
        assert merged.product_image == "https://img/p1"
        assert merged.product_name == "amul milk 500 ml"
        assert merged.delivery_time == "12 MINS"
        assert merged.ranking == 1
        assert result.records[1].ranking == 2
        assert result.matched_count == 1
        assert result.dom_only_count == 1

    def test_unmatched_captured_records_are_appended(self):
        dom = [_dom("Amul Milk 500ml", 1)]
        store = _store(_api("p1", "Amul Milk 500ml"), _api("p2", "Paneer 200g"))

        result = self.reconciler.reconcile(dom, store)

        assert [r.product_id for r in result.records] == ["p1", "p2"]
        appended = result.records[1]
        assert appended.ranking == 2
        assert appended.product_url == "https://www.swiggy.com/instamart/item/p2"
        assert appended.platform == "instamart"
        assert result.appended_count == 1

    def test_api_only_run(self):
        store = _store(_api("a", "A"), _api("b", "B"), _api("c", "C"))

        result = self.reconciler.reconcile([], store, delivery_time_override="9 MINS")

        assert [r.ranking for r in result.records] == [1, 2, 3]
        assert all(r.delivery_time == "9 MINS" for r in result.records)
        assert result.count == 3

    def test_ranks_are_dense_and_ids_unique(self):
        dom = [_dom("Eggs", 1), _dom("Eggs", 2), _dom("Butter", 3)]
        store = _store(_api("e1", "eggs"), _api("b1", "Butter"), _api("x", "Extra"))

        result = self.reconciler.reconcile(dom, store)

        ids = [r.product_id for r in result.records]
        assert ids == ["e1", "b1", "x"]
        assert [r.ranking for r in result.records] == list(range(1, len(ids) + 1))

    def test_delivery_override_applies_to_dom_only_records(self):
        dom = [_dom("Unknown Thing", 1)]

        result = self.reconciler.reconcile(dom, CaptureStore(), delivery_time_override="8 MINS")

        assert result.records[0].delivery_time == "8 MINS"

    def test_last_captured_record_wins_name_collision(self):
        dom = [_dom("Curd", 1)]
        store = _store(_api("c1", "Curd", price="20"), _api("c2", "curd", price="25"))

        result = self.reconciler.reconcile(dom, store)

        assert result.records[0].product_id == "c2"
        # c1 is unreachable by name and therefore appended
        assert [r.product_id for r in result.records] == ["c2", "c1"]

    def test_empty_names_never_match(self):
        dom = [_dom("", 1)]
        store = _store(_api("n1", "!!!"))

        result = self.reconciler.reconcile(dom, store)

        assert [r.product_id for r in result.records] == ["dom-1", "n1"]

    def test_none_api_fields_do_not_erase_dom_values(self):
        dom = [CatalogRecord(product_id="dom-1", product_name="Jam", product_image="https://dom/img", ranking=1)]
        store = _store(_api("j1", "Jam", image=None))

        result = self.reconciler.reconcile(dom, store)

        assert result.records[0].product_image == "https://dom/img"
        assert result.records[0].product_id == "j1"
