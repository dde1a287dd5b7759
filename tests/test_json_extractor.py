"""Tests for the structural product extractor."""

from harvester.ingest.json_extractor import (
    extract_candidates,
    extract_next_data,
    is_product_shaped,
    is_truthy,
)


def _product(pid, **extra):
    item = {"productId": pid, "displayName": f"Item {pid}", "price": {"price": 1000}}
    item.update(extra)
    return item


class TestShapePredicate:
    """Test which objects count as product candidates."""

    def test_camel_case_with_price(self):
        assert is_product_shaped(_product("1"))

    def test_snake_case_with_variations(self):
        item = {"product_id": "9", "name": "Bread", "variations": [{"price": {"price": 4000}}]}
        assert is_product_shaped(item)

    def test_empty_variations_do_not_qualify(self):
        item = {"product_id": "9", "name": "Bread", "variations": []}
        assert not is_product_shaped(item)

    def test_missing_identifier_or_name(self):
        assert not is_product_shaped({"displayName": "X", "price": {"price": 1}})
        assert not is_product_shaped({"productId": "1", "price": {"price": 1}})

    def test_non_objects(self):
        assert not is_product_shaped([_product("1")])
        assert not is_product_shaped("productId")

    def test_truthiness_matches_payload_semantics(self):
        assert is_truthy({})
        assert is_truthy([])
        assert not is_truthy("")
        assert not is_truthy(0)
        assert not is_truthy(None)
        assert not is_truthy(False)


class TestExtractCandidates:
    """Test depth-first candidate search."""

    def test_finds_every_product_regardless_of_depth(self):
        payload = {
            "data": {
                "widgets": [
                    {"items": [_product("1"), _product("2")]},
                    {"deep": {"deeper": {"deepest": [[_product("3")]]}}},
                ],
                "meta": {"count": 3, "title": "Dairy"},
            },
            "banner": _product("4"),
        }

        found = extract_candidates(payload)

        assert sorted(item["productId"] for item in found) == ["1", "2", "3", "4"]

    def test_array_order_is_preserved(self):
        payload = [_product(str(i)) for i in range(5)]

        found = extract_candidates(payload)

        assert [item["productId"] for item in found] == ["0", "1", "2", "3", "4"]

    def test_matched_nodes_are_not_descended(self):
        outer = _product("outer", related=[_product("inner")])

        found = extract_candidates({"card": outer})

        assert len(found) == 1
        assert found[0] is outer

    def test_same_shape_at_two_positions_counts_twice(self):
        payload = {"a": [_product("1")], "b": [_product("1")]}

        assert len(extract_candidates(payload)) == 2

    def test_non_container_root_returns_empty(self):
        assert extract_candidates(None) == []
        assert extract_candidates("text") == []
        assert extract_candidates(42) == []

    def test_tolerates_heterogeneous_values(self):
        payload = {"a": None, "b": [1, "x", None, True, {"c": _product("7")}], "d": 3.5}

        found = extract_candidates(payload)

        assert [item["productId"] for item in found] == ["7"]

    def test_deep_nesting_does_not_hit_recursion_limit(self):
        node = _product("bottom")
        for _ in range(5000):
            node = {"child": node}

        assert len(extract_candidates(node)) == 1


def test_extract_next_data():
    html = (
        '<html><body><script id="__NEXT_DATA__" type="application/json">'
        '{"props": {"pageProps": {"items": []}}}'
        "</script></body></html>"
    )

    data = extract_next_data(html)

    assert data == {"props": {"pageProps": {"items": []}}}


def test_extract_next_data_missing_or_invalid():
    assert extract_next_data("<html><body></body></html>") is None
    assert extract_next_data('<script id="__NEXT_DATA__">{not json</script>') is None
