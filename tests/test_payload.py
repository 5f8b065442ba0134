"""
Tests for cart payload normalization
"""

import json
from decimal import Decimal

import pytest

from cart_session.domain.errors import PayloadCorrupt
from cart_session.domain.payload import LineItem, decode_payload, encode_payload, line_key_for, normalize_payload


class TestLineKey:
    def test_deterministic(self):
        assert line_key_for(42) == line_key_for(42, 0, {})
        assert len(line_key_for(42)) == 32

    def test_option_order_does_not_matter(self):
        assert line_key_for(42, 0, {"size": "M", "color": "red"}) == line_key_for(42, 0, {"color": "red", "size": "M"})

    def test_identity_parts_change_key(self):
        keys = {
            line_key_for(42),
            line_key_for(43),
            line_key_for(42, 5),
            line_key_for(42, 0, {"size": "M"}),
        }
        assert len(keys) == 4

    def test_item_property(self):
        item = LineItem(product_id=42, quantity=1, options={"size": "M"})
        assert item.line_key == line_key_for(42, 0, {"size": "M"})


class TestDecode:
    @pytest.mark.parametrize("raw", [None, "", "{}", "[]", "null"])
    def test_empty(self, raw):
        assert decode_payload(raw) == {}

    @pytest.mark.parametrize("raw", ["{not json", "42", '"text"', "true"])
    def test_corrupt(self, raw):
        with pytest.raises(PayloadCorrupt):
            decode_payload(raw)

    def test_legacy_woo_shape(self):
        raw = json.dumps({
            "abc123": {
                "key": "abc123",
                "product_id": 42,
                "variation_id": 0,
                "variation": {"pa_size": "XL"},
                "quantity": "2",
                "line_total": 10.0,
                "line_subtotal": 10.0,
                "data": {"id": 42},
            }
        })

        payload = decode_payload(raw)
        key = line_key_for(42, 0, {"pa_size": "XL"})

        assert list(payload) == [key]
        assert payload[key].quantity == 2
        assert payload[key].options == {"pa_size": "XL"}

    def test_list_form(self):
        payload = normalize_payload([{"product_id": 7, "quantity": 1}, {"product_id": 42, "quantity": 3}])
        assert [item.product_id for item in payload.values()] == [7, 42]

    def test_bad_lines_are_dropped(self):
        payload = normalize_payload({
            "a": {"product_id": 42, "quantity": 0},
            "b": {"product_id": 7, "quantity": -1},
            "c": {"quantity": 1},
            "d": "garbage",
            "e": {"product_id": 7, "quantity": "lots"},
            "f": {"product_id": 7, "quantity": 2},
        })
        assert len(payload) == 1
        assert next(iter(payload.values())).quantity == 2

    def test_overflowing_quantity_drops_line(self):
        payload = decode_payload('{"a":{"product_id":42,"quantity":1e999},"b":{"product_id":7,"quantity":1}}')
        assert list(payload) == [line_key_for(7)]

    @pytest.mark.parametrize("quantity", [float("inf"), float("-inf"), float("nan")])
    def test_non_finite_quantity_drops_line(self, quantity):
        assert normalize_payload([{"product_id": 42, "quantity": quantity}]) == {}

    @pytest.mark.parametrize("raw", [
        '{"a":{"product_id":42,"quantity":Infinity}}',
        '{"a":{"product_id":42,"quantity":NaN}}',
    ])
    def test_non_json_constants_are_corrupt(self, raw):
        with pytest.raises(PayloadCorrupt):
            decode_payload(raw)

    def test_duplicate_lines_merge(self):
        payload = normalize_payload([{"product_id": 42, "quantity": 1}, {"product_id": 42, "quantity": 4}])
        assert len(payload) == 1
        assert payload[line_key_for(42)].quantity == 5

    def test_missing_quantity_defaults_to_one(self):
        payload = normalize_payload([{"product_id": 42}])
        assert payload[line_key_for(42)].quantity == 1


class TestEncode:
    def test_keeps_order_and_price(self):
        payload = normalize_payload([
            {"product_id": 7, "quantity": 1, "unit_price": "49.50"},
            {"product_id": 42, "quantity": 2},
        ])

        restored = decode_payload(encode_payload(payload))

        assert list(restored) == list(payload)
        assert restored[line_key_for(7)].unit_price == Decimal("49.50")

    def test_empty_payload_is_object(self):
        assert encode_payload({}) == "{}"
