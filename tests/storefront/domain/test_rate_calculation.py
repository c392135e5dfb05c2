"""Tests for calculate_rate."""

import pytest
from storefront.shipping.method import RateContextField, ShippingMethod
from storefront.shipping.rates import MissingRateContext, RateContext, calculate_rate


def _method(**kwargs):
    return ShippingMethod.create(zone_id="zone-1", name="Method", **kwargs)


class TestFlat:
    def test_independent_of_cart(self):
        method = _method(rate_type="FLAT", flat_rate=690)
        assert calculate_rate(method, RateContext()) == 690
        assert calculate_rate(method, RateContext(subtotal=100000, total_weight=20000)) == 690


class TestFree:
    def test_threshold_reached(self):
        method = _method(rate_type="FREE", free_shipping_threshold=5000)
        assert calculate_rate(method, RateContext(subtotal=5000)) == 0

    def test_below_threshold_is_not_offered(self):
        method = _method(rate_type="FREE", free_shipping_threshold=5000)
        assert calculate_rate(method, RateContext(subtotal=4999)) is None

    def test_without_threshold_always_free(self):
        method = _method(rate_type="FREE")
        assert calculate_rate(method, RateContext()) == 0

    def test_threshold_needs_subtotal(self):
        method = _method(rate_type="FREE", free_shipping_threshold=5000)
        with pytest.raises(MissingRateContext) as exc:
            calculate_rate(method, RateContext(total_weight=1000))
        assert exc.value.missing == {RateContextField.SUBTOTAL}


class TestPriceBased:
    def test_tier_by_subtotal(self):
        method = _method(rate_type="PRICE_BASED", price_tiers=[(0, 990), (5000, 490), (10000, 0)])
        assert calculate_rate(method, RateContext(subtotal=2000)) == 990
        assert calculate_rate(method, RateContext(subtotal=5000)) == 490
        assert calculate_rate(method, RateContext(subtotal=25000)) == 0


class TestWeightBased:
    def test_tier_by_total_weight(self):
        method = _method(rate_type="WEIGHT_BASED", weight_tiers=[(0, 500), (1000, 800)])
        assert calculate_rate(method, RateContext(total_weight=1200)) == 800
        assert calculate_rate(method, RateContext(total_weight=400)) == 500

    def test_needs_weight(self):
        method = _method(rate_type="WEIGHT_BASED", weight_tiers=[(0, 500)])
        with pytest.raises(MissingRateContext):
            calculate_rate(method, RateContext(subtotal=1000))
