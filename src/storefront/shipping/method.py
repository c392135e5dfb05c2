"""ShippingMethod aggregate and rate-type parameters.

A method belongs to one zone and optionally to one carrier. Its rate type
decides which parameters apply:

* ``FLAT``: ``flat_rate``;
* ``FREE``: optional ``free_shipping_threshold`` on the cart subtotal;
* ``PRICE_BASED``: ``price_rates``, JSON ``[{"min_price": 0, "rate": 500}, ...]``;
* ``WEIGHT_BASED``: ``weight_rates``, JSON ``[{"min_weight": 0, "rate": 500}, ...]``.

Amounts are cents, weights are grams.
"""

import json
from dataclasses import dataclass
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, Identifier, Integer, String, Text

from storefront.domain import storefront


class RateType(Enum):
    FLAT = "FLAT"
    FREE = "FREE"
    PRICE_BASED = "PRICE_BASED"
    WEIGHT_BASED = "WEIGHT_BASED"


class RateContextField(Enum):
    SUBTOTAL = "subtotal"
    WEIGHT = "weight"


@dataclass(frozen=True)
class RateTier:
    lower_bound: int
    rate: int


def parse_tiers(raw, bound_key):
    """Parse a JSON tier list into RateTiers ordered by ascending lower bound."""
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        raise ValidationError({bound_key: ["Rate tiers must be valid JSON"]}) from None
    if not isinstance(data, list):
        raise ValidationError({bound_key: ["Rate tiers must be a JSON array"]})

    tiers = []
    for entry in data:
        try:
            lower_bound = int(entry[bound_key])
            rate = int(entry["rate"])
        except (KeyError, TypeError, ValueError):
            raise ValidationError({bound_key: [f"Each tier needs integer '{bound_key}' and 'rate'"]}) from None
        if lower_bound < 0 or rate < 0:
            raise ValidationError({bound_key: ["Tier bounds and rates cannot be negative"]})
        tiers.append(RateTier(lower_bound=lower_bound, rate=rate))

    tiers.sort(key=lambda t: t.lower_bound)
    bounds = [t.lower_bound for t in tiers]
    if len(bounds) != len(set(bounds)):
        raise ValidationError({bound_key: ["Two tiers cannot share the same lower bound"]})
    return tiers


def rate_for_value(tiers, value):
    """Rate of the tier with the greatest lower bound not above ``value``.

    Lower bounds are inclusive. A value beyond every tier uses the highest
    tier; a value below the lowest bound matches nothing and returns None.
    """
    matched = None
    for tier in tiers:
        if tier.lower_bound <= value:
            matched = tier
        else:
            break
    return matched.rate if matched else None


def dump_tiers(tiers, bound_key):
    return json.dumps([{bound_key: lower, "rate": rate} for lower, rate in tiers])


@storefront.aggregate
class ShippingMethod:
    zone_id = Identifier(required=True)
    carrier_id = Identifier()
    name = String(required=True, max_length=100)
    description = Text()
    rate_type = String(choices=RateType, default=RateType.FLAT.value)
    flat_rate = Integer(min_value=0)
    free_shipping_threshold = Integer(min_value=0)
    price_rates = Text()
    weight_rates = Text()
    estimated_days = Integer(min_value=0)
    is_active = Boolean(default=True)
    display_order = Integer(default=0)

    @invariant.post
    def rate_parameters_must_match_rate_type(self):
        rate_type = RateType(self.rate_type)
        if rate_type == RateType.FLAT and self.flat_rate is None:
            raise ValidationError({"flat_rate": ["Flat-rate methods need a flat rate"]})
        if rate_type == RateType.PRICE_BASED and not parse_tiers(self.price_rates, "min_price"):
            raise ValidationError({"price_rates": ["Price-based methods need at least one price tier"]})
        if rate_type == RateType.WEIGHT_BASED and not parse_tiers(self.weight_rates, "min_weight"):
            raise ValidationError({"weight_rates": ["Weight-based methods need at least one weight tier"]})

    @classmethod
    def create(
        cls,
        zone_id,
        name,
        rate_type,
        flat_rate=None,
        free_shipping_threshold=None,
        price_tiers=None,
        weight_tiers=None,
        carrier_id=None,
        estimated_days=None,
        is_active=True,
        display_order=0,
        description=None,
    ):
        """Build a method; tiers are given as ``(lower_bound, rate)`` pairs."""
        return cls(
            zone_id=zone_id,
            carrier_id=carrier_id,
            name=name,
            description=description,
            rate_type=RateType(rate_type).value,
            flat_rate=flat_rate,
            free_shipping_threshold=free_shipping_threshold,
            price_rates=dump_tiers(price_tiers, "min_price") if price_tiers else None,
            weight_rates=dump_tiers(weight_tiers, "min_weight") if weight_tiers else None,
            estimated_days=estimated_days,
            is_active=is_active,
            display_order=display_order,
        )

    @property
    def price_tiers(self) -> list[RateTier]:
        return parse_tiers(self.price_rates, "min_price")

    @property
    def weight_tiers(self) -> list[RateTier]:
        return parse_tiers(self.weight_rates, "min_weight")

    @property
    def required_context(self) -> frozenset:
        """The cart facts this method needs before it can be priced."""
        rate_type = RateType(self.rate_type)
        if rate_type == RateType.PRICE_BASED:
            return frozenset({RateContextField.SUBTOTAL})
        if rate_type == RateType.WEIGHT_BASED:
            return frozenset({RateContextField.WEIGHT})
        if rate_type == RateType.FREE and self.free_shipping_threshold is not None:
            return frozenset({RateContextField.SUBTOTAL})
        return frozenset()

    def deactivate(self):
        self.is_active = False
