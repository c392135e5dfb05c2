"""Shipping rate resolution.

Given a destination country, the engine finds every active zone covering it,
collects the active methods of those zones and prices each one against the
cart facts the caller supplies. Methods that need a cart fact the caller does
not have are left out unless the caller asks for an unpriced listing.
"""

import re
from dataclasses import dataclass, field

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from storefront.shipping.method import (
    RateContextField,
    RateType,
    ShippingMethod,
    rate_for_value,
)
from storefront.shipping.zone import Carrier, ShippingZone

logger = structlog.get_logger(__name__)

_COUNTRY = re.compile(r"^[A-Za-z]{2}$")


def normalize_country(code) -> str:
    """Upper-case a two-letter country code or raise ValidationError."""
    if not isinstance(code, str) or not _COUNTRY.match(code.strip()):
        raise ValidationError({"country": ["Country must be a 2-letter ISO code"]})
    return code.strip().upper()


@dataclass(frozen=True)
class RateQuery:
    country: str
    include_unpriced: bool = False

    def __post_init__(self):
        object.__setattr__(self, "country", normalize_country(self.country))


@dataclass(frozen=True)
class RateContext:
    """Cart facts available for pricing. None means unknown."""

    subtotal: int | None = None
    total_weight: int | None = None

    def provides(self) -> frozenset:
        provided = set()
        if self.subtotal is not None:
            provided.add(RateContextField.SUBTOTAL)
        if self.total_weight is not None:
            provided.add(RateContextField.WEIGHT)
        return frozenset(provided)


class MissingRateContext(ValidationError):
    def __init__(self, method_name, missing):
        self.missing = frozenset(missing)
        names = ", ".join(sorted(f.value for f in self.missing))
        super().__init__({"context": [f"Method '{method_name}' needs {names} to be priced"]})


@dataclass(frozen=True)
class ShippingQuote:
    method_id: str
    name: str
    rate_type: str
    cost: int | None
    zone_id: str
    display_order: int = 0
    description: str | None = None
    estimated_days: int | None = None
    carrier_id: str | None = None
    carrier_name: str | None = None
    requires_pickup_point: bool = False
    required_context: frozenset = field(default_factory=frozenset)

    @property
    def is_priced(self) -> bool:
        return self.cost is not None


def calculate_rate(method: ShippingMethod, context: RateContext) -> int | None:
    """Cost of ``method`` in cents, or None when the method is not offered.

    Raises MissingRateContext when the method needs a cart fact that
    ``context`` does not carry.
    """
    missing = method.required_context - context.provides()
    if missing:
        raise MissingRateContext(method.name, missing)

    rate_type = RateType(method.rate_type)
    if rate_type == RateType.FLAT:
        return method.flat_rate
    if rate_type == RateType.FREE:
        threshold = method.free_shipping_threshold
        if threshold is None or context.subtotal >= threshold:
            return 0
        return None
    if rate_type == RateType.PRICE_BASED:
        return rate_for_value(method.price_tiers, context.subtotal)
    return rate_for_value(method.weight_tiers, context.total_weight)


class ShippingRateEngine:
    def __init__(self, zones=None, methods=None, carriers=None):
        self.zones = zones if zones is not None else current_domain.repository_for(ShippingZone)
        self.methods = methods if methods is not None else current_domain.repository_for(ShippingMethod)
        self.carriers = carriers if carriers is not None else current_domain.repository_for(Carrier)

    normalize_country = staticmethod(normalize_country)

    def matching_zones(self, country) -> list[ShippingZone]:
        country = normalize_country(country)
        return [zone for zone in self.zones.active_zones() if zone.matches(country)]

    def _candidate_methods(self, zones) -> list[ShippingMethod]:
        seen = {}
        for zone in zones:
            for method in self.methods.active_for_zone(zone.id):
                seen.setdefault(str(method.id), method)
        return sorted(seen.values(), key=lambda m: (m.display_order or 0, m.name))

    def required_context(self, country) -> frozenset:
        """Union of the cart facts needed to price every candidate for ``country``."""
        needed = set()
        for method in self._candidate_methods(self.matching_zones(country)):
            needed |= method.required_context
        return frozenset(needed)

    def _carrier_lookup(self):
        return {str(c.id): c for c in self.carriers.active_carriers()}

    def quote(self, query: RateQuery, context: RateContext | None = None) -> list[ShippingQuote]:
        context = context or RateContext()
        zones = self.matching_zones(query.country)
        carriers = self._carrier_lookup()

        quotes = []
        for method in self._candidate_methods(zones):
            carrier = carriers.get(str(method.carrier_id)) if method.carrier_id else None
            if method.carrier_id and carrier is None:
                # Carrier inactive or deleted
                continue

            try:
                cost = calculate_rate(method, context)
            except MissingRateContext:
                if not query.include_unpriced:
                    continue
                cost = None
            else:
                if cost is None:
                    continue

            quotes.append(
                ShippingQuote(
                    method_id=str(method.id),
                    name=method.name,
                    rate_type=method.rate_type,
                    cost=cost,
                    zone_id=str(method.zone_id),
                    display_order=method.display_order or 0,
                    description=method.description,
                    estimated_days=method.estimated_days,
                    carrier_id=str(carrier.id) if carrier else None,
                    carrier_name=carrier.display_name if carrier else None,
                    requires_pickup_point=bool(carrier and carrier.requires_pickup_point),
                    required_context=method.required_context,
                )
            )

        logger.debug(
            "Shipping methods quoted",
            country=query.country,
            zones=len(zones),
            quotes=len(quotes),
        )
        return quotes

    def cost_for_method(self, method_id, context: RateContext) -> int:
        """Price one chosen method.

        Raises ObjectNotFoundError for an unknown or inactive method and
        ValidationError when the method is not offered for this cart.
        """
        method = self.methods.get(method_id)
        if not method.is_active:
            raise ObjectNotFoundError(f"Shipping method {method_id} is not available")

        cost = calculate_rate(method, context)
        if cost is None:
            raise ValidationError({"shipping_method_id": [f"'{method.name}' is not offered for this cart"]})
        return cost

    def carriers_for_country(self, country) -> list[Carrier]:
        country = normalize_country(country)
        zone_ids = [zone.id for zone in self.matching_zones(country)]
        return [c for c in self.carriers.active_carriers() if c.is_available_for(country, zone_ids)]
