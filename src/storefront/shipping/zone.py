"""ShippingZone and Carrier aggregates.

A zone is a named set of ISO-3166 alpha-2 country codes. A zone with no
countries is a wildcard and matches every destination. Zones are not
mutually exclusive: a country may fall in a country-specific zone and a
continental one at the same time.
"""

import json
import re

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, Integer, String, Text

from storefront.domain import storefront

_COUNTRY_CODE = re.compile(r"^[A-Z]{2}$")


def _load_codes(raw):
    return json.loads(raw) if raw else []


def _invalid_codes(codes):
    return [c for c in codes if not isinstance(c, str) or not _COUNTRY_CODE.match(c)]


@storefront.aggregate
class ShippingZone:
    name = String(required=True, max_length=100)
    description = Text()
    countries = Text()  # JSON array of ISO codes; empty means every country
    is_active = Boolean(default=True)
    display_order = Integer(default=0)

    @invariant.post
    def countries_must_be_iso_codes(self):
        try:
            codes = _load_codes(self.countries)
        except (json.JSONDecodeError, TypeError):
            raise ValidationError({"countries": ["Countries must be a JSON array"]}) from None
        if not isinstance(codes, list):
            raise ValidationError({"countries": ["Countries must be a JSON array"]})
        invalid = _invalid_codes(codes)
        if invalid:
            raise ValidationError({"countries": [f"Invalid country codes: {', '.join(map(str, invalid))}"]})

    @classmethod
    def create(cls, name, countries=(), is_active=True, display_order=0, description=None):
        return cls(
            name=name,
            description=description,
            countries=json.dumps(sorted({c.upper() for c in countries})),
            is_active=is_active,
            display_order=display_order,
        )

    @property
    def country_codes(self) -> list[str]:
        return _load_codes(self.countries)

    @property
    def is_wildcard(self) -> bool:
        return not self.country_codes

    def matches(self, country: str) -> bool:
        return self.is_wildcard or country in self.country_codes

    def set_countries(self, countries):
        self.countries = json.dumps(sorted({c.upper() for c in countries}))

    def deactivate(self):
        self.is_active = False


@storefront.aggregate
class Carrier:
    """An external shipping provider.

    ``api_provider`` names the adapter used to book shipments (for example
    ``mondial_relay``); carriers without API integration are display-only.
    """

    name = String(required=True, max_length=100)
    display_name = String(max_length=100)
    api_provider = String(max_length=50)
    has_api_integration = Boolean(default=False)
    requires_pickup_point = Boolean(default=False)
    available_countries = Text()  # JSON array of ISO codes
    available_zone_ids = Text()  # JSON array of zone ids
    is_active = Boolean(default=True)
    display_order = Integer(default=0)

    @invariant.post
    def available_countries_must_be_iso_codes(self):
        try:
            codes = _load_codes(self.available_countries)
        except (json.JSONDecodeError, TypeError):
            raise ValidationError({"available_countries": ["Available countries must be a JSON array"]}) from None
        if _invalid_codes(codes):
            raise ValidationError({"available_countries": ["Available countries must be ISO alpha-2 codes"]})

    @classmethod
    def create(
        cls,
        name,
        display_name=None,
        api_provider=None,
        has_api_integration=False,
        requires_pickup_point=False,
        available_countries=(),
        available_zone_ids=(),
        is_active=True,
        display_order=0,
    ):
        return cls(
            name=name,
            display_name=display_name or name,
            api_provider=api_provider,
            has_api_integration=has_api_integration,
            requires_pickup_point=requires_pickup_point,
            available_countries=json.dumps([c.upper() for c in available_countries]),
            available_zone_ids=json.dumps([str(z) for z in available_zone_ids]),
            is_active=is_active,
            display_order=display_order,
        )

    def is_available_for(self, country: str, zone_ids) -> bool:
        if country in _load_codes(self.available_countries):
            return True
        zone_ids = {str(z) for z in zone_ids}
        return any(z in zone_ids for z in _load_codes(self.available_zone_ids))
