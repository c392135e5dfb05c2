"""Repositories for shipping zones, methods, and carriers."""

from protean.core.repository import BaseRepository

from storefront.domain import storefront
from storefront.shipping.method import ShippingMethod
from storefront.shipping.zone import Carrier, ShippingZone


@storefront.repository(part_of=ShippingZone)
class ShippingZoneRepository(BaseRepository):
    def active_zones(self) -> list[ShippingZone]:
        zones = self._dao.query.filter(is_active=True).all().items
        return sorted(zones, key=lambda z: (z.display_order or 0, z.name))


@storefront.repository(part_of=ShippingMethod)
class ShippingMethodRepository(BaseRepository):
    def active_for_zone(self, zone_id) -> list[ShippingMethod]:
        return self._dao.query.filter(zone_id=str(zone_id), is_active=True).all().items


@storefront.repository(part_of=Carrier)
class CarrierRepository(BaseRepository):
    def active_carriers(self) -> list[Carrier]:
        carriers = self._dao.query.filter(is_active=True).all().items
        return sorted(carriers, key=lambda c: (c.display_order or 0, c.name))
