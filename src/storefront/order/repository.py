"""Order repository with order-number lookups."""

from protean.core.repository import BaseRepository
from protean.exceptions import ValidationError

from storefront.domain import storefront
from storefront.exceptions import OrderNumberConflict
from storefront.order.order import Order


@storefront.repository(part_of=Order)
class OrderRepository(BaseRepository):
    def find_by_order_number(self, order_number) -> Order | None:
        if not order_number:
            return None
        orders = self._dao.query.filter(order_number=order_number).all().items
        return orders[0] if orders else None

    def _latest(self) -> Order | None:
        orders = self._dao.query.order_by("-sequence").limit(1).all().items
        return orders[0] if orders else None

    def latest_sequence(self) -> int | None:
        """The highest order sequence issued so far, or None for a fresh store."""
        latest = self._latest()
        return latest.sequence if latest else None

    def latest_order_number(self) -> str | None:
        latest = self._latest()
        return latest.order_number if latest else None

    def insert(self, order: Order) -> Order:
        """Persist a new order, raising OrderNumberConflict if its number is taken."""
        if self.find_by_order_number(order.order_number) is not None:
            raise OrderNumberConflict(order.order_number)
        try:
            return self.add(order)
        except ValidationError as exc:
            if {"order_number", "sequence"} & set(exc.messages):
                raise OrderNumberConflict(order.order_number) from exc
            raise
