"""Domain events for the Order aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from storefront.domain import storefront


@storefront.event(part_of="Order")
class OrderPlaced:
    """An order was created from a paid cart."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    user_id = Identifier()
    subtotal = Integer(required=True)
    shipping_cost = Integer(required=True)
    total = Integer(required=True)
    placed_at = DateTime(required=True)


@storefront.event(part_of="Order")
class ShipmentBooked:
    """The carrier accepted a shipment for the order."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    shipment_number = String(required=True)
    carrier = String()
    booked_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderDelivered:
    __version__ = 1

    order_id = Identifier(required=True)
    delivered_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderCancelled:
    __version__ = 1

    order_id = Identifier(required=True)
    reason = String()
    cancelled_at = DateTime(required=True)
