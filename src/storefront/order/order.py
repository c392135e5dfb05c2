"""Order aggregate: an immutable snapshot of a paid cart.

Line prices and weights are copied when the order is placed and never read
back from the catalogue. After placement only the status and the shipment
fields change.

Status flow:
    PENDING → CONFIRMED → SHIPPED → DELIVERED
    PENDING/CONFIRMED → CANCELLED
"""

import re
from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, HasMany, Identifier, Integer, String

from storefront.domain import storefront
from storefront.order.events import OrderCancelled, OrderDelivered, OrderPlaced, ShipmentBooked

DEFAULT_ITEM_WEIGHT_GRAMS = 500

_TRAILING_DIGITS = re.compile(r"(\d+)$")


class OrderStatus(Enum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"

    @property
    def label(self) -> str:
        return {
            "PENDING": "Awaiting payment",
            "CONFIRMED": "Confirmed",
            "SHIPPED": "Shipped",
            "DELIVERED": "Delivered",
            "CANCELLED": "Cancelled",
        }[self.name]


@storefront.entity(part_of="Order")
class OrderItem:
    product_id = Identifier(required=True)
    variant_id = Identifier()
    product_name = String(required=True, max_length=255)
    quantity = Integer(required=True, min_value=1)
    unit_price = Integer(required=True, min_value=0)
    unit_weight = Integer(min_value=0)

    @property
    def line_total(self) -> int:
        return self.unit_price * self.quantity


@storefront.aggregate
class Order:
    order_number = String(required=True, max_length=32, unique=True)
    sequence = Integer(required=True, min_value=1, unique=True)  # Numeric part of order_number
    status = String(choices=OrderStatus, default=OrderStatus.CONFIRMED.value)
    user_id = Identifier()
    email = String(max_length=254)
    items = HasMany(OrderItem)

    subtotal = Integer(required=True, min_value=0)
    shipping_cost = Integer(default=0, min_value=0)
    total = Integer(required=True, min_value=0)

    shipping_name = String(max_length=255)
    shipping_street = String(max_length=255)
    shipping_city = String(max_length=100)
    shipping_state = String(max_length=100)
    shipping_postal = String(max_length=20)
    shipping_country = String(max_length=2)
    shipping_phone = String(max_length=30)

    shipping_method_id = Identifier()
    shipping_method_name = String(max_length=100)
    carrier_id = Identifier()
    carrier_name = String(max_length=100)
    pickup_point_id = String(max_length=50)
    pickup_point_name = String(max_length=255)

    shipment_number = String(max_length=50)
    shipment_booked_at = DateTime()
    label_fetched_at = DateTime()

    placed_at = DateTime()
    delivered_at = DateTime()

    @classmethod
    def place(
        cls,
        order_number,
        lines,
        shipping_cost=0,
        address=None,
        shipping=None,
        user_id=None,
        email=None,
        sequence=None,
    ):
        """Snapshot ``lines`` into a confirmed order.

        ``lines`` are CheckoutLine-like objects. ``address`` and ``shipping``
        are dicts of the shipping_* and method/carrier/pickup fields.
        ``sequence`` defaults to the trailing digits of ``order_number``.
        """
        if not lines:
            raise ValidationError({"items": ["An order needs at least one item"]})

        items = [
            OrderItem(
                product_id=line.product_id,
                variant_id=line.variant_id,
                product_name=line.product_name,
                quantity=line.quantity,
                unit_price=line.unit_price,
                unit_weight=line.unit_weight,
            )
            for line in lines
        ]
        subtotal = sum(item.line_total for item in items)
        now = datetime.now(UTC)

        address = address or {}
        shipping = shipping or {}
        if sequence is None:
            match = _TRAILING_DIGITS.search(order_number or "")
            sequence = int(match.group(1)) if match else None

        order = cls(
            order_number=order_number,
            sequence=sequence,
            status=OrderStatus.CONFIRMED.value,
            user_id=user_id,
            email=email,
            items=items,
            subtotal=subtotal,
            shipping_cost=shipping_cost,
            total=subtotal + shipping_cost,
            placed_at=now,
            **{f"shipping_{key}": value for key, value in address.items()},
            **shipping,
        )
        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_number=order.order_number,
                user_id=user_id,
                subtotal=subtotal,
                shipping_cost=shipping_cost,
                total=order.total,
                placed_at=now,
            )
        )
        return order

    @property
    def has_shipment(self) -> bool:
        return bool(self.shipment_number)

    @property
    def status_label(self) -> str:
        return OrderStatus(self.status).label

    def total_weight_grams(self) -> int:
        """Parcel weight; items without a recorded weight count as 500 g each."""
        return sum(
            (item.unit_weight if item.unit_weight else DEFAULT_ITEM_WEIGHT_GRAMS) * item.quantity for item in self.items
        )

    def record_shipment(self, shipment_number):
        if self.has_shipment:
            raise ValidationError({"shipment_number": ["A shipment is already booked for this order"]})
        if self.status not in (OrderStatus.PENDING.value, OrderStatus.CONFIRMED.value, OrderStatus.SHIPPED.value):
            raise ValidationError({"status": [f"Cannot ship an order in {self.status} state"]})

        now = datetime.now(UTC)
        self.shipment_number = shipment_number
        self.shipment_booked_at = now
        if self.status == OrderStatus.CONFIRMED.value:
            self.status = OrderStatus.SHIPPED.value

        self.raise_(
            ShipmentBooked(
                order_id=str(self.id),
                order_number=self.order_number,
                shipment_number=shipment_number,
                carrier=self.carrier_name,
                booked_at=now,
            )
        )

    def record_label_fetched(self):
        self.label_fetched_at = datetime.now(UTC)

    def mark_delivered(self):
        if self.status != OrderStatus.SHIPPED.value:
            raise ValidationError({"status": ["Only shipped orders can be delivered"]})
        now = datetime.now(UTC)
        self.status = OrderStatus.DELIVERED.value
        self.delivered_at = now
        self.raise_(OrderDelivered(order_id=str(self.id), delivered_at=now))

    def cancel(self, reason=None):
        if self.status not in (OrderStatus.PENDING.value, OrderStatus.CONFIRMED.value):
            raise ValidationError({"status": [f"Cannot cancel an order in {self.status} state"]})
        self.status = OrderStatus.CANCELLED.value
        self.raise_(OrderCancelled(order_id=str(self.id), reason=reason, cancelled_at=datetime.now(UTC)))
