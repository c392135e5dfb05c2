"""Order placement: turn a paid cart into an Order.

Runs after the payment provider confirmed the charge. The cart is priced
once more with its effective values, the chosen shipping method is priced
for the destination, and the order is stored under a freshly issued order
number. Deleting the cart afterwards is best effort: a failure is logged and
the order stands.
"""

from dataclasses import dataclass

import structlog
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from storefront.cart.cart import Cart
from storefront.cart.resolution import CartIdentityResolver, RequestIdentity
from storefront.checkout.summary import CheckoutAggregator
from storefront.order.numbering import OrderNumberGenerator
from storefront.order.order import Order
from storefront.shipping.rates import RateContext, ShippingRateEngine, normalize_country

logger = structlog.get_logger(__name__)


_REQUIRED = (
    "shipping_method_id",
    "shipping_name",
    "shipping_street",
    "shipping_city",
    "shipping_postal",
    "shipping_country",
)


@dataclass(frozen=True)
class PlaceOrder:
    """What the checkout submits once the payment is confirmed."""

    shipping_method_id: str
    shipping_name: str
    shipping_street: str
    shipping_city: str
    shipping_postal: str
    shipping_country: str
    user_id: str | None = None
    guest_token: str | None = None
    email: str | None = None
    pickup_point_id: str | None = None
    pickup_point_name: str | None = None
    shipping_state: str | None = None
    shipping_phone: str | None = None

    def __post_init__(self):
        missing = {name: ["is required"] for name in _REQUIRED if not getattr(self, name)}
        if missing:
            raise ValidationError(missing)


class OrderPlacement:
    """Places orders outside a command unit of work.

    Each insert commits immediately, while the numbering lock is held, so
    the next caller reads a number that is already stored.
    """

    def __init__(self, carts=None, orders=None, aggregator=None, rate_engine=None, generator=None):
        self.carts = carts if carts is not None else current_domain.repository_for(Cart)
        self.orders = orders if orders is not None else current_domain.repository_for(Order)
        self.aggregator = aggregator if aggregator is not None else CheckoutAggregator(carts=self.carts)
        self.rate_engine = rate_engine if rate_engine is not None else ShippingRateEngine()
        self.generator = (
            generator if generator is not None else OrderNumberGenerator(self.orders.latest_sequence)
        )

    def _shipping_snapshot(self, command, country, context):
        method = self.rate_engine.methods.get(command.shipping_method_id)
        zone_ids = {str(zone.id) for zone in self.rate_engine.matching_zones(country)}
        if str(method.zone_id) not in zone_ids:
            raise ValidationError({"shipping_method_id": [f"'{method.name}' does not ship to {country}"]})

        cost = self.rate_engine.cost_for_method(method.id, context)
        snapshot = {
            "shipping_method_id": str(method.id),
            "shipping_method_name": method.name,
            "pickup_point_id": command.pickup_point_id,
            "pickup_point_name": command.pickup_point_name,
        }
        if method.carrier_id:
            carrier = self.rate_engine.carriers.get(method.carrier_id)
            snapshot["carrier_id"] = str(carrier.id)
            snapshot["carrier_name"] = carrier.name
        return cost, snapshot

    def place(self, command: PlaceOrder) -> Order:
        identity = RequestIdentity(user_id=command.user_id, guest_token=command.guest_token)
        cart = CartIdentityResolver(self.carts).resolve(identity)
        if cart is None or cart.is_empty:
            raise ValidationError({"cart": ["There is nothing to order"]})

        summary = self.aggregator.summarize(cart.id)
        country = normalize_country(command.shipping_country)
        context = RateContext(subtotal=summary.subtotal, total_weight=summary.total_weight)
        shipping_cost, shipping = self._shipping_snapshot(command, country, context)

        address = {
            "name": command.shipping_name,
            "street": command.shipping_street,
            "city": command.shipping_city,
            "state": command.shipping_state,
            "postal": command.shipping_postal,
            "country": country,
            "phone": command.shipping_phone,
        }

        placed = []

        def persist(order_number, sequence):
            order = Order.place(
                order_number=order_number,
                lines=summary.lines,
                shipping_cost=shipping_cost,
                address=address,
                shipping=shipping,
                user_id=command.user_id,
                email=command.email,
                sequence=sequence,
            )
            self.orders.insert(order)
            placed.append(order)

        order_number = self.generator.issue(persist)
        order = placed[-1]
        logger.info(
            "Order placed",
            order_number=order_number,
            order_id=str(order.id),
            total=order.total,
            items=len(order.items),
        )

        try:
            self.carts.remove(cart)
        except Exception as exc:
            logger.warning("Cart cleanup after order failed", cart_id=str(cart.id), error=str(exc))

        return order
