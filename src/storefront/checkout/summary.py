"""Checkout aggregation: price and weight a cart for display and ordering.

Every line is priced with its *effective* values: the variant's price or
weight when the line has a variant and the variant sets that field, the
product's value otherwise. Price and weight are resolved independently, so
a variant that only overrides price still ships at the product's weight.
"""

from dataclasses import dataclass, field

import structlog
from protean.utils.globals import current_domain

from storefront.account.address_book import AddressBook
from storefront.cart.cart import Cart
from storefront.cart.resolution import CartIdentityResolver, RequestIdentity
from storefront.catalogue.product import Product
from storefront.shipping.rates import RateContext, RateQuery, ShippingRateEngine

logger = structlog.get_logger(__name__)

DEFAULT_CHECKOUT_COUNTRY = "US"


@dataclass(frozen=True)
class CheckoutLine:
    item_id: str
    product_id: str
    variant_id: str | None
    product_name: str
    quantity: int
    unit_price: int
    unit_weight: int

    @property
    def line_total(self) -> int:
        return self.unit_price * self.quantity

    @property
    def line_weight(self) -> int:
        return self.unit_weight * self.quantity


@dataclass(frozen=True)
class CheckoutSummary:
    cart_id: str
    lines: tuple[CheckoutLine, ...]
    subtotal: int
    total_weight: int

    @property
    def total_quantity(self) -> int:
        return sum(line.quantity for line in self.lines)


@dataclass(frozen=True)
class CartSummary:
    item_count: int
    total_quantity: int
    subtotal: int


@dataclass(frozen=True)
class CheckoutData:
    summary: CheckoutSummary
    addresses: list = field(default_factory=list)
    default_shipping_address: object | None = None
    country: str = DEFAULT_CHECKOUT_COUNTRY
    shipping_quotes: list = field(default_factory=list)


class CheckoutAggregator:
    def __init__(self, carts=None, products=None, address_books=None, resolver=None, rate_engine=None):
        if carts is None:
            carts = current_domain.repository_for(Cart)
        if products is None:
            products = current_domain.repository_for(Product)
        self.carts = carts
        self.products = products
        self._address_books = address_books
        self.resolver = resolver if resolver is not None else CartIdentityResolver(carts)
        self._rate_engine = rate_engine

    @property
    def address_books(self):
        if self._address_books is None:
            self._address_books = current_domain.repository_for(AddressBook)
        return self._address_books

    @property
    def rate_engine(self):
        if self._rate_engine is None:
            self._rate_engine = ShippingRateEngine()
        return self._rate_engine

    def _price_lines(self, cart):
        products = {}
        lines = []
        for item in cart.items:
            key = str(item.product_id)
            if key not in products:
                products[key] = self.products.get(key)
            product = products[key]

            variant = product.find_variant(item.variant_id)
            if item.variant_id and variant is None:
                logger.warning(
                    "Cart line references a missing variant, using product values",
                    cart_id=str(cart.id),
                    product_id=key,
                    variant_id=str(item.variant_id),
                )

            lines.append(
                CheckoutLine(
                    item_id=str(item.id),
                    product_id=key,
                    variant_id=str(item.variant_id) if item.variant_id else None,
                    product_name=product.name,
                    quantity=item.quantity,
                    unit_price=product.effective_price(variant) or 0,
                    unit_weight=product.effective_weight(variant) or 0,
                )
            )
        return lines

    def summarize(self, cart_id) -> CheckoutSummary | None:
        """Price and weigh the cart, or return None when no checkout is possible.

        Raises ObjectNotFoundError for an unknown cart or product.
        """
        cart = self.carts.get(cart_id)
        if cart.is_empty:
            return None

        lines = self._price_lines(cart)
        return CheckoutSummary(
            cart_id=str(cart.id),
            lines=tuple(lines),
            subtotal=sum(line.line_total for line in lines),
            total_weight=sum(line.line_weight for line in lines),
        )

    def cart_summary(self, cart_id) -> CartSummary:
        """Counts and subtotal for the cart badge. An empty cart sums to zero."""
        cart = self.carts.get(cart_id)
        lines = self._price_lines(cart)
        return CartSummary(
            item_count=len(lines),
            total_quantity=sum(line.quantity for line in lines),
            subtotal=sum(line.line_total for line in lines),
        )

    def checkout_data(self, identity: RequestIdentity) -> CheckoutData | None:
        """Everything the checkout page needs, or None to redirect back to the cart."""
        cart = self.resolver.resolve(identity)
        if cart is None or cart.is_empty:
            return None

        summary = self.summarize(cart.id)

        addresses = []
        default_address = None
        if identity.user_id:
            book = self.address_books.find_by_user(identity.user_id)
            if book is not None:
                addresses = book.ordered_for_checkout()
                default_address = book.default_shipping

        country = default_address.country if default_address else DEFAULT_CHECKOUT_COUNTRY
        quotes = self.rate_engine.quote(
            RateQuery(country=country),
            RateContext(subtotal=summary.subtotal, total_weight=summary.total_weight),
        )
        return CheckoutData(
            summary=summary,
            addresses=addresses,
            default_shipping_address=default_address,
            country=country,
            shipping_quotes=quotes,
        )
