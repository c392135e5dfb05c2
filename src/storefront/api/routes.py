"""FastAPI routes for the storefront checkout pipeline.

Identity travels in explicit headers: ``X-User-Id`` for a signed-in user
and ``X-Guest-Token`` for an anonymous cart. Routes translate them into a
RequestIdentity and never look at cookies.
"""

from uuid import uuid4

from fastapi import APIRouter, Header, Query
from fastapi.responses import RedirectResponse, Response
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from storefront.api.schemas import (
    AddressResponse,
    AddToCartRequest,
    AddToCartResponse,
    CheckoutLineResponse,
    CheckoutResponse,
    MergeCartRequest,
    MergeCartResponse,
    ShippingMethodListResponse,
    ShippingMethodResponse,
)
from storefront.cart.items import AddToCart
from storefront.cart.merge import CartMergeEngine
from storefront.cart.resolution import CartIdentityResolver, RequestIdentity
from storefront.checkout.summary import CheckoutAggregator
from storefront.shipment.labels import ShipmentLabelManager
from storefront.shipping.rates import RateContext, RateQuery, ShippingRateEngine

cart_router = APIRouter(prefix="/carts", tags=["cart"])
checkout_router = APIRouter(tags=["checkout"])
admin_router = APIRouter(prefix="/admin", tags=["admin"])


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------
@cart_router.post("/items", status_code=201, response_model=AddToCartResponse)
async def add_to_cart(
    body: AddToCartRequest,
    x_user_id: str | None = Header(default=None),
    x_guest_token: str | None = Header(default=None),
) -> AddToCartResponse:
    """Add a product to the caller's cart, creating cart and guest token if needed."""
    guest_token = x_guest_token
    if not x_user_id and not guest_token:
        guest_token = uuid4().hex

    command = AddToCart(
        user_id=x_user_id,
        guest_token=guest_token,
        product_id=body.product_id,
        variant_id=body.variant_id,
        quantity=body.quantity,
    )
    cart_id = current_domain.process(command, asynchronous=False)
    return AddToCartResponse(cart_id=cart_id, guest_token=None if x_user_id else guest_token)


@cart_router.post("/merge", response_model=MergeCartResponse)
async def merge_cart(
    body: MergeCartRequest,
    x_user_id: str | None = Header(default=None),
    x_guest_token: str | None = Header(default=None),
) -> MergeCartResponse:
    """Fold the guest cart into the user's cart right after sign-in."""
    if not x_user_id:
        raise ValidationError({"user_id": ["Merging a cart requires a signed-in user"]})
    outcome = CartMergeEngine().merge(x_user_id, body.guest_token or x_guest_token)
    return MergeCartResponse(outcome=outcome.value)


# ---------------------------------------------------------------------------
# Shipping and checkout
# ---------------------------------------------------------------------------
@checkout_router.get("/shipping-methods", response_model=ShippingMethodListResponse)
async def list_shipping_methods(
    country: str | None = Query(default=None),
    include_unpriced: bool = Query(default=False),
    x_user_id: str | None = Header(default=None),
    x_guest_token: str | None = Header(default=None),
) -> ShippingMethodListResponse:
    """Shipping methods for a destination, priced with the caller's cart when there is one."""
    query = RateQuery(country=country, include_unpriced=include_unpriced)

    context = RateContext()
    cart = CartIdentityResolver().resolve(RequestIdentity(user_id=x_user_id, guest_token=x_guest_token))
    if cart is not None and not cart.is_empty:
        summary = CheckoutAggregator().summarize(cart.id)
        context = RateContext(subtotal=summary.subtotal, total_weight=summary.total_weight)

    quotes = ShippingRateEngine().quote(query, context)
    return ShippingMethodListResponse(
        country=query.country,
        methods=[ShippingMethodResponse.from_quote(q) for q in quotes],
    )


@checkout_router.get("/checkout", response_model=CheckoutResponse)
async def checkout(
    x_user_id: str | None = Header(default=None),
    x_guest_token: str | None = Header(default=None),
):
    """Checkout page data; redirects to the cart when there is nothing to check out."""
    data = CheckoutAggregator().checkout_data(RequestIdentity(user_id=x_user_id, guest_token=x_guest_token))
    if data is None:
        return RedirectResponse(url="/cart", status_code=303)

    summary = data.summary
    return CheckoutResponse(
        cart_id=summary.cart_id,
        lines=[
            CheckoutLineResponse(
                item_id=line.item_id,
                product_id=line.product_id,
                variant_id=line.variant_id,
                product_name=line.product_name,
                quantity=line.quantity,
                unit_price=line.unit_price,
                unit_weight=line.unit_weight,
                line_total=line.line_total,
            )
            for line in summary.lines
        ],
        subtotal=summary.subtotal,
        total_weight=summary.total_weight,
        country=data.country,
        addresses=[
            AddressResponse(
                address_id=str(address.id),
                name=address.name,
                street=address.street,
                city=address.city,
                state=address.state,
                postal=address.postal,
                country=address.country,
                is_default_shipping=bool(address.is_default_shipping),
                is_default_billing=bool(address.is_default_billing),
            )
            for address in data.addresses
        ],
        default_shipping_address_id=str(data.default_shipping_address.id) if data.default_shipping_address else None,
        shipping_methods=[ShippingMethodResponse.from_quote(q) for q in data.shipping_quotes],
    )


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------
@admin_router.get("/orders/{order_number}/label")
def order_label(order_number: str, create: bool = Query(default=False)) -> Response:
    """Download the shipping label, booking the shipment first when ``create`` is set.

    Synchronous, so the blocking carrier call runs in the thread pool.
    """
    label = ShipmentLabelManager().request_label(order_number, create=create)
    return Response(
        content=label.content,
        media_type=label.content_type,
        headers={"Content-Disposition": f'attachment; filename="{label.filename}"'},
    )
