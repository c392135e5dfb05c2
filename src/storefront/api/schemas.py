"""Pydantic request/response schemas for the storefront API.

These are external contracts, separate from Protean commands.
"""

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------
class AddToCartRequest(BaseModel):
    product_id: str
    variant_id: str | None = None
    quantity: int = Field(default=1, ge=1)


class AddToCartResponse(BaseModel):
    cart_id: str
    guest_token: str | None = None


class MergeCartRequest(BaseModel):
    guest_token: str | None = None


class MergeCartResponse(BaseModel):
    outcome: str


# ---------------------------------------------------------------------------
# Shipping
# ---------------------------------------------------------------------------
class ShippingMethodResponse(BaseModel):
    method_id: str
    name: str
    rate_type: str
    cost: int | None = None
    description: str | None = None
    estimated_days: int | None = None
    carrier_id: str | None = None
    carrier_name: str | None = None
    requires_pickup_point: bool = False
    required_context: list[str] = Field(default_factory=list)

    @classmethod
    def from_quote(cls, quote):
        return cls(
            method_id=quote.method_id,
            name=quote.name,
            rate_type=quote.rate_type,
            cost=quote.cost,
            description=quote.description,
            estimated_days=quote.estimated_days,
            carrier_id=quote.carrier_id,
            carrier_name=quote.carrier_name,
            requires_pickup_point=quote.requires_pickup_point,
            required_context=sorted(field.value for field in quote.required_context),
        )


class ShippingMethodListResponse(BaseModel):
    country: str
    methods: list[ShippingMethodResponse]


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------
class CheckoutLineResponse(BaseModel):
    item_id: str
    product_id: str
    variant_id: str | None = None
    product_name: str
    quantity: int
    unit_price: int
    unit_weight: int
    line_total: int


class AddressResponse(BaseModel):
    address_id: str
    name: str
    street: str
    city: str
    state: str | None = None
    postal: str
    country: str
    is_default_shipping: bool = False
    is_default_billing: bool = False


class CheckoutResponse(BaseModel):
    cart_id: str
    lines: list[CheckoutLineResponse]
    subtotal: int
    total_weight: int
    country: str
    addresses: list[AddressResponse] = Field(default_factory=list)
    default_shipping_address_id: str | None = None
    shipping_methods: list[ShippingMethodResponse] = Field(default_factory=list)
