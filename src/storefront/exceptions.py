"""Error kinds raised by the checkout pipeline beyond Protean's own.

Validation problems use ``protean.exceptions.ValidationError`` and unknown
records use ``protean.exceptions.ObjectNotFoundError``. The classes below
cover what those two cannot express: retry-exhausted conflicts, label
preconditions, and carrier failures. Each carries a machine-readable
``kind`` and the HTTP status the API layer answers with.
"""


class StorefrontError(Exception):
    kind = "storefront_error"
    status_code = 500

    def __init__(self, message: str | None = None):
        self.message = message or self.__class__.__doc__ or self.kind
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.kind, "message": self.message}


# ---------------------------------------------------------------------------
# Conflicts
# ---------------------------------------------------------------------------
class TransientConflictError(StorefrontError):
    """The operation collided with a concurrent change; retry the request."""

    kind = "transient_conflict"
    status_code = 503


class CartMergeConflict(TransientConflictError):
    """The guest cart changed while it was being merged."""

    kind = "cart_merge_conflict"


class OrderNumberConflict(TransientConflictError):
    """The order number is already taken."""

    kind = "order_number_conflict"

    def __init__(self, order_number: str):
        self.order_number = order_number
        super().__init__(f"Order number {order_number} is already taken")


class OrderNumberExhausted(TransientConflictError):
    """Could not allocate a unique order number."""

    kind = "order_number_exhausted"


# ---------------------------------------------------------------------------
# Shipping label preconditions
# ---------------------------------------------------------------------------
class ShippingLabelError(StorefrontError):
    kind = "shipping_label_error"
    status_code = 400


class MissingPickupPoint(ShippingLabelError):
    """Order does not have a pickup point."""

    kind = "missing_pickup_point"


class NoShipmentYet(ShippingLabelError):
    """Order does not have a shipment yet."""

    kind = "no_shipment_yet"


# ---------------------------------------------------------------------------
# Carrier failures
# ---------------------------------------------------------------------------
class CarrierError(StorefrontError):
    """The carrier could not complete the request."""

    kind = "carrier_error"
    status_code = 502


class CarrierUnavailable(CarrierError):
    """The carrier could not be reached or did not answer in time."""

    kind = "carrier_unavailable"


class CarrierRejected(CarrierError):
    """The carrier refused the request."""

    kind = "carrier_rejected"

    def __init__(self, message: str | None = None, code: str | None = None):
        self.code = code
        super().__init__(message)

    def to_dict(self) -> dict:
        payload = super().to_dict()
        if self.code:
            payload["code"] = self.code
        return payload
