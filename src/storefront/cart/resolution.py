"""Cart identity resolution.

Given the identifiers a request carries, find the one cart it should use.
Resolution never creates a cart or a guest token: visiting the cart page or
the checkout must not fabricate empty carts. Only AddToCart creates one.
"""

from dataclasses import dataclass

from storefront.cart.cart import Cart


@dataclass(frozen=True)
class RequestIdentity:
    """The identifiers a request hands to the checkout core.

    Both values are opaque. ``user_id`` is set once the visitor is signed in;
    ``guest_token`` is the anonymous cart token from the visitor's cookie.
    """

    user_id: str | None = None
    guest_token: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_id)

    @property
    def is_anonymous(self) -> bool:
        return not self.user_id and not self.guest_token


class CartIdentityResolver:
    """Return the user's cart if there is one, else the guest cart, else None."""

    def __init__(self, carts=None):
        if carts is None:
            from protean.utils.globals import current_domain

            carts = current_domain.repository_for(Cart)
        self.carts = carts

    def resolve(self, identity: RequestIdentity) -> Cart | None:
        if identity.user_id:
            cart = self.carts.find_by_user(identity.user_id)
            if cart is not None:
                return cart
        if identity.guest_token:
            return self.carts.find_by_guest_token(identity.guest_token)
        return None
