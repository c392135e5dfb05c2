"""Application tests for CartIdentityResolver."""

from protean import current_domain
from storefront.cart.cart import Cart
from storefront.cart.resolution import CartIdentityResolver, RequestIdentity


def _cart(**owner):
    cart = Cart.create(**owner)
    cart.add_item("prod-A", None, 1)
    current_domain.repository_for(Cart).add(cart)
    return cart


class TestResolve:
    def test_user_cart_wins(self):
        user_cart = _cart(user_id="user-1")
        _cart(guest_token="tok-1")

        resolved = CartIdentityResolver().resolve(RequestIdentity(user_id="user-1", guest_token="tok-1"))
        assert resolved.id == user_cart.id

    def test_falls_back_to_guest_cart(self):
        guest_cart = _cart(guest_token="tok-1")

        resolved = CartIdentityResolver().resolve(RequestIdentity(user_id="user-1", guest_token="tok-1"))
        assert resolved.id == guest_cart.id

    def test_anonymous_visitor_has_no_cart(self):
        assert CartIdentityResolver().resolve(RequestIdentity()) is None
        assert RequestIdentity().is_anonymous

    def test_reading_never_creates_a_cart(self):
        resolver = CartIdentityResolver()
        assert resolver.resolve(RequestIdentity(user_id="user-1", guest_token="tok-1")) is None

        carts = current_domain.repository_for(Cart)
        assert carts.find_by_user("user-1") is None
        assert carts.find_by_guest_token("tok-1") is None

    def test_works_against_any_cart_store(self):
        class Store:
            def find_by_user(self, user_id):
                return None

            def find_by_guest_token(self, token):
                return "guest-cart" if token == "tok-9" else None

        resolver = CartIdentityResolver(carts=Store())
        assert resolver.resolve(RequestIdentity(guest_token="tok-9")) == "guest-cart"
