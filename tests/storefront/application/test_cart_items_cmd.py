"""Application tests for cart item commands."""

import pytest
from protean import current_domain
from protean.exceptions import ObjectNotFoundError, ValidationError
from storefront.cart.cart import Cart
from storefront.cart.items import AddToCart, ClearCart, RemoveFromCart, UpdateCartQuantity
from storefront.cart.repository import CartRepository
from storefront.catalogue.product import Product


def _product(price=1000, weight_grams=200, variants=()):
    product = Product(name="Mug", price=price, weight_grams=weight_grams)
    for sku in variants:
        product.add_variant(sku)
    current_domain.repository_for(Product).add(product)
    return product


def _add(**kwargs):
    return current_domain.process(AddToCart(**kwargs), asynchronous=False)


class TestAddToCart:
    def test_first_add_creates_a_guest_cart(self):
        product = _product()
        cart_id = _add(guest_token="tok-1", product_id=product.id, quantity=2)

        cart = current_domain.repository_for(Cart).get(cart_id)
        assert cart.guest_token == "tok-1"
        assert cart.items[0].quantity == 2

    def test_next_add_reuses_the_cart(self):
        product = _product()
        first = _add(guest_token="tok-1", product_id=product.id)
        second = _add(guest_token="tok-1", product_id=product.id, quantity=3)

        assert first == second
        cart = current_domain.repository_for(Cart).get(first)
        assert len(cart.items) == 1
        assert cart.items[0].quantity == 4

    def test_signed_in_user_gets_a_user_cart(self):
        product = _product()
        cart_id = _add(user_id="user-1", guest_token="tok-1", product_id=product.id)

        cart = current_domain.repository_for(Cart).get(cart_id)
        assert cart.user_id == "user-1"
        assert cart.guest_token is None
        assert current_domain.repository_for(Cart).find_by_guest_token("tok-1") is None

    def test_identity_is_required(self):
        product = _product()
        with pytest.raises(ValidationError):
            _add(product_id=product.id)

    def test_variant_must_belong_to_the_product(self):
        product = _product()
        with pytest.raises(ValidationError):
            _add(user_id="user-1", product_id=product.id, variant_id="var-other")

    def test_known_variant(self):
        product = _product(variants=["MUG-BLUE"])
        variant_id = product.variants[0].id
        cart_id = _add(user_id="user-1", product_id=product.id, variant_id=variant_id)

        cart = current_domain.repository_for(Cart).get(cart_id)
        assert cart.items[0].variant_id == variant_id

    def test_unknown_product(self):
        with pytest.raises(ObjectNotFoundError):
            _add(user_id="user-1", product_id="missing")

    def test_quantity_below_one(self):
        product = _product()
        with pytest.raises(ValidationError):
            _add(user_id="user-1", product_id=product.id, quantity=0)
        assert current_domain.repository_for(Cart).find_by_user("user-1") is None


class TestExistingCartCommands:
    def _cart_with_item(self):
        product = _product()
        cart_id = _add(user_id="user-1", product_id=product.id, quantity=2)
        cart = current_domain.repository_for(Cart).get(cart_id)
        return cart_id, cart.items[0].id

    def test_update_quantity(self):
        cart_id, item_id = self._cart_with_item()
        current_domain.process(
            UpdateCartQuantity(cart_id=cart_id, item_id=item_id, new_quantity=5), asynchronous=False
        )
        assert current_domain.repository_for(Cart).get(cart_id).items[0].quantity == 5

    def test_remove_item_keeps_the_empty_cart(self):
        cart_id, item_id = self._cart_with_item()
        current_domain.process(RemoveFromCart(cart_id=cart_id, item_id=item_id), asynchronous=False)

        cart = current_domain.repository_for(Cart).get(cart_id)
        assert cart.is_empty

    def test_clear(self):
        cart_id, _ = self._cart_with_item()
        current_domain.process(ClearCart(cart_id=cart_id), asynchronous=False)
        assert current_domain.repository_for(Cart).get(cart_id).is_empty


class TestOneCartPerIdentity:
    @pytest.mark.parametrize("owner", [{"user_id": "user-1"}, {"guest_token": "tok-1"}])
    def test_second_cart_for_the_same_owner_is_rejected(self, owner):
        repo = current_domain.repository_for(Cart)
        repo.add(Cart.create(**owner))

        with pytest.raises(ValidationError) as exc:
            repo.add(Cart.create(**owner))
        assert set(owner) <= set(exc.value.messages)

    def test_add_reuses_a_cart_opened_by_a_concurrent_request(self, monkeypatch):
        mug = _product()
        tote = _product(price=2500)
        first_cart_id = _add(user_id="user-1", product_id=mug.id)

        # The lookup runs before the other request's cart became visible
        find_by_user = CartRepository.find_by_user
        lookups = []

        def find_nothing_first(self, user_id):
            lookups.append(user_id)
            return None if len(lookups) == 1 else find_by_user(self, user_id)

        monkeypatch.setattr(CartRepository, "find_by_user", find_nothing_first)

        cart_id = _add(user_id="user-1", product_id=tote.id, quantity=2)

        assert cart_id == first_cart_id
        carts = current_domain.repository_for(Cart)._dao.query.filter(user_id="user-1").all().items
        assert len(carts) == 1
        assert {i.product_id: i.quantity for i in carts[0].items} == {mug.id: 1, tote.id: 2}
