"""Cart item operations: commands and handler.

AddToCart is the only operation that may create a cart. It is addressed by
the caller's identity rather than a cart id so that the first add creates
the cart lazily. The other operations address an existing cart by id.
"""

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from storefront.cart.cart import Cart
from storefront.catalogue.product import Product
from storefront.domain import storefront

logger = structlog.get_logger(__name__)

OWNER_FIELDS = {"user_id", "guest_token"}


@storefront.command(part_of="Cart")
class AddToCart:
    """Add a product (optionally a variant) to the caller's cart."""

    user_id = Identifier()
    guest_token = String(max_length=255)
    product_id = Identifier(required=True)
    variant_id = Identifier()
    quantity = Integer(default=1, min_value=1)


@storefront.command(part_of="Cart")
class UpdateCartQuantity:
    cart_id = Identifier(required=True)
    item_id = Identifier(required=True)
    new_quantity = Integer(required=True, min_value=1)


@storefront.command(part_of="Cart")
class RemoveFromCart:
    cart_id = Identifier(required=True)
    item_id = Identifier(required=True)


@storefront.command(part_of="Cart")
class ClearCart:
    cart_id = Identifier(required=True)


@storefront.command_handler(part_of=Cart)
class CartItemsHandler:
    @handle(AddToCart)
    def add_to_cart(self, command):
        if not command.user_id and not command.guest_token:
            raise ValidationError({"cart": ["A user id or a guest token is required"]})

        product = current_domain.repository_for(Product).get(command.product_id)
        if command.variant_id and product.find_variant(command.variant_id) is None:
            raise ValidationError({"variant_id": ["Variant does not belong to this product"]})

        repo = current_domain.repository_for(Cart)
        cart = self._find_cart(repo, command)
        if cart is None:
            cart = self._open_cart(repo, command)

        cart.add_item(command.product_id, command.variant_id, command.quantity)
        repo.add(cart)
        return str(cart.id)

    @staticmethod
    def _find_cart(repo, command):
        if command.user_id:
            return repo.find_by_user(command.user_id)
        return repo.find_by_guest_token(command.guest_token)

    def _open_cart(self, repo, command):
        # Signed-in users always get a user cart, even if a guest token is present
        cart = Cart.create(
            user_id=command.user_id,
            guest_token=None if command.user_id else command.guest_token,
        )
        try:
            repo.add(cart)
        except ValidationError as exc:
            if not OWNER_FIELDS & set(exc.messages):
                raise
            # Another request opened the cart first
            logger.info("Cart already opened, reusing it", user_id=command.user_id, error=str(exc))
            cart = self._find_cart(repo, command)
        return cart

    @handle(UpdateCartQuantity)
    def update_cart_quantity(self, command):
        repo = current_domain.repository_for(Cart)
        cart = repo.get(command.cart_id)
        cart.update_item_quantity(command.item_id, command.new_quantity)
        repo.add(cart)

    @handle(RemoveFromCart)
    def remove_from_cart(self, command):
        repo = current_domain.repository_for(Cart)
        cart = repo.get(command.cart_id)
        cart.remove_item(command.item_id)
        repo.add(cart)

    @handle(ClearCart)
    def clear_cart(self, command):
        repo = current_domain.repository_for(Cart)
        cart = repo.get(command.cart_id)
        cart.clear()
        repo.add(cart)
