"""Cart aggregate: a pre-order collection of lines owned by a user or a guest.

A cart is keyed by exactly one identity at a time: the authenticated user id
or the opaque guest token handed out with the first add-to-cart. Lines are
unique per (product, variant); adding an existing pair increases quantity.
A user id or guest token owns at most one cart.
An emptied cart stays in place until its order is placed.
"""

from datetime import UTC, datetime

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, HasMany, Identifier, Integer, String

from storefront.cart.events import (
    CartCleared,
    CartItemAdded,
    CartItemRemoved,
    CartQuantityUpdated,
    CartReassigned,
    CartsMerged,
)
from storefront.domain import storefront


def _same_line(item, product_id, variant_id):
    return str(item.product_id) == str(product_id) and (
        (item.variant_id is None and variant_id is None) or str(item.variant_id) == str(variant_id)
    )


@storefront.entity(part_of="Cart")
class CartItem:
    product_id = Identifier(required=True)
    variant_id = Identifier()  # None when the product has no variants
    quantity = Integer(required=True, min_value=1)
    added_at = DateTime()


@storefront.aggregate
class Cart:
    user_id = Identifier(unique=True)  # Set for authenticated carts
    guest_token = String(max_length=255, unique=True)  # Set for guest carts
    items = HasMany(CartItem)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def cart_must_be_owned_by_exactly_one_identity(self):
        if bool(self.user_id) == bool(self.guest_token):
            raise ValidationError({"cart": ["A cart belongs to either a user or a guest token, never both"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, user_id=None, guest_token=None):
        now = datetime.now(UTC)
        return cls(
            user_id=user_id,
            guest_token=guest_token,
            created_at=now,
            updated_at=now,
        )

    @property
    def is_empty(self):
        return len(self.items) == 0

    @property
    def is_guest_cart(self):
        return self.user_id is None

    def find_item(self, product_id, variant_id=None):
        return next((i for i in self.items if _same_line(i, product_id, variant_id)), None)

    # -------------------------------------------------------------------
    # Item management
    # -------------------------------------------------------------------
    def add_item(self, product_id, variant_id, quantity):
        """Add a line to the cart, or increase the quantity of the existing line."""
        if quantity is None or quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})

        existing = self.find_item(product_id, variant_id)
        now = datetime.now(UTC)

        if existing:
            existing.quantity += quantity
            item_id = str(existing.id)
        else:
            item = CartItem(
                product_id=product_id,
                variant_id=variant_id,
                quantity=quantity,
                added_at=now,
            )
            self.add_items(item)
            item_id = str(item.id)

        self.updated_at = now

        self.raise_(
            CartItemAdded(
                cart_id=str(self.id),
                item_id=item_id,
                product_id=str(product_id),
                variant_id=str(variant_id) if variant_id else None,
                quantity=quantity,
            )
        )
        return item_id

    def update_item_quantity(self, item_id, new_quantity):
        if new_quantity is None or new_quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})

        item = next((i for i in self.items if str(i.id) == str(item_id)), None)
        if item is None:
            raise ValidationError({"item_id": ["Item not found in cart"]})

        previous_quantity = item.quantity
        item.quantity = new_quantity
        self.updated_at = datetime.now(UTC)

        self.raise_(
            CartQuantityUpdated(
                cart_id=str(self.id),
                item_id=str(item_id),
                previous_quantity=previous_quantity,
                new_quantity=new_quantity,
            )
        )

    def remove_item(self, item_id):
        item = next((i for i in self.items if str(i.id) == str(item_id)), None)
        if item is None:
            raise ValidationError({"item_id": ["Item not found in cart"]})

        self.remove_items(item)
        self.updated_at = datetime.now(UTC)

        self.raise_(CartItemRemoved(cart_id=str(self.id), item_id=str(item_id)))

    def clear(self):
        with atomic_change(self):
            for item in list(self.items):
                self.remove_items(item)
            self.updated_at = datetime.now(UTC)

        self.raise_(CartCleared(cart_id=str(self.id)))

    # -------------------------------------------------------------------
    # Guest → user hand-over
    # -------------------------------------------------------------------
    def reassign_to(self, user_id):
        """Re-key a guest cart to ``user_id``. Lines are kept untouched."""
        if not self.is_guest_cart:
            raise ValidationError({"cart": ["Only guest carts can be reassigned"]})

        previous_token = self.guest_token
        with atomic_change(self):
            self.user_id = user_id
            self.guest_token = None
            self.updated_at = datetime.now(UTC)

        self.raise_(
            CartReassigned(
                cart_id=str(self.id),
                user_id=str(user_id),
                previous_guest_token=previous_token,
            )
        )

    def absorb(self, guest_cart):
        """Fold the lines of ``guest_cart`` into this cart.

        Lines present in both carts have their quantities summed, the rest are
        moved over. The guest cart itself is left for the caller to delete.
        Returns the number of guest lines merged.
        """
        if guest_cart.id == self.id:
            raise ValidationError({"cart": ["A cart cannot be merged into itself"]})

        now = datetime.now(UTC)
        merged = 0
        with atomic_change(self):
            for guest_item in guest_cart.items:
                existing = self.find_item(guest_item.product_id, guest_item.variant_id)
                if existing:
                    existing.quantity += guest_item.quantity
                else:
                    self.add_items(
                        CartItem(
                            product_id=guest_item.product_id,
                            variant_id=guest_item.variant_id,
                            quantity=guest_item.quantity,
                            added_at=guest_item.added_at or now,
                        )
                    )
                merged += 1
            self.updated_at = now

        self.raise_(
            CartsMerged(
                cart_id=str(self.id),
                source_cart_id=str(guest_cart.id),
                items_merged_count=merged,
            )
        )
        return merged
