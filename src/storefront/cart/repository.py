"""Repository for the Cart aggregate.

Owns persistence only. Lookups return None rather than raising because
"no cart yet" is the normal state of a visitor who has not added anything.
"""

from protean.core.repository import BaseRepository

from storefront.cart.cart import Cart
from storefront.domain import storefront


@storefront.repository(part_of=Cart)
class CartRepository(BaseRepository):
    def find_by_user(self, user_id) -> Cart | None:
        if not user_id:
            return None
        carts = self._dao.query.filter(user_id=str(user_id)).all().items
        return carts[0] if carts else None

    def find_by_guest_token(self, guest_token) -> Cart | None:
        if not guest_token:
            return None
        carts = self._dao.query.filter(guest_token=guest_token).all().items
        return carts[0] if carts else None

    def remove(self, cart: Cart) -> None:
        self._dao.delete(cart)
