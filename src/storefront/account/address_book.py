"""AddressBook aggregate: the saved addresses of one user.

A user has at most one default shipping and one default billing address.
Exclusivity is kept on the write side: every change of default first unsets
the flag on all addresses, then sets it on the chosen one.
"""

from datetime import UTC, datetime

from protean import atomic_change, invariant
from protean.core.repository import BaseRepository
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, HasMany, Identifier, String

from storefront.domain import storefront


@storefront.entity(part_of="AddressBook")
class Address:
    name = String(required=True, max_length=255)
    street = String(required=True, max_length=255)
    city = String(required=True, max_length=100)
    state = String(max_length=100)
    postal = String(required=True, max_length=20)
    country = String(required=True, max_length=2)
    label = String(max_length=50)
    is_default_shipping = Boolean(default=False)
    is_default_billing = Boolean(default=False)
    created_at = DateTime()


@storefront.aggregate
class AddressBook:
    user_id = Identifier(required=True)
    addresses = HasMany(Address)

    @invariant.post
    def at_most_one_default_of_each_kind(self):
        if len([a for a in self.addresses if a.is_default_shipping]) > 1:
            raise ValidationError({"addresses": ["Only one default shipping address is allowed"]})
        if len([a for a in self.addresses if a.is_default_billing]) > 1:
            raise ValidationError({"addresses": ["Only one default billing address is allowed"]})

    @classmethod
    def create(cls, user_id):
        return cls(user_id=user_id)

    def _find(self, address_id):
        address = next((a for a in self.addresses if str(a.id) == str(address_id)), None)
        if address is None:
            raise ValidationError({"addresses": [f"Address {address_id} not found"]})
        return address

    def add_address(
        self,
        name,
        street,
        city,
        postal,
        country,
        state=None,
        label=None,
        is_default_shipping=False,
        is_default_billing=False,
    ):
        with atomic_change(self):
            if is_default_shipping:
                for addr in self.addresses:
                    addr.is_default_shipping = False
            if is_default_billing:
                for addr in self.addresses:
                    addr.is_default_billing = False

            address = Address(
                name=name,
                street=street,
                city=city,
                state=state,
                postal=postal,
                country=country.upper(),
                label=label,
                is_default_shipping=is_default_shipping,
                is_default_billing=is_default_billing,
                created_at=datetime.now(UTC),
            )
            self.add_addresses(address)
        return address

    def set_default_shipping(self, address_id):
        address = self._find(address_id)
        with atomic_change(self):
            # Unset all defaults, then set the new one
            for addr in self.addresses:
                if addr.is_default_shipping:
                    addr.is_default_shipping = False
            address.is_default_shipping = True

    def set_default_billing(self, address_id):
        address = self._find(address_id)
        with atomic_change(self):
            for addr in self.addresses:
                if addr.is_default_billing:
                    addr.is_default_billing = False
            address.is_default_billing = True

    def remove_address(self, address_id):
        self.remove_addresses(self._find(address_id))

    @property
    def default_shipping(self):
        return next((a for a in self.addresses if a.is_default_shipping), None)

    @property
    def default_billing(self):
        return next((a for a in self.addresses if a.is_default_billing), None)

    def ordered_for_checkout(self):
        """Default shipping address first, then newest first."""
        return sorted(
            self.addresses,
            key=lambda a: (not a.is_default_shipping, -(a.created_at.timestamp() if a.created_at else 0)),
        )


@storefront.repository(part_of=AddressBook)
class AddressBookRepository(BaseRepository):
    def find_by_user(self, user_id) -> AddressBook | None:
        if not user_id:
            return None
        books = self._dao.query.filter(user_id=str(user_id)).all().items
        return books[0] if books else None
