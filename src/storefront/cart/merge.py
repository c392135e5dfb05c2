"""Guest cart merge on login: command, handler, and retry policy.

When a guest signs in (login or registration) while holding a guest cart,
the guest cart is handed over to the user:

* no user cart yet: the guest cart is re-keyed to the user id, lines untouched;
* user cart exists: guest lines are folded into it line by line and the
  emptied guest cart is deleted.

Each attempt runs as one MergeGuestCart command, so it executes inside a
single unit of work. A concurrent change to either cart surfaces as a
version conflict; CartMergeEngine retries once and then gives up with
CartMergeConflict so the user can re-add the affected items.
"""

from enum import Enum

import structlog
from protean import handle
from protean.exceptions import ExpectedVersionError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from storefront.cart.cart import Cart
from storefront.domain import storefront
from storefront.exceptions import CartMergeConflict

logger = structlog.get_logger(__name__)

MAX_MERGE_ATTEMPTS = 2


class MergeOutcome(Enum):
    NO_GUEST_CART = "NoGuestCart"
    REASSIGNED = "Reassigned"
    MERGED = "Merged"


@storefront.command(part_of="Cart")
class MergeGuestCart:
    """Hand the guest cart identified by ``guest_token`` over to ``user_id``."""

    user_id = Identifier(required=True)
    guest_token = String(required=True, max_length=255)


@storefront.command_handler(part_of=Cart)
class MergeGuestCartHandler:
    @handle(MergeGuestCart)
    def merge_guest_cart(self, command):
        repo = current_domain.repository_for(Cart)

        guest_cart = repo.find_by_guest_token(command.guest_token)
        if guest_cart is None:
            return MergeOutcome.NO_GUEST_CART.value

        user_cart = repo.find_by_user(command.user_id)
        if user_cart is None:
            guest_cart.reassign_to(command.user_id)
            repo.add(guest_cart)
            logger.info(
                "Guest cart reassigned to user",
                cart_id=str(guest_cart.id),
                user_id=str(command.user_id),
            )
            return MergeOutcome.REASSIGNED.value

        merged = user_cart.absorb(guest_cart)
        repo.add(user_cart)

        # Saving the emptied guest cart puts it under the same version check
        # as the user cart, so lines added to it meanwhile abort the commit
        guest_cart.clear()
        repo.add(guest_cart)
        repo.remove(guest_cart)
        logger.info(
            "Guest cart merged into user cart",
            cart_id=str(user_cart.id),
            source_cart_id=str(guest_cart.id),
            items_merged=merged,
        )
        return MergeOutcome.MERGED.value


class CartMergeEngine:
    """Runs the guest cart merge with one retry on a concurrent-change conflict."""

    def __init__(self, process=None, max_attempts: int = MAX_MERGE_ATTEMPTS):
        self._process = process
        self.max_attempts = max_attempts

    def _dispatch(self, command):
        if self._process is not None:
            return self._process(command)
        return current_domain.process(command, asynchronous=False)

    def merge(self, user_id, guest_token) -> MergeOutcome:
        if not guest_token:
            return MergeOutcome.NO_GUEST_CART

        command = MergeGuestCart(user_id=user_id, guest_token=guest_token)
        for attempt in range(1, self.max_attempts + 1):
            try:
                return MergeOutcome(self._dispatch(command))
            except ExpectedVersionError as exc:
                logger.warning(
                    "Guest cart merge collided with a concurrent change",
                    user_id=str(user_id),
                    attempt=attempt,
                    error=str(exc),
                )

        raise CartMergeConflict(
            "Your cart changed while we were merging it. Please re-add any missing items."
        )
