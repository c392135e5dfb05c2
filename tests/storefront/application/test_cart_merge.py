"""Application tests for the guest cart merge on login."""

import threading

import pytest
from protean import current_domain
from protean.exceptions import ExpectedVersionError
from storefront.cart.cart import Cart
from storefront.cart.merge import CartMergeEngine, MergeOutcome
from storefront.cart.resolution import CartIdentityResolver, RequestIdentity
from storefront.domain import storefront
from storefront.exceptions import CartMergeConflict


def _cart(lines, **owner):
    cart = Cart.create(**owner)
    for product_id, quantity in lines:
        cart.add_item(product_id, None, quantity)
    current_domain.repository_for(Cart).add(cart)
    return cart


def _quantities(cart):
    return {i.product_id: i.quantity for i in cart.items}


class TestMerge:
    def test_lines_are_summed_into_the_user_cart(self):
        user_cart = _cart([("A", 1), ("B", 3)], user_id="user-1")
        _cart([("A", 2)], guest_token="tok-1")

        outcome = CartMergeEngine().merge("user-1", "tok-1")

        assert outcome == MergeOutcome.MERGED
        merged = current_domain.repository_for(Cart).get(user_cart.id)
        assert _quantities(merged) == {"A": 3, "B": 3}

        resolver = CartIdentityResolver()
        assert resolver.resolve(RequestIdentity(guest_token="tok-1")) is None

    def test_guest_cart_is_reassigned_when_user_has_none(self):
        guest_cart = _cart([("A", 2)], guest_token="tok-1")

        outcome = CartMergeEngine().merge("user-1", "tok-1")

        assert outcome == MergeOutcome.REASSIGNED
        cart = current_domain.repository_for(Cart).find_by_user("user-1")
        assert cart.id == guest_cart.id
        assert _quantities(cart) == {"A": 2}

    def test_second_merge_is_a_no_op(self):
        _cart([("A", 1), ("B", 3)], user_id="user-1")
        _cart([("A", 2)], guest_token="tok-1")

        engine = CartMergeEngine()
        engine.merge("user-1", "tok-1")
        outcome = engine.merge("user-1", "tok-1")

        assert outcome == MergeOutcome.NO_GUEST_CART
        cart = current_domain.repository_for(Cart).find_by_user("user-1")
        assert _quantities(cart) == {"A": 3, "B": 3}

    def test_without_guest_token(self):
        assert CartMergeEngine().merge("user-1", None) == MergeOutcome.NO_GUEST_CART


class TestConflicts:
    def test_retries_once_after_a_version_conflict(self):
        attempts = []

        def flaky(command):
            attempts.append(command)
            if len(attempts) == 1:
                raise ExpectedVersionError("Cart changed")
            return MergeOutcome.MERGED.value

        assert CartMergeEngine(process=flaky).merge("user-1", "tok-1") == MergeOutcome.MERGED
        assert len(attempts) == 2

    def test_gives_up_after_the_retry(self):
        attempts = []

        def always_conflicting(command):
            attempts.append(command)
            raise ExpectedVersionError("Cart changed")

        with pytest.raises(CartMergeConflict) as exc:
            CartMergeEngine(process=always_conflicting).merge("user-1", "tok-1")
        assert len(attempts) == 2
        assert exc.value.status_code == 503


def _in_another_request(change):
    """Run ``change(repo)`` on its own thread and domain context, committed before returning."""
    errors = []

    def run():
        try:
            with storefront.domain_context():
                change(current_domain.repository_for(Cart))
        except Exception as exc:  # surfaced through the assertion below
            errors.append(exc)

    thread = threading.Thread(target=run)
    thread.start()
    thread.join()
    assert errors == []


def _add_line_to(find, product_id, quantity):
    def change(repo):
        cart = find(repo)
        cart.add_item(product_id, None, quantity)
        repo.add(cart)

    return change


def _interleave_on_absorb(monkeypatch, change):
    """Apply ``change`` once, after the merge has read both carts and before it writes."""
    absorb = Cart.absorb
    applied = []

    def absorb_after_concurrent_change(self, guest_cart):
        if not applied:
            applied.append(True)
            _in_another_request(change)
        return absorb(self, guest_cart)

    monkeypatch.setattr(Cart, "absorb", absorb_after_concurrent_change)


class TestConcurrentChanges:
    def test_line_added_to_the_guest_cart_during_the_merge_is_kept(self, monkeypatch):
        user_cart = _cart([("A", 1), ("B", 3)], user_id="user-1")
        _cart([("A", 2)], guest_token="tok-1")
        _interleave_on_absorb(
            monkeypatch, _add_line_to(lambda repo: repo.find_by_guest_token("tok-1"), "C", 5)
        )

        outcome = CartMergeEngine().merge("user-1", "tok-1")

        assert outcome == MergeOutcome.MERGED
        merged = current_domain.repository_for(Cart).get(user_cart.id)
        assert _quantities(merged) == {"A": 3, "B": 3, "C": 5}
        assert current_domain.repository_for(Cart).find_by_guest_token("tok-1") is None

    def test_line_added_to_the_user_cart_during_the_merge_is_kept(self, monkeypatch):
        user_cart = _cart([("A", 1), ("B", 3)], user_id="user-1")
        _cart([("A", 2)], guest_token="tok-1")
        _interleave_on_absorb(monkeypatch, _add_line_to(lambda repo: repo.find_by_user("user-1"), "C", 5))

        outcome = CartMergeEngine().merge("user-1", "tok-1")

        assert outcome == MergeOutcome.MERGED
        merged = current_domain.repository_for(Cart).get(user_cart.id)
        assert _quantities(merged) == {"A": 3, "B": 3, "C": 5}
        assert current_domain.repository_for(Cart).find_by_guest_token("tok-1") is None
