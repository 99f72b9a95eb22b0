"""
Tests for the login merge protocol
"""

import pytest

from cartsync.cart import CartEngine
from cartsync.errors import RemoteNetworkError, RemoteTimeout
from cartsync.models import CartItem, WishlistItem, load_cart_items, load_wishlist_items
from cartsync.storage import StorageKeys
from cartsync.sync import MergeProtocol
from cartsync.wishlist import WishlistEngine


@pytest.fixture
def merge(store, cart_remote, wishlist_remote, events, latches, config, clock, user_state):
    cart_engine = CartEngine(store, cart_remote, events, latches, config, clock)
    wishlist_engine = WishlistEngine(store, wishlist_remote, events, latches, config)
    cart_engine.bind(user_state)
    wishlist_engine.bind(user_state)
    return MergeProtocol(store, cart_remote, wishlist_remote, cart_engine, wishlist_engine, config)


def _server_quantities(cart_remote):
    return {key: item.quantity for key, item in cart_remote.lines.items()}


def _stash(store, cart=(), wishlist=()):
    """Persist raw guest data and return it parsed, the way the guest session holds it."""
    if cart:
        store.set(StorageKeys.GUEST_CART, list(cart))
    if wishlist:
        store.set(StorageKeys.GUEST_WISHLIST, list(wishlist))
    return load_cart_items(cart), load_wishlist_items(wishlist)


@pytest.mark.asyncio
async def test_guest_cart_is_added_on_top_of_account_cart(merge, store, cart_remote, user_state):
    cart_remote.seed(CartItem(product_id="p1", quantity=2))
    guest_cart, guest_wishlist = _stash(
        store,
        cart=[
            {"productId": "p1", "quantity": 1},
            {"productId": "p2", "quantity": 3},
        ],
    )

    report = await merge.run(guest_cart, guest_wishlist)

    assert report.performed
    assert report.cart_lines == 2
    assert report.cart_failures == 0
    assert report.cart_reloaded
    assert _server_quantities(cart_remote) == {"p1::default": 3, "p2::default": 3}
    assert {item.key: item.quantity for item in user_state.cart} == {
        "p1::default": 3,
        "p2::default": 3,
    }
    assert store.get_raw(StorageKeys.GUEST_CART) is None


@pytest.mark.asyncio
async def test_duplicate_guest_lines_are_sent_once(merge, cart_remote):
    guest_cart = [
        CartItem(product_id="p1", quantity=1),
        CartItem(product_id="p1", quantity=2),
    ]

    await merge.run(guest_cart, [])

    adds = [call for call in cart_remote.calls if call[0] == "add_item"]
    assert adds == [("add_item", "p1", 3, None)]
    assert [item.quantity for item in guest_cart] == [1, 2]


@pytest.mark.asyncio
async def test_duplicate_guest_wishlist_entries_are_sent_once(merge, wishlist_remote):
    await merge.run([], [WishlistItem(product_id="w1"), WishlistItem(product_id="w1")])

    assert wishlist_remote.calls.count(("add_item", "w1")) == 1


@pytest.mark.asyncio
async def test_second_run_makes_no_calls(merge, store, cart_remote, wishlist_remote):
    guest_cart, guest_wishlist = _stash(
        store, cart=[{"productId": "p1", "quantity": 1}], wishlist=["w1"]
    )
    await merge.run(guest_cart, guest_wishlist)
    cart_remote.calls.clear()
    wishlist_remote.calls.clear()

    report = await merge.run([], [])

    assert not report.performed
    assert cart_remote.calls == []
    assert wishlist_remote.calls == []
    assert _server_quantities(cart_remote) == {"p1::default": 1}


@pytest.mark.asyncio
async def test_failed_lines_do_not_stop_the_merge(merge, store, cart_remote):
    guest_cart, guest_wishlist = _stash(
        store,
        cart=[
            {"productId": "p1", "quantity": 1},
            {"productId": "p2", "quantity": 1},
        ],
    )
    cart_remote.fail("add_item", RemoteTimeout("Request timeout"))

    report = await merge.run(guest_cart, guest_wishlist)

    assert report.cart_failures == 1
    assert _server_quantities(cart_remote) == {"p2::default": 1}
    assert store.get_raw(StorageKeys.GUEST_CART) is None


@pytest.mark.asyncio
async def test_wishlist_merge_skips_known_items(merge, store, wishlist_remote, user_state):
    wishlist_remote.seed("w1")
    guest_cart, guest_wishlist = _stash(
        store, wishlist=[{"productId": "w1"}, {"productId": "w2"}]
    )

    report = await merge.run(guest_cart, guest_wishlist)

    assert report.wishlist_attempted == 1
    assert ("add_item", "w1") not in wishlist_remote.calls
    assert ("add_item", "w2") in wishlist_remote.calls
    assert {item.product_id for item in user_state.wishlist} == {"w1", "w2"}
    assert store.get_raw(StorageKeys.GUEST_WISHLIST) is None


@pytest.mark.asyncio
async def test_wishlist_merge_without_dedupe_tolerates_duplicates(merge, store, wishlist_remote):
    wishlist_remote.seed("w1")
    wishlist_remote.fail("fetch_all", RemoteNetworkError("HTTP 502", status_code=502))
    guest_cart, guest_wishlist = _stash(store, wishlist=["w1", "w2"])

    report = await merge.run(guest_cart, guest_wishlist)

    assert report.dedupe_skipped
    assert report.wishlist_attempted == 2
    assert report.wishlist_failures == 0
    assert set(wishlist_remote.items) == {"w1", "w2"}


@pytest.mark.asyncio
async def test_nothing_to_merge(merge, cart_remote, wishlist_remote):
    report = await merge.run([], [])

    assert not report.performed
    assert cart_remote.calls == []
    assert wishlist_remote.calls == []
