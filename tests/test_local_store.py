"""
Tests for LocalStore and its backends
"""

import pytest

from cartsync.errors import StorageQuotaError
from cartsync.models import CartItem, PersistLevel, load_cart_items
from cartsync.storage import FileBackend, LocalStore, MemoryBackend, StorageKeys, create_local_store


def _cart_payload():
    item = CartItem(product_id="p1", quantity=1, name="Widget", unit_price="9.99", image="x" * 500)
    return [item.to_dict()]


class TestReadWrite:
    def test_round_trip(self, store):
        assert store.set("guestCart", [{"productId": "p1"}]) == PersistLevel.FULL
        assert store.get_list("guestCart") == [{"productId": "p1"}]

    def test_missing_key_reads_default(self, store):
        assert store.get("nothing", []) == []
        assert store.get_list("nothing") == []

    def test_corrupted_value_is_reset(self, store):
        store.backend.set("guestCart", "[{broken")

        assert store.get_list("guestCart") == []
        assert store.get_raw("guestCart") is None

    def test_non_list_value_is_reset(self, store):
        store.set("guestCart", {"not": "a list"})

        assert store.get_list("guestCart") == []
        assert store.get_raw("guestCart") is None

    def test_get_raw_returns_untouched_string(self, store):
        store.backend.set("customerToken", '"abc"')

        assert store.get_raw("customerToken") == '"abc"'


class TestQuotaFallback:
    """Quota exhaustion shrinks the payload instead of failing."""

    def test_essential_fields_when_full_does_not_fit(self):
        store = LocalStore(MemoryBackend(quota_bytes=300))

        level = store.set(StorageKeys.USER_CART, _cart_payload())

        assert level == PersistLevel.ESSENTIAL
        stored = store.get_list(StorageKeys.USER_CART)
        assert "image" not in stored[0]
        assert stored[0]["productId"] == "p1"
        assert stored[0]["quantity"] == 1

    def test_long_names_are_truncated(self):
        store = LocalStore(MemoryBackend(quota_bytes=300))
        payload = _cart_payload()
        payload[0]["name"] = "n" * 120

        store.set(StorageKeys.USER_CART, payload)

        assert len(store.get_list(StorageKeys.USER_CART)[0]["name"]) == 50

    def test_ids_only_as_last_resort(self):
        store = LocalStore(MemoryBackend(quota_bytes=40))

        assert store.set(StorageKeys.USER_CART, _cart_payload()) == PersistLevel.IDS_ONLY
        assert store.get_list(StorageKeys.USER_CART) == ["p1"]

    def test_failed_write_does_not_raise(self):
        store = LocalStore(MemoryBackend(quota_bytes=10))

        assert store.set(StorageKeys.USER_CART, _cart_payload()) == PersistLevel.FAILED
        assert store.get_raw(StorageKeys.USER_CART) is None

    def test_backend_raises_quota_error(self):
        backend = MemoryBackend(quota_bytes=5)

        with pytest.raises(StorageQuotaError):
            backend.set("key", "value")


class TestFingerprint:
    def test_changes_with_content(self, store):
        keys = StorageKeys.all_keys()
        before = store.fingerprint(keys)

        store.set(StorageKeys.GUEST_CART, ["p1"])

        assert store.fingerprint(keys) != before
        assert store.fingerprint(keys) == store.fingerprint(keys)


class TestFileBackend:
    def test_persists_across_instances(self, tmp_path):
        LocalStore(FileBackend(str(tmp_path))).set(StorageKeys.GUEST_WISHLIST, ["w1"])

        reopened = create_local_store(str(tmp_path))

        assert reopened.get_list(StorageKeys.GUEST_WISHLIST) == ["w1"]
        assert (tmp_path / "guestWishlist.json").exists()

    def test_remove(self, tmp_path):
        store = LocalStore(FileBackend(str(tmp_path)))
        store.set(StorageKeys.GUEST_CART, ["p1"])

        store.remove(StorageKeys.GUEST_CART)
        store.remove(StorageKeys.GUEST_CART)

        assert store.get_raw(StorageKeys.GUEST_CART) is None

    def test_undecodable_file_is_reset(self, tmp_path):
        (tmp_path / "guestCart.json").write_bytes(b"\xff\xfe[garbage")
        store = LocalStore(FileBackend(str(tmp_path)))

        assert store.get_list(StorageKeys.GUEST_CART) == []
        assert store.get_raw(StorageKeys.GUEST_CART) is None
        assert not (tmp_path / "guestCart.json").exists()

    def test_quota(self, tmp_path):
        store = LocalStore(FileBackend(str(tmp_path), quota_bytes=200))

        assert store.set(StorageKeys.USER_CART, _cart_payload()) == PersistLevel.ESSENTIAL

    def test_memory_store_without_directory(self):
        assert isinstance(create_local_store(None).backend, MemoryBackend)


def test_cart_round_trip_preserves_items(store, red):
    items = [
        CartItem(product_id="p1", quantity=2, color=red, unit_price="9.99", name="Mug", image="mug.jpg"),
        CartItem(product_id="p2", quantity=1),
    ]

    store.set(StorageKeys.GUEST_CART, [item.to_dict() for item in items])

    assert load_cart_items(store.get_list(StorageKeys.GUEST_CART)) == items
