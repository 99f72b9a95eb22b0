"""Local storage key names, namespaced by session context."""

from cartsync.models import SessionContext


class StorageKeys:
    """Key names for persisted cart/wishlist collections."""

    GUEST_CART = "guestCart"
    GUEST_WISHLIST = "guestWishlist"
    USER_CART = "userCart"
    USER_WISHLIST = "userWishlist"

    @staticmethod
    def cart_key(context: SessionContext) -> str:
        if context is SessionContext.AUTHENTICATED:
            return StorageKeys.USER_CART
        return StorageKeys.GUEST_CART

    @staticmethod
    def wishlist_key(context: SessionContext) -> str:
        if context is SessionContext.AUTHENTICATED:
            return StorageKeys.USER_WISHLIST
        return StorageKeys.GUEST_WISHLIST

    @staticmethod
    def all_keys() -> tuple:
        return (
            StorageKeys.GUEST_CART,
            StorageKeys.GUEST_WISHLIST,
            StorageKeys.USER_CART,
            StorageKeys.USER_WISHLIST,
        )
