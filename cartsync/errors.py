"""
Error types and message constants.

Message strings are centralized to avoid duplication between the engines,
the notices they emit, and the tests that assert on them.
"""

from typing import Optional

# Notice messages
MSG_CART_SYNC_FAILED = "Cart could not be synced, changes are kept on this device"
MSG_CART_REMOVE_FAILED = "Item could not be removed on the server, cart was reloaded"
MSG_CART_CLEAR_FAILED = "Cart could not be cleared on the server"
MSG_INVALID_OPTION = "This product option is no longer available, please choose another"
MSG_ADDED_TO_WISHLIST = "Added to wishlist"
MSG_ALREADY_IN_WISHLIST = "Product already in wishlist"
MSG_REMOVED_FROM_WISHLIST = "Removed from wishlist"
MSG_WISHLIST_SYNC_FAILED = "Wishlist could not be synced, changes are kept on this device"
MSG_SESSION_EXPIRED = "Your session has expired, please sign in again"

# Remote error text
ERROR_ALREADY_IN_WISHLIST = "already in wishlist"
ERROR_REQUEST_TIMEOUT = "Request timeout"
ERROR_NETWORK = "Network error"
ERROR_UNAUTHORIZED = "Unauthorized"
ERROR_RATE_LIMITED = "Rate limit exceeded"
ERROR_REJECTED = "Request rejected"

# Storage error text
ERROR_STORAGE_QUOTA = "Storage quota exceeded"


class CartSyncError(Exception):
    """Base class for every error raised inside cartsync."""


class StorageQuotaError(CartSyncError):
    """A storage backend ran out of space for a write."""


class RemoteError(CartSyncError):
    """A call to the commerce API failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class RemoteNetworkError(RemoteError):
    """Transport failure or an unexpected server status."""


class RateLimitedError(RemoteNetworkError):
    """Server answered 429."""

    def __init__(self, message: str, retry_after: float = 1.0):
        super().__init__(message, status_code=429)
        self.retry_after = retry_after


class RemoteTimeout(RemoteError):
    """The call exceeded its timeout budget and was abandoned."""


class RemoteUnauthorized(RemoteError):
    """The bearer token was rejected."""


class RemoteValidationError(RemoteError):
    """The server rejected the request parameters."""


class AlreadyInWishlistError(RemoteValidationError):
    """Wishlist add for a product the server already holds."""


def is_already_in_wishlist(message: Optional[str]) -> bool:
    """Check a server message for the duplicate wishlist rejection."""
    return bool(message) and ERROR_ALREADY_IN_WISHLIST in message.lower()
