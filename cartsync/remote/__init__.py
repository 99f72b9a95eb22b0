"""Remote package: HTTP client and cart/wishlist gateways."""
from .cart import RemoteCartClient
from .client import ApiClient
from .wishlist import RemoteWishlistClient

__all__ = [
    "ApiClient",
    "RemoteCartClient",
    "RemoteWishlistClient",
]
