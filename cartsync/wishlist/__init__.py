"""Wishlist package: the wishlist toggle engine."""
from .service import WishlistEngine

__all__ = ["WishlistEngine"]
