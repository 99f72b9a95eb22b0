"""
cartsync - cart and wishlist synchronization engine for the storefront.

Keeps a guest cart/wishlist and an authenticated, server-backed one
consistent across logins, reloads, and flaky networks without blocking
the UI. The UI layer talks only to SyncCoordinator.
"""
from cartsync.config import SyncConfig
from cartsync.models import (
    CartItem,
    ColorVariant,
    EngineState,
    Outcome,
    ProductMeta,
    SessionContext,
    SyncPhase,
    WishlistItem,
)
from cartsync.sync import SyncCoordinator, create_coordinator

__all__ = [
    "CartItem",
    "ColorVariant",
    "EngineState",
    "Outcome",
    "ProductMeta",
    "SessionContext",
    "SyncConfig",
    "SyncCoordinator",
    "SyncPhase",
    "WishlistItem",
    "create_coordinator",
]
