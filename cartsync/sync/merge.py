"""
Login-time merge of guest cart/wishlist into the authenticated account.

The merge only ever adds deltas on the server, so lines the account already
had from an earlier session survive. It runs at most once per login: guest
storage is cleared at the end whether or not every call succeeded.
"""

import asyncio
from dataclasses import dataclass
from typing import Iterable, List, Set

from cartsync.config import SyncConfig
from cartsync.errors import AlreadyInWishlistError, RemoteError
from cartsync.logging import get_logger, sanitize_id_for_logging
from cartsync.models import CartItem, WishlistItem, fold_cart_items, unique_wishlist_items
from cartsync.storage import LocalStore, StorageKeys

logger = get_logger(__name__)


@dataclass
class MergeReport:
    """What a merge run did."""
    performed: bool = False
    cart_lines: int = 0
    cart_failures: int = 0
    wishlist_attempted: int = 0
    wishlist_failures: int = 0
    dedupe_skipped: bool = False
    cart_reloaded: bool = False
    wishlist_reloaded: bool = False


class MergeProtocol:
    """Folds guest data into the canonical remote state."""

    def __init__(
        self,
        store: LocalStore,
        cart_remote,
        wishlist_remote,
        cart_engine,
        wishlist_engine,
        config: SyncConfig,
    ):
        self.store = store
        self.cart_remote = cart_remote
        self.wishlist_remote = wishlist_remote
        self.cart_engine = cart_engine
        self.wishlist_engine = wishlist_engine
        self.config = config

    async def run(
        self, guest_cart: Iterable[CartItem], guest_wishlist: Iterable[WishlistItem]
    ) -> MergeReport:
        """
        Merge the guest session's cart and wishlist.

        Callers pass the in-memory guest state: storage may only hold a
        shrunken copy after a quota fallback. Duplicate cart keys are summed
        before anything is sent. The cart and wishlist engines must already
        be bound to the authenticated state.
        """
        guest_cart = fold_cart_items(guest_cart)
        guest_wishlist = unique_wishlist_items(guest_wishlist)

        report = MergeReport()
        if not guest_cart and not guest_wishlist:
            logger.debug("No guest data to merge")
            return report

        report.performed = True
        logger.info(
            "Merging guest data: %d cart lines, %d wishlist items",
            len(guest_cart),
            len(guest_wishlist),
        )
        try:
            if guest_cart:
                await self._merge_cart(guest_cart, report)
            if guest_wishlist:
                await self._merge_wishlist(guest_wishlist, report)
        finally:
            self.store.remove(StorageKeys.GUEST_CART)
            self.store.remove(StorageKeys.GUEST_WISHLIST)
            logger.info("Guest data cleared after merge")

        return report

    async def _pause(self, index: int) -> None:
        if index and self.config.merge_call_delay > 0:
            await asyncio.sleep(self.config.merge_call_delay)

    async def _merge_cart(self, lines: List[CartItem], report: MergeReport) -> None:
        report.cart_lines = len(lines)
        for index, line in enumerate(lines):
            await self._pause(index)
            try:
                await self.cart_remote.add_item(line.product_id, line.quantity, line.color)
            except RemoteError as e:
                report.cart_failures += 1
                logger.error("Failed merging guest line %s: %s", sanitize_id_for_logging(line.key), e)

        report.cart_reloaded = await self.cart_engine.reload()
        if not report.cart_reloaded:
            logger.warning("Could not reload cart after merge; cached cart kept")

    async def _known_wishlist_ids(self, report: MergeReport) -> Set[str]:
        try:
            remote_items = await self.wishlist_remote.fetch_all()
        except RemoteError as e:
            # Without the server list every guest item is sent; duplicates come
            # back as "already in wishlist", which is harmless
            logger.warning("Wishlist fetch failed before merge, skipping dedupe: %s", e)
            report.dedupe_skipped = True
            return set()
        return {item.product_id for item in remote_items}

    async def _merge_wishlist(self, items: List[WishlistItem], report: MergeReport) -> None:
        known = await self._known_wishlist_ids(report)
        to_add = [item for item in items if item.product_id not in known]
        report.wishlist_attempted = len(to_add)

        for index, item in enumerate(to_add):
            await self._pause(index)
            try:
                await self.wishlist_remote.add_item(item.product_id)
            except AlreadyInWishlistError:
                logger.info("Guest wishlist item %s already on server", sanitize_id_for_logging(item.product_id))
            except RemoteError as e:
                report.wishlist_failures += 1
                logger.error(
                    "Failed merging guest wishlist item %s: %s",
                    sanitize_id_for_logging(item.product_id),
                    e,
                )

        report.wishlist_reloaded = await self.wishlist_engine.reload()
