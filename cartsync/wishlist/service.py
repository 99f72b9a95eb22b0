"""Wishlist engine: toggle semantics over the active session context."""

from typing import Callable, List, Optional

from cartsync import latches as latch_names
from cartsync.config import SyncConfig
from cartsync.errors import (
    MSG_ADDED_TO_WISHLIST,
    MSG_ALREADY_IN_WISHLIST,
    MSG_REMOVED_FROM_WISHLIST,
    MSG_WISHLIST_SYNC_FAILED,
    AlreadyInWishlistError,
    RemoteError,
    RemoteUnauthorized,
)
from cartsync.events import NOTICE_INFO, NOTICE_SUCCESS, NOTICE_WARNING, EventHub
from cartsync.latches import LatchMap
from cartsync.logging import get_logger, sanitize_id_for_logging
from cartsync.models import EngineState, Outcome, ProductMeta, SessionContext, WishlistItem
from cartsync.storage import LocalStore, StorageKeys
from cartsync.tasks import BackgroundTasks

logger = get_logger(__name__)


class WishlistEngine:
    """
    Owns wishlist semantics for one bound EngineState.

    Adding a present product and removing an absent one are both no-ops.
    A server "already in wishlist" answer counts as success: it means the
    server caught up first, not that the add failed.
    """

    def __init__(
        self,
        store: LocalStore,
        remote,
        events: EventHub,
        latches: LatchMap,
        config: Optional[SyncConfig] = None,
    ):
        self.store = store
        self.remote = remote
        self.events = events
        self.latches = latches
        self.config = config or SyncConfig()
        self._state = EngineState(SessionContext.GUEST)
        self._tasks = BackgroundTasks("wishlist")
        self._generation = 0
        self.on_unauthorized: Optional[Callable[[], None]] = None

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def is_remote(self) -> bool:
        return self._state.context is SessionContext.AUTHENTICATED

    def bind(self, state: EngineState) -> None:
        if state is self._state:
            return
        self._state = state
        self._generation += 1

    def _touch(self) -> int:
        self._generation += 1
        return self._generation

    def _persist(self, state: EngineState, reason: str) -> None:
        self.store.set(
            StorageKeys.wishlist_key(state.context), [item.to_dict() for item in state.wishlist]
        )
        self.events.state_changed(state, reason)

    def _unauthorized(self) -> None:
        logger.warning("Wishlist call unauthorized; falling back to guest context")
        if self.on_unauthorized is not None:
            self.on_unauthorized()

    @property
    def pending(self) -> int:
        return self._tasks.pending

    async def wait_idle(self) -> None:
        await self._tasks.wait_idle()

    def reset(self) -> None:
        self._tasks.cancel_all()
        self._generation += 1

    def contains(self, product_id: str) -> bool:
        return self._state.has_wishlist_item(product_id)

    async def add(self, product_id: str, meta: Optional[ProductMeta] = None) -> Outcome:
        """Add a product; returns ALREADY_PRESENT without any call if held locally."""
        if not product_id or not isinstance(product_id, str):
            raise ValueError("product_id must be a non-empty string")

        state = self._state
        if state.has_wishlist_item(product_id):
            self.events.notify(NOTICE_INFO, MSG_ALREADY_IN_WISHLIST, code="wishlist_present")
            return Outcome.ALREADY_PRESENT

        meta = meta or ProductMeta()
        state.wishlist.append(
            WishlistItem(product_id=product_id, name=meta.name, unit_price=meta.price, image=meta.image)
        )
        self._touch()
        self._persist(state, "wishlist_add")
        self.events.notify(NOTICE_SUCCESS, MSG_ADDED_TO_WISHLIST, code="wishlist_added")

        if self.is_remote:
            self._tasks.spawn(self._push_add(product_id), "add")
        return Outcome.APPLIED

    async def _push_add(self, product_id: str) -> None:
        try:
            await self.remote.add_item(product_id)
        except AlreadyInWishlistError:
            logger.info("Product %s already in server wishlist", sanitize_id_for_logging(product_id))
        except RemoteUnauthorized:
            self._unauthorized()
        except RemoteError as e:
            logger.warning("Remote wishlist add failed for %s: %s", sanitize_id_for_logging(product_id), e)
            self.events.notify(NOTICE_WARNING, MSG_WISHLIST_SYNC_FAILED, code="wishlist_sync")

    async def remove(self, product_id: str) -> Outcome:
        """Remove a product; removing an absent product is a no-op."""
        state = self._state
        if not state.has_wishlist_item(product_id):
            return Outcome.NOOP

        state.wishlist = [item for item in state.wishlist if item.product_id != product_id]
        self._touch()
        self._persist(state, "wishlist_remove")
        self.events.notify(NOTICE_SUCCESS, MSG_REMOVED_FROM_WISHLIST, code="wishlist_removed")

        if self.is_remote:
            self._tasks.spawn(self._push_remove(product_id), "remove")
        return Outcome.APPLIED

    async def _push_remove(self, product_id: str) -> None:
        try:
            await self.remote.remove_item(product_id)
        except RemoteUnauthorized:
            self._unauthorized()
        except RemoteError as e:
            logger.warning(
                "Remote wishlist remove failed for %s: %s", sanitize_id_for_logging(product_id), e
            )
            self.events.notify(NOTICE_WARNING, MSG_WISHLIST_SYNC_FAILED, code="wishlist_sync")

    async def toggle(self, product_id: str, meta: Optional[ProductMeta] = None) -> Outcome:
        if self.contains(product_id):
            return await self.remove(product_id)
        return await self.add(product_id, meta)

    async def reload(self) -> bool:
        """Replace the authenticated wishlist with the server copy; False if skipped or failed."""
        if not self.is_remote:
            return False

        with self.latches.hold(latch_names.WISHLIST) as acquired:
            if not acquired:
                return False

            state = self._state
            generation = self._generation
            try:
                items: List[WishlistItem] = await self.remote.fetch_all()
            except RemoteUnauthorized:
                self._unauthorized()
                return False
            except RemoteError as e:
                logger.warning("Wishlist reload failed, keeping cached wishlist: %s", e)
                return False

            if state is not self._state:
                return False
            if self.config.discard_stale_responses and generation != self._generation:
                logger.info("Discarding stale wishlist reload (local wishlist changed since request)")
                return False

            state.wishlist = items
            self._persist(state, "wishlist_reload")
            logger.info("Wishlist reloaded: %d items", len(items))
            return True
