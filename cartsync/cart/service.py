"""
Cart engine: optimistic cart mutations over the active session context.

Features:
- Local state is mutated and persisted before any network call
- Duplicate adds inside a short window are suppressed (double clicks)
- Quantity pushes are debounced per line
- Server responses replace the cart unless a newer local mutation exists
"""

import asyncio
import time
from typing import Callable, Dict, List, Optional, Union

from cartsync import latches as latch_names
from cartsync.config import SyncConfig
from cartsync.errors import (
    MSG_CART_CLEAR_FAILED,
    MSG_CART_REMOVE_FAILED,
    MSG_CART_SYNC_FAILED,
    MSG_INVALID_OPTION,
    RemoteError,
    RemoteUnauthorized,
    RemoteValidationError,
)
from cartsync.events import NOTICE_ERROR, NOTICE_WARNING, EventHub
from cartsync.latches import LatchMap
from cartsync.logging import get_logger, sanitize_id_for_logging
from cartsync.models import (
    CartItem,
    ColorVariant,
    EngineState,
    Outcome,
    ProductMeta,
    SessionContext,
    cart_key,
)
from cartsync.storage import LocalStore, StorageKeys
from cartsync.tasks import BackgroundTasks

logger = get_logger(__name__)


class CartEngine:
    """Owns cart mutation semantics for one bound EngineState."""

    def __init__(
        self,
        store: LocalStore,
        remote,
        events: EventHub,
        latches: LatchMap,
        config: Optional[SyncConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.remote = remote
        self.events = events
        self.latches = latches
        self.config = config or SyncConfig()
        self._clock = clock
        self._state = EngineState(SessionContext.GUEST)
        self._tasks = BackgroundTasks("cart")
        self._debounced: Dict[str, asyncio.Task] = {}
        self._generation = 0
        self._last_add_key: Optional[str] = None
        self._last_add_at = float("-inf")
        self.on_unauthorized: Optional[Callable[[], None]] = None

    # ------------------------------------------------------------------
    # Binding and bookkeeping
    # ------------------------------------------------------------------

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def is_remote(self) -> bool:
        return self._state.context is SessionContext.AUTHENTICATED

    def bind(self, state: EngineState) -> None:
        """Make state the target of every following mutation."""
        if state is self._state:
            return
        self.cancel_pending()
        self._state = state
        self._generation += 1
        self._last_add_key = None

    def _touch(self) -> int:
        self._generation += 1
        return self._generation

    def _persist(self, state: EngineState, reason: str) -> None:
        self.store.set(StorageKeys.cart_key(state.context), [item.to_dict() for item in state.cart])
        self.events.state_changed(state, reason)

    def _reconcile(self, state: EngineState, items: List[CartItem], generation: int, reason: str) -> bool:
        """Replace the cart with server items unless the response is stale."""
        if state is not self._state:
            logger.info("Discarding %s response for an inactive %s cart", reason, state.context.value)
            return False
        if self.config.discard_stale_responses and generation != self._generation:
            logger.info("Discarding stale %s response (local cart changed since request)", reason)
            return False
        state.cart = items
        self._persist(state, reason)
        return True

    def _unauthorized(self) -> None:
        logger.warning("Cart call unauthorized; falling back to guest context")
        if self.on_unauthorized is not None:
            self.on_unauthorized()

    @property
    def pending(self) -> int:
        return self._tasks.pending

    async def wait_idle(self) -> None:
        """Wait for every background push and reload to finish."""
        await self._tasks.wait_idle()

    def cancel_pending(self) -> None:
        """Drop quantity pushes still waiting out their debounce window."""
        for task in self._debounced.values():
            task.cancel()
        self._debounced.clear()

    def reset(self) -> None:
        self.cancel_pending()
        self._tasks.cancel_all()
        self._last_add_key = None
        self._generation += 1

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def add_to_cart(
        self,
        product_id: str,
        quantity: int = 1,
        color: Union[ColorVariant, dict, str, None] = None,
        meta: Optional[ProductMeta] = None,
    ) -> Outcome:
        """
        Add quantity of a product/color line.

        Args:
            product_id: Product id
            quantity: Units to add (>= 1)
            color: Color variant, or None for the default line
            meta: Display snapshot (name, price, image)

        Returns:
            APPLIED, or THROTTLED for a repeat inside the throttle window
        """
        if not product_id or not isinstance(product_id, str):
            raise ValueError("product_id must be a non-empty string")
        if not isinstance(quantity, int) or quantity < 1:
            raise ValueError("quantity must be a positive integer")

        color = ColorVariant.parse(color)
        key = cart_key(product_id, color)
        now = self._clock()
        if key == self._last_add_key and now - self._last_add_at < self.config.add_throttle_window:
            logger.info("Duplicate add suppressed for %s", sanitize_id_for_logging(key))
            return Outcome.THROTTLED
        self._last_add_key = key
        self._last_add_at = now

        state = self._state
        existing = state.find_cart_item(key)
        if existing:
            existing.quantity += quantity
        else:
            meta = meta or ProductMeta()
            state.cart.append(
                CartItem(
                    product_id=product_id,
                    quantity=quantity,
                    color=color,
                    unit_price=meta.price,
                    name=meta.name,
                    image=meta.image,
                )
            )
        generation = self._touch()
        self._persist(state, "add")

        if self.is_remote:
            self._tasks.spawn(self._push_add(state, product_id, quantity, color, generation), "add")
        return Outcome.APPLIED

    async def _remote_add(
        self, product_id: str, quantity: int, color: Optional[ColorVariant]
    ) -> Optional[List[CartItem]]:
        try:
            return await self.remote.add_item(product_id, quantity, color)
        except RemoteValidationError as e:
            if color is None:
                raise
            logger.warning(
                "Add rejected for %s with color, retrying without: %s",
                sanitize_id_for_logging(product_id),
                e.message,
            )
            return await self.remote.add_item(product_id, quantity, None)

    async def _push_add(
        self,
        state: EngineState,
        product_id: str,
        quantity: int,
        color: Optional[ColorVariant],
        generation: int,
    ) -> None:
        try:
            items = await self._remote_add(product_id, quantity, color)
        except RemoteUnauthorized:
            self._unauthorized()
            return
        except RemoteValidationError as e:
            logger.error("Add rejected for %s: %s", sanitize_id_for_logging(product_id), e.message)
            self.events.notify(NOTICE_ERROR, MSG_INVALID_OPTION, code="cart_validation")
            return
        except RemoteError as e:
            # Optimistic line stays; the next reconciliation settles it
            logger.warning("Remote add failed for %s: %s", sanitize_id_for_logging(product_id), e)
            self.events.notify(NOTICE_WARNING, MSG_CART_SYNC_FAILED, code="cart_sync")
            return

        if items is not None:
            self._reconcile(state, items, generation, "add")

    async def remove_item(self, key: str) -> Outcome:
        """Remove a line by key; an unknown key is a no-op."""
        state = self._state
        item = state.find_cart_item(key)
        if item is None:
            return Outcome.NOOP

        pending = self._debounced.pop(key, None)
        if pending is not None:
            pending.cancel()
        state.cart = [line for line in state.cart if line.key != key]
        self._touch()
        self._persist(state, "remove")

        if self.is_remote:
            self._tasks.spawn(self._push_remove(item), "remove")
        return Outcome.APPLIED

    async def _push_remove(self, item: CartItem) -> None:
        # Colored lines get a second, color-less attempt for legacy server lines
        attempts = (item.color, None) if item.color else (None,)
        for attempt, color in enumerate(attempts, start=1):
            try:
                await self.remote.remove_item(item.product_id, color)
                return
            except RemoteUnauthorized:
                self._unauthorized()
                return
            except RemoteError as e:
                logger.warning(
                    "Remote remove attempt %d failed for %s: %s",
                    attempt,
                    sanitize_id_for_logging(item.key),
                    e,
                )

        # Canonical reload may bring the line back if the server still has it
        self.events.notify(NOTICE_WARNING, MSG_CART_REMOVE_FAILED, code="cart_remove")
        await self.reload()

    async def update_quantity(self, key: str, delta: int) -> Outcome:
        """
        Change a line's quantity by delta.

        The local change is immediate; the server sees only the final
        quantity once calls for this line stop for the debounce window.
        """
        state = self._state
        item = state.find_cart_item(key)
        if item is None or delta == 0:
            return Outcome.NOOP

        new_quantity = item.quantity + delta
        if new_quantity <= 0:
            return await self.remove_item(key)

        item.quantity = new_quantity
        self._touch()
        self._persist(state, "quantity")

        if self.is_remote:
            self._schedule_quantity_push(state, key)
        return Outcome.APPLIED

    def _schedule_quantity_push(self, state: EngineState, key: str) -> None:
        pending = self._debounced.pop(key, None)
        if pending is not None:
            pending.cancel()
        self._debounced[key] = self._tasks.spawn(self._debounced_push(state, key), "quantity")

    async def _debounced_push(self, state: EngineState, key: str) -> None:
        await asyncio.sleep(self.config.quantity_debounce)
        # From here on the push is committed and must not be cancelled
        if self._debounced.get(key) is asyncio.current_task():
            del self._debounced[key]

        item = state.find_cart_item(key)
        if item is None or state is not self._state:
            return

        generation = self._generation
        try:
            items = await self.remote.update_quantity(item.product_id, item.quantity, item.color)
        except RemoteUnauthorized:
            self._unauthorized()
            return
        except RemoteError as e:
            logger.warning("Remote quantity update failed for %s: %s", sanitize_id_for_logging(key), e)
            self.events.notify(NOTICE_WARNING, MSG_CART_SYNC_FAILED, code="cart_sync")
            await self.reload()
            return

        if items is not None:
            self._reconcile(state, items, generation, "quantity")

    async def clear(self) -> Outcome:
        """Empty the cart; the server is asked first but never blocks the local clear."""
        state = self._state
        self.cancel_pending()

        if self.is_remote:
            try:
                await self.remote.clear()
            except RemoteUnauthorized:
                self._unauthorized()
            except RemoteError as e:
                logger.warning("Remote cart clear failed: %s", e)
                self.events.notify(NOTICE_WARNING, MSG_CART_CLEAR_FAILED, code="cart_clear")

        state.cart = []
        if state is self._state:
            self._touch()
        self._persist(state, "clear")
        return Outcome.APPLIED

    # ------------------------------------------------------------------
    # Canonical reload
    # ------------------------------------------------------------------

    async def reload(self) -> bool:
        """
        Replace the authenticated cart with the server's canonical copy.

        Returns:
            True if the cart was replaced; False when skipped or failed, in
            which case the cached cart stays as it was
        """
        if not self.is_remote:
            return False

        with self.latches.hold(latch_names.CART) as acquired:
            if not acquired:
                return False

            state = self._state
            generation = self._generation
            try:
                items = await self.remote.fetch_all()
            except RemoteUnauthorized:
                self._unauthorized()
                return False
            except RemoteError as e:
                logger.warning("Cart reload failed, keeping cached cart: %s", e)
                return False

            replaced = self._reconcile(state, items, generation, "reload")
            if replaced:
                logger.info("Cart reloaded: %d lines", len(items))
            return replaced
