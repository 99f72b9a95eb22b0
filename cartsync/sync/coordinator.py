"""
Sync coordinator: the single entry point for the UI layer.

Owns both EngineStates (guest and authenticated), decides which one is
active from the auth token, runs the login merge, and reconciles the
authenticated caches with the server in the background.

Startup:
1. hydrate() both states from local storage (no network, renders at once)
2. validate the auth token
3. first sync of the session runs the merge, later ones a canonical fetch
"""

import asyncio
import time
from typing import Awaitable, Callable, Dict, Optional, Union

from cartsync import latches as latch_names
from cartsync.auth import AuthTokenReader
from cartsync.cart import CartEngine
from cartsync.config import SyncConfig
from cartsync.errors import MSG_SESSION_EXPIRED, CartSyncError, RemoteError, RemoteUnauthorized
from cartsync.events import NOTICE_WARNING, EventHub, StateChanged
from cartsync.latches import LatchMap
from cartsync.logging import get_logger
from cartsync.models import (
    ColorVariant,
    EngineState,
    Outcome,
    ProductMeta,
    SessionContext,
    SyncPhase,
    load_cart_items,
    load_wishlist_items,
)
from cartsync.remote import ApiClient, RemoteCartClient, RemoteWishlistClient
from cartsync.storage import LocalStore, StorageKeys, create_local_store
from cartsync.sync.merge import MergeProtocol, MergeReport
from cartsync.tasks import BackgroundTasks
from cartsync.wishlist import WishlistEngine

logger = get_logger(__name__)

TokenValidator = Callable[[str], Awaitable[bool]]


class SyncCoordinator:
    """Orchestrates context switching, merge, and reconciliation."""

    def __init__(
        self,
        store: LocalStore,
        cart_remote,
        wishlist_remote,
        config: Optional[SyncConfig] = None,
        events: Optional[EventHub] = None,
        token_reader: Optional[AuthTokenReader] = None,
        token_validator: Optional[TokenValidator] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or SyncConfig()
        self.store = store
        self.events = events or EventHub()
        self.latches = LatchMap()
        self.token_reader = token_reader or AuthTokenReader(store, self.config.token_key)
        self._token_validator = token_validator

        self.guest = EngineState(SessionContext.GUEST)
        self.user = EngineState(SessionContext.AUTHENTICATED)

        self.cart = CartEngine(store, cart_remote, self.events, self.latches, self.config, clock)
        self.wishlist = WishlistEngine(store, wishlist_remote, self.events, self.latches, self.config)
        self.cart.on_unauthorized = self._demote
        self.wishlist.on_unauthorized = self._demote
        self.merge = MergeProtocol(
            store, cart_remote, wishlist_remote, self.cart, self.wishlist, self.config
        )

        self._active = SessionContext.GUEST
        self._phases: Dict[SessionContext, SyncPhase] = {ctx: SyncPhase.IDLE for ctx in SessionContext}
        self._demoted = False
        self._hydrated = False
        self._session_synced = False
        self._tasks = BackgroundTasks("sync")
        self._api: Optional[ApiClient] = None
        self._fingerprint: Optional[str] = None

        self.cart.bind(self.guest)
        self.wishlist.bind(self.guest)
        self.events.subscribe_state(self._on_state_changed)

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    @property
    def active_context(self) -> SessionContext:
        return self._active

    @property
    def active_state(self) -> EngineState:
        return self.state_for(self._active)

    def state_for(self, context: SessionContext) -> EngineState:
        return self.user if context is SessionContext.AUTHENTICATED else self.guest

    def phase(self, context: SessionContext) -> SyncPhase:
        return self._phases[context]

    def _set_phase(self, context: SessionContext, phase: SyncPhase) -> None:
        if self._phases[context] is not phase:
            logger.debug("%s: %s -> %s", context.value, self._phases[context].value, phase.value)
            self._phases[context] = phase

    async def _in_phase(self, context: SessionContext, phase: SyncPhase, awaitable):
        """Run awaitable in phase; any engine error passes through ERROR and ends IDLE."""
        self._set_phase(context, phase)
        try:
            return await awaitable
        except CartSyncError:
            self._set_phase(context, SyncPhase.ERROR)
            logger.exception("%s %s failed; continuing with cached data", context.value, phase.value)
            return None
        finally:
            self._set_phase(context, SyncPhase.IDLE)

    # ------------------------------------------------------------------
    # Context selection
    # ------------------------------------------------------------------

    def _derive_context(self) -> SessionContext:
        if self._demoted or not self.token_reader.is_authenticated():
            return SessionContext.GUEST
        return SessionContext.AUTHENTICATED

    def _activate(self, context: SessionContext) -> None:
        if context is self._active:
            return
        logger.info("Active context: %s -> %s", self._active.value, context.value)
        self._active = context
        state = self.state_for(context)
        self.cart.bind(state)
        self.wishlist.bind(state)
        self.events.state_changed(state, "context")

    def _refresh_context(self) -> None:
        """Re-derive the context from the token; a newly seen login triggers a sync."""
        previous = self._active
        self._activate(self._derive_context())
        if (
            previous is SessionContext.GUEST
            and self._active is SessionContext.AUTHENTICATED
            and not self._session_synced
        ):
            self._tasks.spawn(self.sync(), "login")

    def _demote(self) -> None:
        """Treat the session as guest for this engine only; the token is left alone."""
        if self._demoted:
            return
        self._demoted = True
        self._activate(SessionContext.GUEST)
        self.events.notify(NOTICE_WARNING, MSG_SESSION_EXPIRED, code="unauthorized")

    async def _validate_token(self) -> bool:
        token = self.token_reader.get_token()
        if token is None or self._token_validator is None:
            return True
        try:
            valid = await self._token_validator(token)
        except RemoteUnauthorized:
            valid = False
        except RemoteError as e:
            # Auth service unreachable: keep the session, the API will say 401 if needed
            logger.warning("Token validation unavailable: %s", e)
            return True
        if not valid:
            logger.info("Auth token rejected by validator")
            self._demote()
        return valid

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def hydrate(self) -> None:
        """Load both states from local storage; never touches the network."""
        self._hydrated = True
        self.guest.cart = load_cart_items(self.store.get_list(StorageKeys.GUEST_CART))
        self.guest.wishlist = load_wishlist_items(self.store.get_list(StorageKeys.GUEST_WISHLIST))
        self.user.cart = load_cart_items(self.store.get_list(StorageKeys.USER_CART))
        self.user.wishlist = load_wishlist_items(self.store.get_list(StorageKeys.USER_WISHLIST))
        logger.info(
            "Hydrated: guest %d/%d, user %d/%d (cart/wishlist)",
            len(self.guest.cart),
            len(self.guest.wishlist),
            len(self.user.cart),
            len(self.user.wishlist),
        )
        # Context first so the emitted state is the one that will be rendered
        self._activate(self._derive_context())
        self.events.state_changed(self.active_state, "hydrate")

    async def init(self) -> None:
        """Hydrate for an immediate render, then sync with the server."""
        self.hydrate()
        await self.sync()

    async def sync(self) -> bool:
        """
        Bring the authenticated caches in line with the server.

        The first sync of a session runs the merge protocol; later ones only
        fetch canonical cart and wishlist. Returns False when skipped.
        """
        with self.latches.hold(latch_names.BACKEND_SYNC) as acquired:
            if not acquired:
                return False
            if not self._hydrated:
                self.hydrate()

            if not await self._validate_token():
                return False
            self._activate(self._derive_context())
            if self._active is not SessionContext.AUTHENTICATED:
                return False

            report = MergeReport()
            if not self._session_synced:
                self._session_synced = True
                report = await self.run_merge()

            await self._in_phase(
                SessionContext.AUTHENTICATED,
                SyncPhase.LOADING,
                self._reconcile(
                    reload_cart=not report.cart_reloaded,
                    reload_wishlist=not report.wishlist_reloaded,
                ),
            )
            return True

    async def _reconcile(self, reload_cart: bool = True, reload_wishlist: bool = True) -> None:
        jobs = []
        if reload_cart:
            jobs.append(self.cart.reload())
        if reload_wishlist:
            jobs.append(self.wishlist.reload())
        if jobs:
            await asyncio.gather(*jobs)

    async def run_merge(self) -> MergeReport:
        """Run the merge protocol once; a concurrent call is skipped."""
        with self.latches.hold(latch_names.MERGE) as acquired:
            if not acquired:
                return MergeReport()
            if self._active is not SessionContext.AUTHENTICATED:
                return MergeReport()

            # In-memory guest state is authoritative; storage may hold a shrunken copy
            report = await self._in_phase(
                SessionContext.AUTHENTICATED,
                SyncPhase.MERGING,
                self.merge.run(self.guest.cart, self.guest.wishlist),
            )
            if report is None:
                report = MergeReport(performed=True)
            if report.performed:
                self.guest.clear()
                self.events.state_changed(self.guest, "merged")
                logger.info(
                    "Merge finished: %d/%d cart lines failed, %d/%d wishlist adds failed",
                    report.cart_failures,
                    report.cart_lines,
                    report.wishlist_failures,
                    report.wishlist_attempted,
                )
            return report

    async def login(self) -> bool:
        """Call after the auth service stored a fresh token."""
        self._demoted = False
        self._session_synced = False
        return await self.sync()

    def logout(self) -> None:
        """
        Drop every local cart/wishlist cache so sessions never mix.

        The token itself belongs to the auth service and is not touched.
        """
        self.reset()
        for key in StorageKeys.all_keys():
            self.store.remove(key)
        self._hydrated = True
        self._activate(self._derive_context())
        self.events.state_changed(self.active_state, "logout")
        logger.info("Local cart and wishlist caches cleared")

    switch_user = logout

    def reset(self) -> None:
        """Cancel background work and empty in-memory state; storage is untouched."""
        self.cart.reset()
        self.wishlist.reset()
        self._tasks.cancel_all()
        self.guest.clear()
        self.user.clear()
        self._demoted = False
        self._session_synced = False
        self._hydrated = False
        for context in SessionContext:
            self._phases[context] = SyncPhase.IDLE

    async def wait_idle(self) -> None:
        """Wait for every outstanding background task."""
        while self._tasks.pending or self.cart.pending or self.wishlist.pending:
            await self._tasks.wait_idle()
            await self.cart.wait_idle()
            await self.wishlist.wait_idle()

    async def aclose(self) -> None:
        self.reset()
        if self._api is not None:
            await self._api.aclose()
            self._api = None

    # ------------------------------------------------------------------
    # Cross-tab coordination
    # ------------------------------------------------------------------

    def _watched_keys(self) -> tuple:
        return StorageKeys.all_keys() + (self.config.token_key,)

    def _on_state_changed(self, event: StateChanged) -> None:
        # Our own writes must not look like another tab's
        self._fingerprint = self.store.fingerprint(self._watched_keys())

    def check_storage(self) -> bool:
        """Re-hydrate if another tab changed storage since our last write."""
        fingerprint = self.store.fingerprint(self._watched_keys())
        if fingerprint == self._fingerprint:
            return False
        logger.info("Storage changed outside this session, re-hydrating")
        self.hydrate()
        if self._active is SessionContext.AUTHENTICATED and not self._session_synced:
            self._tasks.spawn(self.sync(), "login")
        return True

    async def watch_storage(self, interval: float = 2.0) -> None:
        """Poll for cross-tab changes until cancelled."""
        while True:
            await asyncio.sleep(interval)
            self.check_storage()

    # ------------------------------------------------------------------
    # UI facade
    # ------------------------------------------------------------------

    async def add_to_cart(
        self,
        product_id: str,
        quantity: int = 1,
        color: Union[ColorVariant, dict, str, None] = None,
        meta: Optional[ProductMeta] = None,
    ) -> Outcome:
        self._refresh_context()
        return await self.cart.add_to_cart(product_id, quantity, color, meta)

    async def remove_from_cart(self, key: str) -> Outcome:
        self._refresh_context()
        return await self.cart.remove_item(key)

    async def update_quantity(self, key: str, delta: int) -> Outcome:
        self._refresh_context()
        return await self.cart.update_quantity(key, delta)

    async def clear_cart(self) -> Outcome:
        self._refresh_context()
        return await self.cart.clear()

    async def add_to_wishlist(self, product_id: str, meta: Optional[ProductMeta] = None) -> Outcome:
        self._refresh_context()
        return await self.wishlist.add(product_id, meta)

    async def remove_from_wishlist(self, product_id: str) -> Outcome:
        self._refresh_context()
        return await self.wishlist.remove(product_id)

    async def toggle_wishlist(self, product_id: str, meta: Optional[ProductMeta] = None) -> Outcome:
        self._refresh_context()
        return await self.wishlist.toggle(product_id, meta)


def create_coordinator(
    config: Optional[SyncConfig] = None,
    store: Optional[LocalStore] = None,
    token_validator: Optional[TokenValidator] = None,
) -> SyncCoordinator:
    """Wire storage, HTTP gateways, and engines from config."""
    config = config or SyncConfig.from_env()
    store = store or create_local_store(config.storage_dir, config.storage_quota_bytes)
    token_reader = AuthTokenReader(store, config.token_key)

    api = ApiClient(
        config.api_base_url,
        token_provider=token_reader.get_token,
        rate_limit_retries=config.rate_limit_retries,
    )
    cart_remote = RemoteCartClient(
        api,
        mutation_timeout=config.cart_mutation_timeout,
        fetch_timeout=config.cart_fetch_timeout,
    )
    wishlist_remote = RemoteWishlistClient(
        api,
        mutation_timeout=config.wishlist_mutation_timeout,
        fetch_timeout=config.wishlist_fetch_timeout,
        fetch_retry_timeout=config.wishlist_fetch_retry_timeout,
    )

    coordinator = SyncCoordinator(
        store,
        cart_remote,
        wishlist_remote,
        config=config,
        token_reader=token_reader,
        token_validator=token_validator,
    )
    coordinator._api = api
    return coordinator
