"""Pytest configuration and fixtures"""
import asyncio
import base64
import json
import time
from dataclasses import replace
from typing import Dict, List, Optional

import pytest

from cartsync.config import SyncConfig
from cartsync.errors import AlreadyInWishlistError, MSG_ALREADY_IN_WISHLIST
from cartsync.events import EventHub
from cartsync.latches import LatchMap
from cartsync.models import CartItem, ColorVariant, EngineState, SessionContext, WishlistItem
from cartsync.storage import LocalStore, MemoryBackend


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class _Failures:
    """Queued exceptions per operation name; each call consumes one."""

    def __init__(self):
        self._queued: Dict[str, List[Exception]] = {}

    def fail(self, op: str, *errors: Exception) -> None:
        self._queued.setdefault(op, []).extend(errors)

    def check(self, op: str) -> None:
        queued = self._queued.get(op)
        if queued:
            raise queued.pop(0)


class FakeCartRemote(_Failures):
    """In-memory stand-in for RemoteCartClient with delta-add semantics."""

    def __init__(self):
        super().__init__()
        self.lines: Dict[str, CartItem] = {}
        self.calls: List[tuple] = []
        self.fetch_gate: Optional[asyncio.Event] = None
        self.return_cart = True

    def seed(self, *items: CartItem) -> None:
        for item in items:
            self.lines[item.key] = replace(item)

    def _snapshot(self) -> List[CartItem]:
        return [replace(item) for item in self.lines.values()]

    def _reply(self) -> Optional[List[CartItem]]:
        return self._snapshot() if self.return_cart else None

    async def fetch_all(self, timeout=None) -> List[CartItem]:
        self.calls.append(("fetch_all",))
        snapshot = self._snapshot()
        if self.fetch_gate is not None:
            await self.fetch_gate.wait()
        self.check("fetch_all")
        return snapshot

    async def add_item(self, product_id, quantity, color=None, timeout=None):
        self.calls.append(("add_item", product_id, quantity, color))
        self.check("add_item")
        item = CartItem(product_id=product_id, quantity=quantity, color=color)
        existing = self.lines.get(item.key)
        if existing:
            existing.quantity += quantity
        else:
            self.lines[item.key] = item
        return self._reply()

    async def update_quantity(self, product_id, quantity, color=None, timeout=None):
        self.calls.append(("update_quantity", product_id, quantity, color))
        self.check("update_quantity")
        item = CartItem(product_id=product_id, quantity=quantity, color=color)
        self.lines[item.key] = item
        return self._reply()

    async def remove_item(self, product_id, color=None, timeout=None):
        self.calls.append(("remove_item", product_id, color))
        self.check("remove_item")
        key = CartItem(product_id=product_id, quantity=1, color=color).key
        self.lines.pop(key, None)

    async def clear(self, timeout=None):
        self.calls.append(("clear",))
        self.check("clear")
        self.lines.clear()

    def ops(self) -> List[str]:
        return [call[0] for call in self.calls]


class FakeWishlistRemote(_Failures):
    """In-memory stand-in for RemoteWishlistClient."""

    def __init__(self):
        super().__init__()
        self.items: Dict[str, WishlistItem] = {}
        self.calls: List[tuple] = []

    def seed(self, *product_ids: str) -> None:
        for product_id in product_ids:
            self.items[product_id] = WishlistItem(product_id=product_id)

    async def fetch_all(self, timeout=None) -> List[WishlistItem]:
        self.calls.append(("fetch_all",))
        self.check("fetch_all")
        return [replace(item) for item in self.items.values()]

    async def add_item(self, product_id, timeout=None):
        self.calls.append(("add_item", product_id))
        self.check("add_item")
        if product_id in self.items:
            raise AlreadyInWishlistError(MSG_ALREADY_IN_WISHLIST, status_code=400)
        self.items[product_id] = WishlistItem(product_id=product_id)

    async def remove_item(self, product_id, timeout=None):
        self.calls.append(("remove_item", product_id))
        self.check("remove_item")
        self.items.pop(product_id, None)

    def ops(self) -> List[str]:
        return [call[0] for call in self.calls]


def make_jwt(exp: Optional[float] = None, **claims) -> str:
    """Unsigned JWT carrying the given claims."""
    def segment(data: dict) -> str:
        raw = json.dumps(data).encode("utf-8")
        return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")

    payload = dict(claims)
    if exp is not None:
        payload["exp"] = exp
    return f"{segment({'alg': 'HS256', 'typ': 'JWT'})}.{segment(payload)}.signature"


@pytest.fixture
def config():
    """Config with timing windows shrunk for fast tests."""
    return SyncConfig(quantity_debounce=0.02, merge_call_delay=0.0)


@pytest.fixture
def store():
    return LocalStore(MemoryBackend())


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def events():
    return EventHub()


@pytest.fixture
def latches():
    return LatchMap()


@pytest.fixture
def cart_remote():
    return FakeCartRemote()


@pytest.fixture
def wishlist_remote():
    return FakeWishlistRemote()


@pytest.fixture
def notices(events):
    """Every Notice emitted during the test."""
    received = []
    events.subscribe_notices(received.append)
    return received


@pytest.fixture
def user_state():
    return EngineState(SessionContext.AUTHENTICATED)


@pytest.fixture
def guest_state():
    return EngineState(SessionContext.GUEST)


@pytest.fixture
def valid_token():
    return make_jwt(exp=time.time() + 3600, sub="customer-1")


@pytest.fixture
def red():
    return ColorVariant(name="Red", code="#ff0000")
