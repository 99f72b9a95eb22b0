"""
Domain models for the cart/wishlist sync engine.

Contains:
- Enums for session context, sync phase, operation outcome, persist level
- Cart and wishlist item value types, normalized once at the storage boundary
- EngineState, one instance per session context
"""

from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, List, Optional, Union

from cartsync.logging import get_logger, sanitize_id_for_logging
from cartsync.money import round_money, to_decimal, to_float

logger = get_logger(__name__)

DEFAULT_COLOR_NAME = "default"
PLACEHOLDER_IMAGE = "assets/thumbnail.jpg"
UNKNOWN_PRODUCT_NAME = "Unknown Product"

# Ids that legacy code paths wrote when the real id was missing
_INVALID_PRODUCT_IDS = frozenset({"", "unknown", "undefined", "null", "none"})


# ============================================================
# Enums
# ============================================================

class SessionContext(str, Enum):
    """Which storage namespace is active."""
    GUEST = "guest"
    AUTHENTICATED = "authenticated"


class SyncPhase(str, Enum):
    """Per-context coordinator phase."""
    IDLE = "idle"
    LOADING = "loading"
    MERGING = "merging"  # Guest -> Authenticated only
    ERROR = "error"  # always resolves back to IDLE


class Outcome(str, Enum):
    """Result of a user-initiated engine operation."""
    APPLIED = "applied"
    THROTTLED = "throttled"  # duplicate add inside the throttle window
    ALREADY_PRESENT = "already_present"
    NOOP = "noop"


class PersistLevel(str, Enum):
    """How much of a payload LocalStore managed to write."""
    FULL = "full"
    ESSENTIAL = "essential"
    IDS_ONLY = "ids_only"
    FAILED = "failed"


# ============================================================
# Value types
# ============================================================

@dataclass(frozen=True)
class ColorVariant:
    """Structured color option of a product."""
    name: str
    code: Optional[str] = None

    def to_dict(self) -> dict:
        return {"name": self.name, "code": self.code}

    @classmethod
    def parse(cls, value: Any) -> Optional["ColorVariant"]:
        """Normalize a dict, plain string, or None into a ColorVariant."""
        if value is None:
            return None
        if isinstance(value, ColorVariant):
            color = value
        elif isinstance(value, str):
            color = cls(name=value.strip())
        elif isinstance(value, dict):
            name = value.get("name")
            if not name:
                return None
            color = cls(name=str(name).strip(), code=value.get("code"))
        else:
            return None
        if not color.name or color.name.lower() == DEFAULT_COLOR_NAME:
            return None
        return color


@dataclass
class ProductMeta:
    """Display snapshot passed along with an add operation."""
    name: str = UNKNOWN_PRODUCT_NAME
    price: Union[Decimal, float, int, str] = Decimal("0")
    image: Optional[str] = None


def cart_key(product_id: str, color: Optional[ColorVariant] = None) -> str:
    """Build the unique cart line key for a product/color pair."""
    color_name = color.name if color else DEFAULT_COLOR_NAME
    return f"{product_id}::{color_name}"


def normalize_product_id(value: Any) -> Optional[str]:
    """Return a usable product id string, or None for legacy garbage."""
    if isinstance(value, dict):
        value = value.get("_id") or value.get("id")
    if value is None:
        return None
    product_id = str(value).strip()
    if product_id.lower() in _INVALID_PRODUCT_IDS:
        return None
    return product_id


def _parse_quantity(data: dict) -> int:
    raw = data.get("quantity", data.get("qty"))
    if raw is None:
        return 1
    try:
        return int(raw)
    except (TypeError, ValueError):
        return 1


@dataclass
class CartItem:
    """Single line in a cart."""
    product_id: str
    quantity: int
    color: Optional[ColorVariant] = None
    unit_price: Decimal = Decimal("0")
    name: str = UNKNOWN_PRODUCT_NAME
    image: Optional[str] = None

    def __post_init__(self):
        self.unit_price = to_decimal(self.unit_price)

    @property
    def key(self) -> str:
        return cart_key(self.product_id, self.color)

    @property
    def total_price(self) -> Decimal:
        """Line total for all units."""
        return round_money(self.unit_price * self.quantity)

    def to_dict(self) -> dict:
        """Convert to the persisted/wire shape."""
        return {
            "key": self.key,
            "productId": self.product_id,
            "quantity": self.quantity,
            "color": self.color.to_dict() if self.color else None,
            "price": to_float(self.unit_price),
            "name": self.name,
            "image": self.image,
        }

    @classmethod
    def from_dict(cls, data: Union[dict, str]) -> "CartItem":
        """
        Create from any shape ever persisted for a cart line.

        Accepts id/productId/_id, qty/quantity, string or structured colors,
        and bare product ids (the ids-only quota fallback).

        Raises:
            ValueError: if no usable product id or the quantity is below 1
        """
        if isinstance(data, str):
            data = {"productId": data}
        if not isinstance(data, dict):
            raise ValueError(f"Unsupported cart entry: {type(data).__name__}")

        product_id = normalize_product_id(
            data.get("productId") or data.get("id") or data.get("_id") or data.get("product")
        )
        if product_id is None:
            raise ValueError("Cart entry has no product id")

        quantity = _parse_quantity(data)
        if quantity < 1:
            raise ValueError(f"Cart entry {product_id} has quantity {quantity}")

        return cls(
            product_id=product_id,
            quantity=quantity,
            color=ColorVariant.parse(data.get("color")),
            unit_price=to_decimal(data.get("price")),
            name=data.get("name") or UNKNOWN_PRODUCT_NAME,
            image=data.get("image"),
        )


@dataclass
class WishlistItem:
    """Wishlist entry, keyed by product id alone."""
    product_id: str
    name: str = UNKNOWN_PRODUCT_NAME
    unit_price: Decimal = Decimal("0")
    image: Optional[str] = None

    def __post_init__(self):
        self.unit_price = to_decimal(self.unit_price)

    @property
    def key(self) -> str:
        return self.product_id

    def to_dict(self) -> dict:
        return {
            "productId": self.product_id,
            "name": self.name,
            "price": to_float(self.unit_price),
            "image": self.image,
        }

    @classmethod
    def from_dict(cls, data: Union[dict, str]) -> "WishlistItem":
        """
        Create from a stored object or a bare product id string.

        Raises:
            ValueError: if no usable product id
        """
        if isinstance(data, str):
            data = {"productId": data}
        if not isinstance(data, dict):
            raise ValueError(f"Unsupported wishlist entry: {type(data).__name__}")

        product_id = normalize_product_id(
            data.get("productId") or data.get("id") or data.get("_id")
        )
        if product_id is None:
            raise ValueError("Wishlist entry has no product id")

        return cls(
            product_id=product_id,
            name=data.get("name") or UNKNOWN_PRODUCT_NAME,
            unit_price=to_decimal(data.get("price")),
            image=data.get("image"),
        )


def fold_cart_items(items: Iterable[CartItem]) -> List[CartItem]:
    """Copy items into a list with unique keys, summing the quantities of duplicates."""
    folded: dict = {}
    for item in items:
        existing = folded.get(item.key)
        if existing is not None:
            existing.quantity += item.quantity
        else:
            folded[item.key] = replace(item)
    return list(folded.values())


def load_cart_items(raw: Iterable[Any]) -> List[CartItem]:
    """Normalize stored cart entries, folding duplicate keys by summing."""
    items: List[CartItem] = []
    for entry in raw:
        try:
            items.append(CartItem.from_dict(entry))
        except ValueError as e:
            logger.warning("Dropping unusable cart entry: %s", e)
    return fold_cart_items(items)


def unique_wishlist_items(items: Iterable[WishlistItem]) -> List[WishlistItem]:
    """Copy items, keeping the first of any duplicate product id."""
    unique: List[WishlistItem] = []
    seen: set = set()
    for item in items:
        if item.product_id in seen:
            logger.debug("Duplicate wishlist entry %s", sanitize_id_for_logging(item.product_id))
            continue
        seen.add(item.product_id)
        unique.append(replace(item))
    return unique


def load_wishlist_items(raw: Iterable[Any]) -> List[WishlistItem]:
    """Normalize stored wishlist entries, keeping the first of any duplicate."""
    items: List[WishlistItem] = []
    for entry in raw:
        try:
            items.append(WishlistItem.from_dict(entry))
        except ValueError as e:
            logger.warning("Dropping unusable wishlist entry: %s", e)
    return unique_wishlist_items(items)


# ============================================================
# Engine state
# ============================================================

@dataclass
class EngineState:
    """Cart and wishlist for one session context."""
    context: SessionContext
    cart: List[CartItem] = field(default_factory=list)
    wishlist: List[WishlistItem] = field(default_factory=list)

    @property
    def cart_count(self) -> int:
        """Total number of units in the cart."""
        return sum(item.quantity for item in self.cart)

    @property
    def cart_subtotal(self) -> Decimal:
        """Sum of line totals at the snapshot prices."""
        return round_money(sum((item.total_price for item in self.cart), Decimal("0")))

    def find_cart_item(self, key: str) -> Optional[CartItem]:
        return next((item for item in self.cart if item.key == key), None)

    def has_wishlist_item(self, product_id: str) -> bool:
        return any(item.product_id == product_id for item in self.wishlist)

    def clear(self) -> None:
        self.cart = []
        self.wishlist = []

    def snapshot(self) -> dict:
        """Plain-dict view for renderers."""
        return {
            "context": self.context.value,
            "cart": [item.to_dict() for item in self.cart],
            "wishlist": [item.to_dict() for item in self.wishlist],
            "cart_count": self.cart_count,
            "cart_subtotal": to_float(self.cart_subtotal),
        }
