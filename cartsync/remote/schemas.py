"""
Pydantic schemas for commerce API cart/wishlist responses.

The API has returned several item shapes over time (populated product
documents, _id vs productId, images[] vs image, qty vs quantity); the
validators here flatten them before the values reach the domain models.
"""

from decimal import Decimal
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from cartsync.logging import get_logger
from cartsync.models import (
    UNKNOWN_PRODUCT_NAME,
    CartItem,
    WishlistItem,
    load_cart_items,
    load_wishlist_items,
    normalize_product_id,
)
from cartsync.money import to_decimal, to_float

logger = get_logger(__name__)


def _first_image(data: dict) -> Optional[str]:
    images = data.get("images")
    if isinstance(images, list) and images:
        first = images[0]
        if isinstance(first, dict):
            return first.get("url")
        if isinstance(first, str):
            return first
    return None


class RemoteCartItem(BaseModel):
    """Cart line as returned by the cart endpoints."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    product_id: str = Field(alias="productId")
    name: str = UNKNOWN_PRODUCT_NAME
    price: Decimal = Decimal("0")
    image: Optional[str] = None
    quantity: int = 1
    color: Optional[Union[dict, str]] = None

    @model_validator(mode="before")
    @classmethod
    def _flatten(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        flat = dict(data)
        product = flat.get("product")
        product_doc = product if isinstance(product, dict) else {}

        product_id = normalize_product_id(
            flat.get("productId") or product or flat.get("id") or flat.get("_id")
        )
        if product_id is not None:
            flat["productId"] = product_id

        flat["name"] = flat.get("name") or product_doc.get("name") or UNKNOWN_PRODUCT_NAME
        flat["price"] = to_decimal(flat.get("price", product_doc.get("price")))
        flat["image"] = flat.get("image") or _first_image(flat) or _first_image(product_doc)
        if flat.get("quantity") is None and flat.get("qty") is not None:
            flat["quantity"] = flat["qty"]
        return flat

    def to_storage_dict(self) -> dict:
        return {
            "productId": self.product_id,
            "quantity": self.quantity,
            "color": self.color,
            "price": to_float(self.price),
            "name": self.name,
            "image": self.image,
        }


class RemoteWishlistItem(BaseModel):
    """Wishlist entry as returned by GET /wishlist."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    product_id: str = Field(alias="productId")
    name: str = UNKNOWN_PRODUCT_NAME
    price: Decimal = Decimal("0")
    image: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _flatten(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"productId": data}
        if not isinstance(data, dict):
            return data
        flat = dict(data)
        product_id = normalize_product_id(
            flat.get("_id") or flat.get("id") or flat.get("productId")
        )
        if product_id is not None:
            flat["productId"] = product_id
        flat["name"] = flat.get("name") or UNKNOWN_PRODUCT_NAME
        flat["price"] = to_decimal(flat.get("price"))
        flat["image"] = flat.get("image") or _first_image(flat)
        return flat

    def to_storage_dict(self) -> dict:
        return {
            "productId": self.product_id,
            "name": self.name,
            "price": to_float(self.price),
            "image": self.image,
        }


class CartPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    items: List[Any] = Field(default_factory=list)


class CartEnvelope(BaseModel):
    """{ success, cart: { items } }"""

    model_config = ConfigDict(extra="ignore")

    success: bool = True
    message: Optional[str] = None
    cart: Optional[CartPayload] = None

    def cart_items(self) -> Optional[List[CartItem]]:
        """Domain items, or None when the response carried no cart."""
        if self.cart is None:
            return None
        return load_cart_items(_validate_each(RemoteCartItem, self.cart.items))


class WishlistEnvelope(BaseModel):
    """{ success, wishlist: [...] }"""

    model_config = ConfigDict(extra="ignore")

    success: bool = True
    message: Optional[str] = None
    wishlist: List[Any] = Field(default_factory=list)

    def wishlist_items(self) -> List[WishlistItem]:
        return load_wishlist_items(_validate_each(RemoteWishlistItem, self.wishlist))


def _validate_each(model, raw_items: List[Any]) -> List[dict]:
    """Validate items one by one so a single bad line does not drop the list."""
    items = []
    for raw in raw_items:
        try:
            items.append(model.model_validate(raw).to_storage_dict())
        except ValidationError as e:
            logger.warning("Skipping malformed %s: %s", model.__name__, e.error_count())
    return items
