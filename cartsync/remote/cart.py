"""Gateway to the commerce API cart endpoints."""
from typing import List, Optional

from pydantic import ValidationError

from cartsync.errors import RemoteNetworkError
from cartsync.models import ColorVariant, CartItem
from cartsync.remote.client import ApiClient
from cartsync.remote.schemas import CartEnvelope


def _color_param(color: Optional[ColorVariant]) -> Optional[dict]:
    return {"color": color.name} if color else None


class RemoteCartClient:
    """
    Timeout-bounded cart calls.

    add_item is a delta add on the server: an existing (product, color) line
    grows instead of duplicating.
    """

    def __init__(self, api: ApiClient, mutation_timeout: float = 8.0, fetch_timeout: float = 10.0):
        self.api = api
        self.mutation_timeout = mutation_timeout
        self.fetch_timeout = fetch_timeout

    @staticmethod
    def _envelope(data: dict) -> CartEnvelope:
        try:
            return CartEnvelope.model_validate(data)
        except ValidationError as e:
            raise RemoteNetworkError(f"Malformed cart response: {e.error_count()} errors") from e

    async def fetch_all(self, timeout: Optional[float] = None) -> List[CartItem]:
        """GET /cart/me -> canonical cart lines."""
        data = await self.api.request("GET", "/cart/me", timeout=timeout or self.fetch_timeout)
        return self._envelope(data).cart_items() or []

    async def add_item(
        self,
        product_id: str,
        quantity: int,
        color: Optional[ColorVariant] = None,
        timeout: Optional[float] = None,
    ) -> Optional[List[CartItem]]:
        """POST /cart/add; returns the server cart when the response has one."""
        body = {"productId": product_id, "quantity": quantity}
        if color:
            body["color"] = color.to_dict()
        data = await self.api.request(
            "POST", "/cart/add", json=body, timeout=timeout or self.mutation_timeout
        )
        return self._envelope(data).cart_items()

    async def update_quantity(
        self,
        product_id: str,
        quantity: int,
        color: Optional[ColorVariant] = None,
        timeout: Optional[float] = None,
    ) -> Optional[List[CartItem]]:
        """PUT /cart/update/{productId}?color= with the absolute quantity."""
        data = await self.api.request(
            "PUT",
            f"/cart/update/{product_id}",
            json={"productId": product_id, "quantity": quantity},
            params=_color_param(color),
            timeout=timeout or self.mutation_timeout,
        )
        return self._envelope(data).cart_items()

    async def remove_item(
        self,
        product_id: str,
        color: Optional[ColorVariant] = None,
        timeout: Optional[float] = None,
    ) -> None:
        """DELETE /cart/remove/{productId}?color=; color omitted for legacy lines."""
        await self.api.request(
            "DELETE",
            f"/cart/remove/{product_id}",
            params=_color_param(color),
            timeout=timeout or self.mutation_timeout,
        )

    async def clear(self, timeout: Optional[float] = None) -> None:
        """DELETE /cart/clear."""
        await self.api.request("DELETE", "/cart/clear", timeout=timeout or self.mutation_timeout)
