"""Gateway to the commerce API wishlist endpoints."""
from typing import List, Optional

from pydantic import ValidationError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from cartsync.errors import RemoteNetworkError, RemoteTimeout
from cartsync.logging import get_logger
from cartsync.models import WishlistItem
from cartsync.remote.client import ApiClient
from cartsync.remote.schemas import WishlistEnvelope

logger = get_logger(__name__)


class RemoteWishlistClient:
    """
    Timeout-bounded wishlist calls.

    The full-list fetch aggregates product documents server-side and is the
    slowest call the engine makes; a timed-out fetch is retried once with a
    shorter budget before giving up.
    """

    def __init__(
        self,
        api: ApiClient,
        mutation_timeout: float = 5.0,
        fetch_timeout: float = 25.0,
        fetch_retry_timeout: float = 8.0,
    ):
        self.api = api
        self.mutation_timeout = mutation_timeout
        self.fetch_timeout = fetch_timeout
        self.fetch_retry_timeout = fetch_retry_timeout

    async def fetch_all(self, timeout: Optional[float] = None) -> List[WishlistItem]:
        """GET /wishlist -> canonical wishlist."""
        budgets = [timeout or self.fetch_timeout, self.fetch_retry_timeout]
        data: dict = {}
        retrying = AsyncRetrying(
            stop=stop_after_attempt(len(budgets)),
            retry=retry_if_exception_type(RemoteTimeout),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                budget = budgets[attempt.retry_state.attempt_number - 1]
                if attempt.retry_state.attempt_number > 1:
                    logger.info("Retrying wishlist fetch with %.1fs budget", budget)
                data = await self.api.request("GET", "/wishlist", timeout=budget)

        try:
            envelope = WishlistEnvelope.model_validate(data)
        except ValidationError as e:
            raise RemoteNetworkError(f"Malformed wishlist response: {e.error_count()} errors") from e
        return envelope.wishlist_items()

    async def add_item(self, product_id: str, timeout: Optional[float] = None) -> None:
        """
        POST /wishlist/add.

        Raises:
            AlreadyInWishlistError: the server already holds the product
        """
        await self.api.request(
            "POST",
            "/wishlist/add",
            json={"productId": product_id},
            timeout=timeout or self.mutation_timeout,
        )

    async def remove_item(self, product_id: str, timeout: Optional[float] = None) -> None:
        """DELETE /wishlist/remove."""
        await self.api.request(
            "DELETE",
            "/wishlist/remove",
            json={"productId": product_id},
            timeout=timeout or self.mutation_timeout,
        )
