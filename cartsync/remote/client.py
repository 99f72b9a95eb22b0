"""
HTTP gateway to the commerce API.

Single shared httpx client with bearer-token injection, per-call timeouts,
and translation of every failure into the cartsync RemoteError taxonomy.
"""

from typing import Any, Callable, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from cartsync.errors import (
    ERROR_NETWORK,
    ERROR_RATE_LIMITED,
    ERROR_REJECTED,
    ERROR_REQUEST_TIMEOUT,
    ERROR_UNAUTHORIZED,
    AlreadyInWishlistError,
    RateLimitedError,
    RemoteNetworkError,
    RemoteTimeout,
    RemoteUnauthorized,
    RemoteValidationError,
    is_already_in_wishlist,
)
from cartsync.logging import get_logger

logger = get_logger(__name__)

# Statuses that mean "the request itself is wrong", not "try later"
VALIDATION_STATUS_CODES = {400, 404, 409, 422}
UNAUTHORIZED_STATUS_CODES = {401, 403}
MAX_RETRY_AFTER = 5.0


def _retry_after_seconds(response: httpx.Response) -> float:
    raw = response.headers.get("Retry-After")
    try:
        return max(0.0, float(raw)) if raw else 1.0
    except ValueError:
        return 1.0


def _wait_retry_after(retry_state) -> float:
    """tenacity wait: honour the server's Retry-After, capped."""
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    return min(getattr(exc, "retry_after", 1.0), MAX_RETRY_AFTER)


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200] if response.text else f"HTTP {response.status_code}"
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return f"HTTP {response.status_code}"


def _validation_error(message: str, status_code: Optional[int]) -> RemoteValidationError:
    if is_already_in_wishlist(message):
        return AlreadyInWishlistError(message, status_code=status_code)
    return RemoteValidationError(message, status_code=status_code)


class ApiClient:
    """Thin async client for the commerce API."""

    def __init__(
        self,
        base_url: str,
        token_provider: Callable[[], Optional[str]],
        rate_limit_retries: int = 1,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.rate_limit_retries = max(0, rate_limit_retries)
        self._token_provider = token_provider
        self._http_client = http_client

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Lazy creation of the shared httpx client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
            )
        return self._http_client

    async def request(
        self,
        method: str,
        path: str,
        *,
        timeout: float,
        json: Any = None,
        params: Optional[dict] = None,
    ) -> dict:
        """
        Send a request and return the decoded JSON body.

        Args:
            method: HTTP method
            path: Path relative to base_url
            timeout: Budget in seconds for the whole call
            json: Optional JSON body
            params: Optional query parameters

        Raises:
            RemoteError subclasses for every failure mode
        """
        result: dict = {}
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.rate_limit_retries + 1),
            retry=retry_if_exception_type(RateLimitedError),
            wait=_wait_retry_after,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                result = await self._send(method, path, timeout=timeout, json=json, params=params)
        return result

    async def _send(
        self,
        method: str,
        path: str,
        *,
        timeout: float,
        json: Any,
        params: Optional[dict],
    ) -> dict:
        headers = {"Accept": "application/json"}
        token = self._token_provider()
        if token:
            headers["Authorization"] = f"Bearer {token}"

        client = await self._get_http_client()
        url = f"{self.base_url}{path}"
        try:
            response = await client.request(
                method,
                url,
                json=json,
                params=params,
                headers=headers,
                timeout=timeout,
            )
        except httpx.TimeoutException as e:
            logger.warning("%s %s timed out after %.1fs", method, path, timeout)
            raise RemoteTimeout(ERROR_REQUEST_TIMEOUT) from e
        except httpx.RequestError as e:
            logger.warning("%s %s network error: %s", method, path, type(e).__name__)
            raise RemoteNetworkError(f"{ERROR_NETWORK}: {e!s}") from e

        return self._parse(method, path, response)

    def _parse(self, method: str, path: str, response: httpx.Response) -> dict:
        status = response.status_code

        if status in UNAUTHORIZED_STATUS_CODES:
            raise RemoteUnauthorized(ERROR_UNAUTHORIZED, status_code=status)
        if status == 429:
            raise RateLimitedError(ERROR_RATE_LIMITED, retry_after=_retry_after_seconds(response))
        if status in VALIDATION_STATUS_CODES:
            raise _validation_error(_error_message(response), status)
        if status >= 400:
            logger.error("%s %s failed with HTTP %s", method, path, status)
            raise RemoteNetworkError(_error_message(response), status_code=status)

        if status == 204 or not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as e:
            raise RemoteNetworkError(f"Invalid JSON from {path}", status_code=status) from e
        if not isinstance(data, dict):
            raise RemoteNetworkError(f"Unexpected body from {path}", status_code=status)

        if data.get("success") is False:
            raise _validation_error(str(data.get("message") or ERROR_REJECTED), status)
        return data

    async def aclose(self) -> None:
        """Close the HTTP client."""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
