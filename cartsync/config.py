"""
Sync Engine Configuration

Timeouts and timing windows for the cart/wishlist engines. Values can be set
directly or read from CARTSYNC_* environment variables (optionally loaded from
a .env file).
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

# Defaults observed against the commerce API
DEFAULT_API_BASE_URL = "http://localhost:3001/api"
DEFAULT_TOKEN_KEY = "customerToken"


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class SyncConfig:
    """Tunable settings for the sync engine."""

    api_base_url: str = DEFAULT_API_BASE_URL
    token_key: str = DEFAULT_TOKEN_KEY

    # Timeout budgets (seconds)
    cart_mutation_timeout: float = 8.0
    cart_fetch_timeout: float = 10.0
    wishlist_mutation_timeout: float = 5.0
    wishlist_fetch_timeout: float = 25.0  # aggregation on the server is slow
    wishlist_fetch_retry_timeout: float = 8.0

    # Timing windows (seconds)
    add_throttle_window: float = 0.7
    quantity_debounce: float = 0.5
    merge_call_delay: float = 0.03

    rate_limit_retries: int = 1
    discard_stale_responses: bool = True

    # Storage
    storage_dir: Optional[str] = None
    storage_quota_bytes: Optional[int] = None

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "SyncConfig":
        """
        Build config from environment variables.

        Args:
            env_file: Optional path to a .env file loaded before reading

        Returns:
            SyncConfig with defaults for anything unset
        """
        if env_file:
            load_dotenv(env_file)

        defaults = cls()
        return cls(
            api_base_url=os.environ.get("CARTSYNC_API_BASE_URL", defaults.api_base_url),
            token_key=os.environ.get("CARTSYNC_TOKEN_KEY", defaults.token_key),
            cart_mutation_timeout=_env_float(
                "CARTSYNC_CART_MUTATION_TIMEOUT", defaults.cart_mutation_timeout
            ),
            cart_fetch_timeout=_env_float("CARTSYNC_CART_FETCH_TIMEOUT", defaults.cart_fetch_timeout),
            wishlist_mutation_timeout=_env_float(
                "CARTSYNC_WISHLIST_MUTATION_TIMEOUT", defaults.wishlist_mutation_timeout
            ),
            wishlist_fetch_timeout=_env_float(
                "CARTSYNC_WISHLIST_FETCH_TIMEOUT", defaults.wishlist_fetch_timeout
            ),
            wishlist_fetch_retry_timeout=_env_float(
                "CARTSYNC_WISHLIST_FETCH_RETRY_TIMEOUT", defaults.wishlist_fetch_retry_timeout
            ),
            add_throttle_window=_env_float("CARTSYNC_ADD_THROTTLE_WINDOW", defaults.add_throttle_window),
            quantity_debounce=_env_float("CARTSYNC_QUANTITY_DEBOUNCE", defaults.quantity_debounce),
            merge_call_delay=_env_float("CARTSYNC_MERGE_CALL_DELAY", defaults.merge_call_delay),
            rate_limit_retries=_env_int("CARTSYNC_RATE_LIMIT_RETRIES", defaults.rate_limit_retries)
            or 0,
            discard_stale_responses=_env_bool(
                "CARTSYNC_DISCARD_STALE_RESPONSES", defaults.discard_stale_responses
            ),
            storage_dir=os.environ.get("CARTSYNC_STORAGE_DIR") or None,
            storage_quota_bytes=_env_int("CARTSYNC_STORAGE_QUOTA_BYTES", None),
        )
