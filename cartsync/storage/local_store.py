"""
Durable key/value persistence for cart and wishlist collections.

Features:
- JSON values; corrupted entries are cleared and read as empty
- Quota-aware writes that shrink the payload progressively:
  full items -> essential fields -> product ids only
- Never raises to callers
"""

import hashlib
import json
from typing import Any, Iterable, List, Optional

from cartsync.errors import StorageQuotaError
from cartsync.logging import get_logger
from cartsync.models import PersistLevel

logger = get_logger(__name__)

# Fields kept when the full payload does not fit
ESSENTIAL_FIELDS = ("key", "productId", "quantity", "color", "name", "price")
ESSENTIAL_NAME_LENGTH = 50


def _essential(entry: Any) -> Any:
    if not isinstance(entry, dict):
        return entry
    slim = {name: entry[name] for name in ESSENTIAL_FIELDS if name in entry}
    if isinstance(slim.get("name"), str):
        slim["name"] = slim["name"][:ESSENTIAL_NAME_LENGTH]
    return slim


def _product_id(entry: Any) -> Any:
    if isinstance(entry, dict):
        return entry.get("productId") or entry.get("id")
    return entry


class LocalStore:
    """JSON key/value store over a pluggable backend."""

    def __init__(self, backend):
        self.backend = backend

    def get_raw(self, key: str) -> Optional[str]:
        """Read the untouched stored string; undecodable bytes reset the key."""
        try:
            return self.backend.get(key)
        except UnicodeDecodeError as e:
            logger.warning("Undecodable value under %s, resetting: %s", key, e)
            self.remove(key)
            return None
        except OSError as e:
            logger.warning("Storage read failed for %s: %s", key, e)
            return None

    def get(self, key: str, default: Any = None) -> Any:
        """Read and decode a JSON value; malformed data resets the key."""
        raw = self.get_raw(key)
        if raw is None:
            return default

        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning("Corrupted value under %s, resetting: %s", key, e)
            self.remove(key)
            return default

    def get_list(self, key: str) -> List[Any]:
        """Read a JSON array; anything else resets the key to empty."""
        value = self.get(key, [])
        if isinstance(value, list):
            return value
        logger.warning("Expected a list under %s, got %s; resetting", key, type(value).__name__)
        self.remove(key)
        return []

    def _candidates(self, value: Any) -> List[tuple]:
        candidates = [(PersistLevel.FULL, value)]
        if isinstance(value, list) and value:
            candidates.append((PersistLevel.ESSENTIAL, [_essential(e) for e in value]))
            candidates.append((PersistLevel.IDS_ONLY, [_product_id(e) for e in value]))
        return candidates

    def set(self, key: str, value: Any) -> PersistLevel:
        """
        Persist a JSON value, shrinking lists when the quota is exhausted.

        Returns:
            The level that was written, or FAILED when nothing fit (the
            caller's in-memory state still holds the full value)
        """
        for level, payload in self._candidates(value):
            try:
                self.backend.set(key, json.dumps(payload, separators=(",", ":")))
            except StorageQuotaError:
                logger.warning("Storage quota exceeded for %s at level %s", key, level.value)
                continue
            except (OSError, TypeError, ValueError) as e:
                logger.error("Storage write failed for %s: %s", key, e)
                return PersistLevel.FAILED

            if level is not PersistLevel.FULL:
                logger.info("Saved %s with %s payload", key, level.value)
            return level

        logger.error("Could not persist %s even as ids only; keeping in memory", key)
        return PersistLevel.FAILED

    def remove(self, key: str) -> None:
        try:
            self.backend.remove(key)
        except OSError as e:
            logger.warning("Storage remove failed for %s: %s", key, e)

    def fingerprint(self, keys: Iterable[str]) -> str:
        """Digest of the raw values under keys, for change detection."""
        digest = hashlib.sha256()
        for key in keys:
            digest.update(key.encode("utf-8"))
            digest.update(b"\x00")
            digest.update((self.get_raw(key) or "").encode("utf-8"))
            digest.update(b"\x01")
        return digest.hexdigest()
