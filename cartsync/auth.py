"""Read-only view of the externally managed customer auth token."""
import base64
import binascii
import json
import time
from typing import Callable, Optional

from cartsync.logging import get_logger

logger = get_logger(__name__)

_ABSENT_TOKEN_VALUES = frozenset({"", "undefined", "null"})


def decode_jwt_payload(token: str) -> Optional[dict]:
    """Decode a JWT payload segment without verifying the signature."""
    parts = token.split(".")
    if len(parts) != 3:
        return None
    segment = parts[1]
    segment += "=" * (-len(segment) % 4)
    try:
        payload = json.loads(base64.urlsafe_b64decode(segment.encode("ascii")))
    except (binascii.Error, ValueError, UnicodeError):
        return None
    return payload if isinstance(payload, dict) else None


class AuthTokenReader:
    """
    Decides the active session context from the stored token.

    The token is written and removed by the auth collaborator; this reader
    never modifies it.
    """

    def __init__(self, store, token_key: str, clock: Callable[[], float] = time.time):
        self.store = store
        self.token_key = token_key
        self._clock = clock

    def get_token(self) -> Optional[str]:
        """Return the stored token, or None if absent or expired."""
        raw = self.store.get_raw(self.token_key)
        if raw is None:
            return None
        token = raw.strip().strip('"')
        if token in _ABSENT_TOKEN_VALUES:
            return None
        if self.is_expired(token):
            logger.info("Stored auth token expired")
            return None
        return token

    def is_expired(self, token: str) -> bool:
        payload = decode_jwt_payload(token)
        if payload is None:
            # Opaque token: trust it until the server answers 401
            return False
        exp = payload.get("exp")
        if not isinstance(exp, (int, float)):
            return False
        return self._clock() >= exp

    def is_authenticated(self) -> bool:
        return self.get_token() is not None
