"""Named non-queuing latches guarding overlapping async sequences."""

from contextlib import contextmanager
from typing import Iterator, Set

from cartsync.logging import get_logger

logger = get_logger(__name__)

CART = "cart"
WISHLIST = "wishlist"
MERGE = "merge"
BACKEND_SYNC = "backend_sync"


class LatchMap:
    """
    Boolean latches keyed by resource name.

    A caller that finds its latch held skips its work instead of waiting.
    All access happens on the event loop thread, so no lock is needed.
    """

    def __init__(self):
        self._held: Set[str] = set()

    def try_acquire(self, name: str) -> bool:
        if name in self._held:
            logger.info("%s already in progress, skipping", name)
            return False
        self._held.add(name)
        return True

    def release(self, name: str) -> None:
        self._held.discard(name)

    def is_held(self, name: str) -> bool:
        return name in self._held

    @contextmanager
    def hold(self, name: str) -> Iterator[bool]:
        """
        Acquire for the duration of a block.

        Yields True when acquired; False means the block should do nothing.
        Release is unconditional when the latch was acquired here.
        """
        acquired = self.try_acquire(name)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(name)
