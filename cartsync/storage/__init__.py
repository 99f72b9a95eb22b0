"""Storage package: backends, key names, and the LocalStore facade."""
from typing import Optional

from .backends import FileBackend, MemoryBackend
from .keys import StorageKeys
from .local_store import LocalStore


def create_local_store(storage_dir: Optional[str] = None, quota_bytes: Optional[int] = None) -> LocalStore:
    """Build a LocalStore on disk when a directory is given, else in memory."""
    if storage_dir:
        return LocalStore(FileBackend(storage_dir, quota_bytes=quota_bytes))
    return LocalStore(MemoryBackend(quota_bytes=quota_bytes))


__all__ = [
    "FileBackend",
    "LocalStore",
    "MemoryBackend",
    "StorageKeys",
    "create_local_store",
]
