"""
Storage backends for LocalStore.

Both backends hold raw strings and raise StorageQuotaError when a write
would push the total stored size past the configured quota.
"""

import os
import re
from pathlib import Path
from typing import Dict, Optional

from cartsync.errors import ERROR_STORAGE_QUOTA, StorageQuotaError

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class MemoryBackend:
    """In-process key/value store, the analogue of browser localStorage."""

    def __init__(self, quota_bytes: Optional[int] = None):
        self.quota_bytes = quota_bytes
        self._data: Dict[str, str] = {}

    def _size_without(self, key: str) -> int:
        return sum(len(k) + len(v) for k, v in self._data.items() if k != key)

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if self.quota_bytes is not None:
            if self._size_without(key) + len(key) + len(value) > self.quota_bytes:
                raise StorageQuotaError(ERROR_STORAGE_QUOTA)
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class FileBackend:
    """One file per key under a directory; survives process restarts."""

    def __init__(self, directory: str, quota_bytes: Optional[int] = None):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self.quota_bytes = quota_bytes

    def _path(self, key: str) -> Path:
        return self.directory / f"{_UNSAFE_KEY_CHARS.sub('_', key)}.json"

    def _size_without(self, path: Path) -> int:
        return sum(
            p.stat().st_size for p in self.directory.glob("*.json") if p != path
        )

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        encoded = value.encode("utf-8")
        if self.quota_bytes is not None:
            if self._size_without(path) + len(encoded) > self.quota_bytes:
                raise StorageQuotaError(ERROR_STORAGE_QUOTA)
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_bytes(encoded)
        os.replace(tmp_path, path)

    def remove(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            pass
