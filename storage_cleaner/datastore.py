from typing import Dict, List, Optional
from threading import Lock
import logging

from storage_cleaner.exceptions import CapacityExceededError
from storage_cleaner.utils import byte_size

logger = logging.getLogger(__name__)

class MemoryStorage:
    """
    A dictionary of key-value string pairs with an optional byte quota.
    Every entry costs len(key) + len(value) in UTF-8 bytes.
    """
    def __init__(self, quota: Optional[int] = None, initial: Optional[Dict[str, str]] = None):
        self._store: Dict[str, str] = {}
        self._quota = quota
        self._lock = Lock()
        for key, value in (initial or {}).items():
            self._store[key] = str(value)

    """
    -----------------------HELPERS-------------------------
    """
    def _entry_size(self, key: str, value: str) -> int:
        return byte_size(key) + byte_size(value)

    def _used(self) -> int:
        return sum(self._entry_size(k, v) for k, v in self._store.items())

    """
    -----------------------STORAGE MEDIUM-------------------------
    """
    @property
    def quota(self) -> Optional[int]:
        return self._quota

    def get(self, key: str) -> Optional[str]:
        """
        - Get value by key
        - Return None if key does not exist
        """
        with self._lock:
            return self._store.get(key)

    def set(self, key: str, value: str) -> None:
        """
        - Set a key-value pair, overwriting any existing value
        - Raise CapacityExceededError if the quota would be exceeded
        """
        value = str(value)
        with self._lock:
            if self._quota is not None:
                current = self._store.get(key)
                used = self._used() - (self._entry_size(key, current) if current is not None else 0)
                required = self._entry_size(key, value)
                if used + required > self._quota:
                    raise CapacityExceededError(key, required, self._quota - used)
            self._store[key] = value
            logger.debug(f"Stored key '{key}' ({len(value)} chars)")

    def remove(self, key: str) -> None:
        """
        - Delete a key from the store, no-op when it does not exist
        """
        with self._lock:
            self._store.pop(key, None)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._store.keys())

    def total_size(self) -> int:
        with self._lock:
            return self._used()

    def item_size(self, key: str) -> int:
        """
        - Size of a single entry, 0 if key does not exist
        """
        with self._lock:
            value = self._store.get(key)
            if value is None:
                return 0
            return self._entry_size(key, value)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        return len(self._store)

    def __contains__(self, key: str) -> bool:
        return key in self._store


class AsyncMemoryStorage:
    """
    Same medium as MemoryStorage, but every operation must be awaited.
    Stands in for backends that only offer asynchronous access.
    """
    def __init__(self, quota: Optional[int] = None, initial: Optional[Dict[str, str]] = None):
        self._inner = MemoryStorage(quota=quota, initial=initial)

    @property
    def quota(self) -> Optional[int]:
        return self._inner.quota

    async def get(self, key: str) -> Optional[str]:
        return self._inner.get(key)

    async def set(self, key: str, value: str) -> None:
        self._inner.set(key, value)

    async def remove(self, key: str) -> None:
        self._inner.remove(key)

    async def keys(self) -> List[str]:
        return self._inner.keys()

    async def total_size(self) -> int:
        return self._inner.total_size()

    async def item_size(self, key: str) -> int:
        return self._inner.item_size(key)

    async def clear(self) -> None:
        self._inner.clear()
