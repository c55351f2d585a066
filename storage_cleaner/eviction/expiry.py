"""
Time based expiry: keys untouched for longer than the threshold are removed from
both the medium and the ledger, regardless of capacity.
"""
import logging
import math
from typing import Callable, Dict, List, Optional, Sequence

from storage_cleaner.eviction.ledger import Ledger
from storage_cleaner.storage import StorageAdapter, settle
from storage_cleaner.utils import DAY_MS

logger = logging.getLogger(__name__)

class ExpirySweeper:
    def __init__(self, ledger: Ledger, adapter: StorageAdapter, threshold_days: float, clock: Callable[[], int]) -> None:
        self._ledger = ledger
        self._adapter = adapter
        self._clock = clock
        self.threshold_days = threshold_days

    @property
    def threshold_ms(self) -> float:
        return self.threshold_days * DAY_MS

    def is_expired(self, key: str, now: int) -> bool:
        """
        A key without a record was written behind our back -> expired.
        """
        record = self._ledger.get(key)
        if record is None:
            return True
        return now - record.last_access > self.threshold_ms

    def find_expired(self, keys: Sequence[str], now: Optional[int] = None) -> List[str]:
        now = self._clock() if now is None else now
        return [k for k in keys if self._ledger.accepts(k) and self.is_expired(k, now)]

    def remove(self, keys: Sequence[str]) -> List[str]:
        """
        Delete expired keys from the medium and the ledger. A failed delete keeps the record.
        """
        removed = []
        for key in keys:
            try:
                settle(self._adapter.remove(key))
            except Exception as e:  # pylint: disable=broad-exception-caught
                logger.warning(f"Failed to remove expired key '{key}': {e}")
                continue
            self._ledger.remove(key)
            removed.append(key)
        return removed

    def sweep(self, keys: Sequence[str]) -> List[str]:
        expired = self.find_expired(keys)
        if not expired:
            return []
        removed = self.remove(expired)
        logger.info(f"Time-based cleanup removed {len(removed)} keys older than {self.threshold_days} days")
        logger.debug(f"Expired keys: {', '.join(removed[:5])}{'...' if len(removed) > 5 else ''}")
        return removed

    def expiring_keys(self, warning_days: float = 1, now: Optional[int] = None) -> List[Dict[str, object]]:
        """
        Tracked keys that will expire within `warning_days`, soonest first.
        """
        now = self._clock() if now is None else now
        warning_ms = warning_days * DAY_MS
        expiring = []
        for key, record in self._ledger.items():
            remaining = self.threshold_ms - (now - record.last_access)
            if 0 < remaining <= warning_ms:
                expiring.append({
                    "key": key,
                    "last_access": record.last_access,
                    "access_count": record.access_count,
                    "days_until_expiry": math.ceil(remaining / DAY_MS),
                })
        return sorted(expiring, key=lambda item: item["days_until_expiry"])
