"""
The access ledger: key -> AccessRecord, the single source of truth for eviction.
"""
import logging
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple

from storage_cleaner.eviction.model import AccessRecord

logger = logging.getLogger(__name__)

class Ledger:
    """
    Input:
        - `accepts`: predicate deciding whether a key may be tracked at all.
          System keys and excluded keys never enter the ledger, whichever path tries to add them.
    """
    def __init__(self, accepts: Optional[Callable[[str], bool]] = None) -> None:
        self._records: Dict[str, AccessRecord] = {}
        self._accepts = accepts or (lambda key: True)

    def accepts(self, key: str) -> bool:
        return self._accepts(key)

    def touch(self, key: str, now: float, size: Optional[int] = None) -> Tuple[Optional[AccessRecord], bool]:
        """
        Create or refresh the record of `key`.
        Return (record, created); (None, False) when the key may not be tracked.
        """
        if not self._accepts(key):
            return None, False
        record = self._records.get(key)
        if record is None:
            record = AccessRecord(last_access=now, access_count=1, size=size or 0)
            self._records[key] = record
            return record, True
        record.touch(now, size)
        return record, False

    def put(self, key: str, record: AccessRecord) -> bool:
        if not self._accepts(key):
            return False
        self._records[key] = record
        return True

    def remove(self, key: str) -> bool:
        """
        Delete the record if present. Idempotent.
        """
        return self._records.pop(key, None) is not None

    def get(self, key: str) -> Optional[AccessRecord]:
        return self._records.get(key)

    def replace(self, records: Dict[str, AccessRecord]) -> int:
        """
        Swap the whole content, dropping keys that may not be tracked.
        Return the number of dropped keys.
        """
        kept = {k: r for k, r in records.items() if self._accepts(k)}
        dropped = len(records) - len(kept)
        if dropped:
            logger.debug(f"Dropped {dropped} untrackable keys while replacing ledger")
        self._records = kept
        return dropped

    def clear(self) -> None:
        self._records.clear()

    def keys(self) -> List[str]:
        return list(self._records.keys())

    def items(self) -> List[Tuple[str, AccessRecord]]:
        return list(self._records.items())

    def records(self) -> Dict[str, AccessRecord]:
        """
        Shallow view of the underlying mapping, for read-only use.
        """
        return self._records

    def remove_many(self, keys: Iterable[str]) -> List[str]:
        return [k for k in keys if self.remove(k)]

    def __contains__(self, key: object) -> bool:
        return key in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._records))

    def __repr__(self):
        return f"Ledger({len(self._records)} records)"
