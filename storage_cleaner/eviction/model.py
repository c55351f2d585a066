"""
Key metadata used by the eviction engine
  - `last_access`: timestamp (ms) of the last observed read/write
  - `access_count`: number of observed reads/writes
  - `size`: bytes the key occupies in the storage medium (0 = unknown)
"""
from numbers import Real
from typing import Any, List, Optional

ACCESS_WEIGHT_MS = 60_000               # one access is worth one minute of recency
LARGE_ITEM_THRESHOLD = 5 * 1024         # records above this size are "large"


class AccessRecord:
    __slots__ = ("last_access", "access_count", "size")

    def __init__(self, last_access: float, access_count: int = 1, size: int = 0):
        self.last_access = last_access
        self.access_count = access_count
        self.size = size

    def touch(self, now: float, size: Optional[int] = None) -> None:
        self.last_access = now
        self.access_count += 1
        if size is not None:
            self.size = size

    def to_list(self) -> List[Any]:
        return [self.last_access, self.access_count, self.size]

    def copy(self) -> "AccessRecord":
        return AccessRecord(self.last_access, self.access_count, self.size)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AccessRecord):
            return NotImplemented
        return self.to_list() == other.to_list()

    def __repr__(self):
        return f"AccessRecord(last_access={self.last_access}, access_count={self.access_count}, size={self.size})"


def snapshot_weight(record: AccessRecord) -> float:
    """
    Survival weight when the ledger is compressed: recency plus one minute per access.
    """
    return record.last_access + record.access_count * ACCESS_WEIGHT_MS

def is_large(record: Optional[AccessRecord]) -> bool:
    return record is not None and record.size > LARGE_ITEM_THRESHOLD

def is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)

def is_valid_record(record: Any) -> bool:
    """
    Structural validation of a ledger entry. Accepts AccessRecord or a raw
    `[last_access, access_count, size]` list.
    """
    if isinstance(record, AccessRecord):
        fields = record.to_list()
    elif isinstance(record, (list, tuple)):
        fields = list(record)
    else:
        return False
    if len(fields) != 3 or not all(is_number(f) for f in fields):
        return False
    last_access, access_count, _ = fields
    return last_access > 0 and access_count > 0


class StorageStats:
    """
    Cached medium statistics. Refreshed by the caller, read by admission control.
    """
    def __init__(self, max_size: int, total_size: int = 0, item_count: int = 0):
        self.max_size = max_size
        self.total_size = total_size
        self.item_count = item_count
        self.cleanup_count = 0
        self.last_cleanup: Optional[int] = None

    @property
    def usage_ratio(self) -> float:
        return self.total_size / self.max_size if self.max_size > 0 else 0.0

    def as_dict(self) -> dict:
        return {
            "total_size": self.total_size,
            "item_count": self.item_count,
            "max_size": self.max_size,
            "usage_ratio": self.usage_ratio,
            "cleanup_count": self.cleanup_count,
            "last_cleanup": self.last_cleanup,
        }

    def __repr__(self):
        return f"StorageStats({self.as_dict()})"
