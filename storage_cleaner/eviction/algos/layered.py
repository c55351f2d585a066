"""
Layered eviction: junk first, core state last.

Tiers (stop as soon as enough space is freed):
    1. unimportant & large keys, biggest first
    2. other unimportant keys, least recently used first
    3. important keys, least recently used first

LRU order: ascending last_access, ties by ascending access_count.
Keys without a record were never accessed under our watch -> they go first.
"""
import logging
from typing import Dict, Iterable, List, Mapping, Sequence

from storage_cleaner.eviction.model import AccessRecord, is_large
from storage_cleaner.utils import is_unimportant_key

logger = logging.getLogger(__name__)

class LayeredEviction:
    def __init__(self, unimportant_patterns: Sequence[str] = ()) -> None:
        self._patterns = list(unimportant_patterns)

    def set_patterns(self, unimportant_patterns: Sequence[str]) -> None:
        self._patterns = list(unimportant_patterns)

    # ----------------------- HELPERS -----------------------
    def is_unimportant(self, key: str) -> bool:
        return is_unimportant_key(key, self._patterns)

    @staticmethod
    def lru_order(keys: Iterable[str], records: Mapping[str, AccessRecord]) -> List[str]:
        """
        Sort keys from most to least evictable.
        """
        def rank(key: str):
            record = records.get(key)
            if record is None:
                return (0, 0, 0)
            return (1, record.last_access, record.access_count)
        return sorted(keys, key=rank)

    def tiers(self, keys: Sequence[str], records: Mapping[str, AccessRecord]) -> List[List[str]]:
        """
        Split `keys` into the three ordered tiers.
        """
        large, small, important = [], [], []
        for key in keys:
            if not self.is_unimportant(key):
                important.append(key)
            elif is_large(records.get(key)):
                large.append(key)
            else:
                small.append(key)
        large.sort(key=lambda k: records[k].size, reverse=True)
        return [large, self.lru_order(small, records), self.lru_order(important, records)]

    # --------------------- MAIN SELECTION LOGIC --------------------
    def select(self,
               keys: Sequence[str],
               records: Mapping[str, AccessRecord],
               sizes: Dict[str, int],
               space_to_free: float) -> List[str]:
        """
        Pick keys tier by tier until the accumulated size reaches `space_to_free`.
        The result may free less than asked if there is not enough to remove.
        """
        victims: List[str] = []
        freed = 0
        if space_to_free <= 0:
            return victims

        for level, tier in enumerate(self.tiers(keys, records), start=1):
            for key in tier:
                victims.append(key)
                freed += sizes.get(key, 0)
                logger.debug(f"Tier {level}: selected '{key}' ({sizes.get(key, 0)} bytes)")
                if freed >= space_to_free:
                    return victims

        logger.debug(f"Only {freed} of {space_to_free} bytes can be freed from {len(keys)} keys")
        return victims
