import logging

from storage_cleaner.eviction.algos.layered import LayeredEviction
from storage_cleaner.eviction.model import StorageStats

logger = logging.getLogger(__name__)

class AdmissionController:
    """
    Pre-write gate: an unimportant key is refused while usage is above the cleanup threshold,
    instead of being written and evicted right away. Reads cached stats only.
    """
    def __init__(self, policy: LayeredEviction, stats: StorageStats, cleanup_threshold: float) -> None:
        self._policy = policy
        self._stats = stats
        self.cleanup_threshold = cleanup_threshold

    def should_reject(self, key: str) -> bool:
        if not self._policy.is_unimportant(key):
            return False
        ratio = self._stats.usage_ratio
        if ratio > self.cleanup_threshold:
            logger.debug(f"Usage {ratio:.0%} above threshold, rejecting unimportant key '{key}'")
            return True
        return False
