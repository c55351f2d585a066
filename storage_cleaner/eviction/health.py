"""
Ledger health and recovery.

Divergence between ledger and medium comes in three shapes:
    - missing: key in the medium, no record (written outside our observation, or lost snapshot)
    - orphaned: record without a key in the medium (removed outside our observation)
    - corrupted: record failing structural validation

Repair decision tree:
    corrupted == 0 and missing > 0                    -> initialize
    corrupted > 0 or missing > 50% of the keys        -> rebuild
    otherwise                                         -> none
"""
import logging
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np

from storage_cleaner.eviction.ledger import Ledger
from storage_cleaner.eviction.model import AccessRecord, is_valid_record
from storage_cleaner.utils import DAY_MS

logger = logging.getLogger(__name__)

REPAIR_NONE = "none"
REPAIR_INITIALIZE = "initialize"
REPAIR_REBUILD = "rebuild"

MISSING_REBUILD_RATIO = 0.5
REBUILD_MAX_ACCESS_COUNT = 5


class HealthReport:
    def __init__(self, total_keys: int, tracked_keys: int, missing_records: int, corrupted_records: int):
        self.total_keys = total_keys
        self.tracked_keys = tracked_keys
        self.missing_records = missing_records
        self.corrupted_records = corrupted_records

    @property
    def is_healthy(self) -> bool:
        return self.missing_records == 0 and self.corrupted_records == 0

    @property
    def recommendations(self) -> List[str]:
        tips = []
        if self.missing_records > 0:
            tips.append(f"{self.missing_records} stored keys have no access record, initialize them")
        if self.corrupted_records > 0:
            tips.append(f"{self.corrupted_records} access records are corrupted, rebuild the ledger")
        if self.missing_records > self.total_keys * MISSING_REBUILD_RATIO:
            tips.append("More than half of the records are missing, a full rebuild is advised")
        return tips

    def as_dict(self) -> dict:
        return {
            "total_keys": self.total_keys,
            "tracked_keys": self.tracked_keys,
            "missing_records": self.missing_records,
            "corrupted_records": self.corrupted_records,
            "is_healthy": self.is_healthy,
            "recommendations": self.recommendations,
        }

    def __repr__(self):
        return (f"HealthReport(total_keys={self.total_keys}, tracked_keys={self.tracked_keys}, "
                f"missing_records={self.missing_records}, corrupted_records={self.corrupted_records})")


class RepairResult:
    def __init__(self, action: str, health: HealthReport, affected: int = 0):
        self.action = action
        self.health = health
        self.affected = affected        # records created by the repair

    def __repr__(self):
        return f"RepairResult(action={self.action!r}, affected={self.affected}, health={self.health!r})"


def choose_repair(report: HealthReport) -> str:
    if report.corrupted_records == 0 and report.missing_records > 0:
        return REPAIR_INITIALIZE
    if report.corrupted_records > 0 or report.missing_records > report.total_keys * MISSING_REBUILD_RATIO:
        return REPAIR_REBUILD
    return REPAIR_NONE


class LedgerHealth:
    """
    Input:
        - `ledger`: the ledger to inspect and repair
        - `estimate_size`: key -> bytes, used for records created during repair
        - `rng`: numpy Generator spreading rebuilt recency (seed it for reproducible rebuilds)
    """
    def __init__(self,
                 ledger: Ledger,
                 estimate_size: Callable[[str], int],
                 clock: Callable[[], int],
                 rng: Optional[np.random.Generator] = None,
                 lookback_days: float = 7) -> None:
        self._ledger = ledger
        self._estimate_size = estimate_size
        self._clock = clock
        self._rng = rng if rng is not None else np.random.default_rng()
        self.lookback_days = lookback_days

    def _cleanable(self, keys: Sequence[str]) -> List[str]:
        return [k for k in keys if self._ledger.accepts(k)]

    # ----------------------- DIAGNOSIS -----------------------
    def corrupted_keys(self) -> List[str]:
        return [k for k, r in self._ledger.items() if not is_valid_record(r)]

    def check(self, keys: Sequence[str]) -> HealthReport:
        cleanable = self._cleanable(keys)
        missing = sum(1 for k in cleanable if k not in self._ledger)
        return HealthReport(
            total_keys=len(cleanable),
            tracked_keys=len(self._ledger),
            missing_records=missing,
            corrupted_records=len(self.corrupted_keys()),
        )

    # ----------------------- TREATMENT -----------------------
    def initialize_missing(self, keys: Sequence[str]) -> int:
        """
        Give every untracked key a synthetic record dated one day back, so pre-existing data
        ranks below fresh writes without being purged at once. Existing records are untouched.
        """
        initial_access = self._clock() - DAY_MS
        created = 0
        for key in self._cleanable(keys):
            if key in self._ledger:
                continue
            self._ledger.put(key, AccessRecord(initial_access, 1, self._estimate_size(key)))
            created += 1
        if created:
            logger.info(f"Initialized access records for {created} existing keys")
        return created

    def rebuild(self, keys: Sequence[str]) -> int:
        """
        Throw the ledger away and regenerate one record per key, with recency spread over the
        lookback window and a small random access count, to avoid a synchronized mass eviction.
        """
        now = self._clock()
        window_ms = self.lookback_days * DAY_MS
        rebuilt: Dict[str, AccessRecord] = {}
        for key in self._cleanable(keys):
            last_access = now - int(self._rng.random() * window_ms)
            access_count = int(self._rng.integers(1, REBUILD_MAX_ACCESS_COUNT + 1))
            rebuilt[key] = AccessRecord(last_access, access_count, self._estimate_size(key))
        self._ledger.replace(rebuilt)
        logger.info(f"Rebuilt access records for {len(rebuilt)} keys")
        return len(rebuilt)

    def cleanup_orphaned(self, keys: Sequence[str]) -> List[str]:
        """
        Drop records whose key is gone from the medium.
        """
        present = set(keys)
        orphaned = [k for k in self._ledger if k not in present]
        self._ledger.remove_many(orphaned)
        if orphaned:
            logger.info(f"Removed {len(orphaned)} orphaned access records")
            logger.debug(f"Orphaned keys: {', '.join(orphaned[:5])}{'...' if len(orphaned) > 5 else ''}")
        return orphaned
