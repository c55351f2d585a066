"""
eviction.manager
================

EvictionManager
---------------
Owns one access ledger for one storage medium and answers the questions the caller
asks around reads and writes:

    • record_access                 - every observed read/write
    • should_reject_insertion       - skip low value writes under pressure
    • select_eviction_candidates    - which keys to delete to make room
    • on_evicted                    - the caller deleted them
    • check_health / repair         - ledger vs medium divergence

The ledger is persisted into the medium itself under a reserved key, debounced so
that a burst of accesses costs one write. Nothing here raises for ordinary
operation: failing storage calls degrade to estimates, empty lists or a rebuild.
"""
from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np

from storage_cleaner.config import CleanerConfig
from storage_cleaner.eviction import codec
from storage_cleaner.eviction.admission import AdmissionController
from storage_cleaner.eviction.algos.layered import LayeredEviction
from storage_cleaner.eviction.expiry import ExpirySweeper
from storage_cleaner.eviction.health import (
    REPAIR_INITIALIZE,
    REPAIR_NONE,
    REPAIR_REBUILD,
    HealthReport,
    LedgerHealth,
    RepairResult,
    choose_repair,
)
from storage_cleaner.eviction.ledger import Ledger
from storage_cleaner.eviction.model import AccessRecord, StorageStats, is_number
from storage_cleaner.eviction.utils.debounce import Debouncer, TimerFactory
from storage_cleaner.exceptions import SnapshotDecodeError
from storage_cleaner.log import set_debug
from storage_cleaner.storage import StorageAdapter, as_key_list, call_sync, resolve, settle
from storage_cleaner.utils import DEFAULT_ITEM_SIZE, byte_size, generate_storage_key, is_system_key, now

logger = logging.getLogger(__name__)

SNAPSHOT_KEY = generate_storage_key("lru", "access_records")
DEBUG_SNAPSHOT_KEY = generate_storage_key("lru", "debug_records")
RETENTION_FRACTION = 0.8        # a cleanup always brings usage down to at most 80% of capacity


class EvictionManager:
    """
    Parameters
    ----------
    adapter : StorageAdapter
        The medium holding the application's values (and our snapshot).
    config : CleanerConfig, optional
    clock : Callable[[], int], optional
        Millisecond clock, defaults to wall time.
    rng : numpy.random.Generator, optional
        Randomness for ledger rebuilds; pass a seeded generator for reproducible runs.
    timer_factory : optional
        Timer used to debounce persistence (see eviction.utils.debounce).
    """

    # ------------------------------------------------------------------
    # ctor / configuration
    # ------------------------------------------------------------------
    def __init__(
        self,
        adapter: StorageAdapter,
        config: Optional[CleanerConfig] = None,
        *,
        clock: Optional[Callable[[], int]] = None,
        rng: Optional[np.random.Generator] = None,
        timer_factory: Optional[TimerFactory] = None,
    ) -> None:
        self._adapter = adapter
        self._config = config or CleanerConfig()
        self._clock = clock or now
        self._exclude = set(self._config.exclude_keys)

        # the ledger can be read from the persistence timer thread
        self._lock = threading.RLock()

        self._ledger = Ledger(accepts=self.is_trackable)
        self._policy = LayeredEviction(self._config.unimportant_keys)
        self._sweeper = ExpirySweeper(self._ledger, adapter, self._config.time_cleanup_threshold, self._clock)
        self.stats = StorageStats(self._config.max_storage_size)
        self._admission = AdmissionController(self._policy, self.stats, self._config.cleanup_threshold)
        self._health = LedgerHealth(
            self._ledger, self.estimate_size, self._clock, rng=rng,
            lookback_days=self._config.rebuild_lookback_days,
        )
        self._persist = Debouncer(self._save, self._config.persist_debounce_ms, timer_factory)
        set_debug(self._config.debug)

    @property
    def config(self) -> CleanerConfig:
        return self._config

    @property
    def ledger(self) -> Ledger:
        return self._ledger

    @property
    def adapter(self) -> StorageAdapter:
        return self._adapter

    def set_timer_factory(self, timer_factory: TimerFactory) -> None:
        """
        Switch the persistence timers, e.g. to `loop_timer(loop)` once an event loop runs.
        """
        self._persist.timer_factory = timer_factory

    def configure(self, **changes: Any) -> CleanerConfig:
        """
        Apply new options at runtime (time-based cleanup, unimportant keys, thresholds...).
        """
        with self._lock:
            self._config = self._config.updated(**changes)
            cfg = self._config
            self._exclude = set(cfg.exclude_keys)
            self._ledger.remove_many([k for k in self._ledger if not self.is_trackable(k)])
            self._policy.set_patterns(cfg.unimportant_keys)
            self._sweeper.threshold_days = cfg.time_cleanup_threshold
            self._admission.cleanup_threshold = cfg.cleanup_threshold
            self._health.lookback_days = cfg.rebuild_lookback_days
            self.stats.max_size = cfg.max_storage_size
        set_debug(cfg.debug)
        logger.debug(f"Config updated: {changes}")
        return cfg

    # ------------------------------------------------------------------
    #  Helpers
    # ------------------------------------------------------------------
    def is_trackable(self, key: str) -> bool:
        """
        System keys and excluded keys are never tracked nor evicted.
        """
        return not is_system_key(key) and key not in self._exclude

    def _enumerate(self) -> List[str]:
        return as_key_list(call_sync(self._adapter.keys, default=[]))

    def _keys_or_enumerate(self, keys: Optional[Sequence[str]]) -> List[str]:
        return self._enumerate() if keys is None else as_key_list(keys)

    def estimate_size(self, key: str) -> int:
        """
        Size of a stored key: the medium's own answer if it has one right now,
        else key + value bytes, else a fixed default.
        """
        size = call_sync(self._adapter.item_size, key)
        if is_number(size) and size > 0:
            return int(size)
        value = call_sync(self._adapter.get, key)
        if isinstance(value, str):
            return byte_size(key) + byte_size(value)
        return DEFAULT_ITEM_SIZE

    def _refresh_sizes(self, keys: Sequence[str]) -> Dict[str, int]:
        """
        Known sizes for `keys`; unknown ones are looked up and written back to their record.
        """
        sizes: Dict[str, int] = {}
        for key in keys:
            record = self._ledger.get(key)
            if record is not None and record.size > 0:
                sizes[key] = record.size
                continue
            size = self.estimate_size(key)
            if record is not None:
                record.size = size
            sizes[key] = size
        return sizes

    # ------------------------------------------------------------------
    #  Ledger API used by the caller
    # ------------------------------------------------------------------
    def record_access(self, key: str, value: Optional[str] = None, size: Optional[int] = None,
                      *, expire_on_insert: bool = True) -> bool:
        """
        Must be called on every observed read/write of *key*.

        Parameters
        ----------
        key : str
        value : str, optional
            The value just written, when known; its size replaces the recorded one.
        size : int, optional
            Explicit size in bytes, wins over `value`.
        expire_on_insert : bool
            Run the on-insert expiry sweep here. Callers on an asynchronous medium pass False
            and sweep themselves with the awaited key list.

        Return False when the key is not tracked (system or excluded key).
        """
        if not self.is_trackable(key):
            return False
        if size is None and value is not None:
            size = byte_size(key) + byte_size(value)

        with self._lock:
            _, created = self._ledger.touch(key, self._clock(), size)
        logger.debug(f"Recorded access for key: {key}{f' ({size} bytes)' if size else ''}")

        if created and expire_on_insert and self.expires_on_insert:
            self.trigger_expiry_sweep()

        self._persist()
        return True

    @property
    def expires_on_insert(self) -> bool:
        return self._config.enable_time_based_cleanup and self._config.cleanup_on_insert

    def remove(self, key: str) -> bool:
        with self._lock:
            removed = self._ledger.remove(key)
        if removed:
            self._persist()
        return removed

    def get(self, key: str) -> Optional[AccessRecord]:
        return self._ledger.get(key)

    def clear(self) -> None:
        with self._lock:
            self._ledger.clear()
        self._persist()

    def on_evicted(self, keys: Sequence[str]) -> List[str]:
        """
        The caller deleted `keys` from the medium: forget them and persist right away.
        """
        with self._lock:
            removed = self._ledger.remove_many(keys)
        logger.debug(f"Cleaned up keys: {list(keys)}")
        self._persist.cancel()
        self._save()
        return removed

    # ------------------------------------------------------------------
    #  Eviction
    # ------------------------------------------------------------------
    def select_eviction_candidates(
        self,
        keys: Sequence[str],
        current_size: float,
        max_size: Optional[float] = None,
        required_space: float = 0,
    ) -> List[str]:
        """
        Keys to delete so that `required_space` fits, never cleaning below what is needed:
            target = max(max_size * 0.8, current_size - required_space)
        """
        max_size = self._config.max_storage_size if max_size is None else max_size
        keys = as_key_list(keys)

        with self._lock:
            self.prune_stale_records()

            if self._config.enable_time_based_cleanup:
                expired = self._sweeper.find_expired(keys)
                if expired:
                    expired_sizes = self._refresh_sizes(expired)
                    swept = set(self._sweeper.remove(expired))
                    keys = [k for k in keys if k not in swept]
                    current_size = max(current_size - sum(expired_sizes[k] for k in swept), 0)
                    logger.info(f"Time-based cleanup removed {len(swept)} keys before eviction")

            cleanable = [k for k in keys if self.is_trackable(k)]
            target_size = max(max_size * RETENTION_FRACTION, current_size - required_space)
            space_to_free = current_size - target_size
            if space_to_free <= 0:
                return []

            sizes = self._refresh_sizes(cleanable)
            victims = self._policy.select(cleanable, self._ledger.records(), sizes, space_to_free)

        freed = sum(sizes[k] for k in victims)
        logger.info(f"Selected {len(victims)} keys for cleanup, will free {freed} of {space_to_free:.0f} bytes")
        return victims

    def should_reject_insertion(self, key: str) -> bool:
        return self._admission.should_reject(key)

    def update_stats(self, total_size: Optional[int] = None, item_count: Optional[int] = None) -> StorageStats:
        """
        Refresh the cached statistics; missing values are read from the medium if it answers synchronously.
        """
        if total_size is None:
            total_size = call_sync(self._adapter.total_size, default=self.stats.total_size)
        if item_count is None:
            item_count = len(self._enumerate())
        self.stats.total_size = total_size
        self.stats.item_count = item_count
        return self.stats

    def note_cleanup(self) -> None:
        self.stats.cleanup_count += 1
        self.stats.last_cleanup = self._clock()

    # ------------------------------------------------------------------
    #  Expiry
    # ------------------------------------------------------------------
    def trigger_expiry_sweep(self, keys: Optional[Sequence[str]] = None) -> List[str]:
        """
        Remove every key not accessed within `time_cleanup_threshold` days from medium and ledger.
        """
        keys = self._keys_or_enumerate(keys)
        with self._lock:
            removed = self._sweeper.sweep(keys)
        if removed:
            self._persist()
        return removed

    def expiring_keys(self, warning_days: float = 1) -> List[Dict[str, object]]:
        with self._lock:
            return self._sweeper.expiring_keys(warning_days)

    def prune_stale_records(self) -> List[str]:
        """
        Drop records older than `max_access_age` (the medium is left alone).
        """
        max_age = self._config.max_access_age
        if max_age <= 0:
            return []
        current = self._clock()
        with self._lock:
            stale = [k for k, r in self._ledger.items() if current - r.last_access > max_age]
            self._ledger.remove_many(stale)
        if stale:
            logger.debug(f"Pruned {len(stale)} stale access records")
            self._persist()
        return stale

    # ------------------------------------------------------------------
    #  Health & recovery
    # ------------------------------------------------------------------
    def check_health(self, keys: Optional[Sequence[str]] = None) -> HealthReport:
        keys = self._keys_or_enumerate(keys)
        with self._lock:
            return self._health.check(keys)

    def repair(self, keys: Optional[Sequence[str]] = None) -> RepairResult:
        """
        Drop orphaned records, then initialize or rebuild as the health report dictates.
        """
        keys = self._keys_or_enumerate(keys)
        with self._lock:
            orphaned = self._health.cleanup_orphaned(keys)
            report = self._health.check(keys)
            action = choose_repair(report)
            affected = 0
            if action == REPAIR_INITIALIZE:
                affected = self._health.initialize_missing(keys)
            elif action == REPAIR_REBUILD:
                affected = self._health.rebuild(keys)

        if action == REPAIR_INITIALIZE or (orphaned and action == REPAIR_NONE):
            self._persist()
        elif action == REPAIR_REBUILD:
            self._persist.cancel()
            self._save()
        if action != REPAIR_NONE:
            logger.info(f"Ledger repair: {action} ({affected} records)")
        return RepairResult(action, report, affected)

    def initialize_from_existing_keys(self, keys: Optional[Sequence[str]] = None) -> int:
        keys = self._keys_or_enumerate(keys)
        with self._lock:
            created = self._health.initialize_missing(keys)
        if created:
            self._persist()
        return created

    def rebuild(self, keys: Optional[Sequence[str]] = None) -> Dict[str, Dict[str, int]]:
        keys = self._keys_or_enumerate(keys)
        with self._lock:
            before = self._health.check(keys)
            self._health.rebuild(keys)
            after = self._health.check(keys)
        self._persist.cancel()
        self._save()
        return {
            "before": {"tracked_keys": before.tracked_keys, "total_keys": before.total_keys},
            "after": {"tracked_keys": after.tracked_keys, "total_keys": after.total_keys},
        }

    def cleanup_orphaned(self, keys: Optional[Sequence[str]] = None) -> List[str]:
        keys = self._keys_or_enumerate(keys)
        with self._lock:
            orphaned = self._health.cleanup_orphaned(keys)
        if orphaned:
            self._persist()
        return orphaned

    # ------------------------------------------------------------------
    #  Persistence
    # ------------------------------------------------------------------
    def restore(self, raw: Any, keys: Sequence[str]) -> RepairResult:
        """
        Install a snapshot read from the medium and reconcile it with `keys`.
            - absent -> empty ledger
            - unreadable -> rebuild
            - then orphaned records are dropped and the repair tree runs
        """
        keys = as_key_list(keys)
        if raw is None or raw == "":
            logger.debug("No existing access records found")
            with self._lock:
                self._ledger.clear()
        else:
            try:
                document = codec.loads(raw) if isinstance(raw, (str, bytes)) else raw
                records = codec.decode(document)
            except SnapshotDecodeError as e:
                logger.warning(f"Access records unreadable, rebuilding: {e}")
                with self._lock:
                    report = self._health.check(keys)
                    affected = self._health.rebuild(keys)
                self._save()
                return RepairResult(REPAIR_REBUILD, report, affected)
            with self._lock:
                self._ledger.replace(records)
            logger.debug(f"Loaded {len(records)} access records")

        return self.repair(keys)

    def load(self) -> RepairResult:
        """
        Read the snapshot from a synchronous medium. Use `aload` for asynchronous media.
        """
        raw = call_sync(self._adapter.get, SNAPSHOT_KEY)
        return self.restore(raw, self._enumerate())

    async def aload(self) -> RepairResult:
        try:
            raw = await resolve(self._adapter.get(SNAPSHOT_KEY))
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.warning(f"Failed to read access records: {e}")
            raw = None
        try:
            keys = as_key_list(await resolve(self._adapter.keys()))
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.warning(f"Failed to enumerate storage keys: {e}")
            keys = []
        return self.restore(raw, keys)

    def _serialize(self) -> Dict[str, str]:
        with self._lock:
            records = {k: r.copy() for k, r in self._ledger.items()}
        document = codec.encode(records, self._config.max_ledger_entries)
        payload = {SNAPSHOT_KEY: codec.dumps(document)}
        if self._config.debug:
            payload[DEBUG_SNAPSHOT_KEY] = codec.dumps(codec.debug_report(records, document))
        return payload

    def _save(self) -> None:
        for key, text in self._serialize().items():
            try:
                settle(self._adapter.set(key, text))
            except Exception as e:  # pylint: disable=broad-exception-caught
                logger.warning(f"Failed to save {key}: {e}")

    async def _asave(self) -> None:
        for key, text in self._serialize().items():
            try:
                await resolve(self._adapter.set(key, text))
            except Exception as e:  # pylint: disable=broad-exception-caught
                logger.warning(f"Failed to save {key}: {e}")

    def flush(self) -> bool:
        """
        Write a pending debounced snapshot now. Return False if nothing was pending.
        """
        return self._persist.flush()

    async def aflush(self) -> bool:
        if not self._persist.cancel():
            return False
        await self._asave()
        return True

    def optimize(self) -> Dict[str, int]:
        """
        Prune stale records and rewrite the snapshot immediately.
        """
        before = len(self._ledger)
        self.prune_stale_records()
        self._persist.cancel()
        self._save()
        return {"before": before, "after": len(self._ledger)}

    def close(self) -> None:
        self.flush()

    # ------------------------------------------------------------------
    #  Misc helpers
    # ------------------------------------------------------------------
    def dump_stats(self) -> Dict[str, object]:
        """Return a JSON-serialisable snapshot for introspection."""
        return {
            "tracked_keys": len(self._ledger),
            "pending_persist": self._persist.pending,
            **self.stats.as_dict(),
        }
