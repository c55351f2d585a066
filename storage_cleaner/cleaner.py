"""
StorageCleaner: explicit read/write entry point over a storage medium.

Every write goes through admission control and, when usage is about to cross the
cleanup threshold, a capacity cleanup; every read/write is recorded in the ledger.
All IO methods are coroutines; synchronous media work unchanged since their plain
return values are simply passed through.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional

from storage_cleaner.config import CleanerConfig
from storage_cleaner.eviction.health import HealthReport, RepairResult
from storage_cleaner.eviction.manager import EvictionManager
from storage_cleaner.eviction.model import StorageStats
from storage_cleaner.eviction.utils.debounce import loop_timer
from storage_cleaner.storage import StorageAdapter, as_key_list, drain, resolve
from storage_cleaner.utils import byte_size, format_bytes

logger = logging.getLogger(__name__)

class StorageCleaner:
    def __init__(self, adapter: StorageAdapter, config: Optional[CleanerConfig] = None, **engine_kwargs: Any):
        self._adapter = adapter
        self._engine = EvictionManager(adapter, config, **engine_kwargs)
        # persistence moves onto the event loop in start() unless timers were given
        self._loop_timers = engine_kwargs.get("timer_factory") is None

    @property
    def engine(self) -> EvictionManager:
        return self._engine

    @property
    def config(self) -> CleanerConfig:
        return self._engine.config

    @property
    def stats(self) -> StorageStats:
        return self._engine.stats

    """
    -----------------------HELPERS-------------------------
    """
    async def _keys(self) -> List[str]:
        try:
            return as_key_list(await resolve(self._adapter.keys()))
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.warning(f"Failed to enumerate storage keys: {e}")
            return []

    async def _total_size(self) -> int:
        try:
            return await resolve(self._adapter.total_size())
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.warning(f"Failed to read storage size: {e}")
            return self.stats.total_size

    async def refresh_stats(self) -> StorageStats:
        total_size = await self._total_size()
        keys = await self._keys()
        return self._engine.update_stats(total_size=total_size, item_count=len(keys))

    """
    -----------------------LIFECYCLE-------------------------
    """
    async def start(self) -> RepairResult:
        """
        Load the persisted ledger, reconcile it with the medium and refresh stats.
        """
        if self._loop_timers:
            self._engine.set_timer_factory(loop_timer(asyncio.get_running_loop()))
        result = await self._engine.aload()
        await drain()
        await self.refresh_stats()
        return result

    async def close(self) -> None:
        await self._engine.aflush()
        await drain()

    async def __aenter__(self) -> "StorageCleaner":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    """
    -----------------------READ / WRITE-------------------------
    """
    async def set_item(self, key: str, value: str) -> bool:
        """
        - Write a value, making room first if needed
        - Return False if the write was refused by admission control
        - Raise CapacityExceededError if the medium still rejects it
        """
        if self._engine.should_reject_insertion(key):
            logger.debug(f"Rejected unimportant key '{key}' ({format_bytes(byte_size(value))})")
            return False

        if self.config.auto_cleanup:
            await self.check_and_cleanup(byte_size(key) + byte_size(value))

        created = self._engine.get(key) is None
        await resolve(self._adapter.set(key, value))
        tracked = self._engine.record_access(key, value, expire_on_insert=False)
        if tracked and created and self._engine.expires_on_insert:
            await self.trigger_expiry_sweep()
        else:
            await self.refresh_stats()
        return True

    async def get_item(self, key: str) -> Optional[str]:
        """
        - Read a value, recording the access on hits
        - Return None if the key does not exist
        """
        value = await resolve(self._adapter.get(key))
        if value is not None:
            self._engine.record_access(key)
        return value

    async def remove_item(self, key: str) -> None:
        await resolve(self._adapter.remove(key))
        self._engine.remove(key)
        await self.refresh_stats()

    async def clear(self) -> None:
        await resolve(self._adapter.clear())
        self._engine.clear()
        await self.refresh_stats()

    """
    -----------------------CLEANUP-------------------------
    """
    async def check_and_cleanup(self, required_space: int = 0) -> List[str]:
        """
        Clean up if writing `required_space` more bytes would cross the cleanup threshold.
        """
        current_size = await self._total_size()
        threshold = self.config.max_storage_size * self.config.cleanup_threshold
        if current_size + required_space > threshold:
            return await self.cleanup(required_space)
        return []

    async def cleanup(self, required_space: int = 0) -> List[str]:
        """
        Delete the keys chosen by the eviction engine. Return them.
        """
        keys = await self._keys()
        current_size = await self._total_size()
        victims = self._engine.select_eviction_candidates(
            keys, current_size, self.config.max_storage_size, required_space
        )
        await drain()
        if not victims:
            logger.debug("No keys to cleanup")
            await self.refresh_stats()
            return []

        removed = []
        for key in victims:
            try:
                await resolve(self._adapter.remove(key))
                removed.append(key)
            except Exception as e:  # pylint: disable=broad-exception-caught
                logger.warning(f"Failed to remove '{key}' during cleanup: {e}")
        self._engine.on_evicted(removed)
        self._engine.note_cleanup()
        await drain()

        stats = await self.refresh_stats()
        logger.info(f"Cleaned up {len(removed)} keys, freed {format_bytes(current_size - stats.total_size)}")
        return removed

    async def trigger_expiry_sweep(self) -> List[str]:
        removed = self._engine.trigger_expiry_sweep(await self._keys())
        await drain()
        await self.refresh_stats()
        return removed

    """
    -----------------------HEALTH-------------------------
    """
    async def check_health(self) -> HealthReport:
        return self._engine.check_health(await self._keys())

    async def repair(self) -> RepairResult:
        result = self._engine.repair(await self._keys())
        await drain()
        return result

    async def initialize_from_existing_keys(self) -> int:
        return self._engine.initialize_from_existing_keys(await self._keys())

    async def cleanup_orphaned(self) -> List[str]:
        return self._engine.cleanup_orphaned(await self._keys())

    async def rebuild(self) -> dict:
        result = self._engine.rebuild(await self._keys())
        await drain()
        return result
