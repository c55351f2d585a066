import numpy as np
import pytest

from storage_cleaner.config import CleanerConfig
from storage_cleaner.datastore import MemoryStorage
from storage_cleaner.eviction.manager import EvictionManager

START_MS = 1_700_000_000_000


class FakeClock:
    """Millisecond clock that only moves when told to."""
    def __init__(self, start: int = START_MS):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


class _Handle:
    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self):
        self.cancelled = True


class ManualTimers:
    """Timer factory for Debouncer; timers only fire on `fire_all()`."""
    def __init__(self):
        self.handles = []

    def __call__(self, delay, callback):
        handle = _Handle(delay, callback)
        self.handles.append(handle)
        return handle

    @property
    def active(self):
        return [h for h in self.handles if not h.cancelled and not h.fired]

    def fire_all(self):
        for handle in self.active:
            handle.fired = True
            handle.callback()


#-------------FIXTURES----------------
@pytest.fixture
def clock():
    return FakeClock()

@pytest.fixture
def timers():
    return ManualTimers()

@pytest.fixture
def storage():
    return MemoryStorage()

@pytest.fixture
def make_manager(storage, clock, timers):
    """Build an EvictionManager over `storage` with a fake clock and manual timers."""
    def factory(adapter=None, seed=0, **options):
        options.setdefault("max_storage_size", 1000)
        options.setdefault("enable_time_based_cleanup", False)
        return EvictionManager(
            adapter if adapter is not None else storage,
            CleanerConfig(**options),
            clock=clock,
            rng=np.random.default_rng(seed),
            timer_factory=timers,
        )
    return factory
