import pytest

from storage_cleaner.datastore import MemoryStorage
from storage_cleaner.eviction.health import REPAIR_INITIALIZE, REPAIR_NONE, REPAIR_REBUILD
from storage_cleaner.eviction.manager import SNAPSHOT_KEY
from storage_cleaner.eviction.model import AccessRecord
from storage_cleaner.utils import DAY_MS

#-------------FIXTURES----------------
@pytest.fixture
def storage():
    return MemoryStorage(initial={"a": "1", "b": "22", "c": "333", "d": "4444", SNAPSHOT_KEY: "{}"})


#-------------CHECK----------------
def test_check_health_counts(make_manager):
    manager = make_manager()
    manager.record_access("a")
    report = manager.check_health()
    assert report.total_keys == 4                   # snapshot key is not counted
    assert report.tracked_keys == 1
    assert report.missing_records == 3
    assert report.corrupted_records == 0
    assert not report.is_healthy
    assert report.recommendations

def test_healthy_ledger(make_manager):
    manager = make_manager()
    for key in "abcd":
        manager.record_access(key)
    report = manager.check_health()
    assert report.is_healthy
    assert report.as_dict()["recommendations"] == []

def test_corrupted_records_are_counted(make_manager):
    manager = make_manager()
    manager.ledger.put("a", AccessRecord(0, 1, 1))
    manager.ledger.put("b", AccessRecord(10, 0, 1))
    assert manager.check_health().corrupted_records == 2


#-------------REPAIR----------------
def test_repair_initializes_missing_records(make_manager, clock):
    manager = make_manager()
    manager.record_access("a")
    manager.record_access("a")
    before = manager.get("a").copy()

    result = manager.repair()
    assert result.action == REPAIR_INITIALIZE
    assert result.affected == 3

    report = manager.check_health()
    assert report.tracked_keys == report.total_keys
    assert manager.get("a") == before
    assert manager.get("c") == AccessRecord(clock() - DAY_MS, 1, 4)     # "c" + "333"

def test_mostly_missing_without_corruption_still_initializes(make_manager):
    manager = make_manager()
    assert manager.repair().action == REPAIR_INITIALIZE

def test_repair_rebuilds_corrupted_ledger(make_manager, clock):
    manager = make_manager()
    manager.ledger.put("a", AccessRecord(-5, 1, 1))
    result = manager.repair()
    assert result.action == REPAIR_REBUILD

    assert sorted(manager.ledger.keys()) == ["a", "b", "c", "d"]
    for _, record in manager.ledger.items():
        assert clock() - 7 * DAY_MS <= record.last_access <= clock()
        assert 1 <= record.access_count <= 5
    assert manager.check_health().is_healthy

def test_rebuild_is_reproducible_with_a_seed(make_manager):
    first = make_manager(seed=7)
    second = make_manager(seed=7)
    first.rebuild()
    second.rebuild()
    assert dict(first.ledger.items()) == dict(second.ledger.items())

def test_rebuild_persists_immediately(make_manager, storage):
    manager = make_manager()
    result = manager.rebuild()
    assert result["after"]["tracked_keys"] == 4
    assert '"v":2' in storage.get(SNAPSHOT_KEY)

def test_repair_on_healthy_ledger_does_nothing(make_manager):
    manager = make_manager()
    for key in "abcd":
        manager.record_access(key)
    result = manager.repair()
    assert result.action == REPAIR_NONE
    assert result.affected == 0

def test_initialize_from_existing_keys(make_manager):
    manager = make_manager(exclude_keys=["d"])
    assert manager.initialize_from_existing_keys() == 3
    assert manager.get("d") is None
    assert manager.initialize_from_existing_keys() == 0


#-------------ORPHANS----------------
def test_cleanup_orphaned(make_manager, storage):
    manager = make_manager()
    for key in "abcd":
        manager.record_access(key)
    storage.remove("b")
    storage.remove("c")

    assert sorted(manager.cleanup_orphaned()) == ["b", "c"]
    live = set(storage.keys())
    assert all(key in live for key in manager.ledger.keys())

def test_cleanup_orphaned_with_explicit_keys(make_manager):
    manager = make_manager()
    manager.record_access("a")
    manager.record_access("ghost")
    assert manager.cleanup_orphaned(keys=["a"]) == ["ghost"]

def test_repair_drops_orphans_before_initializing(make_manager):
    manager = make_manager()
    manager.record_access("gone")               # removed from the medium behind our back
    result = manager.repair()

    assert result.action == REPAIR_INITIALIZE
    assert result.affected == 4
    assert manager.get("gone") is None
    report = manager.check_health()
    assert report.tracked_keys == report.total_keys == 4

def test_repair_drops_orphans_on_otherwise_healthy_ledger(make_manager, timers):
    manager = make_manager()
    for key in "abcd":
        manager.record_access(key)
    manager.record_access("gone")
    timers.fire_all()

    assert manager.repair().action == REPAIR_NONE
    assert manager.get("gone") is None
    assert len(timers.active) == 1              # the smaller ledger gets saved
