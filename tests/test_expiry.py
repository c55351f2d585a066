from storage_cleaner.eviction.manager import SNAPSHOT_KEY
from storage_cleaner.utils import DAY_MS


#-------------SWEEP----------------
def test_sweep_removes_stale_keys(make_manager, clock, storage):
    storage.set("stale", "1")
    storage.set("fresh", "2")
    manager = make_manager(time_cleanup_threshold=7)
    manager.record_access("stale")
    clock.advance(8 * DAY_MS)
    manager.record_access("fresh")

    removed = manager.trigger_expiry_sweep()
    assert removed == ["stale"]
    assert "stale" not in storage
    assert manager.get("stale") is None
    assert "fresh" in storage

def test_sweep_treats_untracked_keys_as_expired(make_manager, storage):
    storage.set("written_elsewhere", "1")
    manager = make_manager()
    assert manager.trigger_expiry_sweep() == ["written_elsewhere"]
    assert "written_elsewhere" not in storage

def test_sweep_ignores_system_and_excluded_keys(make_manager, storage):
    storage.set(SNAPSHOT_KEY, "{}")
    storage.set("settings", "dark")
    manager = make_manager(exclude_keys=["settings"])
    assert manager.trigger_expiry_sweep() == []
    assert SNAPSHOT_KEY in storage
    assert "settings" in storage

def test_sweep_exactly_at_threshold_keeps_key(make_manager, clock, storage):
    storage.set("edge", "1")
    manager = make_manager(time_cleanup_threshold=1)
    manager.record_access("edge")
    clock.advance(DAY_MS)
    assert manager.trigger_expiry_sweep() == []


#-------------SWEEP ON INSERT----------------
def test_first_access_triggers_sweep(make_manager, clock, storage):
    storage.set("stale", "1")
    manager = make_manager(enable_time_based_cleanup=True, cleanup_on_insert=True)
    manager.record_access("stale")
    clock.advance(8 * DAY_MS)
    storage.set("new", "2")
    manager.record_access("new")
    assert "stale" not in storage
    assert "new" in storage

def test_repeat_access_does_not_sweep(make_manager, clock, storage):
    storage.set("stale", "1")
    storage.set("hot", "2")
    manager = make_manager(enable_time_based_cleanup=True, cleanup_on_insert=False)
    manager.record_access("stale")
    manager.record_access("hot")
    clock.advance(8 * DAY_MS)
    manager.configure(cleanup_on_insert=True)
    manager.record_access("hot")                # refresh, not an insert
    assert "stale" in storage

def test_no_sweep_when_disabled(make_manager, clock, storage):
    storage.set("stale", "1")
    manager = make_manager(enable_time_based_cleanup=False)
    manager.record_access("stale")
    clock.advance(30 * DAY_MS)
    storage.set("new", "2")
    manager.record_access("new")
    assert "stale" in storage


#-------------EXPIRING KEYS----------------
def test_expiring_keys(make_manager, clock, storage):
    manager = make_manager(time_cleanup_threshold=7)
    manager.record_access("soon")
    clock.advance(DAY_MS)
    manager.record_access("later")
    clock.advance(5 * DAY_MS + DAY_MS // 2)

    expiring = manager.expiring_keys(warning_days=1)
    assert [item["key"] for item in expiring] == ["soon"]
    assert expiring[0]["days_until_expiry"] == 1

    expiring = manager.expiring_keys(warning_days=2)
    assert [item["key"] for item in expiring] == ["soon", "later"]
