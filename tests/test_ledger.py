import pytest

from storage_cleaner.eviction.ledger import Ledger
from storage_cleaner.eviction.model import (
    LARGE_ITEM_THRESHOLD,
    AccessRecord,
    is_large,
    is_valid_record,
    snapshot_weight,
)
from storage_cleaner.utils import is_system_key, is_unimportant_key

#-------------FIXTURES----------------
@pytest.fixture
def ledger():
    return Ledger(accepts=lambda key: not is_system_key(key) and key != "excluded")


#-------------LEDGER----------------
def test_touch_creates_record(ledger):
    record, created = ledger.touch("k", now=100, size=40)
    assert created
    assert record == AccessRecord(100, 1, 40)

def test_touch_refreshes_record(ledger):
    ledger.touch("k", now=100, size=40)
    record, created = ledger.touch("k", now=250)
    assert not created
    assert record == AccessRecord(250, 2, 40)      # size kept when unknown

def test_touch_updates_size_when_known(ledger):
    ledger.touch("k", now=100, size=40)
    ledger.touch("k", now=200, size=90)
    assert ledger.get("k").size == 90

def test_untrackable_keys_never_enter(ledger):
    assert ledger.touch("__lru_access_records__", now=1) == (None, False)
    assert ledger.touch("excluded", now=1) == (None, False)
    assert not ledger.put("excluded", AccessRecord(1, 1, 1))
    assert len(ledger) == 0

def test_replace_drops_untrackable_keys(ledger):
    dropped = ledger.replace({"a": AccessRecord(1, 1, 1), "excluded": AccessRecord(1, 1, 1)})
    assert dropped == 1
    assert ledger.keys() == ["a"]

def test_remove_is_idempotent(ledger):
    ledger.touch("k", now=1)
    assert ledger.remove("k")
    assert not ledger.remove("k")
    assert ledger.get("k") is None


#-------------MODEL----------------
def test_snapshot_weight():
    assert snapshot_weight(AccessRecord(1_000, 3, 0)) == 1_000 + 3 * 60_000

def test_large_threshold():
    assert not is_large(AccessRecord(1, 1, LARGE_ITEM_THRESHOLD))
    assert is_large(AccessRecord(1, 1, LARGE_ITEM_THRESHOLD + 1))
    assert not is_large(None)

@pytest.mark.parametrize("record, valid", [
    (AccessRecord(100, 1, 0), True),
    ([100, 2, 10], True),
    (AccessRecord(0, 1, 0), False),        # non-positive last_access
    (AccessRecord(100, 0, 0), False),      # non-positive access_count
    (AccessRecord("100", 1, 0), False),    # non-numeric
    ([100, 1], False),                     # wrong field count
    (None, False),
])
def test_record_validation(record, valid):
    assert is_valid_record(record) is valid


#-------------CLASSIFICATION----------------
def test_unimportant_patterns_match_substrings_and_prefixes():
    assert is_unimportant_key("tmp_upload", ["tmp_"])
    assert is_unimportant_key("feed:cache:1", ["cache"])
    assert not is_unimportant_key("user", ["tmp_", "cache"])
    assert not is_unimportant_key("user", [])

def test_system_keys():
    assert is_system_key("__lru_access_records__")
    assert not is_system_key("__partial")
    assert not is_system_key("user")
