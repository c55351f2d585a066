"""
Compact persisted form of the ledger.

Version 2 document:
    {
        "v": 2,
        "t": time_base,                         # newest last_access among kept records
        "k": {short_id: original_key},
        "d": {short_id: [time_delta, access_count, size]},
    }
with `time_delta = time_base - last_access` (never negative). Short ids are base-62
encodings of 0, 1, 2, ... handed out in descending weight order, so the heaviest
records get the shortest ids.

Legacy (unversioned) documents map keys straight to `[last_access, access_count, size]`
and are still accepted by `decode`.
"""
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

from storage_cleaner.eviction.model import AccessRecord, is_number, snapshot_weight
from storage_cleaner.exceptions import SnapshotDecodeError

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 2
SHORT_ID_ALPHABET = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"


def encode_short_id(index: int) -> str:
    """
    0 -> 'a', 61 -> '9', 62 -> 'ba', ...
    """
    if index < 0:
        raise ValueError("short id index must not be negative")
    base = len(SHORT_ID_ALPHABET)
    digits = []
    while True:
        index, rem = divmod(index, base)
        digits.append(SHORT_ID_ALPHABET[rem])
        if index == 0:
            break
    return "".join(reversed(digits))

def rank_by_weight(records: Mapping[str, AccessRecord]) -> List[Tuple[str, AccessRecord]]:
    """
    Records sorted by descending snapshot weight. Ties keep mapping order.
    """
    return sorted(records.items(), key=lambda item: snapshot_weight(item[1]), reverse=True)


"""
-----------------------ENCODE-------------------------
"""
def encode(records: Mapping[str, AccessRecord], max_entries: int) -> Dict[str, Any]:
    """
    Keep the `max_entries` heaviest records and compress them into a version 2 document.
    """
    kept = rank_by_weight(records)[:max(max_entries, 0)]
    time_base = max((record.last_access for _, record in kept), default=0)

    key_map: Dict[str, str] = {}
    data: Dict[str, List[Any]] = {}
    for index, (key, record) in enumerate(kept):
        short_id = encode_short_id(index)
        key_map[short_id] = key
        data[short_id] = [time_base - record.last_access, record.access_count, record.size]

    if len(kept) < len(records):
        logger.debug(f"Snapshot keeps {len(kept)} of {len(records)} records (max_entries={max_entries})")

    return {"v": SNAPSHOT_VERSION, "t": time_base, "k": key_map, "d": data}

def dumps(document: Mapping[str, Any]) -> str:
    return json.dumps(document, separators=(",", ":"), ensure_ascii=False)


"""
-----------------------DECODE-------------------------
"""
def _triple(value: Any) -> Optional[List[Any]]:
    if isinstance(value, (list, tuple)) and len(value) == 3 and all(is_number(v) for v in value):
        return list(value)
    return None

def _decode_v2(document: Mapping[str, Any]) -> Dict[str, AccessRecord]:
    time_base = document.get("t", 0)
    key_map = document.get("k") or {}
    data = document.get("d") or {}
    if not is_number(time_base) or not isinstance(key_map, dict) or not isinstance(data, dict):
        logger.warning("Snapshot v2 has a malformed header, ignoring it")
        return {}

    records: Dict[str, AccessRecord] = {}
    skipped = 0
    for short_id, entry in data.items():
        key = key_map.get(short_id)
        fields = _triple(entry)
        if not isinstance(key, str) or fields is None:
            skipped += 1
            continue
        delta, access_count, size = fields
        records[key] = AccessRecord(time_base - delta, access_count, size)
    if skipped:
        logger.warning(f"Skipped {skipped} malformed snapshot entries")
    return records

def _decode_legacy(document: Mapping[str, Any]) -> Dict[str, AccessRecord]:
    records: Dict[str, AccessRecord] = {}
    for key, entry in document.items():
        fields = _triple(entry)
        if fields is None:
            continue
        records[key] = AccessRecord(*fields)
    return records

def decode(document: Any) -> Dict[str, AccessRecord]:
    """
    Rebuild ledger records from a parsed snapshot.
    Unknown versions and non-mapping documents decode to an empty ledger;
    malformed entries are skipped.
    """
    if not isinstance(document, dict):
        return {}
    version = document.get("v")
    if version is None:
        return _decode_legacy(document)
    if version == SNAPSHOT_VERSION and not isinstance(version, bool):
        return _decode_v2(document)
    logger.warning(f"Unknown snapshot version {version!r}, starting from an empty ledger")
    return {}

def loads(raw: str) -> Dict[str, Any]:
    """
    Parse the stored JSON text. Raise SnapshotDecodeError if it is not a JSON object.
    """
    try:
        document = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise SnapshotDecodeError(f"Snapshot is not valid JSON: {e}") from e
    if not isinstance(document, dict):
        raise SnapshotDecodeError(f"Snapshot must be a JSON object, got {type(document).__name__}")
    return document


"""
-----------------------DEBUG-------------------------
"""
def debug_report(records: Mapping[str, AccessRecord], document: Mapping[str, Any], top: int = 10) -> Dict[str, Any]:
    """
    Human readable summary of one compression run, stored next to the snapshot in debug mode.
    """
    original_size = len(json.dumps({k: r.to_list() for k, r in records.items()}, separators=(",", ":")))
    compressed_size = len(dumps(document))
    time_base = document.get("t") or 0
    return {
        "originalCount": len(records),
        "compressedCount": len(document.get("d", {})),
        "originalSize": original_size,
        "compressedSize": compressed_size,
        "compressionRatio": f"{compressed_size / original_size * 100:.2f}%" if original_size else "0.00%",
        "timeBase": datetime.fromtimestamp(time_base / 1000, tz=timezone.utc).isoformat(),
        "records": {
            key: {
                "lastAccess": record.last_access,
                "accessCount": record.access_count,
                "size": record.size,
                "weight": snapshot_weight(record),
            }
            for key, record in rank_by_weight(records)[:top]
        },
    }
