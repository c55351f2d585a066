"""
Small helpers shared by the engine: key classification, byte sizes and time.
"""
import time
from typing import Iterable

DAY_MS = 24 * 60 * 60 * 1000
DEFAULT_ITEM_SIZE = 1024        # fallback when neither size nor value is readable

def now() -> int:
    """Current time in milliseconds."""
    return int(time.time() * 1000)

def byte_size(text: str) -> int:
    """
    UTF-8 byte length of a string
    """
    if not text:
        return 0
    return len(text.encode("utf-8"))

def generate_storage_key(prefix: str, suffix: str) -> str:
    return f"__{prefix}_{suffix}__"

def is_system_key(key: str) -> bool:
    """
    Reserved keys look like `__name__` and hold the engine's own state
    """
    return len(key) >= 4 and key.startswith("__") and key.endswith("__")

def is_unimportant_key(key: str, patterns: Iterable[str]) -> bool:
    """
    A key is unimportant if any configured pattern occurs in it (prefixes included)
    """
    return any(pattern and pattern in key for pattern in patterns)

def format_bytes(n_bytes: float) -> str:
    if n_bytes <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    value = float(n_bytes)
    idx = 0
    while value >= 1024 and idx < len(units) - 1:
        value /= 1024
        idx += 1
    return f"{round(value, 2):g} {units[idx]}"
