"""
Cleaner configuration.

Options can be passed directly, or read from the environment (and a `.env` file)
with `CleanerConfig.from_env()`, e.g. `STORAGE_CLEANER_MAX_STORAGE_SIZE=1048576`.
"""
import os
import logging
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from storage_cleaner.exceptions import ConfigError
from storage_cleaner.utils import DAY_MS

logger = logging.getLogger(__name__)

ENV_PREFIX = "STORAGE_CLEANER_"

DEFAULTS: Dict[str, Any] = {
    "max_storage_size": 5 * 1024 * 1024,    # 5MB
    "cleanup_threshold": 0.8,               # start cleaning at 80% usage
    "max_access_age": 7 * DAY_MS,           # access records older than this are pruned
    "auto_cleanup": True,
    "enable_time_based_cleanup": True,
    "time_cleanup_threshold": 7,            # days without access before a key expires
    "cleanup_on_insert": True,
    "exclude_keys": [],
    "unimportant_keys": [],
    "max_ledger_entries": 500,
    "persist_debounce_ms": 1000,
    "rebuild_lookback_days": 7,
    "debug": False,
}

_BOOL_OPTIONS = {"auto_cleanup", "enable_time_based_cleanup", "cleanup_on_insert", "debug"}
_LIST_OPTIONS = {"exclude_keys", "unimportant_keys"}
_FLOAT_OPTIONS = {"cleanup_threshold", "time_cleanup_threshold", "rebuild_lookback_days"}
_INT_OPTIONS = {"max_storage_size", "max_access_age", "max_ledger_entries", "persist_debounce_ms"}


def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() in ("1", "true", "yes", "on")

def _parse_list(raw: str) -> List[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


class CleanerConfig:
    """
    Validated, read-only view of the cleaner options.
    Unknown option names raise ConfigError so typos do not pass silently.
    """
    def __init__(self, **options: Any) -> None:
        unknown = set(options) - set(DEFAULTS)
        if unknown:
            raise ConfigError(f"Unknown config option(s): {', '.join(sorted(unknown))}")

        values = dict(DEFAULTS)
        values.update(options)
        values["exclude_keys"] = list(values["exclude_keys"] or [])
        values["unimportant_keys"] = list(values["unimportant_keys"] or [])
        self._values = values
        self._validate()

    def _validate(self) -> None:
        v = self._values
        if not 0 <= v["cleanup_threshold"] <= 1:
            raise ConfigError(f"cleanup_threshold must be within [0, 1], got {v['cleanup_threshold']}")
        if v["max_storage_size"] <= 0:
            raise ConfigError("max_storage_size must be positive")
        if v["max_ledger_entries"] <= 0:
            raise ConfigError("max_ledger_entries must be positive")
        for name in ("max_access_age", "time_cleanup_threshold", "persist_debounce_ms", "rebuild_lookback_days"):
            if v[name] < 0:
                raise ConfigError(f"{name} must not be negative")

    def __getattr__(self, name: str) -> Any:
        try:
            return self.__dict__["_values"][name]
        except KeyError:
            raise AttributeError(name) from None

    def as_dict(self) -> Dict[str, Any]:
        return {k: (list(v) if isinstance(v, list) else v) for k, v in self._values.items()}

    def updated(self, **changes: Any) -> "CleanerConfig":
        """
        Return a new config with `changes` applied on top of this one.
        """
        values = self.as_dict()
        values.update(changes)
        return CleanerConfig(**values)

    @classmethod
    def from_env(cls, prefix: str = ENV_PREFIX, dotenv_path: Optional[str] = None, **overrides: Any) -> "CleanerConfig":
        """
        Build a config from `<prefix><OPTION>` environment variables.
        Explicit `overrides` win over the environment.
        """
        load_dotenv(dotenv_path, override=False)
        options: Dict[str, Any] = {}
        for name in DEFAULTS:
            raw = os.getenv(prefix + name.upper())
            if raw is None:
                continue
            try:
                if name in _BOOL_OPTIONS:
                    options[name] = _parse_bool(raw)
                elif name in _LIST_OPTIONS:
                    options[name] = _parse_list(raw)
                elif name in _FLOAT_OPTIONS:
                    options[name] = float(raw)
                elif name in _INT_OPTIONS:
                    options[name] = int(raw)
            except ValueError:
                raise ConfigError(f"Invalid value for {prefix + name.upper()}: {raw!r}") from None
        options.update(overrides)
        logger.debug(f"Loaded config from environment: {sorted(options)}")
        return cls(**options)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, CleanerConfig) and self._values == other._values

    def __repr__(self) -> str:
        return f"CleanerConfig({', '.join(f'{k}={v!r}' for k, v in self._values.items())})"
