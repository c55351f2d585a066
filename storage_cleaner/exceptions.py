class StorageCleanerException(Exception):
    """Base class for all storage cleaner exceptions."""
    pass

class CapacityExceededError(StorageCleanerException):
    """Raised by a storage medium when a write does not fit in its quota."""
    def __init__(self, key: str, required: int = 0, available: int = 0):
        self.key = key
        self.required = required
        self.available = available
        super().__init__(f"Quota exceeded when setting '{key}': need {required} bytes, {available} available")
        
class SnapshotDecodeError(StorageCleanerException):
    """Raised when a persisted ledger snapshot cannot be parsed."""
    pass

class ConfigError(StorageCleanerException, ValueError):
    """Raised when a configuration option is out of range."""
    pass
