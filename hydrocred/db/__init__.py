"""
Storage Layer for the HydroCred mock ledger

Provides:
- SnapshotStore abstraction (InMemory for tests, JSON file for demos)
- Explicit load results (loaded / missing / corrupted)
- Environment-based configuration
"""

from .store import (
    SnapshotStore,
    InMemorySnapshotStore,
    JsonFileSnapshotStore,
    SnapshotStoreError,
    LoadResult,
    LoadStatus,
    parse_snapshot,
)
from .config import LedgerConfig, StoreDriver, get_store_driver, get_snapshot_path

__all__ = [
    "SnapshotStore",
    "InMemorySnapshotStore",
    "JsonFileSnapshotStore",
    "SnapshotStoreError",
    "LoadResult",
    "LoadStatus",
    "parse_snapshot",
    "LedgerConfig",
    "StoreDriver",
    "get_store_driver",
    "get_snapshot_path",
]
