"""
Storage Package — debounced, restorable persistence.

- StorageBackend: async key/value area (SqliteStorage, MemoryStorage)
- DebouncedStore: one key, coalesced writes, restore with fallback
- PersistenceManager: ordered registry of stores, restore_all / persist_all
"""

from castbridge.storage.backend import MemoryStorage, SqliteStorage, StorageBackend
from castbridge.storage.debounced import DebouncedStore, StoreConfig
from castbridge.storage.persistence import PersistenceManager

__all__ = [
    "StorageBackend",
    "MemoryStorage",
    "SqliteStorage",
    "DebouncedStore",
    "StoreConfig",
    "PersistenceManager",
]
