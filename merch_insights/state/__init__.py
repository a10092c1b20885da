"""
State Persistence Module
"""
from .interaction import InteractionState
from .repositories import InteractionRepository, SettingsManager
from .serialization import StateSnapshot, decode_snapshot, encode_snapshot
from .store import DatabaseKeyValueStore, KeyValueStore, MemoryKeyValueStore
from .sync import RemoteStateSync, SyncStatus

__all__ = [
    "InteractionState",
    "InteractionRepository",
    "SettingsManager",
    "StateSnapshot",
    "decode_snapshot",
    "encode_snapshot",
    "DatabaseKeyValueStore",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "RemoteStateSync",
    "SyncStatus",
]
