"""
Fit Analysis Pipeline - History Storage

Capped, most-recent-first history of analyses over an injectable
key/value storage backend.
"""

from fitstream.storage.backends import FileStorage, MemoryStorage, StorageBackend
from fitstream.storage.history import (
    HistoryStore,
    deserialize_assessment,
    serialize_assessment,
)

__all__ = [
    "StorageBackend",
    "MemoryStorage",
    "FileStorage",
    "HistoryStore",
    "serialize_assessment",
    "deserialize_assessment",
]
