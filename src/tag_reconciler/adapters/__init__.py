"""タグストアアダプタ群."""

from .base_adapter import ItemTag, TagId, TagRow, TagStoreAdapter
from .memory_adapter import InMemoryTagStore
from .sqlite_adapter import SqliteTagStore

__all__ = [
    "TagStoreAdapter",
    "TagRow",
    "ItemTag",
    "TagId",
    "InMemoryTagStore",
    "SqliteTagStore",
]
