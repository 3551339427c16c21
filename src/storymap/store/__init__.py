"""Store module - specification and view-state storage.

Exports:
- SpecificationStore, KeyValueStore: the async ports
- MarkdownSpecStore, MemorySpecStore: specification stores
- JsonFileKeyValueStore, MemoryKeyValueStore: view-state stores
- StoreIOError
"""

from storymap.store.base import KeyValueStore, SpecificationStore, StoreIOError
from storymap.store.kv import JsonFileKeyValueStore
from storymap.store.markdown import MarkdownSpecStore
from storymap.store.memory import MemoryKeyValueStore, MemorySpecStore

__all__ = [
    "SpecificationStore",
    "KeyValueStore",
    "StoreIOError",
    "MarkdownSpecStore",
    "MemorySpecStore",
    "JsonFileKeyValueStore",
    "MemoryKeyValueStore",
]
