"""Document store backends."""

from marketsim.store.base import DocumentStore, Watch
from marketsim.store.file_store import JsonFileDocumentStore
from marketsim.store.memory import MemoryDocumentStore

__all__ = [
    "DocumentStore",
    "Watch",
    "MemoryDocumentStore",
    "JsonFileDocumentStore",
]
