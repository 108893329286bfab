"""Document Store adapters."""

from .memory_store import InMemoryDocumentStore
from .postgres_store import PostgresDocumentStore

__all__ = [
    "InMemoryDocumentStore",
    "PostgresDocumentStore",
]
