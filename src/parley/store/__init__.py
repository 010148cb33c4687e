"""Document store for sessions, messages, conversations and related records.

The pipeline depends only on the :class:`DocumentStore` protocol; the
in-memory and SQLite adapters share the entity layer in
:class:`BaseDocumentStore`.
"""

from parley.store.base import BaseDocumentStore, DocumentStore
from parley.store.memory import InMemoryStore
from parley.store.schema import (
    ActiveRun,
    Agent,
    CacheEntry,
    Conversation,
    Decision,
    FileArtifact,
    KnowledgeEntry,
    MessageRecord,
    Project,
    ResponseStyle,
    Session,
    Soul,
    SoulInsight,
    TokenUsage,
    UsageRecord,
)
from parley.store.sqlite import SQLiteStore

__all__ = [
    "ActiveRun",
    "Agent",
    "BaseDocumentStore",
    "CacheEntry",
    "Conversation",
    "Decision",
    "DocumentStore",
    "FileArtifact",
    "InMemoryStore",
    "KnowledgeEntry",
    "MessageRecord",
    "Project",
    "ResponseStyle",
    "SQLiteStore",
    "Session",
    "Soul",
    "SoulInsight",
    "TokenUsage",
    "UsageRecord",
    "create_store",
]


def create_store(backend: str = "memory", path: str | None = None) -> DocumentStore:
    """Create a document store for the configured backend.

    Args:
        backend: "memory" or "sqlite"
        path: Database path for the sqlite backend

    Returns:
        Document store instance
    """
    if backend == "sqlite":
        return SQLiteStore(path or "~/.parley/parley.db")
    if backend == "memory":
        return InMemoryStore()
    raise ValueError(f"Unknown storage backend: {backend}")
