"""
Infrastructure Layer - storage and collaborators

- Completion stores (in-memory, SQLAlchemy)
- Content repository interface
"""
from .content import ContentRepository, InMemoryContentRepository
from .ledger_store import CompletionStore, InMemoryCompletionStore

__all__ = [
    "CompletionStore",
    "ContentRepository",
    "InMemoryCompletionStore",
    "InMemoryContentRepository",
]
