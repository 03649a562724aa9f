"""Data models for the semantic chat backend."""
from .session import Session, Message
from .cache import CacheItem, ScoredCacheItem
from .batch import SessionUpdate, MessageUpdate, BatchOperation, TransactionalBatch

__all__ = [
    "Session",
    "Message",
    "CacheItem",
    "ScoredCacheItem",
    "SessionUpdate",
    "MessageUpdate",
    "BatchOperation",
    "TransactionalBatch",
]
