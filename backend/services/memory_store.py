"""In-process chat store for local development and tests."""
import asyncio
import copy
import logging
from typing import Dict, List, Optional
import numpy as np

from errors import InvalidArgumentError, NotFoundError
from models.batch import TransactionalBatch
from models.cache import CacheItem, ScoredCacheItem
from models.session import Message, Session, utcnow

logger = logging.getLogger(__name__)


def cosine_similarity(a: List[float], b: List[float]) -> float:
    """Cosine similarity of two vectors, 0.0 if either has zero length."""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise InvalidArgumentError(
            f"Vector dimensions differ: {va.shape[0]} != {vb.shape[0]}"
        )
    norm = np.linalg.norm(va) * np.linalg.norm(vb)
    if norm == 0:
        return 0.0
    return float(np.dot(va, vb) / norm)


class InMemoryChatStore:
    """
    Chat store held in process memory.

    All reads and writes go through one asyncio lock. Records are copied on
    the way in and out, so objects held by callers never alias stored state.
    Cache entries past their expiry are invisible to searches and are
    dropped on the next cache write.
    """

    def __init__(self):
        self.sessions: Dict[str, Session] = {}
        self.messages: Dict[str, Dict[str, Message]] = {}  # session_id -> message_id -> message
        self.cache: Dict[str, CacheItem] = {}
        self._lock = asyncio.Lock()
        logger.info("Initialized InMemoryChatStore")

    # Sessions

    async def get_sessions(self) -> List[Session]:
        async with self._lock:
            sessions = sorted(self.sessions.values(), key=lambda s: s.created_at)
            return [copy.deepcopy(s) for s in sessions]

    async def get_session(self, session_id: str) -> Session:
        async with self._lock:
            return copy.deepcopy(self._require_session(session_id))

    async def insert_session(self, session: Session) -> Session:
        async with self._lock:
            if session.id in self.sessions:
                raise InvalidArgumentError(f"Session {session.id} already exists")
            self.sessions[session.id] = copy.deepcopy(session)
            self.messages.setdefault(session.id, {})
        return session

    async def update_session(self, session: Session) -> Session:
        async with self._lock:
            self._require_session(session.id)
            self.sessions[session.id] = copy.deepcopy(session)
        return session

    # Messages

    async def get_session_messages(self, session_id: str) -> List[Message]:
        async with self._lock:
            messages = sorted(self.messages.get(session_id, {}).values(), key=lambda m: m.timestamp)
            return [copy.deepcopy(m) for m in messages]

    async def insert_message(self, message: Message) -> Message:
        async with self._lock:
            self._require_session(message.session_id)
            partition = self.messages.setdefault(message.session_id, {})
            if message.id in partition:
                raise InvalidArgumentError(f"Message {message.id} already exists")
            partition[message.id] = copy.deepcopy(message)
        return message

    async def execute_batch(self, batch: TransactionalBatch) -> None:
        if len(batch) == 0:
            raise InvalidArgumentError("Batch cannot be empty")

        async with self._lock:
            # Validate everything before touching state so a failure applies nothing
            for operation in batch:
                if operation.partition_key != batch.partition_key:
                    raise InvalidArgumentError("All items must have the same partition key.")
            staged_sessions = {s.id: copy.deepcopy(s) for s in batch.sessions}
            staged_messages = {m.id: copy.deepcopy(m) for m in batch.messages}

            self.sessions.update(staged_sessions)
            self.messages.setdefault(batch.partition_key, {}).update(staged_messages)

    async def delete_session_and_messages(self, session_id: str) -> None:
        async with self._lock:
            self.sessions.pop(session_id, None)
            self.messages.pop(session_id, None)

    # Semantic cache

    async def nearest_cache_item(self, vectors: List[float], min_similarity: float) -> Optional[ScoredCacheItem]:
        if not vectors:
            raise InvalidArgumentError("Query embedding cannot be empty")

        async with self._lock:
            now = utcnow()
            best: Optional[ScoredCacheItem] = None
            for item in self.cache.values():
                if item.is_expired(now):
                    continue
                similarity = cosine_similarity(vectors, item.vectors)
                if similarity > min_similarity and (best is None or similarity > best.similarity):
                    best = ScoredCacheItem(item=copy.deepcopy(item), similarity=similarity)
            return best

    async def upsert_cache_item(self, item: CacheItem) -> CacheItem:
        async with self._lock:
            dropped = self._drop_expired()
            self.cache[item.id] = copy.deepcopy(item)
        if dropped:
            logger.debug(f"Dropped {dropped} expired cache items on write")
        return item

    async def delete_cache_item(self, item_id: str) -> None:
        async with self._lock:
            self.cache.pop(item_id, None)

    async def delete_all_cache_items(self) -> None:
        async with self._lock:
            self.cache.clear()

    async def purge_expired_cache_items(self) -> int:
        async with self._lock:
            return self._drop_expired()

    def _drop_expired(self) -> int:
        # Caller holds self._lock
        now = utcnow()
        expired = [item_id for item_id, item in self.cache.items() if item.is_expired(now)]
        for item_id in expired:
            del self.cache[item_id]
        return len(expired)

    def _require_session(self, session_id: str) -> Session:
        session = self.sessions.get(session_id)
        if session is None:
            raise NotFoundError(f"Session {session_id} not found", details={"session_id": session_id})
        return session
