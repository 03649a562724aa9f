"""Chat store interface and Supabase (Postgres + pgvector) implementation."""
import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional, Protocol
from supabase import acreate_client, AsyncClient

from config import SUPABASE_URL, SUPABASE_KEY
from errors import DependencyFailureError, InvalidArgumentError, NotFoundError
from models.batch import TransactionalBatch
from models.cache import CacheItem, ScoredCacheItem
from models.session import Message, Session, utcnow

logger = logging.getLogger(__name__)


class ChatStore(Protocol):
    """Storage capability used by the chat service and semantic cache."""

    async def get_sessions(self) -> List[Session]: ...

    async def get_session(self, session_id: str) -> Session: ...

    async def insert_session(self, session: Session) -> Session: ...

    async def update_session(self, session: Session) -> Session: ...

    async def get_session_messages(self, session_id: str) -> List[Message]: ...

    async def insert_message(self, message: Message) -> Message: ...

    async def execute_batch(self, batch: TransactionalBatch) -> None: ...

    async def delete_session_and_messages(self, session_id: str) -> None: ...

    async def nearest_cache_item(self, vectors: List[float], min_similarity: float) -> Optional[ScoredCacheItem]: ...

    async def upsert_cache_item(self, item: CacheItem) -> CacheItem: ...

    async def delete_cache_item(self, item_id: str) -> None: ...

    async def delete_all_cache_items(self) -> None: ...

    async def purge_expired_cache_items(self) -> int: ...


class SupabaseChatStore:
    """
    Chat store backed by Supabase.

    Sessions and messages live in separate tables keyed by session_id.
    Multi-row writes and vector search run as Postgres functions through
    RPC so that each one executes in a single transaction; see
    backend/sql/schema.sql for their definitions.
    """

    def __init__(
        self,
        supabase_url: str = SUPABASE_URL,
        supabase_key: str = SUPABASE_KEY,
        sessions_table: str = "sessions",
        messages_table: str = "messages",
        cache_table: str = "cache_items"
    ):
        """
        Initialize the store.

        Args:
            supabase_url: Supabase project URL
            supabase_key: Supabase API key
            sessions_table: Table holding session records
            messages_table: Table holding message records
            cache_table: Table holding semantic cache entries

        Raises:
            ValueError: If Supabase credentials are missing
        """
        if not supabase_url or not supabase_key:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set in environment variables")

        self.supabase_url = supabase_url
        self.supabase_key = supabase_key
        self.sessions_table = sessions_table
        self.messages_table = messages_table
        self.cache_table = cache_table
        self._client: Optional[AsyncClient] = None
        self._client_lock = asyncio.Lock()

        logger.info(f"Initialized SupabaseChatStore with tables: {sessions_table}, {messages_table}, {cache_table}")

    async def _get_client(self) -> AsyncClient:
        async with self._client_lock:
            if self._client is None:
                try:
                    self._client = await acreate_client(self.supabase_url, self.supabase_key)
                except Exception as e:
                    error_msg = f"Failed to connect to Supabase: {str(e)}"
                    logger.error(error_msg)
                    raise DependencyFailureError(error_msg, details={"operation": "connect"}) from e
        return self._client

    async def _run(self, operation: str, query: Callable[[AsyncClient], Awaitable[Any]]) -> Any:
        client = await self._get_client()
        try:
            return await query(client)
        except Exception as e:
            error_msg = f"Failed to {operation}: {str(e)}"
            logger.error(error_msg)
            raise DependencyFailureError(error_msg, details={"operation": operation}) from e

    # Sessions

    async def get_sessions(self) -> List[Session]:
        response = await self._run(
            "list sessions",
            lambda c: c.table(self.sessions_table).select("*").order("created_at", desc=False).execute()
        )
        return [Session.from_record(row) for row in response.data or []]

    async def get_session(self, session_id: str) -> Session:
        response = await self._run(
            f"read session {session_id}",
            lambda c: c.table(self.sessions_table).select("*").eq("id", session_id).execute()
        )
        if not response.data:
            raise NotFoundError(f"Session {session_id} not found", details={"session_id": session_id})
        return Session.from_record(response.data[0])

    async def insert_session(self, session: Session) -> Session:
        await self._run(
            f"create session {session.id}",
            lambda c: c.table(self.sessions_table).insert(session.to_record()).execute()
        )
        logger.info(f"Created session: {session.id}", extra={"session_id": session.id})
        return session

    async def update_session(self, session: Session) -> Session:
        response = await self._run(
            f"update session {session.id}",
            lambda c: c.table(self.sessions_table)
            .update({"name": session.name, "tokens": session.tokens})
            .eq("id", session.id)
            .execute()
        )
        if not response.data:
            raise NotFoundError(f"Session {session.id} not found", details={"session_id": session.id})
        return session

    # Messages

    async def get_session_messages(self, session_id: str) -> List[Message]:
        response = await self._run(
            f"read messages for session {session_id}",
            lambda c: c.table(self.messages_table)
            .select("*")
            .eq("session_id", session_id)
            .order("timestamp", desc=False)
            .execute()
        )
        return [Message.from_record(row) for row in response.data or []]

    async def insert_message(self, message: Message) -> Message:
        await self._run(
            f"create message {message.id}",
            lambda c: c.table(self.messages_table).insert(message.to_record()).execute()
        )
        logger.debug(
            f"Inserted message {message.id}",
            extra={"session_id": message.session_id, "message_id": message.id}
        )
        return message

    async def execute_batch(self, batch: TransactionalBatch) -> None:
        """
        Upsert every session and message in the batch in one transaction.

        Raises:
            InvalidArgumentError: If the batch is empty
            DependencyFailureError: If the transaction fails (nothing is applied)
        """
        if len(batch) == 0:
            raise InvalidArgumentError("Batch cannot be empty")

        await self._run(
            f"execute batch for session {batch.partition_key}",
            lambda c: c.rpc(
                "execute_session_batch",
                {
                    "p_session_id": batch.partition_key,
                    "p_sessions": [s.to_record() for s in batch.sessions],
                    "p_messages": [m.to_record() for m in batch.messages],
                }
            ).execute()
        )
        logger.debug(
            f"Executed batch of {len(batch)} operations",
            extra={"session_id": batch.partition_key}
        )

    async def delete_session_and_messages(self, session_id: str) -> None:
        await self._run(
            f"delete session {session_id}",
            lambda c: c.rpc("delete_session_and_messages", {"p_session_id": session_id}).execute()
        )
        logger.info(f"Deleted session and messages: {session_id}", extra={"session_id": session_id})

    # Semantic cache

    async def nearest_cache_item(self, vectors: List[float], min_similarity: float) -> Optional[ScoredCacheItem]:
        """
        Find the single closest non-expired cache entry above a similarity threshold.

        Args:
            vectors: Query embedding
            min_similarity: Cosine similarity the match must exceed

        Returns:
            ScoredCacheItem or None if nothing qualifies
        """
        if not vectors:
            raise InvalidArgumentError("Query embedding cannot be empty")

        response = await self._run(
            "search cache",
            lambda c: c.rpc(
                "match_cache_items",
                {
                    "query_embedding": vectors,
                    "match_threshold": min_similarity,
                    "match_count": 1
                }
            ).execute()
        )
        rows = response.data or []
        if not rows:
            return None

        row = rows[0]
        similarity = float(row["similarity"])
        # The function filters too; keep the strict comparison here as well
        if similarity <= min_similarity:
            return None
        return ScoredCacheItem(item=CacheItem.from_record(row), similarity=similarity)

    async def upsert_cache_item(self, item: CacheItem) -> CacheItem:
        await self._run(
            f"store cache item {item.id}",
            lambda c: c.table(self.cache_table).upsert(item.to_record()).execute()
        )
        return item

    async def delete_cache_item(self, item_id: str) -> None:
        await self._run(
            f"delete cache item {item_id}",
            lambda c: c.table(self.cache_table).delete().eq("id", item_id).execute()
        )

    async def delete_all_cache_items(self) -> None:
        await self._run(
            "clear cache",
            lambda c: c.table(self.cache_table).delete().neq("id", "").execute()
        )
        logger.info("Cleared all cache items")

    async def purge_expired_cache_items(self) -> int:
        now = utcnow().isoformat()
        response = await self._run(
            "purge expired cache items",
            lambda c: c.table(self.cache_table).delete().lte("expires_at", now).execute()
        )
        purged = len(response.data or [])
        logger.info(f"Purged {purged} expired cache items")
        return purged
