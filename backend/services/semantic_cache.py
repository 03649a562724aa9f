"""Semantic cache of completions keyed by the embedding of a context window."""
import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional

from config import CACHE_SIMILARITY_SCORE, CACHE_TTL_SECONDS, CACHE_PURGE_INTERVAL_SECONDS
from errors import DependencyFailureError, InvalidArgumentError
from models.cache import CacheItem
from models.session import Message

logger = logging.getLogger(__name__)

PROMPT_DELIMITER = "\n"


@dataclass
class CacheLookup:
    """Result of a cache lookup; vectors are kept so a miss can be inserted without re-embedding."""
    prompts: str
    vectors: List[float]
    completion: Optional[str] = None
    similarity: Optional[float] = None

    @property
    def hit(self) -> bool:
        return self.completion is not None


def join_prompts(window: List[Message]) -> str:
    """Concatenate the prompts of a context window; completions are left out."""
    return PROMPT_DELIMITER.join(message.prompt for message in window)


class SemanticCache:
    """
    Reuses completions for context windows whose prompts embed almost identically.

    Only the single nearest entry is considered, and it must be strictly more
    similar than similarity_score. Entries are never updated; new ones are
    added on every miss and old ones age out after ttl_seconds.
    """

    def __init__(
        self,
        store,
        embedding_model,
        similarity_score: float = CACHE_SIMILARITY_SCORE,
        ttl_seconds: int = CACHE_TTL_SECONDS
    ):
        """
        Args:
            store: ChatStore providing nearest-neighbor search over cache entries
            embedding_model: EmbeddingModel used to vectorize prompts
            similarity_score: Cosine similarity a match must exceed
            ttl_seconds: Lifetime of new cache entries
        """
        if not -1.0 <= similarity_score <= 1.0:
            raise InvalidArgumentError("similarity_score must be between -1 and 1")
        if ttl_seconds <= 0:
            raise InvalidArgumentError("ttl_seconds must be positive")

        self.store = store
        self.embedding_model = embedding_model
        self.similarity_score = similarity_score
        self.ttl_seconds = ttl_seconds
        logger.info(f"Initialized SemanticCache (similarity > {similarity_score}, ttl {ttl_seconds}s)")

    async def lookup(self, window: List[Message]) -> CacheLookup:
        """
        Find a cached completion for a context window.

        Args:
            window: Context window in chronological order

        Returns:
            CacheLookup; completion is None on a miss

        Raises:
            InvalidArgumentError: If the window is empty
            DependencyFailureError: If embedding or search fails
        """
        if not window:
            raise InvalidArgumentError("Context window cannot be empty")

        prompts = join_prompts(window)
        vectors = await self.embedding_model.embed_text(prompts)
        match = await self.store.nearest_cache_item(vectors, self.similarity_score)

        if match is None:
            logger.debug("Cache miss", extra={"cache_hit": False})
            return CacheLookup(prompts=prompts, vectors=vectors)

        logger.info(
            f"Cache hit on item {match.item.id} (similarity {match.similarity:.4f})",
            extra={"cache_hit": True, "cache_item_id": match.item.id}
        )
        return CacheLookup(
            prompts=prompts,
            vectors=vectors,
            completion=match.item.completion,
            similarity=match.similarity
        )

    async def insert(self, prompts: str, vectors: List[float], completion: str) -> CacheItem:
        """
        Add a cache entry. Similar entries are not merged.

        Args:
            prompts: Joined prompts that produced the vectors
            vectors: Embedding of prompts
            completion: Completion to return on future matches

        Returns:
            The stored CacheItem
        """
        if not vectors:
            raise InvalidArgumentError("Cache vectors cannot be empty")

        item = CacheItem.create(vectors, prompts, completion, self.ttl_seconds)
        await self.store.upsert_cache_item(item)
        logger.debug(f"Cached completion as item {item.id}", extra={"cache_item_id": item.id})
        return item

    async def insert_window(self, window: List[Message], completion: str) -> CacheItem:
        """Embed a context window's prompts and cache the completion for it."""
        prompts = join_prompts(window)
        vectors = await self.embedding_model.embed_text(prompts)
        return await self.insert(prompts, vectors, completion)

    async def remove(self, window: List[Message]) -> bool:
        """
        Remove the entry that would match this context window.

        Returns:
            True if an entry was removed
        """
        if not window:
            raise InvalidArgumentError("Context window cannot be empty")

        vectors = await self.embedding_model.embed_text(join_prompts(window))
        match = await self.store.nearest_cache_item(vectors, self.similarity_score)
        if match is None:
            return False
        await self.store.delete_cache_item(match.item.id)
        logger.info(f"Removed cache item {match.item.id}", extra={"cache_item_id": match.item.id})
        return True

    async def clear(self) -> None:
        """Remove every cache entry."""
        await self.store.delete_all_cache_items()
        logger.info("Semantic cache cleared")

    async def purge_expired(self) -> int:
        return await self.store.purge_expired_cache_items()

    async def run_purge_loop(self, interval_seconds: int = CACHE_PURGE_INTERVAL_SECONDS) -> None:
        """Periodically delete expired entries until cancelled."""
        if interval_seconds <= 0:
            raise InvalidArgumentError("interval_seconds must be positive")

        while True:
            try:
                purged = await self.purge_expired()
                if purged:
                    logger.info(f"Purged {purged} expired cache items", extra={"purged": purged})
            except DependencyFailureError as e:
                logger.error(f"Cache purge failed: {e}", extra={"error_code": e.error.code})

            await asyncio.sleep(interval_seconds)
