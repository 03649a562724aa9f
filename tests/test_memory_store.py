"""Unit tests for InMemoryChatStore."""
import sys
from datetime import timedelta
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import pytest
from errors import InvalidArgumentError, NotFoundError
from models.batch import TransactionalBatch
from models.cache import CacheItem
from models.session import Message, Session, utcnow
from services.memory_store import InMemoryChatStore, cosine_similarity


class TestCosineSimilarity:

    def test_identical_vectors(self):
        assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_orthogonal_vectors(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_opposite_vectors(self):
        assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)

    def test_zero_vector(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0

    def test_dimension_mismatch(self):
        with pytest.raises(InvalidArgumentError, match="dimensions"):
            cosine_similarity([1.0], [1.0, 0.0])


class TestInMemoryChatStore:
    """Test suite for InMemoryChatStore."""

    @pytest.mark.asyncio
    async def test_session_round_trip(self, store):
        session = Session(name="Notes")
        await store.insert_session(session)

        loaded = await store.get_session(session.id)

        assert loaded == session
        assert loaded is not session

    @pytest.mark.asyncio
    async def test_get_missing_session(self, store):
        with pytest.raises(NotFoundError):
            await store.get_session("missing")

    @pytest.mark.asyncio
    async def test_duplicate_session_rejected(self, store):
        session = Session()
        await store.insert_session(session)

        with pytest.raises(InvalidArgumentError):
            await store.insert_session(session)

    @pytest.mark.asyncio
    async def test_returned_objects_do_not_alias_storage(self, store):
        session = Session()
        await store.insert_session(session)

        loaded = await store.get_session(session.id)
        loaded.tokens = 999
        session.tokens = 500

        assert (await store.get_session(session.id)).tokens == 0

    @pytest.mark.asyncio
    async def test_messages_returned_chronologically(self, store):
        session = Session()
        await store.insert_session(session)
        now = utcnow()
        later = Message(session_id=session.id, prompt="later", timestamp=now + timedelta(seconds=5))
        earlier = Message(session_id=session.id, prompt="earlier", timestamp=now)
        await store.insert_message(later)
        await store.insert_message(earlier)

        messages = await store.get_session_messages(session.id)

        assert [m.prompt for m in messages] == ["earlier", "later"]

    @pytest.mark.asyncio
    async def test_insert_message_requires_session(self, store):
        with pytest.raises(NotFoundError):
            await store.insert_message(Message(session_id="missing", prompt="hi"))

    @pytest.mark.asyncio
    async def test_execute_batch_applies_all(self, store):
        session = Session()
        message = Message(session_id=session.id, prompt="hi", prompt_tokens=1)
        await store.insert_session(session)
        await store.insert_message(message)

        message.completion = "hello"
        message.completion_tokens = 2
        session.tokens = 3
        await store.execute_batch(
            TransactionalBatch(session.id).upsert_message(message).upsert_session(session)
        )

        assert (await store.get_session(session.id)).tokens == 3
        stored = await store.get_session_messages(session.id)
        assert stored[0].completion == "hello"

    @pytest.mark.asyncio
    async def test_execute_empty_batch(self, store):
        with pytest.raises(InvalidArgumentError, match="empty"):
            await store.execute_batch(TransactionalBatch("s1"))

    @pytest.mark.asyncio
    async def test_execute_batch_rejects_mixed_partitions(self, store):
        """A batch whose contents were altered after validation is refused whole."""
        session = Session()
        await store.insert_session(session)
        message = Message(session_id=session.id, prompt="hi")
        batch = TransactionalBatch(session.id).upsert_session(session).upsert_message(message)
        message.session_id = "other"
        session.tokens = 42

        with pytest.raises(InvalidArgumentError, match="partition key"):
            await store.execute_batch(batch)

        assert (await store.get_session(session.id)).tokens == 0
        assert await store.get_session_messages("other") == []

    @pytest.mark.asyncio
    async def test_delete_session_and_messages(self, store):
        session = Session()
        await store.insert_session(session)
        await store.insert_message(Message(session_id=session.id, prompt="hi"))

        await store.delete_session_and_messages(session.id)

        assert await store.get_sessions() == []
        assert await store.get_session_messages(session.id) == []

    @pytest.mark.asyncio
    async def test_nearest_cache_item_top_one_above_threshold(self, store):
        await store.upsert_cache_item(CacheItem(vectors=[1.0, 0.0], prompts="a", completion="a"))
        await store.upsert_cache_item(CacheItem(vectors=[0.0, 1.0], prompts="b", completion="b"))

        match = await store.nearest_cache_item([0.9, 0.1], 0.5)

        assert match.item.completion == "a"
        assert match.similarity > 0.5
        assert await store.nearest_cache_item([0.9, 0.1], 0.999) is None

    @pytest.mark.asyncio
    async def test_nearest_cache_item_empty(self, store):
        assert await store.nearest_cache_item([1.0, 0.0], 0.0) is None

    @pytest.mark.asyncio
    async def test_nearest_cache_item_requires_vector(self, store):
        with pytest.raises(InvalidArgumentError):
            await store.nearest_cache_item([], 0.5)

    @pytest.mark.asyncio
    async def test_purge_expired(self, store):
        past = utcnow() - timedelta(hours=2)
        await store.upsert_cache_item(CacheItem(vectors=[1.0], prompts="new", completion="new"))
        await store.upsert_cache_item(
            CacheItem(vectors=[1.0], prompts="old", completion="old",
                      created_at=past, expires_at=past + timedelta(hours=1))
        )

        assert await store.purge_expired_cache_items() == 1
        assert [item.prompts for item in store.cache.values()] == ["new"]
        assert await store.purge_expired_cache_items() == 0

    @pytest.mark.asyncio
    async def test_cache_write_drops_expired_items(self, store):
        past = utcnow() - timedelta(hours=2)
        await store.upsert_cache_item(
            CacheItem(vectors=[1.0], prompts="old", completion="old",
                      created_at=past, expires_at=past + timedelta(hours=1))
        )
        assert len(store.cache) == 1

        await store.upsert_cache_item(CacheItem(vectors=[1.0], prompts="new", completion="new"))

        assert [item.prompts for item in store.cache.values()] == ["new"]

    @pytest.mark.asyncio
    async def test_delete_cache_items(self, store):
        item = CacheItem(vectors=[1.0], prompts="p", completion="c")
        await store.upsert_cache_item(item)
        await store.upsert_cache_item(CacheItem(vectors=[1.0], prompts="q", completion="d"))

        await store.delete_cache_item(item.id)
        assert len(store.cache) == 1

        await store.delete_all_cache_items()
        assert store.cache == {}

    def test_fresh_store_is_empty(self):
        store = InMemoryChatStore()

        assert store.sessions == {}
        assert store.cache == {}
