"""Unit tests for SupabaseChatStore."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import pytest
from unittest.mock import AsyncMock, MagicMock, Mock, patch
from errors import DependencyFailureError, InvalidArgumentError, NotFoundError
from models.batch import TransactionalBatch
from models.cache import CacheItem
from models.session import Message, Session
from services.chat_store import SupabaseChatStore


def make_builder(data=None, error=None):
    """Query builder mock: every filter returns itself, execute() is awaited."""
    builder = MagicMock()
    for method in ("select", "eq", "neq", "lte", "order", "insert", "update", "upsert", "delete"):
        getattr(builder, method).return_value = builder
    if error is not None:
        builder.execute = AsyncMock(side_effect=error)
    else:
        builder.execute = AsyncMock(return_value=Mock(data=data if data is not None else []))
    return builder


def make_store(mock_acreate_client, builder=None, rpc_builder=None):
    client = MagicMock()
    client.table.return_value = builder or make_builder()
    client.rpc.return_value = rpc_builder or make_builder()
    mock_acreate_client.return_value = client
    store = SupabaseChatStore(supabase_url="https://test.supabase.co", supabase_key="test_key")
    return store, client


class TestSupabaseChatStore:
    """Test suite for SupabaseChatStore."""

    def test_initialization_without_credentials(self):
        with pytest.raises(ValueError, match="SUPABASE_URL and SUPABASE_KEY"):
            SupabaseChatStore(supabase_url=None, supabase_key="test_key")

        with pytest.raises(ValueError, match="SUPABASE_URL and SUPABASE_KEY"):
            SupabaseChatStore(supabase_url="https://test.supabase.co", supabase_key=None)

    @pytest.mark.asyncio
    @patch('services.chat_store.acreate_client', new_callable=AsyncMock)
    async def test_client_created_once(self, mock_acreate_client):
        store, client = make_store(mock_acreate_client)

        await store.get_sessions()
        await store.get_sessions()

        mock_acreate_client.assert_awaited_once_with("https://test.supabase.co", "test_key")

    @pytest.mark.asyncio
    @patch('services.chat_store.acreate_client', new_callable=AsyncMock)
    async def test_get_sessions(self, mock_acreate_client):
        builder = make_builder([
            {"id": "s1", "session_id": "s1", "name": "Trip", "tokens": 7,
             "created_at": "2026-02-21T02:08:26.18976+00:00"},
        ])
        store, client = make_store(mock_acreate_client, builder=builder)

        sessions = await store.get_sessions()

        client.table.assert_called_with("sessions")
        builder.order.assert_called_with("created_at", desc=False)
        assert len(sessions) == 1
        assert sessions[0].name == "Trip"
        assert sessions[0].tokens == 7

    @pytest.mark.asyncio
    @patch('services.chat_store.acreate_client', new_callable=AsyncMock)
    async def test_get_session_not_found(self, mock_acreate_client):
        store, client = make_store(mock_acreate_client, builder=make_builder([]))

        with pytest.raises(NotFoundError):
            await store.get_session("missing")

    @pytest.mark.asyncio
    @patch('services.chat_store.acreate_client', new_callable=AsyncMock)
    async def test_insert_session(self, mock_acreate_client):
        builder = make_builder()
        store, client = make_store(mock_acreate_client, builder=builder)
        session = Session()

        await store.insert_session(session)

        record = builder.insert.call_args[0][0]
        assert record["id"] == session.id
        assert record["session_id"] == session.id
        assert record["name"] == "New Chat"
        assert record["tokens"] == 0

    @pytest.mark.asyncio
    @patch('services.chat_store.acreate_client', new_callable=AsyncMock)
    async def test_update_session_missing(self, mock_acreate_client):
        store, client = make_store(mock_acreate_client, builder=make_builder([]))

        with pytest.raises(NotFoundError):
            await store.update_session(Session())

    @pytest.mark.asyncio
    @patch('services.chat_store.acreate_client', new_callable=AsyncMock)
    async def test_get_session_messages_ordered(self, mock_acreate_client):
        builder = make_builder([
            {"id": "m1", "session_id": "s1", "timestamp": "2026-02-21T02:08:26Z",
             "prompt": "hi", "prompt_tokens": 1, "completion": "", "completion_tokens": 0},
        ])
        store, client = make_store(mock_acreate_client, builder=builder)

        messages = await store.get_session_messages("s1")

        client.table.assert_called_with("messages")
        builder.eq.assert_called_with("session_id", "s1")
        builder.order.assert_called_with("timestamp", desc=False)
        assert messages[0].is_pending

    @pytest.mark.asyncio
    @patch('services.chat_store.acreate_client', new_callable=AsyncMock)
    async def test_execute_batch_calls_rpc(self, mock_acreate_client):
        rpc_builder = make_builder()
        store, client = make_store(mock_acreate_client, rpc_builder=rpc_builder)
        session = Session(tokens=9)
        message = Message(session_id=session.id, prompt="hi", prompt_tokens=1, completion="yo", completion_tokens=8)

        await store.execute_batch(TransactionalBatch(session.id).upsert_message(message).upsert_session(session))

        name, params = client.rpc.call_args[0]
        assert name == "execute_session_batch"
        assert params["p_session_id"] == session.id
        assert params["p_sessions"][0]["tokens"] == 9
        assert params["p_messages"][0]["completion"] == "yo"
        rpc_builder.execute.assert_awaited_once()

    @pytest.mark.asyncio
    @patch('services.chat_store.acreate_client', new_callable=AsyncMock)
    async def test_execute_batch_failure_wrapped(self, mock_acreate_client):
        store, client = make_store(
            mock_acreate_client, rpc_builder=make_builder(error=Exception("transaction aborted"))
        )
        session = Session()

        with pytest.raises(DependencyFailureError, match="transaction aborted"):
            await store.execute_batch(TransactionalBatch(session.id).upsert_session(session))

    @pytest.mark.asyncio
    async def test_execute_empty_batch(self):
        store = SupabaseChatStore(supabase_url="https://test.supabase.co", supabase_key="test_key")

        with pytest.raises(InvalidArgumentError):
            await store.execute_batch(TransactionalBatch("s1"))

    @pytest.mark.asyncio
    @patch('services.chat_store.acreate_client', new_callable=AsyncMock)
    async def test_delete_session_and_messages(self, mock_acreate_client):
        store, client = make_store(mock_acreate_client)

        await store.delete_session_and_messages("s1")

        client.rpc.assert_called_once_with("delete_session_and_messages", {"p_session_id": "s1"})

    @pytest.mark.asyncio
    @patch('services.chat_store.acreate_client', new_callable=AsyncMock)
    async def test_nearest_cache_item(self, mock_acreate_client):
        rpc_builder = make_builder([{
            "id": "c1", "vectors": "[1,0]", "prompts": "p", "completion": "cached",
            "created_at": "2026-01-01T00:00:00Z", "expires_at": "2099-01-01T00:00:00Z",
            "similarity": 0.995,
        }])
        store, client = make_store(mock_acreate_client, rpc_builder=rpc_builder)

        match = await store.nearest_cache_item([1.0, 0.0], 0.99)

        client.rpc.assert_called_once_with(
            "match_cache_items",
            {"query_embedding": [1.0, 0.0], "match_threshold": 0.99, "match_count": 1}
        )
        assert match.item.completion == "cached"
        assert match.similarity == 0.995

    @pytest.mark.asyncio
    @patch('services.chat_store.acreate_client', new_callable=AsyncMock)
    async def test_nearest_cache_item_at_threshold_is_not_a_match(self, mock_acreate_client):
        rpc_builder = make_builder([{
            "id": "c1", "vectors": [1.0], "prompts": "p", "completion": "cached",
            "created_at": "2026-01-01T00:00:00Z", "expires_at": "2099-01-01T00:00:00Z",
            "similarity": 0.99,
        }])
        store, client = make_store(mock_acreate_client, rpc_builder=rpc_builder)

        assert await store.nearest_cache_item([1.0], 0.99) is None

    @pytest.mark.asyncio
    @patch('services.chat_store.acreate_client', new_callable=AsyncMock)
    async def test_nearest_cache_item_none(self, mock_acreate_client):
        store, client = make_store(mock_acreate_client, rpc_builder=make_builder([]))

        assert await store.nearest_cache_item([1.0], 0.99) is None

    @pytest.mark.asyncio
    @patch('services.chat_store.acreate_client', new_callable=AsyncMock)
    async def test_upsert_cache_item(self, mock_acreate_client):
        builder = make_builder()
        store, client = make_store(mock_acreate_client, builder=builder)
        item = CacheItem(vectors=[0.1, 0.2], prompts="p", completion="c")

        await store.upsert_cache_item(item)

        client.table.assert_called_with("cache_items")
        record = builder.upsert.call_args[0][0]
        assert record["vectors"] == [0.1, 0.2]
        assert "expires_at" in record

    @pytest.mark.asyncio
    @patch('services.chat_store.acreate_client', new_callable=AsyncMock)
    async def test_delete_all_cache_items(self, mock_acreate_client):
        builder = make_builder()
        store, client = make_store(mock_acreate_client, builder=builder)

        await store.delete_all_cache_items()

        builder.delete.assert_called_once()
        builder.neq.assert_called_once_with("id", "")

    @pytest.mark.asyncio
    @patch('services.chat_store.acreate_client', new_callable=AsyncMock)
    async def test_purge_expired_counts_deleted_rows(self, mock_acreate_client):
        builder = make_builder([{"id": "c1"}, {"id": "c2"}])
        store, client = make_store(mock_acreate_client, builder=builder)

        assert await store.purge_expired_cache_items() == 2
        assert builder.lte.call_args[0][0] == "expires_at"

    @pytest.mark.asyncio
    @patch('services.chat_store.acreate_client', new_callable=AsyncMock)
    async def test_connection_failure_wrapped(self, mock_acreate_client):
        mock_acreate_client.side_effect = Exception("connection refused")
        store = SupabaseChatStore(supabase_url="https://test.supabase.co", supabase_key="test_key")

        with pytest.raises(DependencyFailureError, match="connection refused"):
            await store.get_sessions()
