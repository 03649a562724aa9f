"""Shared fixtures and fakes for the chat service tests."""
import hashlib
import sys
from pathlib import Path
from typing import Dict, List, Optional

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import pytest

from errors import DependencyFailureError
from models.session import Message
from services.chat_service import ChatService
from services.llm_client import LLMClientError, LLMError, LLMResponse
from services.memory_store import InMemoryChatStore
from services.semantic_cache import SemanticCache


class FakeTokenizer:
    """One token per whitespace-separated word."""

    def count(self, text: Optional[str]) -> int:
        if not text:
            return 0
        return len(text.split())


class FakeEmbeddingModel:
    """Deterministic embeddings: pinned vectors first, otherwise derived from a hash of the text."""

    def __init__(self, dimensions: int = 16):
        self.dimensions = dimensions
        self.pinned: Dict[str, List[float]] = {}
        self.calls: List[str] = []
        self.fail = False

    async def embed_text(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.fail:
            raise DependencyFailureError("Embedding service unavailable", code="EMBEDDING_API_ERROR")
        if text in self.pinned:
            return list(self.pinned[text])
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        return [(digest[i % len(digest)] - 127.5) / 127.5 for i in range(self.dimensions)]


class FakeLLMClient:
    """Numbered answers with a fixed completion token cost."""

    def __init__(self, completion_tokens: int = 5):
        self.completion_tokens = completion_tokens
        self.calls: List[List[Message]] = []
        self.summaries: List[str] = []
        self.summary = "Weather Questions"
        self.fail = False

    async def complete(self, messages: List[Message], system_prompt: str = "") -> LLMResponse:
        self.calls.append(list(messages))
        if self.fail:
            raise LLMClientError(LLMError(code="API_ERROR", message="Groq API error: boom", details={}))
        return LLMResponse(
            text=f"answer {len(self.calls)}",
            tokens_input=sum(m.prompt_tokens for m in messages),
            tokens_output=self.completion_tokens,
            latency_ms=1,
            model_used="fake-model"
        )

    async def summarize(self, conversation_text: str) -> str:
        self.summaries.append(conversation_text)
        if self.fail:
            raise LLMClientError(LLMError(code="API_ERROR", message="Groq API error: boom", details={}))
        return self.summary


@pytest.fixture
def store() -> InMemoryChatStore:
    return InMemoryChatStore()


@pytest.fixture
def tokenizer() -> FakeTokenizer:
    return FakeTokenizer()


@pytest.fixture
def embedding_model() -> FakeEmbeddingModel:
    return FakeEmbeddingModel()


@pytest.fixture
def llm_client() -> FakeLLMClient:
    return FakeLLMClient()


@pytest.fixture
def semantic_cache(store, embedding_model) -> SemanticCache:
    return SemanticCache(store, embedding_model, similarity_score=0.99, ttl_seconds=3600)


@pytest.fixture
def chat_service(store, llm_client, semantic_cache, tokenizer) -> ChatService:
    return ChatService(
        store=store,
        llm_client=llm_client,
        semantic_cache=semantic_cache,
        tokenizer=tokenizer,
        max_conversation_tokens=100
    )
