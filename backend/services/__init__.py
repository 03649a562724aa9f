"""Services for the semantic chat backend."""
from .tokenizer import Tokenizer
from .embedding_model import EmbeddingModel
from .llm_client import LLMClient, LLMResponse, LLMError, LLMClientError
from .chat_store import ChatStore, SupabaseChatStore
from .memory_store import InMemoryChatStore
from .context_window import ContextWindowAssembler, build_context_window
from .semantic_cache import SemanticCache, CacheLookup, join_prompts
from .session_locks import SessionLockRegistry
from .chat_service import ChatService

__all__ = ['Tokenizer', 'EmbeddingModel', 'LLMClient', 'LLMResponse', 'LLMError', 'LLMClientError', 'ChatStore', 'SupabaseChatStore', 'InMemoryChatStore', 'ContextWindowAssembler', 'build_context_window', 'SemanticCache', 'CacheLookup', 'join_prompts', 'SessionLockRegistry', 'ChatService']
