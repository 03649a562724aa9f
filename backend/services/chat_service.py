"""Chat service: sessions, messages and completions with a semantic cache."""
import logging
from typing import List, Optional

from config import MAX_CONVERSATION_TOKENS, DEFAULT_SESSION_NAME
from errors import DependencyFailureError, InvalidArgumentError
from models.batch import TransactionalBatch
from models.session import Message, Session
from services.context_window import ContextWindowAssembler
from services.semantic_cache import CacheLookup, SemanticCache
from services.session_locks import SessionLockRegistry

logger = logging.getLogger(__name__)


class ChatService:
    """
    Coordinates a chat turn from prompt to persisted completion.

    Every read goes to the store; nothing about sessions is cached in process.
    Turns, renames and deletes on the same session are serialized through a
    per-session lock. Turns on different sessions run concurrently.
    """

    def __init__(
        self,
        store,
        llm_client,
        semantic_cache: SemanticCache,
        tokenizer,
        max_conversation_tokens: int = MAX_CONVERSATION_TOKENS
    ):
        """
        Initialize the chat service.

        Args:
            store: ChatStore holding sessions, messages and cache entries
            llm_client: LLMClient used for completions and summaries
            semantic_cache: SemanticCache consulted before every completion
            tokenizer: Tokenizer used to cost prompts
            max_conversation_tokens: Token budget of the context window
        """
        self.store = store
        self.llm_client = llm_client
        self.semantic_cache = semantic_cache
        self.tokenizer = tokenizer
        self.assembler = ContextWindowAssembler(store, max_conversation_tokens)
        self.locks = SessionLockRegistry()
        logger.info(f"ChatService initialized (max_conversation_tokens={max_conversation_tokens})")

    # Sessions

    async def get_sessions(self) -> List[Session]:
        """Return every session, oldest first."""
        return await self.store.get_sessions()

    async def create_session(self, name: Optional[str] = None) -> Session:
        """Create an empty session with zero tokens."""
        session = Session(name=name.strip() if name and name.strip() else DEFAULT_SESSION_NAME)
        await self.store.insert_session(session)
        return session

    async def rename_session(self, session_id: Optional[str], name: str) -> Session:
        """
        Rename a session.

        Raises:
            InvalidArgumentError: If the id or name is empty
            NotFoundError: If the session does not exist
        """
        self._require_session_id(session_id)
        if not name or not name.strip():
            raise InvalidArgumentError("Session name cannot be empty")

        async with self.locks.lock(session_id):
            session = await self.store.get_session(session_id)
            session.name = name.strip()
            await self.store.update_session(session)

        logger.info(f"Renamed session {session_id} to {session.name!r}", extra={"session_id": session_id})
        return session

    async def delete_session(self, session_id: Optional[str]) -> None:
        """
        Delete a session together with all of its messages.

        Raises:
            NotFoundError: If the session does not exist
        """
        self._require_session_id(session_id)

        async with self.locks.lock(session_id):
            await self.store.get_session(session_id)
            await self.store.delete_session_and_messages(session_id)

    async def summarize_session_name(self, session_id: Optional[str]) -> str:
        """
        Ask the model for a short name describing the conversation and apply it.

        Returns:
            The new session name

        Raises:
            InvalidArgumentError: If the session has no messages yet
            NotFoundError: If the session does not exist
        """
        messages = await self.get_session_messages(session_id)
        if not messages:
            raise InvalidArgumentError(
                "Session has no messages to summarize", details={"session_id": session_id}
            )

        conversation_text = "\n".join(f"{m.prompt} {m.completion}" for m in messages)
        summary = await self.llm_client.summarize(conversation_text)
        name = summary.strip() or DEFAULT_SESSION_NAME

        await self.rename_session(session_id, name)
        return name

    # Messages

    async def get_session_messages(self, session_id: Optional[str]) -> List[Message]:
        """
        Return all messages of a session in chronological order.

        Messages still pending (empty completion) are included; callers can
        offer to resubmit them.
        """
        self._require_session_id(session_id)
        await self.store.get_session(session_id)
        return await self.store.get_session_messages(session_id)

    async def get_pending_messages(self, session_id: Optional[str]) -> List[Message]:
        """Return messages whose completion never got persisted."""
        messages = await self.get_session_messages(session_id)
        return [m for m in messages if m.is_pending]

    async def get_completion(self, session_id: Optional[str], prompt_text: str) -> Message:
        """
        Answer a prompt within a session.

        1. Persist the prompt as a new message with an empty completion.
        2. Build the token-bounded context window, which ends with that message.
        3. Look the window up in the semantic cache; on a miss, call the model
           and cache its completion.
        4. Persist the completed message and the session's new token total in
           one transaction.

        If anything after step 1 fails the message stays pending and the
        session total is unchanged.

        Args:
            session_id: Session to add the turn to
            prompt_text: User prompt

        Returns:
            The completed message

        Raises:
            InvalidArgumentError: If session_id or prompt_text is empty
            NotFoundError: If the session does not exist
            DependencyFailureError: If the store or model fails
        """
        self._require_session_id(session_id)
        if not prompt_text or not prompt_text.strip():
            raise InvalidArgumentError("Prompt text cannot be empty")

        async with self.locks.lock(session_id):
            await self.store.get_session(session_id)

            message = Message(
                session_id=session_id,
                prompt=prompt_text,
                prompt_tokens=self.tokenizer.count(prompt_text)
            )
            await self.store.insert_message(message)

            window = await self.assembler.get_context_window(session_id)
            lookup = await self._cache_lookup(session_id, window)

            if lookup is not None and lookup.hit:
                message.completion = lookup.completion
                message.completion_tokens = 0
            else:
                response = await self.llm_client.complete(window)
                message.completion = response.text
                message.completion_tokens = response.tokens_output
                await self._cache_insert(session_id, window, lookup, response.text)

            session = await self.store.get_session(session_id)
            session.tokens += message.prompt_tokens + message.completion_tokens

            batch = TransactionalBatch(session_id)
            batch.upsert_message(message)
            batch.upsert_session(session)
            await self.store.execute_batch(batch)

        logger.info(
            f"Completed message {message.id}: prompt_tokens={message.prompt_tokens}, "
            f"completion_tokens={message.completion_tokens}, window={len(window)}",
            extra={
                "session_id": session_id,
                "message_id": message.id,
                "cache_hit": bool(lookup and lookup.hit),
            }
        )
        return message

    async def clear_cache(self) -> None:
        """Remove every semantic cache entry."""
        await self.semantic_cache.clear()

    async def _cache_lookup(self, session_id: str, window: List[Message]) -> Optional[CacheLookup]:
        # A failed lookup only costs a completion call
        try:
            return await self.semantic_cache.lookup(window)
        except DependencyFailureError as e:
            logger.warning(
                f"Cache lookup failed, treating as miss: {e}",
                extra={"session_id": session_id, "error_code": e.error.code}
            )
            return None

    async def _cache_insert(
        self,
        session_id: str,
        window: List[Message],
        lookup: Optional[CacheLookup],
        completion: str
    ) -> None:
        if not completion:
            return
        try:
            if lookup is not None:
                await self.semantic_cache.insert(lookup.prompts, lookup.vectors, completion)
            else:
                await self.semantic_cache.insert_window(window, completion)
        except DependencyFailureError as e:
            logger.error(
                f"Failed to cache completion: {e}",
                exc_info=True,
                extra={"session_id": session_id, "error_code": e.error.code}
            )

    @staticmethod
    def _require_session_id(session_id: Optional[str]) -> None:
        if not session_id or not str(session_id).strip():
            raise InvalidArgumentError("Session id cannot be empty")
