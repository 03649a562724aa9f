"""Token-bounded context window over a session's messages."""
import logging
from typing import List

from config import MAX_CONVERSATION_TOKENS
from errors import InvalidArgumentError
from models.session import Message

logger = logging.getLogger(__name__)


def build_context_window(messages: List[Message], max_tokens: int) -> List[Message]:
    """
    Select the most recent messages that fit in a token budget.

    Walks from the newest message backwards adding prompt and completion
    tokens, and stops at the first message that would push the total over
    max_tokens. That message and everything older is dropped whole. The
    newest message is always kept, even when it alone exceeds the budget.

    Args:
        messages: Session messages in chronological order
        max_tokens: Token budget, must be positive

    Returns:
        The retained messages in chronological order
    """
    if max_tokens <= 0:
        raise InvalidArgumentError("max_tokens must be positive", details={"max_tokens": max_tokens})

    tokens_used = 0
    window: List[Message] = []

    for message in reversed(messages):
        tokens_used += message.total_tokens
        if tokens_used > max_tokens and window:
            break
        window.append(message)

    window.reverse()
    return window


class ContextWindowAssembler:
    """Builds the context window for a session from the store."""

    def __init__(self, store, max_conversation_tokens: int = MAX_CONVERSATION_TOKENS):
        """
        Args:
            store: ChatStore used to read session messages
            max_conversation_tokens: Token budget for the window
        """
        if max_conversation_tokens <= 0:
            raise InvalidArgumentError("max_conversation_tokens must be positive")
        self.store = store
        self.max_conversation_tokens = max_conversation_tokens

    async def get_context_window(self, session_id: str) -> List[Message]:
        messages = await self.store.get_session_messages(session_id)
        window = build_context_window(messages, self.max_conversation_tokens)
        logger.debug(
            f"Context window for session {session_id}: {len(window)}/{len(messages)} messages",
            extra={"session_id": session_id}
        )
        return window
