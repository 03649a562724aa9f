"""Token counting with tiktoken."""
import logging
from typing import Optional
import tiktoken

from config import TOKENIZER_ENCODING

logger = logging.getLogger(__name__)


class Tokenizer:
    """Counts tokens for prompts and completions."""

    def __init__(self, encoding_name: str = TOKENIZER_ENCODING):
        self.encoding_name = encoding_name
        self.encoder = tiktoken.get_encoding(encoding_name)
        logger.info(f"Initialized tiktoken encoder ({encoding_name})")

    def count(self, text: Optional[str]) -> int:
        """
        Count tokens in text.

        Args:
            text: Text to count, None or empty counts as zero

        Returns:
            Non-negative token count
        """
        if not text:
            return 0
        return len(self.encoder.encode(text, disallowed_special=()))
