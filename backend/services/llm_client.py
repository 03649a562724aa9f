"""LLM Client for Groq API integration."""
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from groq import AsyncGroq
from groq import RateLimitError, AuthenticationError, APIError, APITimeoutError
import logging

from config import GROQ_API_KEY, COMPLETION_MODEL
from errors import DependencyFailureError, ErrorDetail
from models.session import Message

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = """You are an AI assistant that helps people find information.
Provide concise answers that are polite and professional."""

SUMMARIZE_PROMPT = """Summarize this text. One to three words maximum length.
Plain text only. No punctuation, markup or tags."""


@dataclass
class LLMResponse:
    """Response from LLM generation."""
    text: str
    tokens_input: int
    tokens_output: int
    latency_ms: int
    model_used: str


# Kept as the public name for structured LLM errors
LLMError = ErrorDetail


class LLMClientError(DependencyFailureError):
    """Custom exception for LLM client errors with structured error information."""

    def __init__(self, error: LLMError):
        super().__init__(error.message, details=error.details, code=error.code)


class LLMClient:
    """Client for interfacing with Groq API for chat completions."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = COMPLETION_MODEL,
        temperature: float = 0.2,
        top_p: float = 0.7,
        max_tokens: int = 1000
    ):
        """
        Initialize LLM client with Groq API key.

        Args:
            api_key: Groq API key (defaults to GROQ_API_KEY from environment)
            model: Chat completion model name
            temperature: Sampling temperature for completions
            top_p: Nucleus sampling value for completions
            max_tokens: Maximum tokens to generate per completion
        """
        self.api_key = api_key or GROQ_API_KEY
        if not self.api_key:
            raise ValueError("GROQ_API_KEY must be provided or set in environment")

        self.model = model
        self.temperature = temperature
        self.top_p = top_p
        self.max_tokens = max_tokens
        self.client = AsyncGroq(api_key=self.api_key)
        logger.info(f"LLMClient initialized successfully with model: {model}")

    async def complete(
        self,
        messages: List[Message],
        system_prompt: str = SYSTEM_PROMPT
    ) -> LLMResponse:
        """
        Generate the next completion for a conversation.

        Args:
            messages: Context window in chronological order; the last message
                is the current prompt and has no completion yet
            system_prompt: Instruction sent ahead of the conversation

        Returns:
            LLMResponse with text, token counts, and latency

        Raises:
            LLMClientError: Structured error with code, message, and details
        """
        return await self._generate(
            self.build_chat_history(messages, system_prompt),
            temperature=self.temperature,
            top_p=self.top_p,
            max_tokens=self.max_tokens,
        )

    async def summarize(self, conversation_text: str) -> str:
        """
        Summarize a conversation into a short session name.

        Args:
            conversation_text: Prompts and completions of the conversation

        Returns:
            A one to three word summary

        Raises:
            LLMClientError: Structured error with code, message, and details
        """
        response = await self._generate(
            [
                {"role": "system", "content": SUMMARIZE_PROMPT},
                {"role": "user", "content": conversation_text},
            ],
            temperature=0.0,
            top_p=1.0,
            max_tokens=100,
        )
        return response.text.strip()

    async def _generate(
        self,
        chat_messages: List[Dict[str, str]],
        temperature: float,
        top_p: float,
        max_tokens: int
    ) -> LLMResponse:
        start_time = time.time()
        model = self.model

        try:
            logger.debug(f"Generating response with model: {model}")

            response = await self.client.chat.completions.create(
                model=model,
                messages=chat_messages,
                max_tokens=max_tokens,
                temperature=temperature,
                top_p=top_p
            )

            latency_ms = int((time.time() - start_time) * 1000)

            text = response.choices[0].message.content or ""
            tokens_input = response.usage.prompt_tokens
            tokens_output = response.usage.completion_tokens

            logger.info(
                f"Generated response: model={model}, "
                f"input_tokens={tokens_input}, output_tokens={tokens_output}, "
                f"latency={latency_ms}ms"
            )

            return LLMResponse(
                text=text,
                tokens_input=tokens_input,
                tokens_output=tokens_output,
                latency_ms=latency_ms,
                model_used=model
            )

        except RateLimitError as e:
            raise self._error(
                "RATE_LIMIT_ERROR",
                "Rate limit exceeded. Please try again in a few moments.",
                e, start_time, retry_after=60
            )
        except AuthenticationError as e:
            raise self._error(
                "AUTHENTICATION_ERROR",
                "Authentication failed. Please check your API key.",
                e, start_time
            )
        except APITimeoutError as e:
            raise self._error("TIMEOUT_ERROR", "Request timed out. Please try again.", e, start_time)
        except APIError as e:
            raise self._error("API_ERROR", f"Groq API error: {str(e)}", e, start_time)
        except Exception as e:
            raise self._error(
                "UNKNOWN_ERROR",
                f"Unexpected error during generation: {str(e)}",
                e, start_time, error_type=type(e).__name__
            )

    def _error(
        self,
        code: str,
        message: str,
        cause: Exception,
        start_time: float,
        **extra_details: Any
    ) -> LLMClientError:
        latency_ms = int((time.time() - start_time) * 1000)
        error = LLMError(
            code=code,
            message=message,
            details={
                "model": self.model,
                "latency_ms": latency_ms,
                "original_error": str(cause),
                **extra_details
            }
        )
        logger.error(
            f"{code}: model={self.model}, latency={latency_ms}ms, error={cause}",
            exc_info=True,
            extra={"error_code": error.code, "error_details": error.details}
        )
        return LLMClientError(error)

    @staticmethod
    def build_chat_history(messages: List[Message], system_prompt: str = SYSTEM_PROMPT) -> List[Dict[str, str]]:
        """
        Build the chat message list sent to the model.

        Args:
            messages: Context window in chronological order
            system_prompt: Instruction placed first

        Returns:
            Role/content dicts: system, then user and assistant turns
        """
        history = [{"role": "system", "content": system_prompt}]
        for message in messages:
            history.append({"role": "user", "content": message.prompt})
            if message.completion:
                history.append({"role": "assistant", "content": message.completion})
        return history
