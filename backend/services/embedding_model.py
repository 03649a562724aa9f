"""Embedding model integration with Hugging Face Inference API."""
import asyncio
import time
import logging
from typing import List, Optional
import httpx
import numpy as np

from config import HUGGINGFACE_API_KEY, EMBEDDING_MODEL, EMBEDDING_DIMENSIONS
from errors import DependencyFailureError

logger = logging.getLogger(__name__)


class EmbeddingModel:
    """Wrapper for Hugging Face Inference API embedding model."""

    def __init__(
        self,
        api_key: str = HUGGINGFACE_API_KEY,
        model_name: str = EMBEDDING_MODEL,
        dimensions: int = EMBEDDING_DIMENSIONS,
        max_retries: int = 3,
        initial_delay: float = 5.0,
        timeout: float = 120.0
    ):
        """
        Initialize the embedding model client.

        Args:
            api_key: Hugging Face API key
            model_name: Model identifier (default: sentence-transformers/all-mpnet-base-v2)
            dimensions: Expected vector length, checked on every response
            max_retries: Maximum attempts while the model is loading (503)
            initial_delay: Initial delay in seconds between loading checks
            timeout: Request timeout in seconds
        """
        if not api_key:
            raise ValueError("HUGGINGFACE_API_KEY environment variable is required")

        self.api_key = api_key
        self.model_name = model_name
        self.dimensions = dimensions
        self.max_retries = max(1, max_retries)
        self.initial_delay = initial_delay
        self.timeout = timeout
        self.api_url = f"https://api-inference.huggingface.co/models/{model_name}"

        logger.info(f"Initialized EmbeddingModel with model: {model_name}")

    async def embed_text(self, text: str) -> List[float]:
        """
        Generate embedding for a single text string.

        Args:
            text: Text to embed

        Returns:
            Embedding vector as list of floats

        Raises:
            ValueError: If text is empty
            DependencyFailureError: If the API request fails
        """
        if not text or not text.strip():
            raise ValueError("Text cannot be empty")

        embeddings = await self._embed([text])
        return embeddings[0]

    async def _embed(self, texts: List[str]) -> List[List[float]]:
        """
        Call the HF API, waiting out cold starts.

        HF free tier models "sleep" and answer 503 while loading. Only that
        case is waited for; every other failure is raised immediately.

        Args:
            texts: List of texts to embed

        Returns:
            List of embedding vectors

        Raises:
            DependencyFailureError: If the request fails or the model never loads
        """
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }

        payload = {
            "inputs": texts,
            "options": {
                "wait_for_model": True  # Wait for model to load if sleeping
            }
        }

        delay = self.initial_delay

        for attempt in range(self.max_retries):
            start_time = time.time()
            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(
                        self.api_url,
                        headers=headers,
                        json=payload
                    )
            except httpx.TimeoutException as e:
                raise self._failure("EMBEDDING_TIMEOUT", f"Request timeout after {self.timeout}s", e)
            except httpx.RequestError as e:
                raise self._failure("EMBEDDING_NETWORK_ERROR", f"Network error: {str(e)}", e)

            elapsed = time.time() - start_time

            # Handle 503 Service Unavailable (model loading)
            if response.status_code == 503:
                if attempt < self.max_retries - 1:
                    logger.warning(
                        f"Model loading (503) on attempt {attempt + 1}/{self.max_retries}. "
                        f"Retrying in {delay}s..."
                    )
                    await asyncio.sleep(delay)
                    delay = min(delay * 2, 60.0)
                    continue
                raise self._failure(
                    "EMBEDDING_MODEL_LOADING",
                    f"Model failed to load after {self.max_retries} attempts"
                )

            if response.status_code == 429:
                raise self._failure("EMBEDDING_RATE_LIMIT", "Rate limit exceeded. Please try again later.")

            if response.status_code == 401:
                raise self._failure("EMBEDDING_AUTHENTICATION_ERROR", "Invalid API key")

            if response.status_code != 200:
                raise self._failure(
                    "EMBEDDING_API_ERROR",
                    f"API request failed with status {response.status_code}: {response.text}"
                )

            embeddings = [self._to_vector(e) for e in response.json()]
            logger.debug(f"Generated embeddings for {len(texts)} texts in {elapsed:.2f}s")
            return embeddings

        # Unreachable: the loop either returns or raises
        raise self._failure("EMBEDDING_API_ERROR", "Embedding request did not complete")

    def _to_vector(self, raw) -> List[float]:
        """Convert one API result to a flat float vector of the configured dimension."""
        vector = np.asarray(raw, dtype=np.float32)
        if vector.ndim > 1:
            # Token-level output: mean-pool into a sentence vector
            vector = vector.reshape(-1, vector.shape[-1]).mean(axis=0)
        if vector.shape[0] != self.dimensions:
            raise self._failure(
                "EMBEDDING_DIMENSION_MISMATCH",
                f"Expected {self.dimensions} dimensions, got {vector.shape[0]}"
            )
        return vector.astype(float).tolist()

    def _failure(self, code: str, message: str, cause: Optional[Exception] = None) -> DependencyFailureError:
        logger.error(message, extra={"error_code": code, "model": self.model_name})
        details = {"model": self.model_name}
        if cause is not None:
            details["original_error"] = str(cause)
        return DependencyFailureError(message, details=details, code=code)
