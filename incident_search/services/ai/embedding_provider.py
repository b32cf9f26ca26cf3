"""Embedding provider backed by an OpenAI compatible embeddings endpoint."""

import abc
import time
from typing import Any, Dict, List, Optional, Sequence

import openai
from loguru import logger
from openai import AsyncOpenAI
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from incident_search.exceptions import AuthError, ProviderError
from incident_search.settings import settings

# Transport failures worth another attempt
RETRYABLE_ERRORS = (
    openai.APIConnectionError,
    openai.APITimeoutError,
    openai.RateLimitError,
)


class EmbeddingProvider(abc.ABC):
    """Turns text into fixed-length vectors."""

    @abc.abstractmethod
    async def embed_many(self, texts: Sequence[str]) -> List[List[float]]:
        """
        Embed several texts with a single provider request.

        The result is positional. On a partial provider failure it may be
        shorter than ``texts``; callers must handle that positionally.

        :param texts: texts to embed
        :returns: one vector per embedded text, in request order
        :raises ProviderError: if the request fails outright
        """

    async def embed(self, text: str) -> List[float]:
        """
        Embed a single text.

        :param text: text to embed
        :returns: embedding vector
        :raises ProviderError: if no vector comes back
        """
        vectors = await self.embed_many([text])
        if not vectors:
            raise ProviderError("Embedding provider returned no vector")
        return vectors[0]

    async def close(self) -> None:
        """Release provider resources."""


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """Embedding provider using ``AsyncOpenAI.embeddings``."""

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        model: str = settings.embedding_model,
        max_retries: int = settings.embedding_max_retries,
    ):
        """
        Initialize the provider.

        :param client: AsyncOpenAI client, built from settings when omitted
        :param model: embedding model name
        :param max_retries: attempts for transient transport failures
        :raises AuthError: if no client can be built from settings
        """
        if client is None:
            client = _build_client()
        self.client = client
        self.model = model
        self.max_retries = max(1, max_retries)
        self.metrics: Dict[str, Any] = {
            "embedding_calls": 0,
            "embedding_errors": 0,
            "texts_embedded": 0,
            "total_processing_time": 0.0,
        }
        logger.debug(f"Initialized embedding provider with model: {model}")

    def _track_metric(self, metric_name: str, increment=1):
        self.metrics[metric_name] = self.metrics.get(metric_name, 0) + increment

    def get_metrics(self) -> Dict[str, Any]:
        """Get the current provider metrics."""
        return self.metrics

    async def _request(self, texts: List[str]) -> List[List[float]]:
        response = await self.client.embeddings.create(model=self.model, input=texts)
        # The API may answer out of order, each item carries its input index
        data = sorted(response.data, key=lambda item: item.index)
        return [list(item.embedding) for item in data]

    async def embed_many(self, texts: Sequence[str]) -> List[List[float]]:
        texts = [text if isinstance(text, str) else str(text) for text in texts]
        if not texts:
            logger.warning("No values provided for embedding generation")
            return []

        self._track_metric("embedding_calls")
        start_time = time.time()
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_retries),
                wait=wait_exponential(multiplier=1, min=1, max=10),
                retry=retry_if_exception_type(RETRYABLE_ERRORS),
                reraise=True,
            ):
                with attempt:
                    vectors = await self._request(texts)
        except (openai.OpenAIError, RetryError) as e:
            self._track_metric("embedding_errors")
            logger.error(f"Error generating embeddings for {len(texts)} texts: {e}")
            raise ProviderError(f"Embedding request failed: {e}") from e
        finally:
            self._track_metric("total_processing_time", time.time() - start_time)

        if len(vectors) < len(texts):
            logger.warning(
                f"Embedding provider returned {len(vectors)} vectors for {len(texts)} texts"
            )
        self._track_metric("texts_embedded", len(vectors))
        return vectors

    async def close(self) -> None:
        await self.client.close()


def _build_client() -> AsyncOpenAI:
    api_key = settings.embedding_api_key
    if not api_key and settings.embedding_base_url:
        # Local OpenAI compatible servers (Ollama) ignore the key
        api_key = "unused"
    if not api_key:
        raise AuthError(
            "No embedding API key configured, set INCIDENT_SEARCH_EMBEDDING_API_KEY"
        )
    return AsyncOpenAI(
        api_key=api_key,
        base_url=settings.embedding_base_url,
        timeout=settings.embedding_timeout,
    )
