"""
Embedding client - OpenAI embeddings with dimension validation.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

from postgen.errors import EmptyContent, ExternalServiceError
from postgen.utils.metrics import Timer

logger = logging.getLogger(__name__)


class EmbeddingClient(ABC):
    dimension: int

    @abstractmethod
    async def generate_embedding(self, text: str) -> list[float]:
        ...

    async def aclose(self) -> None:
        return None


class OpenAIEmbeddingClient(EmbeddingClient):
    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        dimension: int = 1536,
        timeout: float = 20.0,
        base_url: Optional[str] = None,
        client=None,
    ):
        if client is None:
            from openai import AsyncOpenAI
            client = AsyncOpenAI(api_key=api_key, base_url=(base_url or None), timeout=timeout)
        self._client = client
        self.model = model
        self.dimension = dimension
        self.timeout = timeout

    async def generate_embedding(self, text: str) -> list[float]:
        """
        Embed a single text.

        Raises:
            EmptyContent: if the text is blank.
            ExternalServiceError: on API failure, timeout, or a dimension mismatch.
        """
        if not text or not text.strip():
            raise EmptyContent("Cannot embed empty text")

        timer = Timer().start()
        try:
            response = await asyncio.wait_for(
                self._client.embeddings.create(model=self.model, input=text),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise ExternalServiceError(
                f"Embedding request timed out after {self.timeout}s", service="embedding",
            ) from e
        except Exception as e:
            raise ExternalServiceError(
                f"Embedding request failed: {e}", service="embedding",
            ) from e
        latency_ms = timer.stop()

        embedding = list(response.data[0].embedding)
        if len(embedding) != self.dimension:
            raise ExternalServiceError(
                f"Embedding dimension mismatch: expected {self.dimension}, got {len(embedding)}",
                service="embedding",
            )

        logger.debug(
            "Generated embedding (%d chars)", len(text),
            extra={"provider": "openai", "model": self.model, "latency_ms": latency_ms},
        )
        return embedding

    async def aclose(self) -> None:
        await self._client.close()


def build_embedding_client(settings) -> Optional[EmbeddingClient]:
    if not settings.openai_api_key:
        logger.warning("No embedding provider configured (set OPENAI_API_KEY)")
        return None
    return OpenAIEmbeddingClient(
        api_key=settings.openai_api_key,
        model=settings.embedding_model,
        dimension=settings.embedding_dim,
        timeout=settings.embedding_timeout_seconds,
        base_url=settings.openai_base_url,
    )
