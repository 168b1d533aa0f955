"""
Embedding providers for generating vector representations.

Two interchangeable providers are supported: OpenAI's text-embedding-3
models and Voyage AI's embedding API. Both turn a list of texts into one
vector per text, in order, and split large inputs into provider-sized
batches.
"""

import logging
from abc import ABC, abstractmethod
from typing import Literal

import httpx
from openai import AsyncOpenAI, OpenAIError

from ..errors import ProviderError

logger = logging.getLogger("resonance.store.embeddings")


class EmbeddingProvider(ABC):
    """Abstract interface for embedding generation."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the name of the embedding provider."""
        pass

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Return the model being used."""
        pass

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Return the dimension of embeddings produced."""
        pass

    @property
    @abstractmethod
    def max_input_tokens(self) -> int:
        """Largest input, in tokens, the model accepts. Callers batch by this."""
        pass

    @property
    @abstractmethod
    def max_batch_size(self) -> int:
        """Largest number of texts sent in a single upstream request."""
        pass

    @abstractmethod
    async def _embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed one upstream-sized batch."""
        pass

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """
        Generate embeddings for a list of texts.

        Args:
            texts: Texts to embed

        Returns:
            One vector per input text, in the same order

        Raises:
            ProviderError: If the upstream call fails or returns the wrong
                number of vectors
        """
        if not texts:
            return []

        vectors: list[list[float]] = []
        for start in range(0, len(texts), self.max_batch_size):
            batch = texts[start:start + self.max_batch_size]
            embedded = await self._embed_batch(batch)
            if len(embedded) != len(batch):
                raise ProviderError(
                    f"{self.provider_name} returned {len(embedded)} embeddings "
                    f"for {len(batch)} inputs"
                )
            vectors.extend(embedded)

        logger.debug(
            f"Embedded {len(texts)} texts with {self.provider_name} ({self.model_name})"
        )
        return vectors

    async def close(self) -> None:
        """Release upstream connections. Nothing to release by default."""
        pass


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """
    OpenAI embedding provider using text-embedding-3 models.

    Supports native dimension reduction via the dimensions parameter.

    Models:
    - text-embedding-3-small: default 1536 dimensions
    - text-embedding-3-large: default 3072 dimensions (can be reduced)
    """

    # Default dimensions for each model
    MODEL_DEFAULT_DIMENSIONS = {
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
        "text-embedding-ada-002": 1536,
    }

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        dimensions: int | None = None,
        timeout: float = 30.0,
    ):
        """
        Initialize OpenAI embedding provider.

        Args:
            api_key: OpenAI API key
            model: Model name (text-embedding-3-small or text-embedding-3-large)
            dimensions: Override output dimensions. If None, uses model's default.
            timeout: Request timeout in seconds
        """
        self._api_key = api_key
        self._model = model
        self._timeout = timeout
        self._client: AsyncOpenAI | None = None

        # Determine dimensions
        default_dim = self.MODEL_DEFAULT_DIMENSIONS.get(model, 1536)
        if dimensions is not None:
            if dimensions > default_dim:
                logger.warning(
                    f"Requested dimensions ({dimensions}) exceeds model default ({default_dim}). "
                    f"Using {default_dim}."
                )
                self._dimension = default_dim
                self._requested_dimensions = None
            else:
                self._dimension = dimensions
                self._requested_dimensions = dimensions
        else:
            self._dimension = default_dim
            self._requested_dimensions = None

        logger.info(
            f"OpenAIEmbeddingProvider initialized: model={model}, dimensions={self._dimension}"
        )

    @property
    def provider_name(self) -> str:
        return "OpenAI"

    @property
    def model_name(self) -> str:
        return self._model

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def max_input_tokens(self) -> int:
        return 8191

    @property
    def max_batch_size(self) -> int:
        return 2048

    def _get_client(self) -> AsyncOpenAI:
        """Get or create the async OpenAI client."""
        if self._client is None:
            # Retries are the caller's decision
            self._client = AsyncOpenAI(
                api_key=self._api_key,
                timeout=self._timeout,
                max_retries=0,
            )
        return self._client

    async def _embed_batch(self, texts: list[str]) -> list[list[float]]:
        client = self._get_client()

        kwargs = {
            "model": self._model,
            "input": texts,
        }
        if self._requested_dimensions is not None:
            kwargs["dimensions"] = self._requested_dimensions

        try:
            response = await client.embeddings.create(**kwargs)
        except OpenAIError as e:
            logger.error(f"OpenAI embedding error: {e}")
            raise ProviderError(f"OpenAI embedding request failed: {e}") from e

        # Sort by index to maintain order
        sorted_data = sorted(response.data, key=lambda x: x.index)
        return [list(item.embedding) for item in sorted_data]

    async def close(self) -> None:
        """Close the OpenAI client."""
        if self._client is not None:
            await self._client.close()
            self._client = None


class VoyageEmbeddingProvider(EmbeddingProvider):
    """
    Voyage AI embedding provider.

    Talks to the REST API directly. Voyage distinguishes documents from
    queries through input_type; stored text and query text are both sent as
    documents unless configured otherwise so that a text matches itself.
    """

    API_URL = "https://api.voyageai.com/v1/embeddings"

    MODEL_DEFAULT_DIMENSIONS = {
        "voyage-3": 1024,
        "voyage-3-large": 1024,
        "voyage-3.5": 1024,
        "voyage-3-lite": 512,
        "voyage-3.5-lite": 1024,
        "voyage-code-3": 1024,
    }

    def __init__(
        self,
        api_key: str,
        model: str = "voyage-3",
        input_type: Literal["document", "query"] | None = "document",
        timeout: float = 30.0,
    ):
        self._api_key = api_key
        self._model = model
        self._input_type = input_type
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None
        self._dimension = self.MODEL_DEFAULT_DIMENSIONS.get(model, 1024)
        logger.info(
            f"VoyageEmbeddingProvider initialized: model={model}, dimensions={self._dimension}"
        )

    @property
    def provider_name(self) -> str:
        return "Voyage"

    @property
    def model_name(self) -> str:
        return self._model

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def max_input_tokens(self) -> int:
        return 32000

    @property
    def max_batch_size(self) -> int:
        return 128

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                headers={"Authorization": f"Bearer {self._api_key}"},
            )
        return self._client

    async def _embed_batch(self, texts: list[str]) -> list[list[float]]:
        client = self._get_client()

        payload = {
            "model": self._model,
            "input": texts,
        }
        if self._input_type is not None:
            payload["input_type"] = self._input_type

        try:
            response = await client.post(self.API_URL, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"Voyage embedding request failed: {e}")
            raise ProviderError(f"Voyage embedding request failed: {e}") from e

        if response.status_code == 429:
            raise ProviderError("Voyage rate limit exceeded")
        if response.status_code != 200:
            logger.error(f"Voyage API error {response.status_code}: {response.text}")
            raise ProviderError(
                f"Voyage API error {response.status_code}: {response.text}"
            )

        try:
            data = response.json()["data"]
            sorted_data = sorted(data, key=lambda x: x["index"])
            return [item["embedding"] for item in sorted_data]
        except (ValueError, KeyError, TypeError) as e:
            raise ProviderError(f"Malformed Voyage response: {e}") from e

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None


def create_embedding_provider(
    provider: Literal["openai", "voyage"] = "openai",
    api_key: str = "",
    model: str = "",
    dimensions: int | None = None,
    timeout: float = 30.0,
) -> EmbeddingProvider:
    """
    Factory function to create the appropriate embedding provider.

    Args:
        provider: "openai" or "voyage"
        api_key: API key for the chosen provider
        model: Model name (optional, uses defaults)
        dimensions: Override output dimensions for OpenAI embeddings.
        timeout: Request timeout in seconds

    Returns:
        Configured EmbeddingProvider instance
    """
    if provider == "openai":
        if not api_key:
            raise ValueError("OpenAI API key required for openai embedding provider")
        return OpenAIEmbeddingProvider(
            api_key=api_key,
            model=model or "text-embedding-3-small",
            dimensions=dimensions,
            timeout=timeout,
        )
    elif provider == "voyage":
        if not api_key:
            raise ValueError("Voyage API key required for voyage embedding provider")
        if dimensions is not None:
            logger.warning("Voyage embeddings ignore the dimensions setting")
        return VoyageEmbeddingProvider(
            api_key=api_key,
            model=model or "voyage-3",
            timeout=timeout,
        )
    else:
        raise ValueError(f"Unknown embedding provider: {provider}")
