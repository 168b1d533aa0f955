"""
Unit tests for resonance/store/embeddings.py

Tests the OpenAI provider with a mocked AsyncOpenAI client and the Voyage
provider against an httpx mock transport.
"""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from openai import OpenAIError

from resonance.errors import ProviderError
from resonance.store.embeddings import (
    EmbeddingProvider,
    OpenAIEmbeddingProvider,
    VoyageEmbeddingProvider,
    create_embedding_provider,
)
from tests.fixtures import FakeEmbeddingProvider


@pytest.fixture
def mock_openai():
    """Mock AsyncOpenAI for embedding tests."""
    # Patch at the module where it's imported, not where it's defined
    with patch("resonance.store.embeddings.AsyncOpenAI") as mock_client_class:
        mock_client = MagicMock()

        async def create(**kwargs):
            # Return items out of order to check that index order is restored
            data = [
                SimpleNamespace(index=i, embedding=[float(i), 1.0])
                for i in range(len(kwargs["input"]))
            ]
            return SimpleNamespace(data=list(reversed(data)))

        mock_client.embeddings.create = AsyncMock(side_effect=create)
        mock_client_class.return_value = mock_client
        yield mock_client_class


def voyage_transport(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestEmbeddingProviderBatching:
    """Tests for the shared embed() batching."""

    @pytest.mark.asyncio
    async def test_empty_input(self):
        provider = FakeEmbeddingProvider()

        assert await provider.embed([]) == []
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_splits_by_batch_size(self):
        """Test that large inputs are split into provider-sized requests."""
        provider = FakeEmbeddingProvider(max_batch_size=2)

        vectors = await provider.embed(["a", "b", "c", "d", "e"])

        assert len(vectors) == 5
        assert provider.calls == [["a", "b"], ["c", "d"], ["e"]]

    @pytest.mark.asyncio
    async def test_mismatched_count_raises(self):
        """Test that a short response is a ProviderError."""

        class ShortProvider(FakeEmbeddingProvider):
            async def _embed_batch(self, texts):
                return [[1.0]] * (len(texts) - 1)

        with pytest.raises(ProviderError, match="2 embeddings for 3 inputs"):
            await ShortProvider().embed(["a", "b", "c"])

    def test_is_abstract(self):
        with pytest.raises(TypeError):
            EmbeddingProvider()

    @pytest.mark.asyncio
    async def test_default_close_is_noop(self):
        """Test that a provider without connections still embeds after close."""
        provider = FakeEmbeddingProvider()

        await provider.close()

        assert len(await provider.embed(["a"])) == 1


class TestOpenAIEmbeddingProvider:
    """Tests for OpenAIEmbeddingProvider."""

    def test_init_defaults(self):
        provider = OpenAIEmbeddingProvider(api_key="test-key")

        assert provider.model_name == "text-embedding-3-small"
        assert provider.dimension == 1536
        assert provider.max_input_tokens == 8191
        assert provider._client is None  # Lazy loaded

    def test_large_model_dimensions(self):
        provider = OpenAIEmbeddingProvider(api_key="test-key", model="text-embedding-3-large")
        assert provider.dimension == 3072

    def test_reduced_dimensions(self):
        provider = OpenAIEmbeddingProvider(
            api_key="test-key", model="text-embedding-3-large", dimensions=1024
        )
        assert provider.dimension == 1024

    def test_dimensions_capped_at_model_default(self):
        provider = OpenAIEmbeddingProvider(api_key="test-key", dimensions=4096)
        assert provider.dimension == 1536
        assert provider._requested_dimensions is None

    def test_get_client_without_retries(self, mock_openai):
        """Test that the client is built once and never retries on its own."""
        provider = OpenAIEmbeddingProvider(api_key="test-key", timeout=12.0)

        client1 = provider._get_client()
        client2 = provider._get_client()

        assert client1 is client2
        mock_openai.assert_called_once_with(api_key="test-key", timeout=12.0, max_retries=0)

    @pytest.mark.asyncio
    async def test_embed_restores_order(self, mock_openai):
        provider = OpenAIEmbeddingProvider(api_key="test-key")

        vectors = await provider.embed(["zero", "one", "two"])

        assert vectors == [[0.0, 1.0], [1.0, 1.0], [2.0, 1.0]]

    @pytest.mark.asyncio
    async def test_embed_passes_dimensions(self, mock_openai):
        provider = OpenAIEmbeddingProvider(api_key="test-key", dimensions=256)

        await provider.embed(["hello"])

        call_kwargs = mock_openai.return_value.embeddings.create.call_args.kwargs
        assert call_kwargs["dimensions"] == 256
        assert call_kwargs["input"] == ["hello"]

    @pytest.mark.asyncio
    async def test_embed_omits_default_dimensions(self, mock_openai):
        provider = OpenAIEmbeddingProvider(api_key="test-key")

        await provider.embed(["hello"])

        call_kwargs = mock_openai.return_value.embeddings.create.call_args.kwargs
        assert "dimensions" not in call_kwargs

    @pytest.mark.asyncio
    async def test_api_error_becomes_provider_error(self, mock_openai):
        mock_openai.return_value.embeddings.create = AsyncMock(
            side_effect=OpenAIError("rate limited")
        )
        provider = OpenAIEmbeddingProvider(api_key="test-key")

        with pytest.raises(ProviderError, match="rate limited"):
            await provider.embed(["hello"])

    @pytest.mark.asyncio
    async def test_close_releases_client(self, mock_openai):
        mock_openai.return_value.close = AsyncMock()
        provider = OpenAIEmbeddingProvider(api_key="test-key")
        provider._get_client()

        await provider.close()

        mock_openai.return_value.close.assert_awaited_once()
        assert provider._client is None

    @pytest.mark.asyncio
    async def test_close_without_client(self, mock_openai):
        """Test that closing an unused provider is harmless."""
        provider = OpenAIEmbeddingProvider(api_key="test-key")

        await provider.close()

        mock_openai.assert_not_called()


class TestVoyageEmbeddingProvider:
    """Tests for VoyageEmbeddingProvider."""

    def test_init_defaults(self):
        provider = VoyageEmbeddingProvider(api_key="test-key")

        assert provider.model_name == "voyage-3"
        assert provider.dimension == 1024
        assert provider.max_input_tokens == 32000
        assert provider.max_batch_size == 128

    @pytest.mark.asyncio
    async def test_embed_sends_request(self):
        """Test the request body and response parsing."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "data": [
                        {"index": 1, "embedding": [0.0, 1.0]},
                        {"index": 0, "embedding": [1.0, 0.0]},
                    ]
                },
            )

        provider = VoyageEmbeddingProvider(api_key="test-key")
        provider._client = voyage_transport(handler)

        vectors = await provider.embed(["first", "second"])

        assert vectors == [[1.0, 0.0], [0.0, 1.0]]
        assert seen["url"] == VoyageEmbeddingProvider.API_URL
        assert seen["body"] == {
            "model": "voyage-3",
            "input": ["first", "second"],
            "input_type": "document",
        }
        await provider.close()

    @pytest.mark.asyncio
    async def test_rate_limit(self):
        provider = VoyageEmbeddingProvider(api_key="test-key")
        provider._client = voyage_transport(lambda request: httpx.Response(429))

        with pytest.raises(ProviderError, match="rate limit"):
            await provider.embed(["hello"])

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        provider = VoyageEmbeddingProvider(api_key="test-key")
        provider._client = voyage_transport(
            lambda request: httpx.Response(500, text="upstream exploded")
        )

        with pytest.raises(ProviderError, match="500"):
            await provider.embed(["hello"])

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        provider = VoyageEmbeddingProvider(api_key="test-key")
        provider._client = voyage_transport(handler)

        with pytest.raises(ProviderError, match="connection refused"):
            await provider.embed(["hello"])

    @pytest.mark.asyncio
    async def test_malformed_response(self):
        provider = VoyageEmbeddingProvider(api_key="test-key")
        provider._client = voyage_transport(
            lambda request: httpx.Response(200, json={"unexpected": True})
        )

        with pytest.raises(ProviderError, match="Malformed"):
            await provider.embed(["hello"])

    def test_get_client_sets_auth_header(self):
        provider = VoyageEmbeddingProvider(api_key="secret")

        client = provider._get_client()

        assert client.headers["Authorization"] == "Bearer secret"
        assert provider._get_client() is client


class TestCreateEmbeddingProvider:
    """Tests for the create_embedding_provider factory."""

    def test_openai(self):
        provider = create_embedding_provider("openai", api_key="key")
        assert isinstance(provider, OpenAIEmbeddingProvider)

    def test_voyage(self):
        provider = create_embedding_provider("voyage", api_key="key", model="voyage-3-lite")
        assert isinstance(provider, VoyageEmbeddingProvider)
        assert provider.dimension == 512

    @pytest.mark.parametrize("name", ["openai", "voyage"])
    def test_requires_key(self, name):
        with pytest.raises(ValueError, match="API key"):
            create_embedding_provider(name, api_key="")

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown embedding provider"):
            create_embedding_provider("cohere", api_key="key")
