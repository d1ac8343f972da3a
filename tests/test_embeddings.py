"""
Tests for postgen/services/embeddings.py - OpenAI embeddings with dimension checks.
"""
from unittest.mock import AsyncMock, MagicMock

import pytest

from postgen.errors import EmptyContent, ExternalServiceError
from postgen.services.embeddings import OpenAIEmbeddingClient, build_embedding_client


def _embedding_response(vector):
    item = MagicMock()
    item.embedding = vector
    response = MagicMock()
    response.data = [item]
    return response


def _client(vector=None, side_effect=None, dimension=3):
    mock_client = MagicMock()
    mock_client.embeddings.create = AsyncMock(
        return_value=_embedding_response(vector or [0.1, 0.2, 0.3]),
        side_effect=side_effect,
    )
    return OpenAIEmbeddingClient(api_key="sk-test", dimension=dimension, client=mock_client), mock_client


class TestOpenAIEmbeddingClient:
    async def test_returns_vector(self):
        client, mock_client = _client([0.1, 0.2, 0.3])
        assert await client.generate_embedding("Fresh crab") == [0.1, 0.2, 0.3]
        mock_client.embeddings.create.assert_awaited_once_with(
            model="text-embedding-3-small", input="Fresh crab",
        )

    async def test_blank_text_rejected_without_api_call(self):
        client, mock_client = _client()
        with pytest.raises(EmptyContent):
            await client.generate_embedding("   ")
        mock_client.embeddings.create.assert_not_awaited()

    async def test_dimension_mismatch_raises(self):
        client, _ = _client([0.1, 0.2], dimension=3)
        with pytest.raises(ExternalServiceError, match="dimension mismatch"):
            await client.generate_embedding("Fresh crab")

    async def test_api_failure_raises(self):
        client, _ = _client(side_effect=RuntimeError("rate limited"))
        with pytest.raises(ExternalServiceError) as exc_info:
            await client.generate_embedding("Fresh crab")
        assert exc_info.value.service == "embedding"


class TestBuildEmbeddingClient:
    def test_no_key_returns_none(self, test_settings):
        settings = test_settings.model_copy(update={"openai_api_key": ""})
        assert build_embedding_client(settings) is None

    def test_uses_configured_dimension(self, test_settings):
        settings = test_settings.model_copy(update={"openai_api_key": "sk-test", "embedding_dim": 768})
        client = build_embedding_client(settings)
        assert client.dimension == 768
