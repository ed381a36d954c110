"""Tests for the Azure OpenAI provider with a mocked client."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import numpy as np
import pytest
from openai import OpenAIError

from semsearch.config import (
    ApiKeyCredential,
    AppConfig,
    AzureConfig,
    ManagedIdentityCredential,
)
from semsearch.errors import ConfigurationError, ProviderError
from semsearch.models import TokenUsage
from semsearch.provider.azure import AzureOpenAIProvider, create_azure_client
from semsearch.provider.base import FallbackUsed, Parsed, RankedItem, RerankCandidate
from semsearch.provider.prompts import PromptsConfig


AZURE = AzureConfig(
    endpoint="https://example.openai.azure.com",
    embedding_deployment="embed-deploy",
    rerank_deployment="chat-deploy",
)


def _chat_response(content, usage=(12, 4, 16)):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(prompt_tokens=usage[0], completion_tokens=usage[1], total_tokens=usage[2]),
    )


def _embedding_response(vector):
    data = [SimpleNamespace(embedding=vector)] if vector is not None else []
    return SimpleNamespace(data=data, usage=SimpleNamespace(prompt_tokens=5, total_tokens=5))


@pytest.fixture
def client():
    mock = MagicMock()
    mock.chat.completions.create = AsyncMock()
    mock.embeddings.create = AsyncMock()
    mock.close = AsyncMock()
    return mock


@pytest.fixture
def azure_provider(client):
    return AzureOpenAIProvider(client, AZURE)


class TestCreateAzureClient:
    @patch("semsearch.provider.azure.AsyncAzureOpenAI")
    def test_api_key(self, mock_client_class: MagicMock) -> None:
        create_azure_client(AZURE, ApiKeyCredential("secret"))

        mock_client_class.assert_called_once_with(
            api_key="secret",
            azure_endpoint="https://example.openai.azure.com",
            api_version=AZURE.api_version,
        )

    @patch("azure.identity.aio.get_bearer_token_provider")
    @patch("azure.identity.aio.DefaultAzureCredential")
    @patch("semsearch.provider.azure.AsyncAzureOpenAI")
    def test_managed_identity(
        self,
        mock_client_class: MagicMock,
        mock_credential_class: MagicMock,
        mock_token_provider: MagicMock,
    ) -> None:
        create_azure_client(AZURE, ManagedIdentityCredential())

        mock_token_provider.assert_called_once_with(
            mock_credential_class.return_value, "https://cognitiveservices.azure.com/.default"
        )
        kwargs = mock_client_class.call_args[1]
        assert kwargs["azure_ad_token_provider"] is mock_token_provider.return_value
        assert "api_key" not in kwargs

    def test_unsupported_credential(self) -> None:
        with pytest.raises(TypeError):
            create_azure_client(AZURE, "not-a-credential")  # type: ignore[arg-type]


class TestFromConfig:
    def test_requires_endpoint(self) -> None:
        with pytest.raises(ConfigurationError):
            AzureOpenAIProvider.from_config(AppConfig())

    @patch("semsearch.provider.azure.create_azure_client")
    def test_uses_config(self, mock_create: MagicMock) -> None:
        prompts = PromptsConfig(summarization="Be brief.")
        config = AppConfig(azure=AZURE, credential=ApiKeyCredential("k"), prompts=prompts)

        provider = AzureOpenAIProvider.from_config(config)

        mock_create.assert_called_once_with(AZURE, config.credential)
        assert provider.client is mock_create.return_value
        assert provider.prompts.summarization == "Be brief."
        assert provider.embedder is None


class TestSummarize:
    def test_success(self, azure_provider, client) -> None:
        client.chat.completions.create.return_value = _chat_response("  A short summary.  ")

        result = asyncio.run(azure_provider.summarize("Some document text", 1000))

        assert result.summary == "A short summary."
        assert result.truncated is False
        assert result.usage == TokenUsage(12, 4, 16)
        kwargs = client.chat.completions.create.call_args[1]
        assert kwargs["model"] == "chat-deploy"
        assert kwargs["temperature"] == 0
        system, user = kwargs["messages"]
        assert system["role"] == "system"
        assert "TEXT BEGIN\nSome document text\nTEXT END" in user["content"]

    def test_input_truncated(self, azure_provider, client) -> None:
        client.chat.completions.create.return_value = _chat_response("Summary")

        result = asyncio.run(azure_provider.summarize("abcdefghij", 4))

        assert result.truncated is True
        user = client.chat.completions.create.call_args[1]["messages"][1]["content"]
        assert "TEXT BEGIN\nabcd\nTEXT END" in user

    def test_empty_summary(self, azure_provider, client) -> None:
        client.chat.completions.create.return_value = _chat_response("")

        with pytest.raises(ProviderError, match="summarize"):
            asyncio.run(azure_provider.summarize("text", 100))

    def test_api_error(self, azure_provider, client) -> None:
        client.chat.completions.create.side_effect = OpenAIError("rate limited")

        with pytest.raises(ProviderError) as excinfo:
            asyncio.run(azure_provider.summarize("text", 100))
        assert excinfo.value.operation == "summarize"
        assert "rate limited" in str(excinfo.value)


class TestEmbed:
    def test_success(self, azure_provider, client) -> None:
        client.embeddings.create.return_value = _embedding_response([0.1, 0.2, 0.3])

        result = asyncio.run(azure_provider.embed("hello"))

        assert result.vector == [0.1, 0.2, 0.3]
        assert result.usage == TokenUsage(5, 0, 5)
        client.embeddings.create.assert_awaited_once_with(model="embed-deploy", input="hello")

    def test_empty_response(self, azure_provider, client) -> None:
        client.embeddings.create.return_value = _embedding_response(None)

        with pytest.raises(ProviderError, match="embed"):
            asyncio.run(azure_provider.embed("hello"))

    def test_api_error(self, azure_provider, client) -> None:
        client.embeddings.create.side_effect = OpenAIError("deployment not found")

        with pytest.raises(ProviderError) as excinfo:
            asyncio.run(azure_provider.embed("hello"))
        assert excinfo.value.operation == "embed"

    def test_local_embedder(self, client) -> None:
        embedder = MagicMock()
        embedder.embed_query.return_value = np.array([0.5, 0.5], dtype="float32")
        provider = AzureOpenAIProvider(client, AZURE, embedder=embedder)

        result = asyncio.run(provider.embed("hello"))

        assert result.vector == [0.5, 0.5]
        embedder.embed_query.assert_called_once_with("hello")
        client.embeddings.create.assert_not_called()


class TestRerank:
    @pytest.fixture
    def candidates(self):
        return [RerankCandidate("a", "about cats"), RerankCandidate("b", "about dogs")]

    def test_parsed(self, azure_provider, client, candidates) -> None:
        client.chat.completions.create.return_value = _chat_response(
            '[{"id": "b", "score": 88}, {"id": "a", "score": 12}]'
        )

        outcome = asyncio.run(azure_provider.rerank("dogs", candidates, 5))

        assert outcome == Parsed(ranking=[RankedItem("b", 88.0), RankedItem("a", 12.0)])
        user = client.chat.completions.create.call_args[1]["messages"][1]["content"]
        assert "Query: dogs" in user
        assert "ID: a\nSUMMARY: about cats" in user

    def test_fallback(self, azure_provider, client, candidates) -> None:
        client.chat.completions.create.return_value = _chat_response("Both are relevant.")

        outcome = asyncio.run(azure_provider.rerank("dogs", candidates, 5))

        assert isinstance(outcome, FallbackUsed)
        assert [item.id for item in outcome.ranking] == ["a", "b"]

    def test_no_candidates(self, azure_provider, client) -> None:
        outcome = asyncio.run(azure_provider.rerank("dogs", [], 5))

        assert outcome == Parsed(ranking=[])
        client.chat.completions.create.assert_not_called()

    def test_api_error(self, azure_provider, client, candidates) -> None:
        client.chat.completions.create.side_effect = OpenAIError("timeout")

        with pytest.raises(ProviderError) as excinfo:
            asyncio.run(azure_provider.rerank("dogs", candidates, 5))
        assert excinfo.value.operation == "rerank"


def test_aclose(azure_provider, client) -> None:
    asyncio.run(azure_provider.aclose())
    client.close.assert_awaited_once()
