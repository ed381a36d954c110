"""Azure OpenAI implementation of the semantic provider."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Tuple

from openai import AsyncAzureOpenAI, OpenAIError

from semsearch.config import (
    ApiKeyCredential,
    AppConfig,
    AzureConfig,
    Credential,
    ManagedIdentityCredential,
)
from semsearch.errors import ProviderError
from semsearch.models import TokenUsage
from semsearch.provider.base import (
    EmbedResult,
    Parsed,
    RerankCandidate,
    RerankOutcome,
    SemanticProvider,
    SummarizeResult,
)
from semsearch.provider.prompts import (
    RERANK_SYSTEM_MESSAGE,
    SUMMARIZATION_SYSTEM_MESSAGE,
    PromptsConfig,
    build_summarization_prompt,
)
from semsearch.provider.rerank import build_rerank_prompt, parse_rerank_output

if TYPE_CHECKING:
    from semsearch.embedding.encoder import EmbeddingModel

LOGGER = logging.getLogger(__name__)


def create_azure_client(azure: AzureConfig, credential: Credential) -> AsyncAzureOpenAI:
    """Build the shared async client for the configured credential variant."""
    if isinstance(credential, ApiKeyCredential):
        LOGGER.info("Using Azure OpenAI with API key authentication")
        return AsyncAzureOpenAI(
            api_key=credential.api_key,
            azure_endpoint=azure.endpoint,
            api_version=azure.api_version,
        )
    if isinstance(credential, ManagedIdentityCredential):
        from azure.identity.aio import DefaultAzureCredential, get_bearer_token_provider

        LOGGER.info("Using Azure OpenAI with managed identity authentication")
        token_provider = get_bearer_token_provider(DefaultAzureCredential(), credential.scope)
        return AsyncAzureOpenAI(
            azure_ad_token_provider=token_provider,
            azure_endpoint=azure.endpoint,
            api_version=azure.api_version,
        )
    raise TypeError(f"Unsupported credential type: {type(credential).__name__}")


def _usage(response: Any) -> TokenUsage:
    usage = getattr(response, "usage", None)
    if usage is None:
        return TokenUsage()
    return TokenUsage(
        prompt=getattr(usage, "prompt_tokens", 0) or 0,
        completion=getattr(usage, "completion_tokens", 0) or 0,
        total=getattr(usage, "total_tokens", 0) or 0,
    )


class AzureOpenAIProvider(SemanticProvider):
    """Chat deployment for summaries and reranking, embedding deployment for vectors.

    When a local :class:`EmbeddingModel` is supplied it replaces the embedding
    deployment; summaries and reranking still go through the chat deployment.
    """

    def __init__(
        self,
        client: AsyncAzureOpenAI,
        azure: AzureConfig,
        *,
        prompts: PromptsConfig | None = None,
        embedder: Optional["EmbeddingModel"] = None,
    ) -> None:
        self.client = client
        self.azure = azure
        self.prompts = prompts or PromptsConfig()
        self.embedder = embedder

    @classmethod
    def from_config(cls, config: AppConfig) -> "AzureOpenAIProvider":
        config.require_endpoint()
        embedder = None
        if config.embedding_backend == "local":
            from semsearch.embedding.encoder import EmbeddingConfig, EmbeddingModel

            embedder = EmbeddingModel(EmbeddingConfig(model_name=config.local_model))
        client = create_azure_client(config.azure, config.credential)
        return cls(client, config.azure, prompts=config.prompts, embedder=embedder)

    async def _chat(self, operation: str, messages: List[Dict[str, str]]) -> Tuple[str, TokenUsage]:
        deployment = self.azure.rerank_deployment
        try:
            response = await self.client.chat.completions.create(
                model=deployment,
                temperature=0,
                messages=messages,  # type: ignore[arg-type]
            )
        except OpenAIError as exc:
            LOGGER.error("Error calling Azure OpenAI chat model '%s': %s", deployment, exc)
            raise ProviderError(operation, str(exc)) from exc

        choices = response.choices or []
        content = choices[0].message.content if choices and choices[0].message else None
        return (content or "").strip(), _usage(response)

    async def summarize(self, text: str, max_chars: int) -> SummarizeResult:
        truncated = len(text) > max_chars
        prompt = build_summarization_prompt(self.prompts.summarization, text[:max_chars])
        summary, usage = await self._chat(
            "summarize",
            [
                {"role": "system", "content": SUMMARIZATION_SYSTEM_MESSAGE},
                {"role": "user", "content": prompt},
            ],
        )
        if not summary:
            raise ProviderError("summarize", "model returned an empty summary")
        return SummarizeResult(summary=summary, truncated=truncated, usage=usage)

    async def embed(self, text: str) -> EmbedResult:
        if self.embedder is not None:
            vector = await asyncio.to_thread(self.embedder.embed_query, text)
            return EmbedResult(vector=[float(x) for x in vector])

        deployment = self.azure.embedding_deployment
        try:
            response = await self.client.embeddings.create(model=deployment, input=text)
        except OpenAIError as exc:
            LOGGER.error("Error calling Azure OpenAI embedding model '%s': %s", deployment, exc)
            raise ProviderError("embed", str(exc)) from exc

        if not response.data or not response.data[0].embedding:
            raise ProviderError("embed", "response contained no embedding")
        usage = _usage(response)
        return EmbedResult(
            vector=list(response.data[0].embedding),
            usage=TokenUsage(prompt=usage.prompt, completion=0, total=usage.total),
        )

    async def rerank(
        self, query: str, candidates: Sequence[RerankCandidate], top_k: int
    ) -> RerankOutcome:
        if not candidates:
            return Parsed(ranking=[])
        prompt = build_rerank_prompt(self.prompts.rerank, query, candidates)
        content, _ = await self._chat(
            "rerank",
            [
                {"role": "system", "content": RERANK_SYSTEM_MESSAGE},
                {"role": "user", "content": prompt},
            ],
        )
        return parse_rerank_output(content or "[]", candidates, top_k)

    async def aclose(self) -> None:
        await self.client.close()
