"""Contract for the semantic provider used by indexing and search."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Sequence, Union

from semsearch.models import TokenUsage


@dataclass(slots=True, frozen=True)
class SummarizeResult:
    summary: str
    truncated: bool
    usage: TokenUsage = field(default_factory=TokenUsage)


@dataclass(slots=True, frozen=True)
class EmbedResult:
    """Raw (not yet normalized) embedding vector."""

    vector: List[float]
    usage: TokenUsage = field(default_factory=TokenUsage)


@dataclass(slots=True, frozen=True)
class RerankCandidate:
    id: str
    summary: str


@dataclass(slots=True, frozen=True)
class RankedItem:
    id: str
    score: float


@dataclass(slots=True, frozen=True)
class Parsed:
    """The reranker produced a valid ranking."""

    ranking: List[RankedItem]


@dataclass(slots=True, frozen=True)
class FallbackUsed:
    """The reranker output was unusable; ``ranking`` is the input-order fallback."""

    ranking: List[RankedItem]
    reason: str


RerankOutcome = Union[Parsed, FallbackUsed]


class SemanticProvider(ABC):
    """Summarize, embed and rerank text.

    Implementations must be safe to share between concurrently running
    indexing tasks. Failures surface as :class:`~semsearch.errors.ProviderError`;
    nothing is retried.
    """

    @abstractmethod
    async def summarize(self, text: str, max_chars: int) -> SummarizeResult:
        """Write a short factual summary of ``text`` (at most ``max_chars`` of it is read)."""

    @abstractmethod
    async def embed(self, text: str) -> EmbedResult:
        """Embed ``text`` into a fixed-dimension vector."""

    @abstractmethod
    async def rerank(
        self, query: str, candidates: Sequence[RerankCandidate], top_k: int
    ) -> RerankOutcome:
        """Score candidates 0-100 for relevance to ``query``."""

    async def aclose(self) -> None:
        """Release network resources held by the provider."""
