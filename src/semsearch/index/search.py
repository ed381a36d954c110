"""Semantic search: vector retrieval followed by provider reranking."""

from __future__ import annotations

import logging
from typing import Dict, List, Sequence

from semsearch.index.storage import SQLiteVectorStore
from semsearch.models import Candidate, SearchResult
from semsearch.provider.base import (
    FallbackUsed,
    RankedItem,
    RerankCandidate,
    SemanticProvider,
)
from semsearch.utils.vectors import normalize

LOGGER = logging.getLogger(__name__)

DEFAULT_TOP_K = 5
CANDIDATE_MULTIPLIER = 3
MIN_CANDIDATES = 10


def candidate_limit(top_k: int, multiplier: int = CANDIDATE_MULTIPLIER, floor: int = MIN_CANDIDATES) -> int:
    """Number of nearest neighbours to fetch so the reranker has material to reorder."""
    return max(top_k * multiplier, floor)


def filter_by_similarity(candidates: Sequence[Candidate], min_similarity: float) -> List[Candidate]:
    return [c for c in candidates if c.similarity >= min_similarity]


def fuse_ranking(
    ranking: Sequence[RankedItem],
    candidates: Sequence[Candidate],
    *,
    top_k: int,
    min_score: float,
) -> List[SearchResult]:
    """Join reranked scores back onto candidates.

    Ids the reranker invented are dropped, repeated ids keep their first
    score. Results are ordered by descending score regardless of the order the
    ranking arrived in, cut to ``top_k`` and then filtered by ``min_score``.
    """
    by_id: Dict[str, Candidate] = {c.record.id: c for c in candidates}
    joined: List[SearchResult] = []
    seen: set[str] = set()
    for item in ranking:
        candidate = by_id.get(item.id)
        if candidate is None or item.id in seen:
            continue
        seen.add(item.id)
        record = candidate.record
        joined.append(
            SearchResult(
                id=record.id,
                score=float(item.score),
                similarity=candidate.similarity,
                metadata=record.metadata,
                summary=record.summary,
            )
        )

    joined.sort(key=lambda result: result.score, reverse=True)
    return [result for result in joined[: max(top_k, 0)] if result.score >= min_score]


class Searcher:
    """High-level API to query the vector store."""

    def __init__(
        self,
        provider: SemanticProvider,
        store: SQLiteVectorStore,
        *,
        candidate_multiplier: int = CANDIDATE_MULTIPLIER,
        min_candidates: int = MIN_CANDIDATES,
    ) -> None:
        self.provider = provider
        self.store = store
        self.candidate_multiplier = candidate_multiplier
        self.min_candidates = min_candidates

    async def search(
        self,
        query: str,
        *,
        top_k: int = DEFAULT_TOP_K,
        min_similarity: float = 0.0,
        min_score: float = 0.0,
    ) -> List[SearchResult]:
        """Return at most ``top_k`` results ordered by descending final score.

        Provider and storage errors propagate to the caller. Thresholds that
        eliminate every candidate give an empty list.
        """
        embedded = await self.provider.embed(query)
        query_vector = normalize(embedded.vector)

        limit = candidate_limit(top_k, self.candidate_multiplier, self.min_candidates)
        candidates = self.store.retrieve_by_embedding(query_vector, limit)
        candidates = filter_by_similarity(candidates, min_similarity)
        if not candidates:
            LOGGER.debug("No candidates above similarity %.3f for %r", min_similarity, query)
            return []

        outcome = await self.provider.rerank(
            query,
            [RerankCandidate(id=c.record.id, summary=c.record.summary) for c in candidates],
            top_k,
        )
        if isinstance(outcome, FallbackUsed):
            LOGGER.warning("Rerank fallback used for %r: %s", query, outcome.reason)

        results = fuse_ranking(outcome.ranking, candidates, top_k=top_k, min_score=min_score)
        LOGGER.debug(
            "Query %r: %d candidates, %d reranked, %d results",
            query,
            len(candidates),
            len(outcome.ranking),
            len(results),
        )
        return results
