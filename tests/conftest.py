"""Shared fixtures: an in-process semantic provider and temporary stores."""

from __future__ import annotations

import asyncio
import hashlib
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

import pytest

from semsearch.errors import ProviderError
from semsearch.index.storage import SQLiteVectorStore
from semsearch.models import FileMetadata, FileRecord, TokenUsage
from semsearch.provider.base import (
    EmbedResult,
    Parsed,
    RankedItem,
    RerankCandidate,
    RerankOutcome,
    SemanticProvider,
    SummarizeResult,
)
from semsearch.provider.rerank import parse_rerank_output


class FakeProvider(SemanticProvider):
    """Deterministic provider that records every call.

    ``vectors`` maps a keyword to the embedding returned for any text that
    contains it; other texts get a hash-derived vector. ``fail_on`` makes
    summarize raise for texts containing one of the markers. ``rerank_scores``
    assigns scores by candidate id (default 50), unless ``rerank_output`` is set,
    in which case that raw string goes through the real parser. ``delays`` maps a
    marker to extra event loop turns that summarize waits for matching texts.
    """

    def __init__(
        self,
        *,
        dimension: int = 4,
        vectors: Optional[Dict[str, List[float]]] = None,
        fail_on: Sequence[str] = (),
        fail_embed: bool = False,
        rerank_scores: Optional[Dict[str, float]] = None,
        rerank_output: Optional[str] = None,
        delays: Optional[Dict[str, int]] = None,
    ) -> None:
        self.dimension = dimension
        self.vectors = vectors or {}
        self.fail_on = tuple(fail_on)
        self.fail_embed = fail_embed
        self.rerank_scores = rerank_scores or {}
        self.rerank_output = rerank_output
        self.delays = delays or {}
        self.calls: Dict[str, list] = {"summarize": [], "embed": [], "rerank": []}
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    def _hash_vector(self, text: str) -> List[float]:
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        return [(digest[i] + 1) / 256.0 for i in range(self.dimension)]

    async def summarize(self, text: str, max_chars: int) -> SummarizeResult:
        self.calls["summarize"].append(text)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            for marker, turns in self.delays.items():
                if marker in text:
                    for _ in range(turns):
                        await asyncio.sleep(0)
            for marker in self.fail_on:
                if marker in text:
                    raise ProviderError("summarize", f"refused text containing {marker!r}")
            return SummarizeResult(
                summary=f"Summary of: {text[:max_chars][:80]}",
                truncated=len(text) > max_chars,
                usage=TokenUsage(prompt=10, completion=5, total=15),
            )
        finally:
            self.in_flight -= 1

    async def embed(self, text: str) -> EmbedResult:
        self.calls["embed"].append(text)
        if self.fail_embed:
            raise ProviderError("embed", "embedding deployment unavailable")
        for keyword, vector in self.vectors.items():
            if keyword in text:
                return EmbedResult(vector=list(vector), usage=TokenUsage(prompt=3, total=3))
        return EmbedResult(vector=self._hash_vector(text), usage=TokenUsage(prompt=3, total=3))

    async def rerank(
        self, query: str, candidates: Sequence[RerankCandidate], top_k: int
    ) -> RerankOutcome:
        self.calls["rerank"].append((query, list(candidates), top_k))
        if self.rerank_output is not None:
            return parse_rerank_output(self.rerank_output, candidates, top_k)
        ranking = [
            RankedItem(id=c.id, score=float(self.rerank_scores.get(c.id, 50))) for c in candidates
        ]
        ranking.sort(key=lambda item: item.score, reverse=True)
        return Parsed(ranking=ranking[:top_k])

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def temp_store(tmp_path: Path):
    """Create a temporary vector store for testing."""
    store = SQLiteVectorStore(tmp_path / "index.db")
    yield store
    store.close()


@pytest.fixture
def make_record() -> Callable[..., FileRecord]:
    """Build a FileRecord with sensible metadata for the given id and embedding."""

    def _make(
        record_id: str,
        embedding: Optional[List[float]],
        *,
        path: Optional[str] = None,
        summary: Optional[str] = None,
    ) -> FileRecord:
        file_path = path or f"/data/{record_id}.md"
        metadata = FileMetadata(
            id=record_id,
            path=file_path,
            filename=Path(file_path).name,
            size=42,
            created_at="2024-01-01T00:00:00+00:00",
            modified_at="2024-01-02T00:00:00+00:00",
        )
        return FileRecord(
            id=record_id,
            metadata=metadata,
            summary=summary or f"Summary for {record_id}",
            embedding=embedding,
        )

    return _make


@pytest.fixture
def isolated_env(monkeypatch, tmp_path: Path) -> Path:
    """Point the config directory at a temp dir and clear Azure variables."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
    monkeypatch.setenv("APPDATA", str(home / "AppData"))
    for name in (
        "AZURE_OPENAI_ENDPOINT",
        "AZURE_OPENAI_API_KEY",
        "AZURE_OPENAI_API_VERSION",
        "AZURE_OPENAI_EMBED_DEPLOYMENT",
        "AZURE_OPENAI_RERANK_DEPLOYMENT",
        "SEMSEARCH_DEFAULT_DB",
    ):
        # setenv first so the variable is restored even if code under test sets it.
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    return home
