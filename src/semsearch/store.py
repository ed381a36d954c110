"""Public entry point combining the vector store, indexer and searcher."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from semsearch.config import AppConfig
from semsearch.index.indexer import DEFAULT_CONCURRENCY, DEFAULT_MAX_CHARS, Indexer
from semsearch.index.progress import IndexStats, ProgressCallbacks
from semsearch.index.search import DEFAULT_TOP_K, Searcher
from semsearch.index.storage import SQLiteVectorStore
from semsearch.models import FileRecord, FileUsage, SearchResult
from semsearch.provider.base import SemanticProvider

LOGGER = logging.getLogger(__name__)


def format_size(num_bytes: int) -> str:
    size = float(num_bytes)
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            break
        size /= 1024
    return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"


@dataclass(slots=True)
class StoreStats:
    total_documents: int
    vector_count: int
    vector_index_coverage: int
    has_vector_index: bool
    dimension: Optional[int]
    database_size_bytes: int
    database_size: str
    db_path: str
    endpoint: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def collect_stats(db: SQLiteVectorStore, *, endpoint: str = "") -> StoreStats:
    """Document count, vector coverage and on-disk size of a store."""
    total = db.count()
    vectors = db.vector_count()
    size = sum(
        candidate.stat().st_size
        for candidate in (db.db_path, Path(f"{db.db_path}-wal"))
        if candidate.exists()
    )
    return StoreStats(
        total_documents=total,
        vector_count=vectors,
        vector_index_coverage=round(vectors / total * 100) if total else 0,
        has_vector_index=db.has_vector_index(),
        dimension=db.dimension,
        database_size_bytes=size,
        database_size=format_size(size),
        db_path=str(db.db_path),
        endpoint=endpoint,
    )


class SemanticStore:
    """Index files and answer queries against one SQLite database.

    The provider is injected and shared by every concurrent indexing task;
    :meth:`from_config` builds the Azure OpenAI provider from configuration.
    """

    def __init__(
        self,
        store: SQLiteVectorStore,
        provider: SemanticProvider,
        *,
        max_chars: int = DEFAULT_MAX_CHARS,
        concurrency: int = DEFAULT_CONCURRENCY,
        candidate_multiplier: int = 3,
        min_candidates: int = 10,
        endpoint: str = "",
    ) -> None:
        self.db = store
        self.provider = provider
        self.endpoint = endpoint
        self.indexer = Indexer(provider, store, max_chars=max_chars, concurrency=concurrency)
        self.searcher = Searcher(
            provider,
            store,
            candidate_multiplier=candidate_multiplier,
            min_candidates=min_candidates,
        )

    @classmethod
    def from_config(cls, config: AppConfig, provider: SemanticProvider | None = None) -> "SemanticStore":
        endpoint = config.require_endpoint()
        if provider is None:
            from semsearch.provider.azure import AzureOpenAIProvider

            provider = AzureOpenAIProvider.from_config(config)
        db_path = config.resolve_db_path(Path.cwd())
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return cls(
            SQLiteVectorStore(db_path),
            provider,
            max_chars=config.max_chars,
            concurrency=config.concurrency,
            candidate_multiplier=config.candidate_multiplier,
            min_candidates=config.min_candidates,
            endpoint=endpoint,
        )

    async def index_path(
        self,
        path: Path,
        *,
        concurrency: int | None = None,
        force: bool = False,
        callbacks: ProgressCallbacks | None = None,
    ) -> IndexStats:
        return await self.indexer.index(
            [Path(path)], force=force, concurrency=concurrency, callbacks=callbacks
        )

    async def index_file(self, path: Path) -> FileUsage:
        return await self.indexer.index_file(Path(path))

    async def search(
        self,
        query: str,
        *,
        top_k: int = DEFAULT_TOP_K,
        min_similarity: float = 0.0,
        min_score: float = 0.0,
    ) -> List[SearchResult]:
        return await self.searcher.search(
            query, top_k=top_k, min_similarity=min_similarity, min_score=min_score
        )

    def info(self, record_id: str) -> FileRecord | None:
        return self.db.get_by_id(record_id)

    def count(self) -> int:
        return self.db.count()

    def vector_count(self) -> int:
        return self.db.vector_count()

    def has_vector_index(self) -> bool:
        return self.db.has_vector_index()

    def get_stats(self) -> StoreStats:
        return collect_stats(self.db, endpoint=self.endpoint)

    def close(self) -> None:
        self.db.close()

    async def aclose(self) -> None:
        await self.provider.aclose()
        self.db.close()

    def __enter__(self) -> "SemanticStore":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
