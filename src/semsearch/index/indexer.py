"""File indexing pipeline."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Sequence

from semsearch.errors import ExtractionError
from semsearch.index.change_detector import ChangeDetector
from semsearch.index.progress import IndexingProgress, IndexStats, ProgressCallbacks
from semsearch.index.storage import SQLiteVectorStore
from semsearch.ingestion.text_loader import read_text_file
from semsearch.models import FileMetadata, FileRecord, FileUsage
from semsearch.provider.base import SemanticProvider
from semsearch.utils.files import guess_mimetype, iter_text_paths
from semsearch.utils.vectors import normalize

LOGGER = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 3
DEFAULT_MAX_CHARS = 50_000


def find_text_files(paths: Sequence[Path]) -> list[Path]:
    """Find all text-like files under the given paths, resolved and de-duplicated."""
    return list(dict.fromkeys(path.resolve() for path in iter_text_paths(paths)))


def _iso(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


class Indexer:
    """Coordinates extraction, summarization, embedding and persistence.

    Files are processed in batches of ``concurrency``: the files of one batch
    run concurrently, and the next batch starts only once every file of the
    current one has completed or failed. A failing file is recorded in the
    run statistics and never aborts the run.
    """

    def __init__(
        self,
        provider: SemanticProvider,
        store: SQLiteVectorStore,
        *,
        max_chars: int = DEFAULT_MAX_CHARS,
        concurrency: int = DEFAULT_CONCURRENCY,
    ) -> None:
        self.provider = provider
        self.store = store
        self.max_chars = max_chars
        self.concurrency = concurrency
        self.change_detector = ChangeDetector(store)

    async def index(
        self,
        paths: Sequence[Path],
        *,
        force: bool = False,
        concurrency: Optional[int] = None,
        callbacks: ProgressCallbacks | None = None,
    ) -> IndexStats:
        """Index all text files found under the given paths."""
        files = find_text_files(paths)
        progress = IndexingProgress(callbacks)
        progress.discover(files)
        progress.start()

        if not files:
            LOGGER.warning("No text files found")
            return progress.complete()

        to_process, already_indexed = self.change_detector.partition(files, force=force)
        for path in already_indexed:
            progress.skip_file(path, "already indexed")
        for path in to_process:
            progress.queue_file(path)

        width = max(1, concurrency or self.concurrency)
        for start in range(0, len(to_process), width):
            batch = to_process[start : start + width]
            LOGGER.debug("Processing batch %d (%d files)", start // width + 1, len(batch))
            await asyncio.gather(*(self._process(path, progress) for path in batch))

        return progress.complete()

    async def _process(self, path: Path, progress: IndexingProgress) -> None:
        progress.start_file(path)
        started = time.monotonic()
        try:
            usage = await self.index_file(path)
        except Exception as exc:
            LOGGER.error("Failed to process %s: %s", path, exc)
            progress.error_file(path, exc)
        else:
            progress.complete_file(path, time.monotonic() - started, usage)

    async def index_file(self, path: Path) -> FileUsage:
        """Summarize, embed and store a single file, keeping the id of an earlier record."""
        resolved = Path(path).resolve()
        try:
            stat = resolved.stat()
        except OSError as exc:
            raise ExtractionError(resolved, str(exc)) from exc
        if not resolved.is_file():
            raise ExtractionError(resolved, "not a regular file")

        existing = self.store.get_by_path(str(resolved))
        record_id = existing.id if existing else str(uuid.uuid4())

        extracted = read_text_file(resolved, self.max_chars)
        summary = await self.provider.summarize(extracted.text, self.max_chars)
        embedded = await self.provider.embed(summary.summary)

        created_at = existing.metadata.created_at if existing else None
        metadata = FileMetadata(
            id=record_id,
            path=str(resolved),
            filename=resolved.name,
            mimetype=guess_mimetype(resolved.name),
            size=stat.st_size,
            created_at=created_at or _iso(getattr(stat, "st_birthtime", stat.st_ctime)),
            modified_at=_iso(stat.st_mtime),
        )
        record = FileRecord(
            id=record_id,
            metadata=metadata,
            summary=summary.summary,
            embedding=normalize(embedded.vector).tolist(),
        )
        self.store.upsert(record)

        if extracted.truncated or summary.truncated:
            LOGGER.debug("Summary of %s is based on the first %d characters", resolved, self.max_chars)
        return FileUsage(summary=summary.usage, embedding=embedded.usage)
