"""Decide which discovered files need (re)processing."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence, Tuple

from semsearch.errors import StorageError
from semsearch.index.storage import SQLiteVectorStore

LOGGER = logging.getLogger(__name__)


@dataclass
class ChangeDetector:
    """A file needs processing unless a record already exists for its resolved path.

    Content changes are not detected; ``force`` is the way to refresh files
    that are already indexed.
    """

    store: SQLiteVectorStore

    def needs_processing(self, path: Path, *, force: bool = False) -> bool:
        if force:
            return True
        try:
            return self.store.get_by_path(str(Path(path).resolve())) is None
        except StorageError as exc:
            LOGGER.warning("Could not check %s against the store (%s); processing it", path, exc)
            return True

    def partition(
        self, paths: Sequence[Path], *, force: bool = False
    ) -> Tuple[List[Path], List[Path]]:
        """Split paths into ``(to_process, already_indexed)``, preserving order."""
        to_process: List[Path] = []
        skipped: List[Path] = []
        for path in paths:
            (to_process if self.needs_processing(path, force=force) else skipped).append(path)
        return to_process, skipped
