"""Per-file state tracking and aggregate statistics for an indexing run."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from semsearch.models import FileUsage, TokenUsage

LOGGER = logging.getLogger(__name__)


class FileState(str, Enum):
    DISCOVERED = "discovered"
    SKIPPED = "skipped"
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERRORED = "errored"


TERMINAL_STATES = frozenset({FileState.SKIPPED, FileState.COMPLETED, FileState.ERRORED})

_TRANSITIONS: Dict[FileState, frozenset[FileState]] = {
    FileState.DISCOVERED: frozenset({FileState.SKIPPED, FileState.QUEUED}),
    FileState.QUEUED: frozenset({FileState.PROCESSING}),
    FileState.PROCESSING: frozenset({FileState.COMPLETED, FileState.ERRORED}),
}


@dataclass(slots=True)
class IndexStats:
    discovered: int = 0
    queued: int = 0
    started: int = 0
    completed: int = 0
    skipped: int = 0
    errored: int = 0
    elapsed_seconds: float = 0.0
    usage: TokenUsage = field(default_factory=TokenUsage)
    errors: Dict[Path, str] = field(default_factory=dict)
    processed_files: List[Path] = field(default_factory=list)

    @property
    def in_flight(self) -> int:
        return self.started - self.completed - self.errored

    def to_dict(self) -> dict:
        return {
            "discovered": self.discovered,
            "queued": self.queued,
            "started": self.started,
            "completed": self.completed,
            "skipped": self.skipped,
            "errored": self.errored,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "usage": {
                "prompt": self.usage.prompt,
                "completion": self.usage.completion,
                "total": self.usage.total,
            },
            "errors": {str(path): message for path, message in self.errors.items()},
            "processed_files": [str(path) for path in self.processed_files],
        }


@dataclass(slots=True)
class ProgressCallbacks:
    """Optional hooks invoked as files move through the pipeline."""

    on_start: Optional[Callable[[int], None]] = None
    on_file_skip: Optional[Callable[[Path, str], None]] = None
    on_file_start: Optional[Callable[[Path], None]] = None
    on_file_complete: Optional[Callable[[Path, float, FileUsage], None]] = None
    on_file_error: Optional[Callable[[Path, BaseException], None]] = None
    on_progress: Optional[Callable[[IndexStats], None]] = None
    on_complete: Optional[Callable[[IndexStats], None]] = None


class IndexingProgress:
    """Records the state of every file in a run and keeps running totals."""

    def __init__(
        self,
        callbacks: ProgressCallbacks | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.callbacks = callbacks or ProgressCallbacks()
        self.states: Dict[Path, FileState] = {}
        self._stats = IndexStats()
        self._clock = clock
        self._started_at: float | None = None

    def _transition(self, path: Path, new_state: FileState) -> None:
        current = self.states.get(path)
        if current is None or new_state not in _TRANSITIONS.get(current, frozenset()):
            raise ValueError(f"Illegal state change for {path}: {current} -> {new_state.value}")
        self.states[path] = new_state

    def _elapsed(self) -> float:
        return 0.0 if self._started_at is None else self._clock() - self._started_at

    def _emit(self, hook: str, *args: object) -> None:
        """Call a user hook; a failing hook is logged and never stops the run."""
        callback = getattr(self.callbacks, hook)
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            LOGGER.warning("Progress callback %s failed", hook, exc_info=True)

    def _notify_progress(self) -> None:
        if self.callbacks.on_progress:
            self._emit("on_progress", self.snapshot())

    def discover(self, paths: Iterable[Path]) -> None:
        for path in paths:
            if path not in self.states:
                self.states[path] = FileState.DISCOVERED
                self._stats.discovered += 1

    def start(self) -> None:
        self._started_at = self._clock()
        LOGGER.info("Indexing %d candidate files", self._stats.discovered)
        self._emit("on_start", self._stats.discovered)

    def skip_file(self, path: Path, reason: str) -> None:
        self._transition(path, FileState.SKIPPED)
        self._stats.skipped += 1
        LOGGER.debug("Skipped %s: %s", path, reason)
        self._emit("on_file_skip", path, reason)
        self._notify_progress()

    def queue_file(self, path: Path) -> None:
        self._transition(path, FileState.QUEUED)
        self._stats.queued += 1

    def start_file(self, path: Path) -> None:
        self._transition(path, FileState.PROCESSING)
        self._stats.started += 1
        LOGGER.info("Processing: %s", path)
        self._emit("on_file_start", path)
        self._notify_progress()

    def complete_file(self, path: Path, duration: float, usage: FileUsage) -> None:
        self._transition(path, FileState.COMPLETED)
        self._stats.completed += 1
        self._stats.usage = self._stats.usage + usage.total
        self._stats.processed_files.append(path)
        LOGGER.info("Indexed %s in %.2fs (%d tokens)", path, duration, usage.total.total)
        self._emit("on_file_complete", path, duration, usage)
        self._notify_progress()

    def error_file(self, path: Path, error: BaseException) -> None:
        self._transition(path, FileState.ERRORED)
        self._stats.errored += 1
        self._stats.errors[path] = str(error)
        self._stats.processed_files.append(path)
        self._emit("on_file_error", path, error)
        self._notify_progress()

    def complete(self) -> IndexStats:
        self._stats.elapsed_seconds = self._elapsed()
        stats = self.snapshot()
        LOGGER.info(
            "Indexing finished in %.1fs: %d completed, %d skipped, %d errored, %d tokens",
            stats.elapsed_seconds,
            stats.completed,
            stats.skipped,
            stats.errored,
            stats.usage.total,
        )
        self._emit("on_complete", stats)
        return stats

    def snapshot(self) -> IndexStats:
        return replace(
            self._stats,
            elapsed_seconds=self._elapsed(),
            errors=dict(self._stats.errors),
            processed_files=list(self._stats.processed_files),
        )
