"""Exception hierarchy shared by the indexing and search pipeline."""

from __future__ import annotations

from pathlib import Path


class SemSearchError(Exception):
    """Base class for all semsearch failures."""


class ConfigurationError(SemSearchError):
    """Required configuration (endpoint, credentials) is missing or invalid."""


class ExtractionError(SemSearchError):
    """A file could not be read or decoded as text."""

    def __init__(self, path: Path | str, reason: str) -> None:
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Cannot extract text from {self.path}: {reason}")


class ProviderError(SemSearchError):
    """A summarize, embed or rerank call to the semantic provider failed."""

    def __init__(self, operation: str, message: str) -> None:
        self.operation = operation
        super().__init__(f"{operation} failed: {message}")


class StorageError(SemSearchError):
    """The persistence layer rejected or failed an operation."""


class MalformedRerankOutput(SemSearchError):
    """The reranker returned output that is not a valid ranking."""

    def __init__(self, reason: str, raw: str = "") -> None:
        self.reason = reason
        self.raw = raw
        super().__init__(reason)
