"""Core semsearch data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(slots=True, frozen=True)
class TokenUsage:
    """Token accounting reported by the provider for a single call."""

    prompt: int = 0
    completion: int = 0
    total: int = 0

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            prompt=self.prompt + other.prompt,
            completion=self.completion + other.completion,
            total=self.total + other.total,
        )


@dataclass(slots=True, frozen=True)
class FileUsage:
    """Usage spent while indexing one file."""

    summary: TokenUsage = field(default_factory=TokenUsage)
    embedding: TokenUsage = field(default_factory=TokenUsage)

    @property
    def total(self) -> TokenUsage:
        return self.summary + self.embedding


@dataclass(slots=True)
class FileMetadata:
    """Filesystem metadata for one indexed file."""

    id: str
    path: str
    filename: str
    mimetype: Optional[str] = None
    size: Optional[int] = None
    created_at: Optional[str] = None
    modified_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "path": self.path,
            "filename": self.filename,
            "mimetype": self.mimetype,
            "size": self.size,
            "created_at": self.created_at,
            "modified_at": self.modified_at,
        }


@dataclass(slots=True)
class FileRecord:
    """Metadata plus summary and (optionally loaded) unit-length embedding."""

    id: str
    metadata: FileMetadata
    summary: str
    embedding: Optional[List[float]] = None

    def to_dict(self, *, include_embedding: bool = False) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "metadata": self.metadata.to_dict(),
            "summary": self.summary,
        }
        if include_embedding:
            data["embedding"] = self.embedding
        return data


@dataclass(slots=True)
class Candidate:
    """A stored record paired with its cosine similarity to a query."""

    record: FileRecord
    similarity: float


@dataclass(slots=True)
class SearchResult:
    id: str
    score: float
    similarity: float
    metadata: FileMetadata
    summary: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "score": self.score,
            "similarity": self.similarity,
            "metadata": self.metadata.to_dict(),
            "summary": self.summary,
        }
