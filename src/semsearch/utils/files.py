"""Utility helpers for discovering indexable files."""

from __future__ import annotations

import mimetypes
from pathlib import Path
from typing import Iterable, Iterator

TEXT_EXTENSIONS = frozenset(
    {
        ".txt", ".md", ".js", ".ts", ".tsx", ".jsx", ".json", ".yml", ".yaml",
        ".py", ".java", ".cs", ".go", ".rs", ".rb", ".php", ".sh", ".bat",
        ".ps1", ".csv", ".tsv", ".css", ".html", ".xml", ".sql",
    }
)


def is_text_like(path: Path | str) -> bool:
    """Return True when the file extension is on the text allow-list."""
    return Path(path).suffix.lower() in TEXT_EXTENSIONS


def iter_text_paths(inputs: Iterable[Path]) -> Iterator[Path]:
    """Yield text-like file paths from input paths, descending into directories."""
    for item in inputs:
        if item.is_dir():
            yield from iter_text_paths(sorted(child for child in item.rglob("*") if child.is_file()))
        elif item.is_file() and is_text_like(item):
            yield item


def guess_mimetype(filename: str) -> str | None:
    """Best-effort MIME type hint from the filename."""
    mimetype, _ = mimetypes.guess_type(filename)
    return mimetype
