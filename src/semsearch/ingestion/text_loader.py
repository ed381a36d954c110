"""Bounded text extraction for indexable files."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from semsearch.errors import ExtractionError

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ExtractedText:
    text: str
    truncated: bool


def read_text_file(path: Path, max_chars: int) -> ExtractedText:
    """Read at most ``max_chars`` bytes from the start of a file and decode them.

    A multi-byte UTF-8 sequence cut by the byte limit is dropped rather than
    failing the decode. Anything else that does not decode raises
    :class:`ExtractionError`.
    """
    if max_chars <= 0:
        raise ValueError("max_chars must be positive")

    try:
        with path.open("rb") as handle:
            size = handle.seek(0, 2)
            handle.seek(0)
            raw = handle.read(min(size, max_chars))
    except OSError as exc:
        raise ExtractionError(path, str(exc)) from exc

    truncated = size > max_chars
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        if not truncated or exc.start < len(raw) - 3:
            raise ExtractionError(path, f"not valid UTF-8 text ({exc.reason})") from exc
        text = raw[: exc.start].decode("utf-8")

    if "\x00" in text:
        raise ExtractionError(path, "binary content")

    LOGGER.debug("Read %d bytes from %s (truncated=%s)", len(raw), path, truncated)
    return ExtractedText(text=text, truncated=truncated)
