"""Rerank prompt construction and parse-with-fallback of the model's answer."""

from __future__ import annotations

import json
import logging
import math
import re
from typing import Any, List, Sequence

from semsearch.errors import MalformedRerankOutput
from semsearch.provider.base import (
    FallbackUsed,
    Parsed,
    RankedItem,
    RerankCandidate,
    RerankOutcome,
)

LOGGER = logging.getLogger(__name__)

_FENCE = re.compile(r"^\s*```(?:json)?\s*(.*?)\s*```\s*$", re.DOTALL)


def build_rerank_prompt(instructions: str, query: str, candidates: Sequence[RerankCandidate]) -> str:
    items = "\n\n".join(f"ID: {c.id}\nSUMMARY: {c.summary}" for c in candidates)
    return (
        f"{instructions}\n\n"
        f"Query: {query}\n\n"
        "For each item, output a JSON array of {\"id\": ..., \"score\": ...} objects "
        "with score 0-100 for relevance to the query. Only output JSON.\n\n"
        f"ITEMS:\n{items}"
    )


def uniform_ranking(candidates: Sequence[RerankCandidate], top_k: int) -> List[RankedItem]:
    """Descending scores in input order over the first ``top_k`` candidates."""
    total = len(candidates)
    return [
        RankedItem(id=candidate.id, score=float(total - index))
        for index, candidate in enumerate(candidates[: max(top_k, 0)])
    ]


def _parse_item(item: Any) -> RankedItem:
    if not isinstance(item, dict):
        raise MalformedRerankOutput(f"ranking entry is not an object: {item!r}")
    item_id = item.get("id")
    score = item.get("score")
    if not isinstance(item_id, str) or not item_id:
        raise MalformedRerankOutput(f"ranking entry has no string id: {item!r}")
    if isinstance(score, bool) or not isinstance(score, (int, float)) or not math.isfinite(score):
        raise MalformedRerankOutput(f"ranking entry has no numeric score: {item!r}")
    return RankedItem(id=item_id, score=min(max(float(score), 0.0), 100.0))


def parse_strict_ranking(content: str) -> List[RankedItem]:
    """Parse a JSON array of ``{id, score}`` objects, raising on anything else."""
    text = content.strip()
    match = _FENCE.match(text)
    if match:
        text = match.group(1)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedRerankOutput(f"not valid JSON ({exc.msg})", raw=content) from exc
    if not isinstance(data, list):
        raise MalformedRerankOutput("expected a JSON array", raw=content)
    return [_parse_item(item) for item in data]


def parse_rerank_output(
    content: str, candidates: Sequence[RerankCandidate], top_k: int
) -> RerankOutcome:
    """Turn raw reranker output into a ranking, falling back to input order.

    Returns :class:`Parsed` sorted by descending score and cut to ``top_k``, or
    :class:`FallbackUsed` when the output is not a valid ranking.
    """
    try:
        ranking = parse_strict_ranking(content)
    except MalformedRerankOutput as exc:
        LOGGER.warning("Reranker output unusable (%s); falling back to input order", exc.reason)
        return FallbackUsed(ranking=uniform_ranking(candidates, top_k), reason=exc.reason)

    ranking.sort(key=lambda item: item.score, reverse=True)
    return Parsed(ranking=ranking[: max(top_k, 0)])
