"""Tests for rerank prompt building and output parsing."""

from __future__ import annotations

import pytest

from semsearch.errors import MalformedRerankOutput
from semsearch.provider.base import FallbackUsed, Parsed, RankedItem, RerankCandidate
from semsearch.provider.prompts import DEFAULT_RERANK_PROMPT
from semsearch.provider.rerank import (
    build_rerank_prompt,
    parse_rerank_output,
    parse_strict_ranking,
    uniform_ranking,
)


@pytest.fixture
def candidates():
    return [RerankCandidate(id=f"id-{i}", summary=f"summary {i}") for i in range(4)]


class TestBuildRerankPrompt:
    def test_contains_query_and_items(self, candidates) -> None:
        prompt = build_rerank_prompt(DEFAULT_RERANK_PROMPT, "vector search", candidates)

        assert prompt.startswith(DEFAULT_RERANK_PROMPT)
        assert "Query: vector search" in prompt
        for candidate in candidates:
            assert f"ID: {candidate.id}\nSUMMARY: {candidate.summary}" in prompt
        assert "Only output JSON" in prompt


class TestUniformRanking:
    def test_descending_in_input_order(self, candidates) -> None:
        ranking = uniform_ranking(candidates, 3)

        assert [item.id for item in ranking] == ["id-0", "id-1", "id-2"]
        assert [item.score for item in ranking] == [4.0, 3.0, 2.0]

    def test_top_k_larger_than_candidates(self, candidates) -> None:
        assert len(uniform_ranking(candidates, 10)) == 4


class TestParseStrictRanking:
    def test_plain_json(self) -> None:
        ranking = parse_strict_ranking('[{"id": "a", "score": 90}, {"id": "b", "score": 10.5}]')
        assert ranking == [RankedItem("a", 90.0), RankedItem("b", 10.5)]

    def test_code_fence(self) -> None:
        ranking = parse_strict_ranking('```json\n[{"id": "a", "score": 70}]\n```')
        assert ranking == [RankedItem("a", 70.0)]

    def test_scores_clamped(self) -> None:
        ranking = parse_strict_ranking('[{"id": "a", "score": 150}, {"id": "b", "score": -5}]')
        assert [item.score for item in ranking] == [100.0, 0.0]

    @pytest.mark.parametrize(
        "content",
        [
            "not json at all",
            '{"id": "a", "score": 1}',
            '[{"id": "a"}]',
            '[{"score": 50}]',
            '[{"id": 3, "score": 50}]',
            '[{"id": "a", "score": "high"}]',
            '[{"id": "a", "score": true}]',
            '["a", "b"]',
        ],
    )
    def test_malformed(self, content: str) -> None:
        with pytest.raises(MalformedRerankOutput):
            parse_strict_ranking(content)


class TestParseRerankOutput:
    def test_valid_output_sorted_and_cut(self, candidates) -> None:
        content = (
            '[{"id": "id-1", "score": 40}, {"id": "id-3", "score": 95}, '
            '{"id": "id-0", "score": 70}]'
        )

        outcome = parse_rerank_output(content, candidates, 2)

        assert isinstance(outcome, Parsed)
        assert outcome.ranking == [RankedItem("id-3", 95.0), RankedItem("id-0", 70.0)]

    def test_empty_array_is_valid(self, candidates) -> None:
        outcome = parse_rerank_output("[]", candidates, 3)
        assert outcome == Parsed(ranking=[])

    def test_malformed_output_falls_back(self, candidates, caplog) -> None:
        outcome = parse_rerank_output("Sorry, I cannot help with that.", candidates, 2)

        assert isinstance(outcome, FallbackUsed)
        assert outcome.reason
        assert [item.id for item in outcome.ranking] == ["id-0", "id-1"]
        assert [item.score for item in outcome.ranking] == [4.0, 3.0]
        assert "falling back" in caplog.text
