"""Prompt templates for summarization and reranking."""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_SUMMARIZATION_PROMPT = """Please analyze the following text and provide a concise summary that captures the main concepts, purpose, and key information. Focus on what this content is about and what someone searching for it might be looking for.

The summary should be:
- 2-3 sentences maximum
- Focused on the core concepts and purpose
- Useful for semantic search matching
- Written in a clear, descriptive style

Text to summarize:"""

DEFAULT_RERANK_PROMPT = """You are helping to rerank search results based on relevance to a user query.

Given a search query and a list of document summaries, rate each document's relevance to the query on a scale of 0-100, where:
- 100 = Highly relevant, directly answers or relates to the query
- 80-99 = Very relevant, contains important related information
- 60-79 = Moderately relevant, has some connection to the query
- 40-59 = Somewhat relevant, tangentially related
- 20-39 = Low relevance, minimal connection
- 0-19 = Not relevant, unrelated to the query

Consider semantic meaning, context, and intent - not just keyword matching."""

SUMMARIZATION_SYSTEM_MESSAGE = (
    "You are a helpful assistant that writes concise, factual summaries. Temperature 0."
)
RERANK_SYSTEM_MESSAGE = "You are a precise reranker. Only output strict JSON."


@dataclass(slots=True)
class PromptsConfig:
    summarization: str = DEFAULT_SUMMARIZATION_PROMPT
    rerank: str = DEFAULT_RERANK_PROMPT

    def reset(self) -> None:
        self.summarization = DEFAULT_SUMMARIZATION_PROMPT
        self.rerank = DEFAULT_RERANK_PROMPT


def build_summarization_prompt(prompt: str, text: str) -> str:
    return f"{prompt}\n\nTEXT BEGIN\n{text}\nTEXT END"
