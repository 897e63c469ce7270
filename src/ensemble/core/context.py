"""Context manager: bounds oversized context before it reaches a model.

Oversized context is cut into fixed-size chunks, the chunks are ranked by
how many of the prompt's words they contain, and the best ``keep_ratio`` of
them are rejoined. If that is still too large the text is truncated. Every
step is deterministic.
"""

from __future__ import annotations

import math
from collections import deque
from typing import Optional

CHUNK_SEPARATOR = "\n\n"


def word_set(text: str) -> set[str]:
    return set(text.lower().split())


def chunk_text(text: str, chunk_size: int) -> list[str]:
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    return [text[i:i + chunk_size] for i in range(0, len(text), chunk_size)]


def relevance_score(chunk: str, prompt_words: set[str]) -> float:
    """Share of the prompt's words that appear in ``chunk``."""
    if not prompt_words:
        return 0.0
    return len(prompt_words & word_set(chunk)) / len(prompt_words)


class ContextManager:
    def __init__(
        self,
        max_context_size: int = 100000,
        chunk_size: int = 8000,
        keep_ratio: float = 0.3,
        history_size: int = 100,
    ):
        self.max_context_size = max_context_size
        self.chunk_size = chunk_size
        self.keep_ratio = keep_ratio
        self.history_size = history_size
        self._task_history: dict[str, deque] = {}

    def select_relevant_chunks(self, chunks: list[str], prompt: str) -> list[str]:
        prompt_words = word_set(prompt)
        scored = [(relevance_score(chunk, prompt_words), chunk) for chunk in chunks]
        # sorted() is stable, so equal scores keep document order
        ranked = sorted(scored, key=lambda item: item[0], reverse=True)
        keep = math.ceil(len(chunks) * self.keep_ratio)
        return [chunk for _, chunk in ranked[:keep]]

    def process(
        self,
        context: Optional[str],
        prompt: str,
        max_context_size: Optional[int] = None,
        chunk_size: Optional[int] = None,
    ) -> str:
        limit = max(self.max_context_size if max_context_size is None else max_context_size, 0)
        size = self.chunk_size if chunk_size is None else chunk_size

        if not context or len(context) <= limit:
            return context or ""

        relevant = self.select_relevant_chunks(chunk_text(context, size), prompt)
        joined = CHUNK_SEPARATOR.join(relevant)
        if len(joined) <= limit:
            return joined

        # Lossy fallback: plain truncation
        return joined[:limit]

    def record_task(self, task_type: str, entry: dict) -> None:
        history = self._task_history.setdefault(task_type, deque(maxlen=self.history_size))
        history.append(entry)

    def get_task_history(self, task_type: str) -> list[dict]:
        return list(self._task_history.get(task_type, ()))
