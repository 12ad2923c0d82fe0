"""Cross-encoder style reranking of candidate texts."""

from __future__ import annotations

import logging
from typing import Callable, Sequence

__all__ = ["RerankError", "Reranker", "DEFAULT_MODEL", "Scorer"]

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "Xenova/ms-marco-MiniLM-L-6-v2"

Scorer = Callable[[str, Sequence[str]], Sequence[float]]
"""Scores every document against a query; one float per document, higher is better."""


class RerankError(Exception):
    """Raised when the reranker cannot be set up or fails to score candidates."""


class Reranker:
    """Reorders candidate texts by a relevance scorer to improve precision."""

    def __init__(self, model_name: str, scorer: Scorer) -> None:
        if not callable(scorer):
            raise RerankError("Reranker initialization failed: scorer is not callable")
        logger.info("Initializing reranker model: %s", model_name)
        self.model_name = model_name
        self._scorer = scorer

    def rerank(self, query: str, candidates: Sequence[str], top_k: int) -> list[tuple[int, float]]:
        """Return up to ``top_k`` ``(index, score)`` pairs, best first."""
        documents = list(candidates)
        if not documents:
            return []
        if not query:
            raise RerankError("Invalid input: Query cannot be empty")
        try:
            scores = [float(score) for score in self._scorer(query, documents)]
        except Exception as exc:
            raise RerankError(f"Reranking failed: {exc}") from exc
        if len(scores) != len(documents):
            raise RerankError(
                f"Reranking failed: expected {len(documents)} scores, got {len(scores)}"
            )
        ranked = sorted(enumerate(scores), key=lambda pair: pair[1], reverse=True)
        return ranked[: max(top_k, 0)]