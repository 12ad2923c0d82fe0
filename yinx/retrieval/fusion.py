"""Reciprocal Rank Fusion for combining ranked result lists."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

__all__ = ["FusionError", "FusionConfig", "reciprocal_rank_fusion"]


class FusionError(ValueError):
    """Raised for an invalid fusion configuration."""


@dataclass(frozen=True)
class FusionConfig:
    """RRF constant and per-source weights; both weights must be positive."""

    rrf_k: float
    semantic_weight: float
    keyword_weight: float

    def __post_init__(self) -> None:
        if self.semantic_weight <= 0.0 or self.keyword_weight <= 0.0:
            raise FusionError("Invalid weight configuration: weights must be positive")


def reciprocal_rank_fusion(
    semantic_results: Iterable[tuple[int, float]],
    keyword_results: Iterable[tuple[int, float]],
    config: FusionConfig,
) -> list[tuple[int, float]]:
    """Fuse two ranked ``(id, score)`` lists into ``(id, fused_score)`` sorted descending.

    Each list contributes ``weight / (k + rank)`` per id, with ranks starting at 1.
    """
    scores: dict[int, float] = {}
    for results, weight in (
        (semantic_results, config.semantic_weight),
        (keyword_results, config.keyword_weight),
    ):
        for rank, (chunk_id, _original_score) in enumerate(results, start=1):
            scores[chunk_id] = scores.get(chunk_id, 0.0) + weight / (config.rrf_k + rank)
    return sorted(scores.items(), key=lambda item: item[1], reverse=True)