"""Result deduplication by chunk id."""

from __future__ import annotations

from typing import Iterable

from yinx.retrieval.provenance import ScoredChunk

__all__ = ["deduplicate_chunks"]


def deduplicate_chunks(chunks: Iterable[ScoredChunk]) -> list[ScoredChunk]:
    """Keep the first occurrence of each chunk id, preserving order.

    With input sorted by score, the first occurrence is the highest-scored one.
    """
    seen: set[int] = set()
    unique = []
    for chunk in chunks:
        if chunk.chunk_id not in seen:
            seen.add(chunk.chunk_id)
            unique.append(chunk)
    return unique