"""Hybrid search combining semantic and keyword search."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Protocol, Sequence

from yinx.retrieval.deduplication import deduplicate_chunks
from yinx.retrieval.fusion import FusionConfig, FusionError, reciprocal_rank_fusion
from yinx.retrieval.provenance import ChunkMetadata, Provenance, ScoredChunk
from yinx.retrieval.query import SearchQuery
from yinx.retrieval.reranker import DEFAULT_MODEL, Reranker
from yinx.storage.database import ChunkRecord, Database

__all__ = ["SearchError", "RetrievalConfig", "HybridSearcher"]


class SearchError(Exception):
    """Raised when any stage of a hybrid search fails."""


class EmbeddingProvider(Protocol):
    def embed(self, text: str) -> Sequence[float]: ...


class VectorIndex(Protocol):
    def search(self, embedding: Sequence[float], limit: int, ef_search: int) -> Sequence[Any]: ...


class KeywordIndex(Protocol):
    def search(self, query: str, limit: int) -> Sequence[Any]: ...


@dataclass(frozen=True)
class RetrievalConfig:
    """Tuning knobs for hybrid retrieval."""

    search_multiplier: int = 3
    rrf_k: float = 60.0
    semantic_weight: float = 0.7
    keyword_weight: float = 0.3
    min_similarity_threshold: float = 0.0
    hnsw_ef_search: int = 64
    enable_reranking: bool = False
    reranker_model: str = DEFAULT_MODEL
    rerank_candidates_limit: int = 50


def _as_pair(hit: Any) -> tuple[int, float]:
    """Accept an ``(id, score)`` tuple or an object with ``id`` and ``score``."""
    if isinstance(hit, tuple):
        chunk_id, score = hit
    else:
        chunk_id, score = hit.id, hit.score
    return int(chunk_id), float(score)


def _timestamp(seconds: int) -> datetime:
    try:
        return datetime.fromtimestamp(seconds, timezone.utc)
    except (OverflowError, OSError, ValueError, TypeError):
        return datetime.now(timezone.utc)


def _metadata(record: ChunkRecord) -> ChunkMetadata:
    fallback = ChunkMetadata(
        cluster_size=int(record.cluster_size or 0), pattern="", scores={}, entities=[]
    )
    if record.metadata is None:
        return fallback
    try:
        data = json.loads(record.metadata)
        if not isinstance(data, dict):
            return fallback
        return ChunkMetadata.from_dict(data)
    except (ValueError, TypeError):
        return fallback


class HybridSearcher:
    """Runs semantic and keyword search, fuses, hydrates, filters and reranks results."""

    def __init__(
        self,
        embedding_provider: EmbeddingProvider,
        vector_index: VectorIndex,
        keyword_index: KeywordIndex,
        database: Database,
        config: RetrievalConfig | None = None,
        reranker: Reranker | None = None,
    ) -> None:
        self.embedding_provider = embedding_provider
        self.vector_index = vector_index
        self.keyword_index = keyword_index
        self.database = database
        self.config = config if config is not None else RetrievalConfig()
        if self.config.enable_reranking:
            if reranker is None:
                raise SearchError("Reranking failed: Reranker not initialized")
            self.reranker: Reranker | None = reranker
        else:
            self.reranker = None

    async def search(self, query: SearchQuery) -> list[ScoredChunk]:
        """Return the best chunks for ``query``."""
        if not query.text:
            raise SearchError("Invalid query: Query text cannot be empty")

        search_limit = query.limit * self.config.search_multiplier
        semantic, keyword = await asyncio.gather(
            asyncio.to_thread(self._semantic_search, query.text, search_limit),
            asyncio.to_thread(self._keyword_search, query.text, search_limit),
            return_exceptions=True,
        )
        for outcome in (semantic, keyword):
            if isinstance(outcome, BaseException):
                raise outcome

        try:
            fusion_config = FusionConfig(
                self.config.rrf_k, self.config.semantic_weight, self.config.keyword_weight
            )
        except FusionError as exc:
            raise SearchError(f"Invalid query: {exc}") from exc
        fused = reciprocal_rank_fusion(semantic, keyword, fusion_config)

        candidates = await asyncio.to_thread(self._hydrate, fused)

        if query.session_id is not None:
            candidates = [
                c for c in candidates if str(c.provenance.capture_id) == query.session_id
            ]
        if query.tool_filter is not None:
            candidates = [c for c in candidates if c.provenance.tool == query.tool_filter]
        threshold = self.config.min_similarity_threshold
        if threshold > 0.0:
            candidates = [c for c in candidates if c.score >= threshold]

        if self.reranker is not None and len(candidates) > 1:
            results = await asyncio.to_thread(
                self._rerank, self.reranker, query.text, candidates, query.limit
            )
        else:
            results = candidates[: query.limit]

        return deduplicate_chunks(results)

    def _semantic_search(self, text: str, limit: int) -> list[tuple[int, float]]:
        try:
            embedding = self.embedding_provider.embed(text)
        except Exception as exc:
            raise SearchError(f"Embedding generation failed: {exc}") from exc
        try:
            hits = self.vector_index.search(embedding, limit, self.config.hnsw_ef_search)
            return [_as_pair(hit) for hit in hits]
        except Exception as exc:
            raise SearchError(f"Vector search failed: {exc}") from exc

    def _keyword_search(self, text: str, limit: int) -> list[tuple[int, float]]:
        try:
            return [_as_pair(hit) for hit in self.keyword_index.search(text, limit)]
        except Exception as exc:
            raise SearchError(f"Keyword search failed: {exc}") from exc

    def _hydrate(self, fused: list[tuple[int, float]]) -> list[ScoredChunk]:
        if not fused:
            return []
        scores = dict(fused)
        try:
            records = self.database.get_chunks([chunk_id for chunk_id, _ in fused])
        except Exception as exc:
            raise SearchError(f"Database error: Failed to get chunks: {exc}") from exc

        chunks = []
        for record in records:
            try:
                capture = self.database.get_capture(record.capture_id)
            except Exception as exc:
                raise SearchError(f"Database error: Failed to get capture: {exc}") from exc
            if capture is None:
                raise SearchError(
                    f"Database error: Capture {record.capture_id} not found "
                    f"for chunk {record.id}"
                )
            provenance = Provenance(
                capture_id=capture.id,
                blob_hash=capture.output_hash,
                command=capture.command if capture.command is not None else "(unknown)",
                timestamp=_timestamp(capture.timestamp),
                tool=capture.tool if capture.tool is not None else "unknown",
            )
            chunks.append(
                ScoredChunk(
                    chunk_id=record.id,
                    text=record.representative_text,
                    score=scores.get(record.id, 0.0),
                    metadata=_metadata(record),
                    provenance=provenance,
                )
            )
        return chunks

    def _rerank(
        self, reranker: Reranker, text: str, candidates: list[ScoredChunk], limit: int
    ) -> list[ScoredChunk]:
        pool = candidates[: self.config.rerank_candidates_limit]
        try:
            ranked = reranker.rerank(text, [chunk.text for chunk in pool], limit)
        except Exception as exc:
            raise SearchError(f"Reranking failed: {exc}") from exc
        return [replace(pool[index], score=score) for index, score in ranked]