import json
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from yinx.retrieval.fusion import FusionConfig, reciprocal_rank_fusion
from yinx.retrieval.hybrid import HybridSearcher, RetrievalConfig, SearchError
from yinx.retrieval.provenance import ChunkMetadata
from yinx.retrieval.query import SearchQuery
from yinx.retrieval.reranker import Reranker
from yinx.storage.database import Database

CAPTURE_TIME = 1000000
METADATA = {
    "cluster_size": 4,
    "pattern": "port __NUM__",
    "scores": {"entropy": 0.5},
    "entities": ["22"],
}
VECTOR_HITS = [SimpleNamespace(id=1, score=0.9), SimpleNamespace(id=3, score=0.5)]
KEYWORD_HITS = [(2, 3.0), (1, 2.0)]


class FakeEmbedder:
    def __init__(self, fail=False):
        self.fail = fail

    def embed(self, text):
        if self.fail:
            raise RuntimeError("no model")
        return [1.0, 0.0]


class FakeVectorIndex:
    def __init__(self, hits):
        self.hits = hits
        self.calls = []

    def search(self, embedding, limit, ef_search):
        self.calls.append((embedding, limit, ef_search))
        return self.hits[:limit]


class FakeKeywordIndex:
    def __init__(self, hits, fail=False):
        self.hits = hits
        self.fail = fail
        self.calls = []

    def search(self, query, limit):
        if self.fail:
            raise RuntimeError("index corrupt")
        self.calls.append((query, limit))
        return self.hits[:limit]


@pytest.fixture
def db(tmp_path):
    database = Database(tmp_path / "db.sqlite")
    with database.connection() as conn:
        conn.execute(
            "INSERT INTO sessions (id, name, started_at, status) VALUES (?, ?, ?, ?)",
            ("s1", "Session", CAPTURE_TIME, "active"),
        )
        conn.execute(
            "INSERT INTO blobs (hash, size, created_at, compressed) VALUES (?, ?, ?, ?)",
            ("abc123", 10, CAPTURE_TIME, False),
        )
        conn.execute(
            "INSERT INTO captures (id, session_id, timestamp, command, output_hash, tool)"
            " VALUES (1, 's1', ?, 'nmap -sV host', 'abc123', 'nmap')",
            (CAPTURE_TIME,),
        )
        conn.execute(
            "INSERT INTO captures (id, session_id, timestamp, command, output_hash, tool)"
            " VALUES (2, 's1', ?, NULL, 'abc123', NULL)",
            (CAPTURE_TIME,),
        )
        rows = [
            (1, 1, "22/tcp open ssh", 4, json.dumps(METADATA)),
            (2, 1, "80/tcp open http nginx", 2, None),
            (3, 2, "/admin (Status: 200)", 7, "not json"),
        ]
        conn.executemany(
            "INSERT INTO chunks (id, capture_id, blob_hash, representative_text,"
            " cluster_size, metadata) VALUES (?, ?, 'abc123', ?, ?, ?)",
            rows,
        )
    return database


def make_searcher(db, config=None, reranker=None, embedder=None, vector=None, keyword=None):
    return HybridSearcher(
        embedder or FakeEmbedder(),
        vector or FakeVectorIndex(VECTOR_HITS),
        keyword or FakeKeywordIndex(KEYWORD_HITS),
        db,
        config,
        reranker,
    )


@pytest.mark.asyncio
async def test_empty_query_rejected(db):
    searcher = make_searcher(db)
    with pytest.raises(SearchError, match="Query text cannot be empty"):
        await searcher.search(SearchQuery("", 5))


@pytest.mark.asyncio
async def test_search_returns_fused_scores(db):
    config = RetrievalConfig()
    searcher = make_searcher(db, config)
    results = await searcher.search(SearchQuery("ssh", 10))

    expected = dict(
        reciprocal_rank_fusion(
            [(1, 0.9), (3, 0.5)],
            KEYWORD_HITS,
            FusionConfig(config.rrf_k, config.semantic_weight, config.keyword_weight),
        )
    )
    assert {r.chunk_id for r in results} == {1, 2, 3}
    for result in results:
        assert result.score == pytest.approx(expected[result.chunk_id])


@pytest.mark.asyncio
async def test_provenance_and_metadata_hydrated(db):
    searcher = make_searcher(db)
    results = {r.chunk_id: r for r in await searcher.search(SearchQuery("ssh", 10))}

    first = results[1]
    assert first.provenance.tool == "nmap"
    assert first.provenance.command == "nmap -sV host"
    assert first.provenance.blob_hash == "abc123"
    assert first.provenance.timestamp == datetime.fromtimestamp(CAPTURE_TIME, timezone.utc)
    assert first.metadata == ChunkMetadata(4, "port __NUM__", {"entropy": 0.5}, ["22"])

    third = results[3]
    assert third.provenance.command == "(unknown)"
    assert third.provenance.tool == "unknown"
    assert third.metadata == ChunkMetadata(7, "", {}, [])
    assert results[2].metadata == ChunkMetadata(2, "", {}, [])


@pytest.mark.asyncio
async def test_tool_filter(db):
    searcher = make_searcher(db)
    results = await searcher.search(SearchQuery("ssh", 10, tool_filter="nmap"))
    assert {r.chunk_id for r in results} == {1, 2}


@pytest.mark.asyncio
async def test_session_filter_matches_capture_id(db):
    searcher = make_searcher(db)
    results = await searcher.search(SearchQuery("ssh", 10, session_id="2"))
    assert [r.chunk_id for r in results] == [3]


@pytest.mark.asyncio
async def test_limit_and_index_arguments(db):
    config = RetrievalConfig()
    vector = FakeVectorIndex(VECTOR_HITS)
    keyword = FakeKeywordIndex(KEYWORD_HITS)
    searcher = make_searcher(db, config, vector=vector, keyword=keyword)
    results = await searcher.search(SearchQuery("ssh", 1))

    assert len(results) == 1
    assert vector.calls[0][1:] == (config.search_multiplier, config.hnsw_ef_search)
    assert keyword.calls == [("ssh", config.search_multiplier)]


@pytest.mark.asyncio
async def test_similarity_threshold_drops_low_scores(db):
    searcher = make_searcher(db, RetrievalConfig(min_similarity_threshold=1.0))
    assert await searcher.search(SearchQuery("ssh", 10)) == []


@pytest.mark.asyncio
async def test_no_hits_returns_empty(db):
    searcher = make_searcher(db, vector=FakeVectorIndex([]), keyword=FakeKeywordIndex([]))
    assert await searcher.search(SearchQuery("nothing", 10)) == []


@pytest.mark.asyncio
async def test_missing_capture_reported(db):
    with db.connection() as conn:
        conn.execute("PRAGMA foreign_keys = OFF")
        conn.execute(
            "INSERT INTO chunks (id, capture_id, blob_hash, representative_text)"
            " VALUES (4, 99, 'abc123', 'orphan')"
        )
    searcher = make_searcher(db, vector=FakeVectorIndex([]), keyword=FakeKeywordIndex([(4, 1.0)]))
    with pytest.raises(SearchError, match="Capture 99 not found for chunk 4"):
        await searcher.search(SearchQuery("orphan", 5))


@pytest.mark.asyncio
async def test_embedding_failure(db):
    searcher = make_searcher(db, embedder=FakeEmbedder(fail=True))
    with pytest.raises(SearchError, match="Embedding generation failed: no model"):
        await searcher.search(SearchQuery("ssh", 5))


@pytest.mark.asyncio
async def test_keyword_failure(db):
    searcher = make_searcher(db, keyword=FakeKeywordIndex([], fail=True))
    with pytest.raises(SearchError, match="Keyword search failed: index corrupt"):
        await searcher.search(SearchQuery("ssh", 5))


@pytest.mark.asyncio
async def test_invalid_weights(db):
    searcher = make_searcher(db, RetrievalConfig(semantic_weight=0.0))
    with pytest.raises(SearchError, match="Invalid query"):
        await searcher.search(SearchQuery("ssh", 5))


def test_reranking_enabled_requires_reranker(db):
    with pytest.raises(SearchError, match="Reranker not initialized"):
        make_searcher(db, RetrievalConfig(enable_reranking=True))


def length_scorer(query, documents):
    return [float(len(doc)) for doc in documents]


@pytest.mark.asyncio
async def test_reranking_reorders_and_rescores(db):
    reranker = Reranker("test-model", length_scorer)
    searcher = make_searcher(db, RetrievalConfig(enable_reranking=True), reranker)
    results = await searcher.search(SearchQuery("ssh", 2))

    assert len(results) == 2
    for result in results:
        assert result.score == float(len(result.text))
    assert results[0].score >= results[1].score


@pytest.mark.asyncio
async def test_rerank_candidates_limit(db):
    reranker = Reranker("test-model", length_scorer)
    config = RetrievalConfig(enable_reranking=True, rerank_candidates_limit=1)
    searcher = make_searcher(db, config, reranker)
    results = await searcher.search(SearchQuery("ssh", 5))
    assert len(results) == 1


@pytest.mark.asyncio
async def test_single_candidate_not_reranked(db):
    reranker = Reranker("test-model", length_scorer)
    config = RetrievalConfig(enable_reranking=True)
    searcher = make_searcher(db, config, reranker)
    results = await searcher.search(SearchQuery("ssh", 5, tool_filter="unknown"))

    fused = dict(
        reciprocal_rank_fusion(
            [(1, 0.9), (3, 0.5)],
            KEYWORD_HITS,
            FusionConfig(config.rrf_k, config.semantic_weight, config.keyword_weight),
        )
    )
    assert [r.chunk_id for r in results] == [3]
    assert results[0].score == pytest.approx(fused[3])


@pytest.mark.asyncio
async def test_reranker_failure_wrapped(db):
    def failing(query, documents):
        raise RuntimeError("boom")

    reranker = Reranker("test-model", failing)
    searcher = make_searcher(db, RetrievalConfig(enable_reranking=True), reranker)
    with pytest.raises(SearchError, match="Reranking failed"):
        await searcher.search(SearchQuery("ssh", 5))