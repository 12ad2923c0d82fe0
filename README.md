# yinx

Storage and retrieval core for a penetration-testing companion. It keeps what
terminal captures produce (raw output, session state, filtered chunks,
embeddings and extracted entities) and lets you search it again with a hybrid
of semantic and keyword ranking.

## What is inside

- **BLAKE3 hashing** (`yinx.contenthash`): `blake3_digest(data)` returns the
  32-byte digest, `blake3_hex(data, length)` the first `length` hex characters.
- **Content-addressed blob store** (`yinx.storage.blob.BlobStore`): data is
  hashed (32 hex characters), deduplicated, stored as `blobs/ab/cd/<hash>`,
  written through a temporary file and renamed into place, and compressed with
  zstd once it reaches the store's compression threshold. `write` returns a
  `BlobWrite(blob_hash, compressed, is_new)`; `read`, `exists`, `size` and
  `delete` work by hash; `gc(referenced_hashes)` removes every blob not in the
  given set and returns `GcStats`. Reading or sizing a missing blob raises
  `BlobError`.
- **SQLite database** (`yinx.storage.database.Database`): schema for sessions,
  captures, blobs, chunks, embeddings and entities, applied by migrations when
  the database is opened, with WAL mode and foreign keys switched on. It offers
  `stats`, entity insertion and lookup, embedding storage, and chunk and
  capture lookup, returning frozen record dataclasses. `connection()` is a
  context manager yielding a configured connection; SQLite errors surface as
  `DatabaseError`.
- **Storage manager** (`yinx.storage.manager.StorageManager`): lays out a
  machine zone (`store/` with `blobs/`, `vectors/`, `keywords/` and
  `db.sqlite`) and a human zone (`reports/`), creates per-session report
  folders with `evidence/` and `export/`, and reports combined
  `StorageStats`.
- **Sessions** (`yinx.session`): create, pause, resume, stop, persist, list,
  find and delete capture sessions stored as
  `sessions/<id>/state.json`.
- **Retrieval** (`yinx.retrieval`): `ScoredChunk` with `ChunkMetadata` and
  `Provenance`, weighted Reciprocal Rank Fusion, deduplication by chunk id,
  `SearchQuery`, a `Reranker`, and a `HybridSearcher` that ties them together.

## Storing captures

```python
from pathlib import Path

from yinx.storage.manager import StorageManager, StorageStats

storage = StorageManager(Path("/tmp/yinx-data"))

blob_hash, compressed, is_new = storage.blob_store.write(b"Starting Nmap 7.94\nHost is up")
assert storage.blob_store.read(blob_hash) == b"Starting Nmap 7.94\nHost is up"

report_dir = storage.ensure_session_report_dir("engagement-1")  # evidence/ and export/ inside

stats = storage.stats()
print(stats.db.capture_count, StorageStats.format_size(stats.total_size()))
```

`StorageStats.format_size` renders byte counts such as `"1.00 KB"` or
`"1023.00 B"`.

## Sessions

```python
from pathlib import Path

from yinx.session import SessionManager, SessionStatus

manager = SessionManager(Path("/tmp/yinx-data"))
session = manager.create_session("internal-network")
assert session.status is SessionStatus.ACTIVE

for saved in manager.list_sessions():      # newest first
    print(saved.name, saved.duration())

manager.stop_session()
```

`create_session()` without a name uses `session_YYYYMMDD_HHMMSS` in UTC.
Loading or deleting an unknown session raises `SessionNotFoundError`;
stopping when nothing is current raises `SessionError`.

## Fusing ranked results

```python
from yinx.retrieval.fusion import FusionConfig, reciprocal_rank_fusion

config = FusionConfig(rrf_k=60.0, semantic_weight=0.7, keyword_weight=0.3)
fused = reciprocal_rank_fusion(
    [(1, 0.9), (2, 0.8)],   # (chunk id, score) from semantic search
    [(2, 0.95), (4, 0.75)], # (chunk id, score) from keyword search
    config,
)
# [(chunk_id, fused_score), ...] sorted by fused score, highest first
```

Each list contributes `weight / (k + rank)` per id, with ranks starting at 1.
Non-positive weights raise `FusionError`.

## Reranking

`yinx.retrieval.reranker.Reranker(model_name, scorer)` wraps a callable
`scorer(query, documents)` that returns one float per document.
`rerank(query, candidates, top_k)` returns up to `top_k` `(index, score)`
pairs, best first. An empty query, a failing scorer or a wrong number of
scores raises `RerankError`.

## Hybrid search

`yinx.retrieval.hybrid.HybridSearcher` takes an embedding provider (with
`embed(text)`), a vector index (with `search(embedding, limit, ef_search)`),
a keyword index (with `search(query, limit)`), a `Database`, an optional
`RetrievalConfig` and an optional `Reranker`. Index hits may be `(id, score)`
tuples or objects with `id` and `score` attributes.

`await searcher.search(SearchQuery("open ssh ports", limit=5))` runs both
searches concurrently, fuses the rankings, hydrates chunks with provenance from
the database, applies the session, tool and similarity filters, reranks when
`enable_reranking` is set, and removes duplicate chunk ids. An empty query text
or a failure in any stage raises `SearchError`; enabling reranking without
passing a reranker also raises `SearchError`.

## What this package does not do

It has no command-line program, no background daemon and does not capture
terminal sessions itself. It ships no embedding model, vector index or keyword
index and no relevance model for the reranker: those are supplied by the
caller. There is no filtering pipeline that turns raw output into chunks or
entities; chunks and entities are stored and read back as given.

## Tests

The test suite uses pytest and pytest-asyncio, available through the `test`
extra.