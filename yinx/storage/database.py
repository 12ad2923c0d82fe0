"""SQLite storage for sessions, captures, blobs, chunks, embeddings and entities."""

from __future__ import annotations

import logging
import os
import sqlite3
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, Sequence

__all__ = [
    "DatabaseError",
    "EmbeddingRecord",
    "ChunkRecord",
    "CaptureRecord",
    "EntityRecord",
    "DbStats",
    "Database",
    "MIGRATIONS",
]

logger = logging.getLogger(__name__)

_BUSY_TIMEOUT_MS = 5000

MIGRATIONS: tuple[str, ...] = (
    """
    CREATE TABLE sessions (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        started_at INTEGER NOT NULL,
        stopped_at INTEGER,
        status TEXT NOT NULL,
        capture_count INTEGER NOT NULL DEFAULT 0,
        blob_count INTEGER NOT NULL DEFAULT 0
    );

    CREATE INDEX idx_sessions_started_at ON sessions(started_at);
    CREATE INDEX idx_sessions_status ON sessions(status);

    CREATE TABLE captures (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        session_id TEXT NOT NULL,
        timestamp INTEGER NOT NULL,
        command TEXT,
        output_hash TEXT NOT NULL,
        tool TEXT,
        exit_code INTEGER,
        cwd TEXT,
        FOREIGN KEY (session_id) REFERENCES sessions(id) ON DELETE CASCADE
    );

    CREATE INDEX idx_captures_session ON captures(session_id);
    CREATE INDEX idx_captures_timestamp ON captures(timestamp);
    CREATE INDEX idx_captures_tool ON captures(tool);

    CREATE TABLE blobs (
        hash TEXT PRIMARY KEY,
        size INTEGER NOT NULL,
        created_at INTEGER NOT NULL,
        compressed BOOLEAN NOT NULL,
        ref_count INTEGER NOT NULL DEFAULT 1
    );

    CREATE INDEX idx_blobs_created_at ON blobs(created_at);

    CREATE TABLE chunks (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        capture_id INTEGER NOT NULL,
        blob_hash TEXT NOT NULL,
        representative_text TEXT NOT NULL,
        cluster_size INTEGER DEFAULT 1,
        metadata TEXT,
        FOREIGN KEY (capture_id) REFERENCES captures(id) ON DELETE CASCADE,
        FOREIGN KEY (blob_hash) REFERENCES blobs(hash)
    );

    CREATE INDEX idx_chunks_capture ON chunks(capture_id);
    CREATE INDEX idx_chunks_blob ON chunks(blob_hash);

    CREATE TABLE embeddings (
        chunk_id INTEGER PRIMARY KEY,
        vector BLOB NOT NULL,
        model TEXT NOT NULL,
        created_at INTEGER NOT NULL,
        FOREIGN KEY (chunk_id) REFERENCES chunks(id) ON DELETE CASCADE
    );

    CREATE INDEX idx_embeddings_model ON embeddings(model);

    CREATE TABLE entities (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        capture_id INTEGER NOT NULL,
        type TEXT NOT NULL,
        value TEXT NOT NULL,
        context TEXT,
        confidence REAL NOT NULL DEFAULT 1.0,
        FOREIGN KEY (capture_id) REFERENCES captures(id) ON DELETE CASCADE
    );

    CREATE INDEX idx_entities_capture ON entities(capture_id);
    CREATE INDEX idx_entities_type ON entities(type);
    CREATE INDEX idx_entities_value ON entities(value);
    """,
)

_CHUNK_COLUMNS = "id, capture_id, blob_hash, representative_text, cluster_size, metadata"
_ENTITY_COLUMNS = "id, capture_id, type, value, context, confidence"


class DatabaseError(Exception):
    """Raised when a database operation fails."""


@dataclass(frozen=True)
class EmbeddingRecord:
    chunk_id: int
    vector: bytes
    model: str
    created_at: int


@dataclass(frozen=True)
class ChunkRecord:
    id: int
    capture_id: int
    blob_hash: str
    representative_text: str
    cluster_size: int
    metadata: str | None


@dataclass(frozen=True)
class CaptureRecord:
    id: int
    session_id: str
    timestamp: int
    command: str | None
    output_hash: str
    tool: str | None
    exit_code: int | None
    cwd: str | None


@dataclass(frozen=True)
class EntityRecord:
    id: int
    capture_id: int
    entity_type: str
    value: str
    context: str | None
    confidence: float


@dataclass(frozen=True)
class DbStats:
    session_count: int
    capture_count: int
    blob_count: int
    chunk_count: int
    entity_count: int
    total_size_bytes: int


def _chunk(row: sqlite3.Row | tuple) -> ChunkRecord:
    return ChunkRecord(*row)


def _entity(row: sqlite3.Row | tuple) -> EntityRecord:
    return EntityRecord(*row)


class Database:
    """SQLite database with schema migrations applied on open."""

    def __init__(self, db_path: str | os.PathLike[str]) -> None:
        self.db_path = Path(db_path)
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise DatabaseError(
                f"Failed to create database directory: {self.db_path.parent}: {exc}"
            ) from exc
        with self.connection() as conn:
            conn.execute("PRAGMA journal_mode = WAL")
        self._migrate()

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Yield a configured autocommit connection; SQLite errors become DatabaseError."""
        try:
            conn = sqlite3.connect(
                self.db_path, timeout=_BUSY_TIMEOUT_MS / 1000, isolation_level=None
            )
        except sqlite3.Error as exc:
            raise DatabaseError(f"Failed to get connection: {exc}") from exc
        try:
            conn.execute("PRAGMA synchronous = NORMAL")
            conn.execute("PRAGMA foreign_keys = ON")
            conn.execute(f"PRAGMA busy_timeout = {_BUSY_TIMEOUT_MS}")
            yield conn
        except sqlite3.Error as exc:
            raise DatabaseError(str(exc)) from exc
        finally:
            conn.close()

    def _migrate(self) -> None:
        with self.connection() as conn:
            conn.execute(
                "CREATE TABLE IF NOT EXISTS _migrations ("
                " version INTEGER PRIMARY KEY,"
                " applied_at TEXT NOT NULL)"
            )
            (current,) = conn.execute(
                "SELECT COALESCE(MAX(version), 0) FROM _migrations"
            ).fetchone()
            for version, script in enumerate(MIGRATIONS, start=1):
                if version <= current:
                    continue
                logger.info("Applying migration %d", version)
                conn.executescript(script)
                conn.execute(
                    "INSERT INTO _migrations (version, applied_at) VALUES (?, datetime('now'))",
                    (version,),
                )

    def stats(self) -> DbStats:
        with self.connection() as conn:

            def scalar(sql: str) -> int:
                return int(conn.execute(sql).fetchone()[0])

            return DbStats(
                session_count=scalar("SELECT COUNT(*) FROM sessions"),
                capture_count=scalar("SELECT COUNT(*) FROM captures"),
                blob_count=scalar("SELECT COUNT(*) FROM blobs"),
                chunk_count=scalar("SELECT COUNT(*) FROM chunks"),
                entity_count=scalar("SELECT COUNT(*) FROM entities"),
                total_size_bytes=scalar("SELECT COALESCE(SUM(size), 0) FROM blobs"),
            )

    def insert_entities(
        self, capture_id: int, entities: Iterable[tuple[str, str, str | None, float]]
    ) -> int:
        """Insert ``(type, value, context, confidence)`` tuples; return how many were inserted."""
        inserted = 0
        with self.connection() as conn:
            for entity_type, value, context, confidence in entities:
                conn.execute(
                    "INSERT INTO entities (capture_id, type, value, context, confidence)"
                    " VALUES (?, ?, ?, ?, ?)",
                    (capture_id, entity_type, value, context, confidence),
                )
                inserted += 1
        return inserted

    def get_entities_for_capture(self, capture_id: int) -> list[EntityRecord]:
        with self.connection() as conn:
            rows = conn.execute(
                f"SELECT {_ENTITY_COLUMNS} FROM entities WHERE capture_id = ?", (capture_id,)
            ).fetchall()
        return [_entity(row) for row in rows]

    def get_entities_by_type(self, entity_type: str) -> list[EntityRecord]:
        with self.connection() as conn:
            rows = conn.execute(
                f"SELECT {_ENTITY_COLUMNS} FROM entities WHERE type = ?", (entity_type,)
            ).fetchall()
        return [_entity(row) for row in rows]

    def insert_embedding(self, chunk_id: int, vector: bytes, model: str) -> None:
        """Store (or replace) the embedding for a chunk."""
        self.insert_embeddings_batch([(chunk_id, vector, model)])

    def insert_embeddings_batch(self, embeddings: Iterable[tuple[int, bytes, str]]) -> int:
        """Store ``(chunk_id, vector, model)`` tuples; return how many were written."""
        now = int(time.time())
        inserted = 0
        with self.connection() as conn:
            for chunk_id, vector, model in embeddings:
                conn.execute(
                    "INSERT OR REPLACE INTO embeddings (chunk_id, vector, model, created_at)"
                    " VALUES (?, ?, ?, ?)",
                    (chunk_id, bytes(vector), model, now),
                )
                inserted += 1
        return inserted

    def get_embedding(self, chunk_id: int) -> EmbeddingRecord | None:
        with self.connection() as conn:
            row = conn.execute(
                "SELECT chunk_id, vector, model, created_at FROM embeddings WHERE chunk_id = ?",
                (chunk_id,),
            ).fetchone()
        if row is None:
            return None
        chunk, vector, model, created_at = row
        return EmbeddingRecord(chunk, bytes(vector), model, created_at)

    def get_chunks_without_embeddings(self) -> list[ChunkRecord]:
        with self.connection() as conn:
            rows = conn.execute(
                "SELECT c.id, c.capture_id, c.blob_hash, c.representative_text,"
                " c.cluster_size, c.metadata"
                " FROM chunks c LEFT JOIN embeddings e ON c.id = e.chunk_id"
                " WHERE e.chunk_id IS NULL"
            ).fetchall()
        return [_chunk(row) for row in rows]

    def get_chunk(self, chunk_id: int) -> ChunkRecord | None:
        with self.connection() as conn:
            row = conn.execute(
                f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE id = ?", (chunk_id,)
            ).fetchone()
        return None if row is None else _chunk(row)

    def get_chunks(self, chunk_ids: Sequence[int]) -> list[ChunkRecord]:
        """Fetch the chunks with the given ids; missing ids are skipped."""
        ids = list(chunk_ids)
        if not ids:
            return []
        placeholders = ",".join("?" for _ in ids)
        with self.connection() as conn:
            rows = conn.execute(
                f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE id IN ({placeholders})", ids
            ).fetchall()
        return [_chunk(row) for row in rows]

    def get_capture(self, capture_id: int) -> CaptureRecord | None:
        with self.connection() as conn:
            row = conn.execute(
                "SELECT id, session_id, timestamp, command, output_hash, tool, exit_code, cwd"
                " FROM captures WHERE id = ?",
                (capture_id,),
            ).fetchone()
        return None if row is None else CaptureRecord(*row)

    def count_embeddings(self) -> int:
        with self.connection() as conn:
            return int(conn.execute("SELECT COUNT(*) FROM embeddings").fetchone()[0])