"""Content-addressed blob storage keyed by BLAKE3 hashes."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, NamedTuple

import zstandard

from yinx.contenthash import blake3_hex

__all__ = ["BlobError", "BlobWrite", "GcStats", "BlobStore", "HASH_LENGTH"]

HASH_LENGTH = 32
_COMPRESSION_LEVEL = 3
_TEMP_SUFFIX = ".tmp"


class BlobError(Exception):
    """Raised when a blob cannot be found or addressed."""


class BlobWrite(NamedTuple):
    """Outcome of writing a blob."""

    blob_hash: str
    compressed: bool
    is_new: bool


@dataclass
class GcStats:
    """Statistics from garbage collection."""

    total_blobs: int = 0
    deleted_blobs: int = 0
    freed_bytes: int = 0


class BlobStore:
    """Deduplicating blob store with two-level sharded layout and zstd compression."""

    def __init__(self, base_path: str | os.PathLike[str], compression_threshold: int) -> None:
        self.base_path = Path(base_path)
        self.compression_enabled = True
        self.compression_threshold = compression_threshold
        self._blobs_dir.mkdir(parents=True, exist_ok=True)

    @property
    def _blobs_dir(self) -> Path:
        return self.base_path / "blobs"

    def write(self, data: bytes | bytearray | memoryview) -> BlobWrite:
        """Store ``data`` and return its hash, whether it was compressed and whether it was new."""
        data = bytes(data)
        blob_hash = blake3_hex(data, HASH_LENGTH)
        path = self.blob_path(blob_hash)
        if path.exists():
            return BlobWrite(blob_hash, False, False)

        compress = self.compression_enabled and len(data) >= self.compression_threshold
        payload = (
            zstandard.ZstdCompressor(level=_COMPRESSION_LEVEL).compress(data) if compress else data
        )

        path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = path.with_name(blob_hash + _TEMP_SUFFIX)
        with open(temp_path, "wb") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_path, path)
        return BlobWrite(blob_hash, compress, True)

    def read(self, blob_hash: str) -> bytes:
        """Return the original bytes stored under ``blob_hash``."""
        path = self.blob_path(blob_hash)
        try:
            raw = path.read_bytes()
        except FileNotFoundError as exc:
            raise BlobError(f"Blob not found: {blob_hash}") from exc
        try:
            return zstandard.ZstdDecompressor().decompressobj().decompress(raw)
        except zstandard.ZstdError:
            return raw

    def exists(self, blob_hash: str) -> bool:
        return self.blob_path(blob_hash).exists()

    def delete(self, blob_hash: str) -> None:
        """Remove a blob if present; callers must check references first."""
        self.blob_path(blob_hash).unlink(missing_ok=True)

    def size(self, blob_hash: str) -> int:
        """Return the stored (possibly compressed) size in bytes."""
        try:
            return self.blob_path(blob_hash).stat().st_size
        except FileNotFoundError as exc:
            raise BlobError(f"Blob not found: {blob_hash}") from exc

    def blob_path(self, blob_hash: str) -> Path:
        """Return the sharded path ``blobs/ab/cd/<hash>`` for a hash."""
        if len(blob_hash) < 4:
            raise BlobError(f"Invalid blob hash: {blob_hash!r}")
        return self._blobs_dir / blob_hash[0:2] / blob_hash[2:4] / blob_hash

    def gc(self, referenced_hashes: Iterable[str]) -> GcStats:
        """Delete every stored blob whose hash is not in ``referenced_hashes``."""
        referenced = set(referenced_hashes)
        stats = GcStats()
        for blob_hash, path in list(self._iter_blobs()):
            stats.total_blobs += 1
            if blob_hash in referenced:
                continue
            try:
                stats.freed_bytes += path.stat().st_size
            except OSError:
                pass
            try:
                path.unlink()
            except OSError:
                continue
            stats.deleted_blobs += 1
        return stats

    def _iter_blobs(self) -> Iterator[tuple[str, Path]]:
        if not self._blobs_dir.exists():
            return
        for shard1 in self._blobs_dir.iterdir():
            if not shard1.is_dir():
                continue
            for shard2 in shard1.iterdir():
                if not shard2.is_dir():
                    continue
                for entry in shard2.iterdir():
                    if entry.is_file() and not entry.name.endswith(_TEMP_SUFFIX):
                        yield entry.name, entry