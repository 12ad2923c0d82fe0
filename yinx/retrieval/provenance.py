"""Provenance tracking and scored chunk structures."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping

__all__ = ["Provenance", "ChunkMetadata", "ScoredChunk"]

_FRACTION = re.compile(r"\.(\d+)")


def _format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text[-1:] in ("Z", "z"):
            text = text[:-1] + "+00:00"
        text = _FRACTION.sub(lambda m: "." + (m.group(1) + "000000")[:6], text, count=1)
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _require(data: Mapping[str, Any], key: str) -> Any:
    try:
        return data[key]
    except KeyError as exc:
        raise ValueError(f"missing field `{key}`") from exc


@dataclass
class Provenance:
    """Where a chunk came from."""

    capture_id: int
    blob_hash: str
    command: str
    timestamp: datetime
    tool: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "capture_id": self.capture_id,
            "blob_hash": self.blob_hash,
            "command": self.command,
            "timestamp": _format_timestamp(self.timestamp),
            "tool": self.tool,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Provenance:
        return cls(
            capture_id=int(_require(data, "capture_id")),
            blob_hash=str(_require(data, "blob_hash")),
            command=str(_require(data, "command")),
            timestamp=_parse_timestamp(_require(data, "timestamp")),
            tool=str(_require(data, "tool")),
        )


@dataclass
class ChunkMetadata:
    """Metadata produced by the filtering pipeline."""

    cluster_size: int
    pattern: str
    scores: Any = field(default_factory=dict)
    entities: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "cluster_size": self.cluster_size,
            "pattern": self.pattern,
            "scores": self.scores,
            "entities": list(self.entities),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ChunkMetadata:
        cluster_size = _require(data, "cluster_size")
        if isinstance(cluster_size, bool) or not isinstance(cluster_size, int) or cluster_size < 0:
            raise ValueError(f"invalid cluster_size: {cluster_size!r}")
        pattern = _require(data, "pattern")
        if not isinstance(pattern, str):
            raise ValueError(f"invalid pattern: {pattern!r}")
        entities = _require(data, "entities")
        if not isinstance(entities, list) or not all(isinstance(e, str) for e in entities):
            raise ValueError(f"invalid entities: {entities!r}")
        return cls(
            cluster_size=cluster_size,
            pattern=pattern,
            scores=_require(data, "scores"),
            entities=list(entities),
        )


@dataclass
class ScoredChunk:
    """A chunk with a relevance score and full provenance."""

    chunk_id: int
    text: str
    score: float
    metadata: ChunkMetadata
    provenance: Provenance

    def preview(self, max_chars: int) -> str:
        """Return the text, cut to ``max_chars`` characters with ``...`` if longer."""
        if len(self.text) <= max_chars:
            return self.text
        return f"{self.text[:max_chars]}..."

    def to_dict(self) -> dict[str, Any]:
        return {
            "chunk_id": self.chunk_id,
            "text": self.text,
            "score": self.score,
            "metadata": self.metadata.to_dict(),
            "provenance": self.provenance.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ScoredChunk:
        return cls(
            chunk_id=int(_require(data, "chunk_id")),
            text=str(_require(data, "text")),
            score=float(_require(data, "score")),
            metadata=ChunkMetadata.from_dict(_require(data, "metadata")),
            provenance=Provenance.from_dict(_require(data, "provenance")),
        )