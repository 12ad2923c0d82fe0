import json
from datetime import datetime, timezone

import pytest

from yinx.retrieval.provenance import ChunkMetadata, Provenance, ScoredChunk


@pytest.fixture
def provenance():
    return Provenance(
        capture_id=1,
        blob_hash="abc123",
        command="nmap -sV 192.168.1.1",
        timestamp=datetime(2024, 1, 15, 10, 30, 0, 250000, tzinfo=timezone.utc),
        tool="nmap",
    )


@pytest.fixture
def metadata():
    return ChunkMetadata(
        cluster_size=3, pattern="test", scores={"entropy": 0.5}, entities=["192.168.1.1"]
    )


def make_chunk(text, metadata, provenance):
    return ScoredChunk(7, text, 0.9, metadata, provenance)


def test_preview_short_text_unchanged(metadata, provenance):
    chunk = make_chunk("short", metadata, provenance)
    assert chunk.preview(10) == "short"
    assert chunk.preview(5) == "short"


def test_preview_truncates_long_text(metadata, provenance):
    text = "Host is up (0.0012s latency)."
    chunk = make_chunk(text, metadata, provenance)
    preview = chunk.preview(4)
    assert preview == text[:4] + "..."
    assert preview.endswith("...")


def test_scored_chunk_round_trip_through_json(metadata, provenance):
    chunk = make_chunk("22/tcp open ssh", metadata, provenance)
    restored = ScoredChunk.from_dict(json.loads(json.dumps(chunk.to_dict())))
    assert restored == chunk


def test_provenance_timestamp_serialized_as_utc(provenance):
    data = provenance.to_dict()
    assert data["timestamp"].endswith("Z")
    assert Provenance.from_dict(data).timestamp == provenance.timestamp


def test_metadata_missing_field_raises():
    with pytest.raises(ValueError):
        ChunkMetadata.from_dict({"cluster_size": 1, "pattern": "x", "scores": {}})


def test_metadata_rejects_negative_cluster_size():
    with pytest.raises(ValueError):
        ChunkMetadata.from_dict(
            {"cluster_size": -1, "pattern": "x", "scores": {}, "entities": []}
        )


def test_metadata_defaults_are_empty():
    meta = ChunkMetadata(cluster_size=1, pattern="")
    assert meta.scores == {}
    assert meta.entities == []
    assert ChunkMetadata.from_dict(meta.to_dict()) == meta