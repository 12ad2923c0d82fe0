"""Hybrid retrieval: scored chunks with provenance, rank fusion, deduplication and reranking."""