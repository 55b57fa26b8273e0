"""Tests for the vector codec and the vector stores."""

from __future__ import annotations

import struct

import numpy as np
import pytest

from clanker_context.errors import StorageError
from clanker_context.vectors import (
    CHUNK_TABLE,
    ChromaVectorStore,
    VectorStore,
    decode_vector,
    encode_vector,
)
from conftest import make_vec

FLT_MAX = float(np.finfo(np.float32).max)


# ---------------------------------------------------------------------------
# Codec
# ---------------------------------------------------------------------------


class TestCodec:
    def test_encodes_four_bytes_per_component(self):
        blob = encode_vector([1.0, 2.0, 3.0])
        assert len(blob) == 12

    def test_little_endian_layout(self):
        blob = encode_vector([1.0, -2.5])
        assert blob == struct.pack("<2f", 1.0, -2.5)

    def test_round_trip(self):
        original = [1.5, -2.5, 3.14]
        result = decode_vector(encode_vector(original))
        assert result.tolist() == pytest.approx(original, rel=1e-6)
        assert len(result) == len(original)

    def test_round_trip_extremes_is_exact(self):
        values = np.array([0.0, -1.0, 1e-10, 1e10, FLT_MAX, -FLT_MAX], dtype=np.float32)
        result = decode_vector(encode_vector(values))
        assert np.array_equal(result, values)

    def test_empty_and_none_encode_to_empty_blob(self):
        assert encode_vector(None) == b""
        assert encode_vector([]) == b""

    def test_empty_blob_decodes_to_empty_vector(self):
        assert len(decode_vector(b"")) == 0
        assert len(decode_vector(None)) == 0

    def test_truncated_blob_is_rejected(self):
        with pytest.raises(ValueError):
            decode_vector(b"\x00\x00\x80")


# ---------------------------------------------------------------------------
# Brute-force store
# ---------------------------------------------------------------------------


class TestVectorStore:
    def test_rejects_unknown_table(self, db):
        with pytest.raises(ValueError):
            VectorStore(db, "files")

    def test_nearest_uniform_vector_wins(self, chunk_vectors):
        chunk_vectors.upsert("chunk-1", make_vec(1.0))
        chunk_vectors.upsert("chunk-2", make_vec(5.0))

        matches = chunk_vectors.search(make_vec(1.1), 10, 0.0)

        assert len(matches) == 2
        assert matches[0].id == "chunk-1"

    def test_more_similar_vector_ranks_first(self, memory_vectors):
        memory_vectors.upsert("far", [0.0, 1.0, 0.0])
        memory_vectors.upsert("near", [1.0, 0.1, 0.0])

        matches = memory_vectors.search([1.0, 0.0, 0.0], 10, 0.0)

        assert [m.id for m in matches] == ["near", "far"]
        assert matches[0].distance < matches[1].distance

    def test_empty_query_returns_empty(self, chunk_vectors):
        chunk_vectors.upsert("a", make_vec(1.0))
        assert chunk_vectors.search(None, 10, 0.0) == []
        assert chunk_vectors.search([], 10, 0.0) == []

    def test_threshold_filters_results(self, chunk_vectors):
        chunk_vectors.upsert("close", [1.0, 0.0])
        chunk_vectors.upsert("far", [0.0, 1.0])

        matches = chunk_vectors.search([1.0, 0.0], 10, 0.99)

        assert [m.id for m in matches] == ["close"]

    def test_results_respect_properties(self, chunk_vectors):
        rng = np.random.default_rng(42)
        for i in range(40):
            chunk_vectors.upsert(f"v{i}", rng.normal(size=8).tolist())
        query = rng.normal(size=8).tolist()

        matches = chunk_vectors.search(query, 7, 0.1)

        assert len(matches) <= 7
        sims = [m.similarity for m in matches]
        assert all(s >= 0.1 for s in sims)
        assert sims == sorted(sims, reverse=True)

    def test_top_k_limits_results(self, chunk_vectors):
        for i in range(5):
            chunk_vectors.upsert(f"v{i}", [1.0, float(i)])
        assert len(chunk_vectors.search([1.0, 1.0], 2, -1.0)) == 2
        assert chunk_vectors.search([1.0, 1.0], 0, -1.0) == []

    def test_ties_keep_insertion_order(self, chunk_vectors):
        for name in ("first", "second", "third"):
            chunk_vectors.upsert(name, [2.0, 2.0])
        matches = chunk_vectors.search([1.0, 1.0], 10, 0.0)
        assert [m.id for m in matches] == ["first", "second", "third"]

    def test_upsert_replaces_and_keeps_position(self, chunk_vectors):
        chunk_vectors.upsert("a", [1.0, 0.0])
        chunk_vectors.upsert("b", [1.0, 0.0])
        chunk_vectors.upsert("a", [1.0, 0.0])

        assert chunk_vectors.count() == 2
        assert chunk_vectors.ids() == ["a", "b"]

    def test_upsert_latest_write_wins(self, chunk_vectors):
        chunk_vectors.upsert("replace-me", make_vec(1.0))
        chunk_vectors.upsert("replace-me", [0.0] * 767 + [1.0])

        assert np.array_equal(chunk_vectors.get("replace-me"), np.array([0.0] * 767 + [1.0], dtype=np.float32))
        matches = chunk_vectors.search([0.0] * 767 + [1.0], 10, 0.0)
        assert matches[0].id == "replace-me"
        assert matches[0].distance == pytest.approx(0.0, abs=1e-6)

    def test_empty_upsert_is_noop(self, chunk_vectors):
        chunk_vectors.upsert("id", None)
        chunk_vectors.upsert("id", [])
        assert chunk_vectors.count() == 0

    def test_empty_upsert_does_not_delete(self, chunk_vectors):
        chunk_vectors.upsert("id", [1.0, 2.0])
        chunk_vectors.upsert("id", [])
        assert chunk_vectors.count() == 1

    def test_delete_removes_from_search(self, chunk_vectors):
        vec = make_vec(1.0)
        chunk_vectors.upsert("to-delete", vec)
        chunk_vectors.upsert("keep", make_vec(2.0))

        chunk_vectors.delete("to-delete")

        assert all(m.id != "to-delete" for m in chunk_vectors.search(vec, 10, -1.0))
        assert chunk_vectors.get("to-delete") is None

    def test_delete_unknown_id_is_not_an_error(self, chunk_vectors):
        chunk_vectors.delete("never-stored")
        chunk_vectors.delete("never-stored")

    def test_mismatched_dimensions_are_skipped(self, chunk_vectors):
        chunk_vectors.upsert("three", [1.0, 0.0, 0.0])
        chunk_vectors.upsert("two", [1.0, 0.0])
        matches = chunk_vectors.search([1.0, 0.0], 10, 0.0)
        assert [m.id for m in matches] == ["two"]

    def test_zero_vector_has_zero_similarity(self, chunk_vectors):
        chunk_vectors.upsert("zero", [0.0, 0.0])
        matches = chunk_vectors.search([1.0, 0.0], 10, -1.0)
        assert matches[0].similarity == pytest.approx(0.0)

    def test_index_spaces_are_independent(self, chunk_vectors, memory_vectors):
        chunk_vectors.upsert("shared", [1.0, 0.0])
        assert memory_vectors.search([1.0, 0.0], 10, 0.0) == []
        memory_vectors.delete("shared")
        assert chunk_vectors.count() == 1


# ---------------------------------------------------------------------------
# Chroma backend
# ---------------------------------------------------------------------------

class TestChromaVectorStore:
    def test_empty_store_search_returns_empty(self, chroma_vectors):
        assert chroma_vectors.search([1.0, 0.0], 5, 0.0) == []

    def test_upsert_and_search(self, chroma_vectors):
        chroma_vectors.upsert("near", [1.0, 0.1, 0.0])
        chroma_vectors.upsert("far", [0.0, 0.0, 1.0])

        matches = chroma_vectors.search([1.0, 0.0, 0.0], 5, 0.5)

        assert [m.id for m in matches] == ["near"]

    def test_upsert_replaces(self, chroma_vectors):
        chroma_vectors.upsert("a", [1.0, 0.0])
        chroma_vectors.upsert("a", [0.0, 1.0])
        assert chroma_vectors.count() == 1
        assert chroma_vectors.search([0.0, 1.0], 5, 0.9)[0].id == "a"

    def test_empty_vector_and_query_are_noops(self, chroma_vectors):
        chroma_vectors.upsert("a", [])
        assert chroma_vectors.count() == 0
        assert chroma_vectors.search(None, 5, 0.0) == []

    def test_delete(self, chroma_vectors):
        chroma_vectors.upsert("a", [1.0, 0.0])
        chroma_vectors.delete("a")
        assert chroma_vectors.count() == 0
        assert chroma_vectors.ids() == []

    def test_get(self, chroma_vectors):
        chroma_vectors.upsert("a", [0.6, 0.8])
        assert chroma_vectors.get("a").tolist() == pytest.approx([0.6, 0.8])
        assert chroma_vectors.get("missing") is None

    def test_dimension_mismatch_is_storage_error(self, chroma_vectors):
        chroma_vectors.upsert("a", [1.0, 0.0])
        with pytest.raises(StorageError):
            chroma_vectors.upsert("b", [1.0, 0.0, 0.0])
        with pytest.raises(StorageError):
            chroma_vectors.search([1.0, 0.0, 0.0], 5, 0.0)
        assert chroma_vectors.ids() == ["a"]
