"""
Embedding vector storage and similarity search.

Vectors are stored as little-endian float32 blobs keyed by entity id.  Two
independent index spaces exist (chunks and memories); each is a
``VectorStore`` bound to its own table and they are never cross-matched.

Search is brute force, O(n·d) over every stored vector.  That is fine for
per-project corpora of thousands of vectors.  ``ChromaVectorStore`` offers
the same interface backed by a chromadb HNSW collection for larger ones.

Distances follow the usual cosine convention::

    distance = 1 - cosine_similarity
    cosine_similarity ∈ [-1, 1]  →  distance ∈ [0, 2]
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any, NamedTuple, Protocol

import chromadb
import numpy as np
from chromadb.errors import ChromaError

from .db import Database
from .errors import StorageError

logger = logging.getLogger(__name__)

#: Byte width of one encoded vector component.
COMPONENT_WIDTH: int = 4

_DTYPE = np.dtype("<f4")

#: Similarities are rounded before ranking; candidates closer than this are
#: float32 noise apart and tie.
SIMILARITY_DECIMALS: int = 9

CHUNK_TABLE = "chunk_embeddings"
MEMORY_TABLE = "memory_embeddings"


# ---------------------------------------------------------------------------
# Codec
# ---------------------------------------------------------------------------


def encode_vector(vector: Sequence[float] | np.ndarray | None) -> bytes:
    """Encode *vector* as N little-endian float32 values (4·N bytes)."""
    if vector is None or len(vector) == 0:
        return b""
    return np.asarray(vector, dtype=_DTYPE).tobytes()


def decode_vector(blob: bytes | None) -> np.ndarray:
    """Inverse of ``encode_vector``."""
    if not blob:
        return np.empty(0, dtype=_DTYPE)
    if len(blob) % COMPONENT_WIDTH:
        raise ValueError(
            f"embedding blob length {len(blob)} is not a multiple of {COMPONENT_WIDTH}"
        )
    return np.frombuffer(blob, dtype=_DTYPE)


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------


class VectorMatch(NamedTuple):
    id: str
    distance: float

    @property
    def similarity(self) -> float:
        return 1.0 - self.distance


class VectorIndex(Protocol):
    """Interface shared by every vector backend."""

    def upsert(self, id: str, vector: Sequence[float] | None) -> None: ...

    def delete(self, id: str) -> None: ...

    def search(
        self,
        query: Sequence[float] | None,
        top_k: int,
        similarity_threshold: float = 0.0,
    ) -> list[VectorMatch]: ...

    def get(self, id: str) -> np.ndarray | None: ...

    def ids(self) -> list[str]: ...

    def count(self) -> int: ...


def cosine_similarities(query: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """
    Cosine similarity between *query* and every row of *matrix*.

    Rows (or a query) with zero norm have similarity 0.
    """
    q = query.astype(np.float64)
    m = matrix.astype(np.float64)
    norms = np.linalg.norm(m, axis=1) * np.linalg.norm(q)
    dots = m @ q
    with np.errstate(divide="ignore", invalid="ignore"):
        sims = np.where(norms > 0, dots / norms, 0.0)
    return np.round(np.clip(sims, -1.0, 1.0), SIMILARITY_DECIMALS)


class VectorStore:
    """
    Brute-force vector index stored in one table of the project database.

    Parameters
    ----------
    db:
        Shared project database.
    table:
        ``CHUNK_TABLE`` or ``MEMORY_TABLE``.
    """

    def __init__(self, db: Database, table: str) -> None:
        if table not in (CHUNK_TABLE, MEMORY_TABLE):
            raise ValueError(f"unknown embedding table {table!r}")
        self.db = db
        self.table = table

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    def upsert(self, id: str, vector: Sequence[float] | None) -> None:
        """
        Store *vector* for *id*, replacing any previous one.  An empty
        vector is a no-op.
        """
        blob = encode_vector(vector)
        if not blob:
            return
        # ON CONFLICT keeps the row (and its rowid), so a replaced vector
        # keeps its original insertion position for tie-breaking.
        with self.db.write() as conn:
            conn.execute(
                f"""
                INSERT INTO {self.table} (id, vector) VALUES (?, ?)
                ON CONFLICT(id) DO UPDATE SET vector = excluded.vector
                """,
                (id, blob),
            )

    def delete(self, id: str) -> None:
        """Remove the vector for *id*.  Unknown ids are ignored."""
        with self.db.write() as conn:
            conn.execute(f"DELETE FROM {self.table} WHERE id = ?", (id,))

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    def search(
        self,
        query: Sequence[float] | None,
        top_k: int,
        similarity_threshold: float = 0.0,
    ) -> list[VectorMatch]:
        """
        Return up to *top_k* stored vectors with cosine similarity of at
        least *similarity_threshold*, most similar first.

        Vectors whose dimension differs from the query's are skipped.  An
        empty query returns an empty list.
        """
        if query is None or len(query) == 0 or top_k <= 0:
            return []
        q = np.asarray(query, dtype=_DTYPE)
        dim_bytes = len(q) * COMPONENT_WIDTH

        rows = self.db.query(
            f"SELECT id, vector FROM {self.table} WHERE length(vector) = ? ORDER BY rowid",
            (dim_bytes,),
        )
        if not rows:
            return []

        ids = [r["id"] for r in rows]
        matrix = np.frombuffer(b"".join(r["vector"] for r in rows), dtype=_DTYPE)
        matrix = matrix.reshape(len(rows), len(q))
        sims = cosine_similarities(q, matrix)

        # Stable sort keeps rowid (insertion) order among equal distances.
        order = np.argsort(-sims, kind="stable")
        matches: list[VectorMatch] = []
        for i in order:
            if sims[i] < similarity_threshold:
                break
            matches.append(VectorMatch(ids[i], float(1.0 - sims[i])))
            if len(matches) == top_k:
                break
        return matches

    def get(self, id: str) -> np.ndarray | None:
        row = self.db.query_one(f"SELECT vector FROM {self.table} WHERE id = ?", (id,))
        return decode_vector(row["vector"]) if row else None

    def ids(self) -> list[str]:
        return [r["id"] for r in self.db.query(f"SELECT id FROM {self.table} ORDER BY rowid")]

    def count(self) -> int:
        row = self.db.query_one(f"SELECT COUNT(*) AS n FROM {self.table}")
        return int(row["n"]) if row else 0


@contextmanager
def _chroma_errors(action: str) -> Iterator[None]:
    """Re-raise chromadb failures as ``StorageError``."""
    try:
        yield
    except (ChromaError, ValueError) as exc:
        raise StorageError(f"chroma {action} failed: {exc}") from exc


class ChromaVectorStore:
    """
    Vector index backed by a chromadb collection in cosine space.

    Same interface as ``VectorStore``.  Results come from chromadb's HNSW
    index, so they are approximate and equal-distance ordering is not
    guaranteed.
    """

    def __init__(
        self,
        path: str = "./chroma_db",
        collection_name: str = MEMORY_TABLE,
        _client: chromadb.ClientAPI | None = None,
    ) -> None:
        self.client = _client or chromadb.PersistentClient(path=path)
        self.collection = self.client.get_or_create_collection(
            name=collection_name,
            embedding_function=None,
            metadata={"hnsw:space": "cosine"},
        )

    def upsert(self, id: str, vector: Sequence[float] | None) -> None:
        if vector is None or len(vector) == 0:
            return
        with _chroma_errors("upsert"):
            self.collection.upsert(ids=[id], embeddings=[[float(x) for x in vector]])

    def delete(self, id: str) -> None:
        with _chroma_errors("delete"):
            self.collection.delete(ids=[id])

    def search(
        self,
        query: Sequence[float] | None,
        top_k: int,
        similarity_threshold: float = 0.0,
    ) -> list[VectorMatch]:
        if query is None or len(query) == 0 or top_k <= 0:
            return []
        n = min(top_k, self.count())
        if n == 0:
            return []
        with _chroma_errors("query"):
            result: dict[str, Any] = self.collection.query(
                query_embeddings=[[float(x) for x in query]],
                n_results=n,
                include=["distances"],
            )
        ids = result["ids"][0]
        distances = result["distances"][0]
        return [
            VectorMatch(id, float(d))
            for id, d in zip(ids, distances)
            if 1.0 - float(d) >= similarity_threshold
        ]

    def get(self, id: str) -> np.ndarray | None:
        with _chroma_errors("get"):
            result: dict[str, Any] = self.collection.get(ids=[id], include=["embeddings"])
        embeddings = result.get("embeddings")
        if embeddings is None or len(embeddings) == 0:
            return None
        return np.asarray(embeddings[0], dtype=_DTYPE)

    def ids(self) -> list[str]:
        return list(self.collection.get(include=[])["ids"])

    def count(self) -> int:
        return self.collection.count()
