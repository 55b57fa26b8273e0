"""
Shared pytest fixtures for clanker-context tests.

Every test gets its own SQLite database under ``tmp_path``.  Embeddings come
from deterministic stand-ins so that tests run fast without downloading any
ML models.
"""

from __future__ import annotations

import hashlib
import uuid
from pathlib import Path

import chromadb
import pytest

from clanker_context.config import Settings
from clanker_context.db import Database
from clanker_context.embeddings import SentenceTransformerEmbedder
from clanker_context.engine import ContextEngine
from clanker_context.errors import EmbeddingError
from clanker_context.memory import Orchestrator
from clanker_context.models import Project, TechStack
from clanker_context.ranker import Ranker
from clanker_context.store import MetadataStore
from clanker_context.vectors import CHUNK_TABLE, MEMORY_TABLE, ChromaVectorStore, VectorStore

# A single shared EphemeralClient instance for the test session.
# Each test uses a uniquely named collection so tests are isolated.
_EPHEMERAL_CLIENT = chromadb.EphemeralClient()


class FakeEmbeddingFunction:
    """
    Deterministic embedding function that maps text to a unit vector
    derived from its MD5 hash.  Fast and reproducible – no model download.
    Same calling convention as chromadb's embedding functions.
    """

    def name(self) -> str:
        return "fake-md5-embedding"

    def __call__(self, input: list[str]) -> list[list[float]]:  # noqa: A002
        embeddings = []
        for text in input:
            digest = hashlib.md5(text.encode()).digest()
            # 16-byte digest → 16-dim float vector in [-1, 1]
            vec = [(b - 128) / 128.0 for b in digest]
            norm = sum(x * x for x in vec) ** 0.5 or 1.0
            embeddings.append([x / norm for x in vec])
        return embeddings


class StubEmbedder:
    """
    Returns fixed vectors, cycling through *vectors* for each input text,
    or raises *error* when one is given.
    """

    def __init__(self, vectors: list[list[float]] | None = None, error: Exception | None = None):
        self.vectors = vectors or []
        self.error = error
        self.calls: list[list[str]] = []

    def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.error is not None:
            raise self.error
        return [self.vectors[i % len(self.vectors)] for i in range(len(texts))]


def make_vec(base: float, dim: int = 768) -> list[float]:
    """A *dim*-component vector with every component equal to *base*."""
    return [base] * dim


def seed_project(store: MetadataStore, name: str = "testproject") -> None:
    store.upsert_project(
        Project(
            name=name,
            root_path=f"/tmp/{name}",
            tech_stack=TechStack(language="Python", framework="FastAPI", database="PostgreSQL"),
        )
    )


@pytest.fixture()
def db(tmp_path: Path) -> Database:
    database = Database(tmp_path / "context.db")
    yield database
    database.close()


@pytest.fixture()
def store(db: Database) -> MetadataStore:
    return MetadataStore(db)


@pytest.fixture()
def chunk_vectors(db: Database) -> VectorStore:
    return VectorStore(db, CHUNK_TABLE)


@pytest.fixture()
def memory_vectors(db: Database) -> VectorStore:
    return VectorStore(db, MEMORY_TABLE)


@pytest.fixture()
def chroma_vectors() -> ChromaVectorStore:
    return ChromaVectorStore(
        collection_name=f"test_{uuid.uuid4().hex}",
        _client=_EPHEMERAL_CLIENT,
    )


@pytest.fixture()
def fake_embedder() -> SentenceTransformerEmbedder:
    return SentenceTransformerEmbedder(_embedding_function=FakeEmbeddingFunction())


@pytest.fixture()
def failing_embedder() -> StubEmbedder:
    return StubEmbedder(error=EmbeddingError("embed failed"))


@pytest.fixture()
def make_orchestrator(store, chunk_vectors, memory_vectors):
    """Factory for an orchestrator over the test stores with a chosen embedder."""
    created: list[Orchestrator] = []

    def _make(embedder=None, embed_timeout=None) -> Orchestrator:
        orch = Orchestrator(
            store,
            chunk_vectors,
            memory_vectors,
            ranker=Ranker(),
            embedder=embedder,
            embed_timeout=embed_timeout,
        )
        created.append(orch)
        return orch

    yield _make
    for orch in created:
        orch.close()


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings.from_env(tmp_path, environ={"CLANKER_CONTEXT_EMBEDDINGS": "0"})


@pytest.fixture()
def engine(settings: Settings) -> ContextEngine:
    """Engine over a temporary project with the fake embedder."""
    eng = ContextEngine(
        settings,
        _embedder=SentenceTransformerEmbedder(_embedding_function=FakeEmbeddingFunction()),
    )
    yield eng
    eng.close()
