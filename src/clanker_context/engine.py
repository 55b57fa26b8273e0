"""
Wiring: one ``ContextEngine`` per project bundles the database, stores,
orchestrator and context builder.
"""

from __future__ import annotations

import logging
from pathlib import Path

from .builder import ContextBuilder
from .config import Settings
from .db import Database
from .embeddings import Embedder, SentenceTransformerEmbedder
from .memory import Orchestrator
from .ranker import Ranker
from .store import MetadataStore
from .vectors import CHUNK_TABLE, MEMORY_TABLE, ChromaVectorStore, VectorIndex, VectorStore

logger = logging.getLogger(__name__)


class ContextEngine:
    """
    Parameters
    ----------
    settings:
        Resolved configuration.
    _db, _embedder:
        Injection points for tests.  Without ``_embedder`` a local
        sentence-transformers model is used unless embeddings are disabled
        in the settings.
    """

    def __init__(
        self,
        settings: Settings,
        _db: Database | None = None,
        _embedder: Embedder | None = None,
    ) -> None:
        self.settings = settings
        self.db = _db or Database(settings.db_path)
        self.store = MetadataStore(self.db)

        chunk_vectors: VectorIndex
        memory_vectors: VectorIndex
        if settings.vector_backend == "chroma":
            chroma_path = str(settings.data_dir / "chroma")
            chunk_vectors = ChromaVectorStore(path=chroma_path, collection_name=CHUNK_TABLE)
            memory_vectors = ChromaVectorStore(
                path=chroma_path,
                collection_name=MEMORY_TABLE,
                _client=chunk_vectors.client,
            )
        else:
            chunk_vectors = VectorStore(self.db, CHUNK_TABLE)
            memory_vectors = VectorStore(self.db, MEMORY_TABLE)

        resolved: Embedder | None = _embedder
        if resolved is None and settings.embeddings_enabled:
            resolved = SentenceTransformerEmbedder(settings.model)

        self.orchestrator = Orchestrator(
            self.store,
            chunk_vectors,
            memory_vectors,
            ranker=Ranker(),
            embedder=resolved,
            embed_timeout=settings.embed_timeout,
        )
        self.builder = ContextBuilder(self.store, self.orchestrator)
        logger.debug(
            "engine ready: db=%s backend=%s embedder=%s",
            settings.db_path,
            settings.vector_backend,
            type(resolved).__name__ if resolved else None,
        )

    def close(self) -> None:
        self.orchestrator.close()
        self.db.close()

    def __enter__(self) -> ContextEngine:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def open_engine(
    root: str | Path | None = None,
    _embedder: Embedder | None = None,
) -> ContextEngine:
    """Open the engine for the project at *root* using environment settings."""
    return ContextEngine(Settings.from_env(root), _embedder=_embedder)
