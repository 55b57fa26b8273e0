"""
Embedding capability.

The orchestrator only depends on the ``Embedder`` protocol, so tests and
alternative providers can substitute their own implementation.  The default
implementation runs a local sentence-transformers model through chromadb's
embedding function helpers.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from chromadb.utils import embedding_functions

from .errors import EmbeddingError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "all-MiniLM-L6-v2"


class Embedder(Protocol):
    def embed(self, texts: list[str]) -> list[list[float]]:
        """Return one vector per input text, in input order."""
        ...


def get_embedding_function(
    model_name: str = DEFAULT_MODEL,
) -> embedding_functions.SentenceTransformerEmbeddingFunction:
    """Return a sentence-transformer embedding function."""
    return embedding_functions.SentenceTransformerEmbeddingFunction(model_name=model_name)


class SentenceTransformerEmbedder:
    """
    Local embedder backed by a sentence-transformers model.

    The model is loaded lazily on first use.  Any failure, including a
    model that cannot be downloaded, is raised as ``EmbeddingError``.
    """

    def __init__(
        self,
        model_name: str = DEFAULT_MODEL,
        _embedding_function: Any | None = None,
    ) -> None:
        self.model_name = model_name
        self._fn = _embedding_function

    def embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        try:
            if self._fn is None:
                logger.info("loading embedding model %s", self.model_name)
                self._fn = get_embedding_function(self.model_name)
            vectors = self._fn(texts)
        except Exception as exc:
            raise EmbeddingError(f"embedding with {self.model_name} failed: {exc}") from exc
        if len(vectors) != len(texts):
            raise EmbeddingError(
                f"embedder returned {len(vectors)} vectors for {len(texts)} texts"
            )
        return [[float(x) for x in v] for v in vectors]
