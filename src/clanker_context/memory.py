"""
Orchestrator: turns a free-text query into retrieved chunks and memories,
and manages the memory lifecycle.

Usage example::

    from clanker_context import open_engine

    engine = open_engine("/path/to/project")

    # Store a project fact; the type is inferred when omitted
    memory = engine.orchestrator.remember("We decided to use PostgreSQL.")

    # Later, retrieve what is relevant to a question
    result = engine.orchestrator.retrieve("which database do we use?")
    for m in result.memories:
        print(m.memory_type.value, m.content)

Embedding is optional.  Without an embedder, or when it fails, retrieval
degrades to "every memory, no chunks" and the result says so in its
``status``; nothing is raised.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from enum import Enum

from .embeddings import Embedder
from .errors import EmbeddingError, NotFoundError, StorageError
from .intelligence import classify_memory, generate_id, importance_for, parse_memory_type
from .models import Chunk, Memory, MemoryType
from .ranker import NEUTRAL_IMPORTANCE, Candidate, Ranker
from .store import MetadataStore
from .vectors import VectorIndex

logger = logging.getLogger(__name__)

DEFAULT_TOP_K_CHUNKS = 10
DEFAULT_TOP_K_MEMORIES = 10
DEFAULT_SIMILARITY_THRESHOLD = 0.3


class RetrievalStatus(str, Enum):
    OK = "ok"
    DEGRADED = "degraded"


@dataclass(frozen=True)
class RetrieveOptions:
    top_k_chunks: int = DEFAULT_TOP_K_CHUNKS
    top_k_memories: int = DEFAULT_TOP_K_MEMORIES
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD


@dataclass
class RetrievalResult:
    """
    Outcome of ``Orchestrator.retrieve``.

    ``status`` is ``DEGRADED`` when no similarity search ran; ``reason``
    then explains why.  ``similarities`` maps every returned id to its
    cosine similarity with the query (empty when degraded).
    """

    chunks: list[Chunk] = field(default_factory=list)
    memories: list[Memory] = field(default_factory=list)
    status: RetrievalStatus = RetrievalStatus.OK
    reason: str | None = None
    similarities: dict[str, float] = field(default_factory=dict)

    @property
    def degraded(self) -> bool:
        return self.status is RetrievalStatus.DEGRADED


@dataclass(frozen=True)
class EmbedOutcome:
    """Either the embedded vectors or the reason embedding was unavailable."""

    vectors: list[list[float]] | None = None
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.vectors is not None


class Orchestrator:
    """
    Coordinates the metadata store, both vector indexes, the ranker and an
    optional embedder.

    Parameters
    ----------
    store:
        Metadata store; the record of truth for memories and chunks.
    chunk_vectors, memory_vectors:
        Independent vector indexes for chunk and memory embeddings.
    ranker:
        Orders candidates within each category.
    embedder:
        Optional embedding capability.  ``None`` disables similarity search.
    embed_timeout:
        Seconds to wait for one embedding call before giving up and
        degrading.  ``None`` waits indefinitely.
    """

    def __init__(
        self,
        store: MetadataStore,
        chunk_vectors: VectorIndex,
        memory_vectors: VectorIndex,
        ranker: Ranker | None = None,
        embedder: Embedder | None = None,
        embed_timeout: float | None = None,
    ) -> None:
        self.store = store
        self.chunk_vectors = chunk_vectors
        self.memory_vectors = memory_vectors
        self.ranker = ranker or Ranker()
        self.embedder = embedder
        self.embed_timeout = embed_timeout
        self._write_lock = threading.Lock()
        self._executor: ThreadPoolExecutor | None = None

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    def retrieve(
        self,
        query: str,
        options: RetrieveOptions | None = None,
        timeout: float | None = None,
    ) -> RetrievalResult:
        """
        Retrieve the chunks and memories most relevant to *query*.

        Falls back to every stored memory and no chunks when similarity
        search is unavailable.  Storage failures still propagate.
        """
        options = options or RetrieveOptions()
        outcome = self._embed([query], timeout=timeout)
        if not outcome.ok:
            return RetrievalResult(
                memories=self.store.list_memories(),
                status=RetrievalStatus.DEGRADED,
                reason=outcome.reason,
            )

        query_vector = outcome.vectors[0]
        chunk_matches = self.chunk_vectors.search(
            query_vector, options.top_k_chunks, options.similarity_threshold
        )
        memory_matches = self.memory_vectors.search(
            query_vector, options.top_k_memories, options.similarity_threshold
        )

        chunk_candidates: list[Candidate[Chunk]] = []
        for match in chunk_matches:
            try:
                chunk = self.store.get_chunk(match.id)
            except NotFoundError:
                logger.debug("skipping stale chunk embedding %s", match.id)
                continue
            chunk = chunk.model_copy(
                update={"embedding": _stored_vector(self.chunk_vectors, match.id)}
            )
            chunk_candidates.append(Candidate(chunk, match.similarity, NEUTRAL_IMPORTANCE))

        memory_candidates: list[Candidate[Memory]] = []
        for match in memory_matches:
            try:
                memory = self.store.get_memory(match.id)
            except NotFoundError:
                logger.debug("skipping stale memory embedding %s", match.id)
                continue
            memory = memory.model_copy(
                update={"embedding": _stored_vector(self.memory_vectors, match.id)}
            )
            memory_candidates.append(Candidate(memory, match.similarity, memory.importance))

        ranked_chunks = self.ranker.rank(chunk_candidates)
        ranked_memories = self.ranker.rank(memory_candidates)
        similarities = {c.item.id: c.similarity for c in ranked_chunks}
        similarities.update({c.item.id: c.similarity for c in ranked_memories})
        return RetrievalResult(
            chunks=[c.item for c in ranked_chunks],
            memories=[c.item for c in ranked_memories],
            similarities=similarities,
        )

    # ------------------------------------------------------------------
    # Memory lifecycle
    # ------------------------------------------------------------------

    def remember(
        self,
        content: str,
        memory_type: MemoryType | str | None = None,
        source: str = "user",
        timeout: float | None = None,
    ) -> Memory:
        """
        Persist a new memory and, when possible, its embedding.

        An empty *memory_type* is inferred from the content.  An unknown
        one raises ``InvalidTypeError`` before anything is written.  A
        failure after the record is stored leaves it persisted but not
        searchable by similarity.
        """
        if memory_type:
            resolved = parse_memory_type(memory_type)
        else:
            resolved = classify_memory(content)

        memory = Memory(
            id=generate_id(),
            content=content,
            memory_type=resolved,
            importance=importance_for(resolved),
            source=source or "user",
        )

        with self._write_lock:
            self.store.insert_memory(memory)
        if self.embedder is None:
            return memory

        outcome = self._embed([content], timeout=timeout)
        if not outcome.ok:
            logger.warning("memory %s stored without embedding: %s", memory.id, outcome.reason)
            return memory
        try:
            with self._write_lock:
                self.memory_vectors.upsert(memory.id, outcome.vectors[0])
        except StorageError as exc:
            logger.warning("memory %s stored without embedding: %s", memory.id, exc)
            return memory
        return memory.model_copy(update={"embedding": outcome.vectors[0]})

    def forget(self, memory_id: str) -> None:
        """
        Delete a memory and its embedding.

        Raises ``NotFoundError`` when no such memory exists; the embedding
        delete is attempted either way.
        """
        with self._write_lock:
            deleted = self.store.delete_memory(memory_id)
            self.memory_vectors.delete(memory_id)
        if not deleted:
            raise NotFoundError("memory", memory_id)

    def forget_by_type(self, memory_type: MemoryType | str) -> int:
        """Delete every memory of *memory_type*.  Returns how many went."""
        resolved = parse_memory_type(memory_type)
        with self._write_lock:
            victims = self.store.list_memories(resolved)
            for memory in victims:
                self.store.delete_memory(memory.id)
                self.memory_vectors.delete(memory.id)
        logger.info("forgot %d %s memories", len(victims), resolved.value)
        return len(victims)

    def list_memories(self, memory_type: MemoryType | str | None = None) -> list[Memory]:
        return self.store.list_memories(memory_type)

    def reembed_missing(self, timeout: float | None = None) -> int:
        """
        Embed every memory that has no stored vector.

        Returns the number of memories embedded; 0 when no embedder is
        configured or the embedding call fails.  A failed vector write skips
        that memory only.
        """
        if self.embedder is None:
            return 0
        known = set(self.memory_vectors.ids())
        missing = [m for m in self.store.list_memories() if m.id not in known]
        if not missing:
            return 0
        outcome = self._embed([m.content for m in missing], timeout=timeout)
        if not outcome.ok:
            logger.warning("re-embedding skipped: %s", outcome.reason)
            return 0
        embedded = 0
        for memory, vector in zip(missing, outcome.vectors):
            try:
                with self._write_lock:
                    self.memory_vectors.upsert(memory.id, vector)
            except StorageError as exc:
                logger.warning("memory %s left without embedding: %s", memory.id, exc)
                continue
            embedded += 1
        return embedded

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _embed(self, texts: list[str], timeout: float | None = None) -> EmbedOutcome:
        """
        Run the embedder, converting every failure into a degraded outcome.

        With a timeout the call runs on a worker thread and is abandoned
        once the deadline passes; its result, if it ever arrives, is
        discarded and never written anywhere.
        """
        if self.embedder is None:
            return EmbedOutcome(reason="no embedder configured")

        timeout = timeout if timeout is not None else self.embed_timeout
        try:
            if timeout is None:
                vectors = self.embedder.embed(texts)
            else:
                if self._executor is None:
                    self._executor = ThreadPoolExecutor(
                        max_workers=2, thread_name_prefix="clanker-embed"
                    )
                future = self._executor.submit(self.embedder.embed, texts)
                try:
                    vectors = future.result(timeout=timeout)
                except FutureTimeoutError:
                    future.cancel()
                    raise EmbeddingError(f"embedding timed out after {timeout:g}s") from None
        except Exception as exc:  # any provider failure degrades
            logger.warning("embedding unavailable: %s", exc)
            return EmbedOutcome(reason=str(exc))

        if len(vectors) != len(texts) or any(len(v) == 0 for v in vectors):
            reason = f"embedder returned {len(vectors)} usable vectors for {len(texts)} texts"
            logger.warning("embedding unavailable: %s", reason)
            return EmbedOutcome(reason=reason)
        return EmbedOutcome(vectors=[list(v) for v in vectors])


def _stored_vector(index: VectorIndex, id: str) -> list[float] | None:  # noqa: A002
    vector = index.get(id)
    return None if vector is None else [float(x) for x in vector]
