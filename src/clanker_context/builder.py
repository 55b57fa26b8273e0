"""
Context builder: assembles a token-bounded prompt for an assistant.

The output has two parts:

* a **system prompt** with the project profile and every convention and
  constraint, never budgeted;
* a **context body** filled in strict priority order: decisions (always),
  recent sessions, retrieved chunks, retrieved memories, and finally files
  the caller asked for explicitly.

Sessions, chunks and memories are budgeted: an item is appended only if it
still fits under ``max_tokens``.  The first item that does not fit ends its
category; later categories are still tried.  Every included item is listed
in ``sources`` as ``<kind>:<id>``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from .errors import NotFoundError
from .formatter import Formatter
from .memory import (
    DEFAULT_SIMILARITY_THRESHOLD,
    DEFAULT_TOP_K_CHUNKS,
    DEFAULT_TOP_K_MEMORIES,
    RetrievalResult,
    RetrievalStatus,
    RetrieveOptions,
)
from .models import Chunk, MemoryType
from .store import MetadataStore
from .tokenizer import CharTokenizer, Tokenizer

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 8000

#: Memory types that are always surfaced (system prompt or decisions) and
#: therefore skipped when they come back from retrieval.
ALWAYS_INCLUDED: frozenset[MemoryType] = frozenset(
    {MemoryType.CONVENTION, MemoryType.CONSTRAINT, MemoryType.DECISION}
)


class Retriever(Protocol):
    def retrieve(
        self,
        query: str,
        options: RetrieveOptions | None = None,
        timeout: float | None = None,
    ) -> RetrievalResult: ...


@dataclass
class BuildOptions:
    max_tokens: int = DEFAULT_MAX_TOKENS
    top_k_sessions: int = 0
    extra_files: list[str] = field(default_factory=list)
    top_k_chunks: int = DEFAULT_TOP_K_CHUNKS
    top_k_memories: int = DEFAULT_TOP_K_MEMORIES
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD

    def retrieve_options(self) -> RetrieveOptions:
        return RetrieveOptions(
            top_k_chunks=self.top_k_chunks,
            top_k_memories=self.top_k_memories,
            similarity_threshold=self.similarity_threshold,
        )


@dataclass
class BuildResult:
    system_prompt: str
    context_text: str
    tokens_used: int = 0
    chunks_used: int = 0
    memories_used: int = 0
    sessions_used: int = 0
    sources: list[str] = field(default_factory=list)
    retrieval_status: RetrievalStatus = RetrievalStatus.OK


class _Body:
    """
    Accumulates context parts against a token budget.

    Parts are joined with ``SEPARATOR`` and the budget is charged on the
    joined text, so ``tokens`` always equals the tokenizer count of
    ``text()``.
    """

    SEPARATOR = "\n\n"

    def __init__(self, tokenizer: Tokenizer, max_tokens: int) -> None:
        self.tokenizer = tokenizer
        self.max_tokens = max_tokens
        self.sources: list[str] = []
        self.tokens = 0
        self._text = ""

    def _extended(self, addition: str) -> str:
        return f"{self._text}{self.SEPARATOR}{addition}" if self._text else addition

    def fits(self, tokens: int) -> bool:
        return self.max_tokens <= 0 or tokens <= self.max_tokens

    def force(self, text: str, source: str | None = None) -> None:
        self._text = self._extended(text)
        self.tokens = self.tokenizer.count(self._text)
        if source:
            self.sources.append(source)

    def add_section(self, header: str, items: list[tuple[str, str]]) -> int:
        """
        Append as many *items* (text, source) as fit, in order.  The header
        is only emitted together with the first item.  Returns the number
        of items added.
        """
        added = 0
        for text, source in items:
            addition = f"{header}{self.SEPARATOR}{text}" if added == 0 else text
            candidate = self._extended(addition)
            tokens = self.tokenizer.count(candidate)
            if not self.fits(tokens):
                logger.debug(
                    "budget reached in %r after %d of %d items", header, added, len(items)
                )
                break
            self._text = candidate
            self.tokens = tokens
            self.sources.append(source)
            added += 1
        return added

    def text(self) -> str:
        return self._text


class ContextBuilder:
    """
    Parameters
    ----------
    store:
        Metadata store for the project profile, memories and sessions.
    retriever:
        Usually the ``Orchestrator``; anything with a matching ``retrieve``.
    formatter, tokenizer:
        Rendering and token counting capabilities.
    """

    def __init__(
        self,
        store: MetadataStore,
        retriever: Retriever,
        formatter: Formatter | None = None,
        tokenizer: Tokenizer | None = None,
    ) -> None:
        self.store = store
        self.retriever = retriever
        self.formatter = formatter or Formatter()
        self.tokenizer = tokenizer or CharTokenizer()

    def build(self, question: str, options: BuildOptions | None = None) -> BuildResult:
        options = options or BuildOptions()
        fmt = self.formatter

        system_prompt = fmt.system_prompt(
            self.store.get_project(),
            self.store.list_memories(MemoryType.CONVENTION),
            self.store.list_memories(MemoryType.CONSTRAINT),
        )

        body = _Body(self.tokenizer, options.max_tokens)

        decisions = self.store.list_memories(MemoryType.DECISION)
        if decisions:
            body.force(fmt.section("Decisions"))
            for memory in decisions:
                body.force(fmt.memory(memory), f"decision:{memory.id}")

        sessions_used = 0
        if options.top_k_sessions > 0:
            sessions = self.store.get_last_n_sessions(options.top_k_sessions)
            sessions_used = body.add_section(
                fmt.section("Recent Sessions"),
                [(fmt.session(s), f"session:{s.id}") for s in sessions],
            )

        retrieval = self.retriever.retrieve(question, options.retrieve_options())

        seen: set[str] = set()
        chunk_items: list[tuple[str, str]] = []
        paths: dict[str, str] = {}
        for chunk in retrieval.chunks:
            if chunk.id and chunk.id in seen:
                continue
            seen.add(chunk.id)
            chunk_items.append((fmt.chunk(chunk, self._chunk_path(chunk, paths)), f"chunk:{chunk.id}"))
        chunks_used = body.add_section(fmt.section("Relevant Code"), chunk_items)

        memory_items: list[tuple[str, str]] = []
        for memory in retrieval.memories:
            if memory.memory_type in ALWAYS_INCLUDED:
                continue
            if memory.id and memory.id in seen:
                continue
            seen.add(memory.id)
            memory_items.append((fmt.memory(memory), f"memory:{memory.id}"))
        memories_used = body.add_section(fmt.section("Relevant Memories"), memory_items)

        files_header = False
        for path in options.extra_files:
            try:
                content = Path(path).read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                logger.debug("skipping extra file %s: %s", path, exc)
                continue
            if not files_header:
                body.force(fmt.section("Requested Files"))
                files_header = True
            body.force(fmt.file(path, content), f"file (explicit):{path}")

        return BuildResult(
            system_prompt=system_prompt,
            context_text=body.text(),
            tokens_used=body.tokens,
            chunks_used=chunks_used,
            memories_used=memories_used,
            sessions_used=sessions_used,
            sources=body.sources,
            retrieval_status=retrieval.status,
        )

    def _chunk_path(self, chunk: Chunk, cache: dict[str, str]) -> str:
        if chunk.file_id not in cache:
            try:
                cache[chunk.file_id] = self.store.get_file(chunk.file_id).path
            except NotFoundError:
                cache[chunk.file_id] = "unknown"
        return cache[chunk.file_id]
