"""
clanker-context: a local, persistent memory and context engine for AI
coding assistants.

Stores project facts and code fragments, retrieves the ones relevant to a
query by semantic similarity, and assembles them into a token-bounded
context block.
"""

from .builder import BuildOptions, BuildResult, ContextBuilder
from .engine import ContextEngine, open_engine
from .errors import (
    ClankerContextError,
    EmbeddingError,
    InvalidTypeError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from .memory import Orchestrator, RetrievalResult, RetrievalStatus, RetrieveOptions
from .models import Chunk, File, Memory, MemoryType, Project, Session, TechStack
from .ranker import Candidate, Ranker
from .vectors import ChromaVectorStore, VectorMatch, VectorStore, decode_vector, encode_vector

__all__ = [
    "BuildOptions",
    "BuildResult",
    "Candidate",
    "ChromaVectorStore",
    "Chunk",
    "ClankerContextError",
    "ContextBuilder",
    "ContextEngine",
    "EmbeddingError",
    "File",
    "InvalidTypeError",
    "Memory",
    "MemoryType",
    "NotFoundError",
    "Orchestrator",
    "Project",
    "Ranker",
    "RetrievalResult",
    "RetrievalStatus",
    "RetrieveOptions",
    "Session",
    "StorageError",
    "TechStack",
    "ValidationError",
    "VectorMatch",
    "VectorStore",
    "decode_vector",
    "encode_vector",
    "open_engine",
]
