"""
Domain records shared by the stores, the orchestrator and the builder.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MemoryType(str, Enum):
    DECISION = "decision"
    CONVENTION = "convention"
    CONSTRAINT = "constraint"
    NOTE = "note"
    TODO = "todo"

    @classmethod
    def values(cls) -> list[str]:
        return [m.value for m in cls]


class TechStack(BaseModel):
    """Structured project stack descriptor, persisted as JSON."""

    language: str = ""
    framework: str = ""
    database: str = ""


class Project(BaseModel):
    name: str
    root_path: str = ""
    tech_stack: TechStack = Field(default_factory=TechStack)


class Memory(BaseModel):
    """A persisted project fact.  Immutable once created."""

    model_config = ConfigDict(frozen=True)

    id: str
    content: str
    memory_type: MemoryType
    importance: float = Field(ge=0.0, le=1.0)
    source: str = "user"
    created_at: datetime = Field(default_factory=utcnow)
    embedding: list[float] | None = None


class File(BaseModel):
    id: str
    path: str
    language: str = ""
    last_modified: datetime = Field(default_factory=utcnow)
    content_hash: str = ""


class Chunk(BaseModel):
    """A retrievable fragment of a source file."""

    id: str
    file_id: str
    content: str
    start_line: int = 0
    end_line: int = 0
    chunk_type: str = "code"
    embedding: list[float] | None = None


class Session(BaseModel):
    """One past assistant interaction.  Sessions are append-only."""

    id: str
    question: str
    context_used: str = "{}"
    response_summary: str = ""
    model_used: str = ""
    tokens_used: int = 0
    created_at: datetime = Field(default_factory=utcnow)
