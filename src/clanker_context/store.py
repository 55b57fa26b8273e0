"""
Metadata store: keyed persistence for projects, memories, sessions, files
and chunks.

This is the record of truth.  Embeddings live in the vector tables
(see ``vectors.py``) and are only an accelerant for retrieval.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime

from .db import Database
from .errors import NotFoundError
from .intelligence import generate_id, parse_memory_type
from .models import Chunk, File, Memory, MemoryType, Project, Session, TechStack

logger = logging.getLogger(__name__)


class MetadataStore:
    """CRUD over the project database."""

    def __init__(self, db: Database) -> None:
        self.db = db

    # ------------------------------------------------------------------
    # Project
    # ------------------------------------------------------------------

    def upsert_project(self, project: Project) -> None:
        with self.db.write() as conn:
            conn.execute(
                """
                INSERT INTO projects (id, name, root_path, tech_stack)
                VALUES (1, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    root_path = excluded.root_path,
                    tech_stack = excluded.tech_stack
                """,
                (project.name, project.root_path, project.tech_stack.model_dump_json()),
            )

    def get_project(self) -> Project | None:
        """Return the project profile, or ``None`` if none was recorded."""
        row = self.db.query_one("SELECT name, root_path, tech_stack FROM projects WHERE id = 1")
        if row is None:
            return None
        return Project(
            name=row["name"],
            root_path=row["root_path"],
            tech_stack=TechStack.model_validate_json(row["tech_stack"] or "{}"),
        )

    # ------------------------------------------------------------------
    # Memories
    # ------------------------------------------------------------------

    def insert_memory(self, memory: Memory) -> str:
        with self.db.write() as conn:
            conn.execute(
                """
                INSERT INTO memories (id, content, memory_type, importance, source, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    memory.id,
                    memory.content,
                    memory.memory_type.value,
                    memory.importance,
                    memory.source,
                    memory.created_at.isoformat(),
                ),
            )
        return memory.id

    def get_memory(self, memory_id: str) -> Memory:
        row = self.db.query_one("SELECT * FROM memories WHERE id = ?", (memory_id,))
        if row is None:
            raise NotFoundError("memory", memory_id)
        return _row_to_memory(row)

    def list_memories(self, type_filter: MemoryType | str | None = None) -> list[Memory]:
        """
        Return memories in insertion order.  An empty or ``None`` filter
        returns every memory.
        """
        if type_filter:
            memory_type = parse_memory_type(type_filter)
            rows = self.db.query(
                "SELECT * FROM memories WHERE memory_type = ? ORDER BY rowid",
                (memory_type.value,),
            )
        else:
            rows = self.db.query("SELECT * FROM memories ORDER BY rowid")
        return [_row_to_memory(r) for r in rows]

    def delete_memory(self, memory_id: str) -> bool:
        """Delete a memory.  Returns ``False`` when no such memory existed."""
        with self.db.write() as conn:
            cur = conn.execute("DELETE FROM memories WHERE id = ?", (memory_id,))
        return cur.rowcount > 0

    def count_memories_by_type(self) -> dict[str, int]:
        rows = self.db.query(
            "SELECT memory_type, COUNT(*) AS n FROM memories GROUP BY memory_type"
        )
        return {r["memory_type"]: r["n"] for r in rows}

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def insert_session(self, session: Session) -> str:
        with self.db.write() as conn:
            conn.execute(
                """
                INSERT INTO sessions
                    (id, question, context_used, response_summary, model_used, tokens_used, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    session.id,
                    session.question,
                    session.context_used,
                    session.response_summary,
                    session.model_used,
                    session.tokens_used,
                    session.created_at.isoformat(),
                ),
            )
        return session.id

    def get_last_n_sessions(self, n: int) -> list[Session]:
        """Return the *n* most recent sessions, newest first."""
        if n <= 0:
            return []
        rows = self.db.query(
            "SELECT * FROM sessions ORDER BY created_at DESC, rowid DESC LIMIT ?",
            (n,),
        )
        return [_row_to_session(r) for r in rows]

    def count_sessions(self) -> int:
        row = self.db.query_one("SELECT COUNT(*) AS n FROM sessions")
        return int(row["n"]) if row else 0

    # ------------------------------------------------------------------
    # Files and chunks
    # ------------------------------------------------------------------

    def upsert_file(self, file: File) -> str:
        """Insert or update a file keyed by path.  Returns the stored id."""
        with self.db.write() as conn:
            conn.execute(
                """
                INSERT INTO files (id, path, language, last_modified, content_hash)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(path) DO UPDATE SET
                    language = excluded.language,
                    last_modified = excluded.last_modified,
                    content_hash = excluded.content_hash
                """,
                (
                    file.id,
                    file.path,
                    file.language,
                    file.last_modified.isoformat(),
                    file.content_hash,
                ),
            )
            row = conn.execute("SELECT id FROM files WHERE path = ?", (file.path,)).fetchone()
        return row["id"]

    def get_file(self, file_id: str) -> File:
        row = self.db.query_one("SELECT * FROM files WHERE id = ?", (file_id,))
        if row is None:
            raise NotFoundError("file", file_id)
        return File(
            id=row["id"],
            path=row["path"],
            language=row["language"],
            last_modified=datetime.fromisoformat(row["last_modified"]),
            content_hash=row["content_hash"],
        )

    def insert_chunk(self, chunk: Chunk) -> str:
        with self.db.write() as conn:
            conn.execute(
                """
                INSERT INTO chunks (id, file_id, content, start_line, end_line, chunk_type)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    chunk.id,
                    chunk.file_id,
                    chunk.content,
                    chunk.start_line,
                    chunk.end_line,
                    chunk.chunk_type,
                ),
            )
        return chunk.id

    def get_chunk(self, chunk_id: str) -> Chunk:
        row = self.db.query_one("SELECT * FROM chunks WHERE id = ?", (chunk_id,))
        if row is None:
            raise NotFoundError("chunk", chunk_id)
        return Chunk(
            id=row["id"],
            file_id=row["file_id"],
            content=row["content"],
            start_line=row["start_line"],
            end_line=row["end_line"],
            chunk_type=row["chunk_type"],
        )

    def count_files(self) -> int:
        row = self.db.query_one("SELECT COUNT(*) AS n FROM files")
        return int(row["n"]) if row else 0

    def count_chunks(self) -> int:
        row = self.db.query_one("SELECT COUNT(*) AS n FROM chunks")
        return int(row["n"]) if row else 0

    def stats(self) -> dict[str, int]:
        """Row counts per kind; memories are broken down by type."""
        counts = {
            "files": self.count_files(),
            "chunks": self.count_chunks(),
            "sessions": self.count_sessions(),
        }
        by_type = self.count_memories_by_type()
        for memory_type in MemoryType.values():
            counts[memory_type] = by_type.get(memory_type, 0)
        return counts


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


def new_session(
    question: str,
    response_summary: str = "",
    model_used: str = "",
    tokens_used: int = 0,
    context_used: str = "{}",
) -> Session:
    return Session(
        id=generate_id(),
        question=question,
        context_used=context_used,
        response_summary=response_summary,
        model_used=model_used,
        tokens_used=tokens_used,
    )


# ---------------------------------------------------------------------------
# Row mapping
# ---------------------------------------------------------------------------


def _row_to_memory(row: sqlite3.Row) -> Memory:
    return Memory(
        id=row["id"],
        content=row["content"],
        memory_type=MemoryType(row["memory_type"]),
        importance=row["importance"],
        source=row["source"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _row_to_session(row: sqlite3.Row) -> Session:
    return Session(
        id=row["id"],
        question=row["question"],
        context_used=row["context_used"],
        response_summary=row["response_summary"],
        model_used=row["model_used"],
        tokens_used=row["tokens_used"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )
