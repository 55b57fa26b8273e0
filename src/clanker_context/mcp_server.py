"""
MCP (Model Context Protocol) server for clanker-context.

Exposes the orchestrator and context builder as tools so that coding
assistants can store project facts, record progress and pull relevant
context without the user running any commands.

Run as a stdio server:
    python -m clanker_context.mcp_server

Or via the installed entry-point:
    clanker-context-mcp

Configuration is read from the environment; see ``clanker_context.config``.
"""

from __future__ import annotations

import json
import logging

from mcp.server.fastmcp import FastMCP

from .builder import BuildOptions
from .config import Settings, configure_logging
from .engine import ContextEngine
from .errors import NotFoundError, ValidationError
from .memory import RetrieveOptions
from .store import new_session

logger = logging.getLogger(__name__)

# Lazy-initialised singleton so the database and embedding model are only
# opened once per process.
_engine: ContextEngine | None = None


def _get_engine() -> ContextEngine:
    global _engine
    if _engine is None:
        _engine = ContextEngine(Settings.from_env())
    return _engine


# ---------------------------------------------------------------------------
# FastMCP server
# ---------------------------------------------------------------------------

mcp = FastMCP(
    "clanker-context",
    instructions=(
        "Persistent project memory for coding assistants. "
        "Use `get_context` at the start of a session to load the project's "
        "tech stack, decisions, conventions, constraints and relevant code. "
        "Use `remember` to store decisions, conventions, constraints, notes "
        "and todos that should survive across sessions. "
        "Use `search` to find code and memories by meaning. "
        "IMPORTANT: call `save_progress` before ending a conversation so "
        "the next session can continue where you left off."
    ),
)


@mcp.tool()
def remember(content: str, type: str = "", source: str = "assistant") -> str:  # noqa: A002
    """
    Store a project fact that should persist across sessions.

    Args:
        content: The fact to remember (e.g. "We use JWT auth with RS256").
        type:    One of decision, convention, constraint, note, todo.  Leave
                 empty to infer it from the content.
        source:  Who recorded the fact.

    Returns:
        A confirmation with the stored memory's id and type.
    """
    if not content.strip():
        return "Error: content must not be empty."
    try:
        memory = _get_engine().orchestrator.remember(content, type, source=source)
    except ValidationError as exc:
        return f"Error: {exc}"
    return (
        f"Remembered {memory.memory_type.value} (importance {memory.importance:.1f}). "
        f"ID: {memory.id}"
    )


@mcp.tool()
def forget(id: str) -> str:  # noqa: A002
    """
    Delete a stored memory by its ID.

    Args:
        id: The memory ID (as returned by remember or list_memories).
    """
    try:
        _get_engine().orchestrator.forget(id)
    except NotFoundError as exc:
        return f"Error: {exc}"
    return f"Forgot memory {id}."


@mcp.tool()
def get_context(question: str = "", max_tokens: int = 0, top_k_sessions: int = 3) -> str:
    """
    Retrieve the project's context: profile, conventions, constraints,
    decisions, recent sessions and the code and notes most relevant to
    *question*.

    Args:
        question:       Optional focus for retrieval.
        max_tokens:     Context budget; 0 uses the configured default.
        top_k_sessions: How many recent sessions to include.
    """
    engine = _get_engine()
    result = engine.builder.build(
        question or "project overview",
        BuildOptions(
            max_tokens=max_tokens or engine.settings.max_tokens,
            top_k_sessions=top_k_sessions,
        ),
    )
    parts = [result.system_prompt]
    if result.context_text:
        parts.append(result.context_text)
    return "\n\n".join(parts)


@mcp.tool()
def search(query: str, top_k: int = 10) -> str:
    """
    Search code chunks and stored memories by semantic similarity.

    Args:
        query: What to search for.
        top_k: Maximum number of results per category.

    Returns:
        JSON object with ``status``, ``chunks`` and ``memories``.
    """
    result = _get_engine().orchestrator.retrieve(
        query,
        RetrieveOptions(top_k_chunks=top_k, top_k_memories=top_k),
    )
    payload = {
        "status": result.status.value,
        "chunks": [
            {
                "id": c.id,
                "file_id": c.file_id,
                "lines": [c.start_line, c.end_line],
                "content": c.content,
                "similarity": round(result.similarities.get(c.id, 0.0), 4),
            }
            for c in result.chunks
        ],
        "memories": [
            {
                "id": m.id,
                "type": m.memory_type.value,
                "content": m.content,
                "similarity": round(result.similarities.get(m.id, 0.0), 4),
            }
            for m in result.memories
        ],
    }
    if result.reason:
        payload["reason"] = result.reason
    return json.dumps(payload, indent=2)


@mcp.tool()
def list_memories(type: str = "") -> str:  # noqa: A002
    """
    List stored memories, optionally filtered by type.

    Args:
        type: decision, convention, constraint, note or todo; empty for all.
    """
    try:
        memories = _get_engine().orchestrator.list_memories(type or None)
    except ValidationError as exc:
        return f"Error: {exc}"
    if not memories:
        return "No memories stored."
    return json.dumps(
        [
            {
                "id": m.id,
                "type": m.memory_type.value,
                "content": m.content,
                "importance": m.importance,
                "source": m.source,
                "created_at": m.created_at.isoformat(),
            }
            for m in memories
        ],
        indent=2,
    )


@mcp.tool()
def list_sessions(limit: int = 10) -> str:
    """
    List recent sessions, newest first.

    Args:
        limit: How many sessions to return.
    """
    sessions = _get_engine().store.get_last_n_sessions(limit)
    if not sessions:
        return "No sessions recorded."
    return json.dumps(
        [
            {
                "id": s.id,
                "question": s.question,
                "summary": s.response_summary,
                "model": s.model_used,
                "created_at": s.created_at.isoformat(),
            }
            for s in sessions
        ],
        indent=2,
    )


@mcp.tool()
def save_progress(
    task: str,
    summary: str,
    model: str,
    files_touched: list[str] | None = None,
) -> str:
    """
    Save what you are working on so a later session (or another tool) can
    continue.

    Args:
        task:          What you were working on.
        summary:       What was done, key decisions and next steps.
        model:         Your model or tool name.
        files_touched: Files modified during this session.
    """
    if not task.strip() or not summary.strip() or not model.strip():
        return "Error: task, summary and model are required."
    if files_touched:
        summary = f"{summary}\nFiles touched: {', '.join(files_touched)}"
    session = new_session(task, response_summary=summary, model_used=model)
    _get_engine().store.insert_session(session)
    return f"Progress saved. Session ID: {session.id}"


@mcp.tool()
def project_status() -> str:
    """Report the project profile and what is stored."""
    engine = _get_engine()
    store = engine.store
    project = store.get_project()
    lines = [f"Project: {project.name if project else 'unknown'}"]
    if project is not None:
        stack = project.tech_stack
        for label, value in (
            ("Language", stack.language),
            ("Framework", stack.framework),
            ("Database", stack.database),
        ):
            if value:
                lines.append(f"{label}: {value}")
    lines.append(f"Files indexed: {store.count_files()} ({store.count_chunks()} chunks)")
    counts = store.count_memories_by_type()
    if counts:
        summary = ", ".join(f"{n} {t}" for t, n in sorted(counts.items()))
        lines.append(f"Memories: {summary}")
    else:
        lines.append("Memories: none")
    lines.append(f"Sessions: {store.count_sessions()}")
    lines.append(
        "Embeddings: "
        + ("enabled" if engine.orchestrator.embedder is not None else "disabled")
    )
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Entry-point
# ---------------------------------------------------------------------------


def main() -> None:
    """Run the MCP server over stdio."""
    configure_logging(Settings.from_env().log_level)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
