"""
Command-line interface for clanker-context.

Sub-commands
------------
init     – Record the project profile (name and tech stack).
remember – Store a project fact.
forget   – Delete a memory by ID, or every memory of one type.
list     – List stored memories.
search   – Semantic search over code chunks and memories.
context  – Print the assembled context for a question.
sessions – List recent sessions.
status   – Print what is stored.
reembed  – Embed memories that have no stored vector.
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import sys
from pathlib import Path

from .builder import BuildOptions
from .config import Settings, configure_logging
from .engine import ContextEngine
from .errors import ClankerContextError
from .memory import RetrieveOptions
from .models import MemoryType, Project, TechStack


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="clanker-context",
        description="Persistent project memory and context for coding assistants.",
    )
    parser.add_argument(
        "--root",
        default=None,
        metavar="PATH",
        help="Project root (default: $CLANKER_CONTEXT_ROOT or the current directory).",
    )
    parser.add_argument(
        "--no-embed",
        action="store_true",
        help="Disable the embedding model for this invocation.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output to stderr.")

    sub = parser.add_subparsers(dest="command", required=True)

    # init
    p_init = sub.add_parser("init", help="Record the project profile.")
    p_init.add_argument("--name", default=None, help="Project name (default: root directory name).")
    p_init.add_argument("--language", default="", help="Primary language.")
    p_init.add_argument("--framework", default="", help="Main framework.")
    p_init.add_argument("--database", default="", help="Database in use.")

    # remember
    p_remember = sub.add_parser("remember", help="Store a project fact.")
    p_remember.add_argument("text", nargs="?", help="Text to store (reads stdin if omitted).")
    p_remember.add_argument(
        "--type",
        default="",
        dest="memory_type",
        metavar="TYPE",
        help=f"One of {', '.join(MemoryType.values())} (default: inferred).",
    )
    p_remember.add_argument("--source", default="user", help="Who recorded the fact.")

    # forget
    p_forget = sub.add_parser("forget", help="Delete memories.")
    target = p_forget.add_mutually_exclusive_group(required=True)
    target.add_argument("id", nargs="?", help="Memory ID to delete.")
    target.add_argument("--type", dest="memory_type", metavar="TYPE", help="Delete every memory of TYPE.")

    # list
    p_list = sub.add_parser("list", help="List stored memories.")
    p_list.add_argument("--type", dest="memory_type", default="", metavar="TYPE", help="Filter by type.")
    p_list.add_argument("--json", action="store_true", dest="as_json", help="Output as JSON.")

    # search
    p_search = sub.add_parser("search", help="Semantic search over chunks and memories.")
    p_search.add_argument("query", help="Natural-language query.")
    p_search.add_argument("-n", type=int, default=10, metavar="N", help="Results per category (default: 10).")
    p_search.add_argument(
        "--threshold",
        type=float,
        default=RetrieveOptions().similarity_threshold,
        metavar="SCORE",
        help="Minimum cosine similarity (default: %(default)s).",
    )
    p_search.add_argument("--json", action="store_true", dest="as_json", help="Output as JSON.")

    # context
    p_context = sub.add_parser("context", help="Print the assembled context for a question.")
    p_context.add_argument("question", help="Question to build context for.")
    p_context.add_argument("--max-tokens", type=int, default=None, metavar="N", help="Context budget.")
    p_context.add_argument("--sessions", type=int, default=0, metavar="N", help="Recent sessions to include.")
    p_context.add_argument(
        "--file",
        action="append",
        default=[],
        dest="files",
        metavar="PATH",
        help="Include a file verbatim (repeatable).",
    )
    p_context.add_argument("--json", action="store_true", dest="as_json", help="Output as JSON.")

    # sessions
    p_sessions = sub.add_parser("sessions", help="List recent sessions.")
    p_sessions.add_argument("--limit", type=int, default=10, metavar="N", help="Sessions to show (default: 10).")

    # status
    sub.add_parser("status", help="Print what is stored.")

    # reembed
    sub.add_parser("reembed", help="Embed memories that have no stored vector.")

    return parser


def _open(args: argparse.Namespace) -> ContextEngine:
    settings = Settings.from_env(args.root)
    if args.no_embed:
        settings = dataclasses.replace(settings, embeddings_enabled=False)
    return ContextEngine(settings)


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_logging("DEBUG" if args.verbose else Settings.from_env(args.root).log_level)

    engine = _open(args)
    try:
        return _run(engine, args)
    except ClankerContextError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    finally:
        engine.close()


def _run(engine: ContextEngine, args: argparse.Namespace) -> int:
    orchestrator = engine.orchestrator
    store = engine.store

    if args.command == "init":
        name = args.name or Path(engine.settings.root).name
        store.upsert_project(
            Project(
                name=name,
                root_path=str(engine.settings.root),
                tech_stack=TechStack(
                    language=args.language,
                    framework=args.framework,
                    database=args.database,
                ),
            )
        )
        print(f"Initialised project {name} at {engine.settings.db_path}")

    elif args.command == "remember":
        text = args.text
        if text is None:
            text = sys.stdin.read()
        if not text.strip():
            print("Error: no text provided.", file=sys.stderr)
            return 1
        memory = orchestrator.remember(text.strip(), args.memory_type, source=args.source)
        print(f"Remembered {memory.memory_type.value}: {memory.id}")

    elif args.command == "forget":
        if args.memory_type:
            n = orchestrator.forget_by_type(args.memory_type)
            print(f"Forgot {n} {args.memory_type} memor{'y' if n == 1 else 'ies'}.")
        else:
            orchestrator.forget(args.id)
            print(f"Forgot memory {args.id}.")

    elif args.command == "list":
        memories = orchestrator.list_memories(args.memory_type or None)
        if not memories:
            print("No memories stored.")
            return 0
        if args.as_json:
            print(json.dumps([m.model_dump(mode="json", exclude={"embedding"}) for m in memories], indent=2))
        else:
            for m in memories:
                print(f"id={m.id} type={m.memory_type.value} importance={m.importance:.1f}")
                print(f"    {m.content[:120]}")
                print()

    elif args.command == "search":
        result = orchestrator.retrieve(
            args.query,
            RetrieveOptions(
                top_k_chunks=args.n,
                top_k_memories=args.n,
                similarity_threshold=args.threshold,
            ),
        )
        if result.degraded:
            print(f"Similarity search unavailable ({result.reason}); showing all memories.", file=sys.stderr)
        if not result.chunks and not result.memories:
            print("No results found.")
            return 0
        if args.as_json:
            print(
                json.dumps(
                    {
                        "status": result.status.value,
                        "chunks": [c.model_dump(mode="json", exclude={"embedding"}) for c in result.chunks],
                        "memories": [m.model_dump(mode="json", exclude={"embedding"}) for m in result.memories],
                    },
                    indent=2,
                )
            )
        else:
            for c in result.chunks:
                sim = result.similarities.get(c.id, 0.0)
                print(f"[chunk] (similarity={sim:.3f}) lines {c.start_line}-{c.end_line}")
                print(f"    {c.content[:200]}")
                print()
            for m in result.memories:
                sim = result.similarities.get(m.id)
                label = f"similarity={sim:.3f}" if sim is not None else "unranked"
                print(f"[{m.memory_type.value}] ({label}) {m.content[:200]}")
                print(f"    id={m.id}")
                print()

    elif args.command == "context":
        result = engine.builder.build(
            args.question,
            BuildOptions(
                max_tokens=args.max_tokens if args.max_tokens is not None else engine.settings.max_tokens,
                top_k_sessions=args.sessions,
                extra_files=args.files,
            ),
        )
        if args.as_json:
            print(
                json.dumps(
                    {
                        "system_prompt": result.system_prompt,
                        "context": result.context_text,
                        "tokens_used": result.tokens_used,
                        "chunks_used": result.chunks_used,
                        "memories_used": result.memories_used,
                        "sessions_used": result.sessions_used,
                        "sources": result.sources,
                        "retrieval_status": result.retrieval_status.value,
                    },
                    indent=2,
                )
            )
        else:
            print(result.system_prompt)
            if result.context_text:
                print()
                print(result.context_text)
            print(f"\n({result.tokens_used} tokens, {len(result.sources)} sources)", file=sys.stderr)

    elif args.command == "sessions":
        sessions = store.get_last_n_sessions(args.limit)
        if not sessions:
            print("No sessions recorded.")
            return 0
        for s in sessions:
            print(f"{s.created_at:%Y-%m-%d %H:%M} [{s.model_used or '?'}] {s.question}")
            if s.response_summary:
                print(f"    {s.response_summary[:200]}")

    elif args.command == "status":
        project = store.get_project()
        print(f"project: {project.name if project else 'unknown'}")
        stats = store.stats()
        print(f"files: {stats['files']}")
        print(f"chunks: {stats['chunks']}")
        for memory_type in MemoryType.values():
            print(f"{memory_type}: {stats[memory_type]}")
        print(f"sessions: {stats['sessions']}")
        print(f"embeddings: {orchestrator.memory_vectors.count()} memories, {orchestrator.chunk_vectors.count()} chunks")

    elif args.command == "reembed":
        n = orchestrator.reembed_missing()
        print(f"Embedded {n} memor{'y' if n == 1 else 'ies'}.")

    return 0


if __name__ == "__main__":
    sys.exit(main())
