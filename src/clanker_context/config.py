"""
Runtime configuration, resolved from environment variables.

    CLANKER_CONTEXT_ROOT            - project root (default: current directory)
    CLANKER_CONTEXT_DB_PATH         - SQLite database (default: <root>/.clanker-context/context.db)
    CLANKER_CONTEXT_MODEL           - sentence-transformers model (default: all-MiniLM-L6-v2)
    CLANKER_CONTEXT_EMBEDDINGS      - "0" disables embedding entirely (default: 1)
    CLANKER_CONTEXT_VECTOR_BACKEND  - "sqlite" (brute force) or "chroma" (default: sqlite)
    CLANKER_CONTEXT_EMBED_TIMEOUT   - seconds per embedding call, 0 for none (default: 30)
    CLANKER_CONTEXT_MAX_TOKENS      - default context budget (default: 8000)
    CLANKER_CONTEXT_LOG_LEVEL       - logging level name (default: WARNING)
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from .builder import DEFAULT_MAX_TOKENS
from .embeddings import DEFAULT_MODEL

DATA_DIR_NAME = ".clanker-context"
DB_FILE_NAME = "context.db"

VECTOR_BACKENDS = ("sqlite", "chroma")

_FALSE = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    root: Path
    db_path: Path
    model: str = DEFAULT_MODEL
    embeddings_enabled: bool = True
    vector_backend: str = "sqlite"
    embed_timeout: float | None = 30.0
    max_tokens: int = DEFAULT_MAX_TOKENS
    log_level: str = "WARNING"

    @property
    def data_dir(self) -> Path:
        return self.db_path.parent

    @classmethod
    def from_env(
        cls,
        root: str | Path | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> Settings:
        env = os.environ if environ is None else environ
        root_path = Path(root or env.get("CLANKER_CONTEXT_ROOT") or Path.cwd()).resolve()
        db_path = Path(
            env.get("CLANKER_CONTEXT_DB_PATH") or root_path / DATA_DIR_NAME / DB_FILE_NAME
        )

        backend = env.get("CLANKER_CONTEXT_VECTOR_BACKEND", "sqlite").strip().lower()
        if backend not in VECTOR_BACKENDS:
            raise ValueError(
                f"CLANKER_CONTEXT_VECTOR_BACKEND must be one of {VECTOR_BACKENDS}, got {backend!r}"
            )

        timeout = float(env.get("CLANKER_CONTEXT_EMBED_TIMEOUT", "30"))
        return cls(
            root=root_path,
            db_path=db_path,
            model=env.get("CLANKER_CONTEXT_MODEL", DEFAULT_MODEL),
            embeddings_enabled=env.get("CLANKER_CONTEXT_EMBEDDINGS", "1").strip().lower()
            not in _FALSE,
            vector_backend=backend,
            embed_timeout=timeout if timeout > 0 else None,
            max_tokens=int(env.get("CLANKER_CONTEXT_MAX_TOKENS", str(DEFAULT_MAX_TOKENS))),
            log_level=env.get("CLANKER_CONTEXT_LOG_LEVEL", "WARNING").upper(),
        )


def configure_logging(level: str | int = "WARNING") -> None:
    """Send log records to stderr; stdout is reserved for command output."""
    logging.basicConfig(
        level=level,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )
