"""
Exception hierarchy for clanker-context.

Validation and lookup failures surface to the caller.  Embedding failures
are raised by embedders but always turned into degraded results by the
orchestrator, so callers of ``retrieve`` / ``remember`` never see them.
"""

from __future__ import annotations


class ClankerContextError(Exception):
    """Base class for all errors raised by clanker-context."""


class ValidationError(ClankerContextError):
    """Input was rejected before anything was persisted."""


class InvalidTypeError(ValidationError):
    """A memory type string is not one of the recognised kinds."""

    def __init__(self, value: str) -> None:
        self.value = value
        super().__init__(
            f"invalid memory type {value!r} "
            "(expected one of: decision, convention, constraint, note, todo)"
        )


class NotFoundError(ClankerContextError):
    """No record exists for the requested id."""

    def __init__(self, kind: str, id: str) -> None:
        self.kind = kind
        self.id = id
        super().__init__(f"{kind} {id!r} not found")


class StorageError(ClankerContextError):
    """The metadata or vector store failed."""


class EmbeddingError(ClankerContextError):
    """The embedding capability failed or timed out."""
