"""
Policy layer: memory type validation, auto-classification and importance.

Both policies are static lookup tables so they can be audited and unit
tested in isolation from the stores:
  - ``IMPORTANCE`` maps each memory type to its fixed importance score
  - ``CLASSIFICATION_RULES`` is an ordered list of (pattern, type) pairs;
    the first pattern that matches the content decides the type
"""

from __future__ import annotations

import re
import uuid

from .errors import InvalidTypeError
from .models import MemoryType

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Importance is derived from the memory type, never chosen by the caller.
IMPORTANCE: dict[MemoryType, float] = {
    MemoryType.DECISION: 0.8,
    MemoryType.CONSTRAINT: 0.8,
    MemoryType.CONVENTION: 0.7,
    MemoryType.TODO: 0.6,
    MemoryType.NOTE: 0.5,
}

#: Ordered auto-classification rules.  Todo markers are checked first so
#: that "TODO: never log tokens" is still filed as a todo.
CLASSIFICATION_RULES: list[tuple[re.Pattern[str], MemoryType]] = [
    (
        re.compile(r"\b(?:TODO|FIXME|XXX)\b|^\s*[-*]\s*\[ \]", re.MULTILINE),
        MemoryType.TODO,
    ),
    (
        re.compile(
            r"\b(?:must|must not|never|always|do not|don't|cannot|required to)\b",
            re.IGNORECASE,
        ),
        MemoryType.CONSTRAINT,
    ),
    (
        re.compile(
            r"\b(?:decided|decision|we chose|chose|going with|switched to|opted for|migrated to)\b",
            re.IGNORECASE,
        ),
        MemoryType.DECISION,
    ),
    (
        re.compile(
            r"\b(?:convention|naming|style|prefer|camelcase|snake_case|kebab-case)\b",
            re.IGNORECASE,
        ),
        MemoryType.CONVENTION,
    ),
]

#: Fallback when no rule matches.
DEFAULT_TYPE: MemoryType = MemoryType.NOTE


# ---------------------------------------------------------------------------
# Type handling
# ---------------------------------------------------------------------------


def parse_memory_type(value: str | MemoryType) -> MemoryType:
    """
    Convert *value* to a ``MemoryType``.

    Raises ``InvalidTypeError`` for anything that is not one of the five
    recognised kinds.  Matching is exact: ``"Decision"`` is rejected.
    """
    if isinstance(value, MemoryType):
        return value
    try:
        return MemoryType(value)
    except ValueError:
        raise InvalidTypeError(str(value)) from None


def classify_memory(content: str) -> MemoryType:
    """
    Guess the memory type of *content*.

    Best-effort heuristic over ``CLASSIFICATION_RULES``; never raises and
    falls back to ``DEFAULT_TYPE``.
    """
    for pattern, memory_type in CLASSIFICATION_RULES:
        if pattern.search(content):
            return memory_type
    return DEFAULT_TYPE


def importance_for(memory_type: MemoryType) -> float:
    """Return the fixed importance score for *memory_type*."""
    return IMPORTANCE[memory_type]


# ---------------------------------------------------------------------------
# ID generation
# ---------------------------------------------------------------------------


def generate_id() -> str:
    """Return a new unique entity ID."""
    return str(uuid.uuid4())
