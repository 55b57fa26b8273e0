"""Tests for the policy layer (type parsing, classification, importance)."""

from __future__ import annotations

import pytest

from clanker_context.errors import InvalidTypeError, ValidationError
from clanker_context.intelligence import (
    IMPORTANCE,
    classify_memory,
    generate_id,
    importance_for,
    parse_memory_type,
)
from clanker_context.models import MemoryType


# ---------------------------------------------------------------------------
# parse_memory_type
# ---------------------------------------------------------------------------


class TestParseMemoryType:
    @pytest.mark.parametrize("value", ["decision", "convention", "constraint", "note", "todo"])
    def test_accepts_every_kind(self, value):
        assert parse_memory_type(value).value == value

    def test_passes_enum_through(self):
        assert parse_memory_type(MemoryType.TODO) is MemoryType.TODO

    @pytest.mark.parametrize("value", ["invalid", "bogus", "Decision", "notes", " note"])
    def test_rejects_unknown(self, value):
        with pytest.raises(InvalidTypeError) as exc_info:
            parse_memory_type(value)
        assert exc_info.value.value == value

    def test_invalid_type_is_a_validation_error(self):
        with pytest.raises(ValidationError):
            parse_memory_type("bogus")


# ---------------------------------------------------------------------------
# classify_memory
# ---------------------------------------------------------------------------


class TestClassifyMemory:
    @pytest.mark.parametrize(
        "content, expected",
        [
            ("TODO: add rate limiting to API", MemoryType.TODO),
            ("FIXME the retry loop", MemoryType.TODO),
            ("- [ ] write migration", MemoryType.TODO),
            ("Never expose API keys in logs", MemoryType.CONSTRAINT),
            ("All handlers must validate input", MemoryType.CONSTRAINT),
            ("We decided to use PostgreSQL", MemoryType.DECISION),
            ("Switched to React 18 last sprint", MemoryType.DECISION),
            ("Naming: use snake_case for modules", MemoryType.CONVENTION),
            ("We prefer dataclasses over dicts", MemoryType.CONVENTION),
            ("The staging box is slow on Mondays", MemoryType.NOTE),
            ("", MemoryType.NOTE),
        ],
    )
    def test_classification(self, content, expected):
        assert classify_memory(content) is expected

    def test_todo_marker_beats_constraint_words(self):
        assert classify_memory("TODO: never log tokens") is MemoryType.TODO

    def test_lowercase_todo_word_is_not_a_marker(self):
        assert classify_memory("things to do today") is MemoryType.NOTE


# ---------------------------------------------------------------------------
# importance_for
# ---------------------------------------------------------------------------


class TestImportance:
    def test_fixed_table(self):
        assert importance_for(MemoryType.DECISION) == 0.8
        assert importance_for(MemoryType.CONSTRAINT) == 0.8
        assert importance_for(MemoryType.CONVENTION) == 0.7
        assert importance_for(MemoryType.TODO) == 0.6
        assert importance_for(MemoryType.NOTE) == 0.5

    def test_table_covers_every_type(self):
        assert set(IMPORTANCE) == set(MemoryType)
        assert all(0.0 <= v <= 1.0 for v in IMPORTANCE.values())


# ---------------------------------------------------------------------------
# generate_id
# ---------------------------------------------------------------------------


class TestGenerateId:
    def test_returns_non_empty_string(self):
        assert isinstance(generate_id(), str)
        assert len(generate_id()) > 0

    def test_ids_are_unique(self):
        ids = {generate_id() for _ in range(100)}
        assert len(ids) == 100
