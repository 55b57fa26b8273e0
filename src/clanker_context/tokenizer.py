"""
Token counting for context budgets.
"""

from __future__ import annotations

import math
from typing import Protocol

#: Rough characters-per-token ratio for English prose and source code.
CHARS_PER_TOKEN: int = 4


class Tokenizer(Protocol):
    def count(self, text: str) -> int: ...


class CharTokenizer:
    """Estimates tokens as ``ceil(len(text) / chars_per_token)``."""

    def __init__(self, chars_per_token: int = CHARS_PER_TOKEN) -> None:
        if chars_per_token <= 0:
            raise ValueError("chars_per_token must be positive")
        self.chars_per_token = chars_per_token

    def count(self, text: str) -> int:
        if not text:
            return 0
        return math.ceil(len(text) / self.chars_per_token)
