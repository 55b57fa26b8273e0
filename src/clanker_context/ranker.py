"""
Blended relevance ranking for retrieval candidates.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")

#: Importance assigned to candidates that carry none of their own (chunks).
NEUTRAL_IMPORTANCE: float = 0.5


@dataclass(frozen=True)
class Candidate(Generic[T]):
    """A retrieved item together with its similarity and importance."""

    item: T
    similarity: float
    importance: float = NEUTRAL_IMPORTANCE


class Ranker:
    """
    Orders candidates by ``similarity_weight * similarity +
    importance_weight * importance``, highest first.

    The default 70/30 split lets an important memory overtake a slightly
    more similar but less important one without letting importance alone
    dominate.  Equal scores keep their input order, so the result is a
    deterministic total order for any given input sequence.
    """

    def __init__(self, similarity_weight: float = 0.7, importance_weight: float = 0.3) -> None:
        if similarity_weight < 0 or importance_weight < 0:
            raise ValueError("ranking weights must be non-negative")
        self.similarity_weight = similarity_weight
        self.importance_weight = importance_weight

    def score(self, candidate: Candidate[object]) -> float:
        return (
            candidate.similarity * self.similarity_weight
            + candidate.importance * self.importance_weight
        )

    def rank(self, candidates: list[Candidate[T]]) -> list[Candidate[T]]:
        # sorted() is stable, so ties keep insertion order.
        return sorted(candidates, key=self.score, reverse=True)
