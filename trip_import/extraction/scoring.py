"""Candidate ranking."""
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .missing_fields import compute_missing_fields
from .schemas import CanonicalPayload, Scope

# Tie-break order only; the score decides first
PROVIDER_PREFERENCE = ("openrouter", "gemini", "lovable_ai", "heuristic")

TYPE_WEIGHT = 25
CONFIDENCE_WEIGHT = 0.2
MISSING_FIELD_PENALTY = 8
OUT_OF_SCOPE_BONUS = 15
DATE_INVERTED_PENALTY = 15
NEGATIVE_AMOUNT_PENALTY = 10


@dataclass
class Candidate:
    canonical: CanonicalPayload
    scope: Scope
    provider: str
    score: float = 0.0
    missing_fields: List[str] = field(default_factory=list)

    @property
    def missing_field_count(self) -> int:
        return len(self.missing_fields)


def preference_rank(provider: str) -> int:
    try:
        return PROVIDER_PREFERENCE.index(provider)
    except ValueError:
        return len(PROVIDER_PREFERENCE)


class CandidateScorer:
    """Scores candidates and picks the winner.

    score = 25*has_type + 0.2*confidence - 8*missing + 15*out_of_scope
            - 15*date_inverted - 10*negative_amount, floored at 0.
    """

    def score(self, canonical: CanonicalPayload, scope: Scope, missing_count: int) -> float:
        value = 0.0
        if canonical.metadata.type is not None:
            value += TYPE_WEIGHT
        value += CONFIDENCE_WEIGHT * canonical.metadata.confidence
        value -= MISSING_FIELD_PENALTY * missing_count
        if scope == Scope.OUTSIDE_SCOPE:
            value += OUT_OF_SCOPE_BONUS
        if not canonical.date_range_valid:
            value -= DATE_INVERTED_PENALTY
        if canonical.has_negative_amount:
            value -= NEGATIVE_AMOUNT_PENALTY
        return max(0.0, round(value, 2))

    def build(self, canonical: CanonicalPayload, scope: Scope, provider: str) -> Candidate:
        missing = compute_missing_fields(canonical.metadata.type, canonical, scope)
        return Candidate(
            canonical=canonical,
            scope=scope,
            provider=provider,
            score=self.score(canonical, scope, len(missing)),
            missing_fields=missing,
        )

    def select(self, candidates: Sequence[Candidate]) -> Optional[Candidate]:
        if not candidates:
            return None
        return max(candidates, key=lambda c: (c.score, -preference_rank(c.provider)))
