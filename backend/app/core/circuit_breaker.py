"""Refinement Circuit Breaker rules — direction keys and the skip threshold.

Invariants:
    - Direction "A->B" and "B->A" are distinct keys
    - should_skip_reconciler is True strictly when attempts > limit (default 3)
    - Once tripped it stays tripped: attempts only ever grow
"""

from app.core.domain_types import Direction
from app.core.records import AttemptCheck

REFINEMENT_ATTEMPT_LIMIT = 3


def direction_key(guesser_id: str, subject_id: str) -> Direction:
    return Direction(f"{guesser_id}->{subject_id}")


def evaluate_attempts(
    attempts: int, limit: int = REFINEMENT_ATTEMPT_LIMIT,
) -> AttemptCheck:
    return AttemptCheck(attempts=attempts, should_skip_reconciler=attempts > limit)
