"""Empathy Attempt Lifecycle — forward-only status transitions for one direction.

Invariants:
    - HELD -> (REVEALED | AWAITING_SHARING) -> REFINING -> REVEALED
    - REVEALED is terminal: leaving it is a TERMINAL_STATE error, never a no-op
    - Re-applying the status an attempt already has is a duplicate (no-op), not an error
    - All functions are PURE: no IO, no async, no DB, no side effects

Design Decisions:
    - Explicit transition table: every legal edge visible in one place
    - sources_for() feeds the shell's conditional UPDATE ... WHERE status IN (...)
      so a concurrent duplicate trigger loses the race instead of double-applying
"""

from app.core.domain_types import EmpathyStatus

ALLOWED_TRANSITIONS: dict[EmpathyStatus, frozenset[EmpathyStatus]] = {
    EmpathyStatus.HELD: frozenset({EmpathyStatus.REVEALED, EmpathyStatus.AWAITING_SHARING}),
    EmpathyStatus.AWAITING_SHARING: frozenset({EmpathyStatus.REFINING, EmpathyStatus.REVEALED}),
    EmpathyStatus.REFINING: frozenset({EmpathyStatus.REVEALED}),
    EmpathyStatus.REVEALED: frozenset(),
}


def sources_for(target: EmpathyStatus) -> frozenset[EmpathyStatus]:
    """Every status from which target is reachable in one step."""
    return frozenset(
        src for src, targets in ALLOWED_TRANSITIONS.items() if target in targets
    )


def is_duplicate(current: EmpathyStatus, target: EmpathyStatus) -> bool:
    return current == target


def check_transition(current: EmpathyStatus, target: EmpathyStatus) -> dict | None:
    """Error dict if current -> target is illegal. Duplicates are NOT errors here."""
    if is_duplicate(current, target):
        return None
    if current == EmpathyStatus.REVEALED:
        return {
            "status": "error",
            "error_code": "TERMINAL_STATE",
            "message": f"Empathy attempt is already REVEALED; cannot move to {target.value}.",
        }
    if target not in ALLOWED_TRANSITIONS[current]:
        return {
            "status": "error",
            "error_code": "INVALID_TRANSITION",
            "message": f"Empathy attempt cannot move from {current.value} to {target.value}.",
        }
    return None


def can_resubmit(current: EmpathyStatus | None) -> bool:
    """First submission, or a revision while the guesser is refining."""
    return current is None or current == EmpathyStatus.REFINING
