"""Refinement limit tests — direction keys and the skip threshold."""

from app.core.circuit_breaker import (
    REFINEMENT_ATTEMPT_LIMIT, direction_key, evaluate_attempts,
)


def test_direction_keys_are_ordered():
    assert direction_key("alice", "bob") == "alice->bob"
    assert direction_key("alice", "bob") != direction_key("bob", "alice")


def test_threshold_is_strictly_greater_than_limit():
    assert REFINEMENT_ATTEMPT_LIMIT == 3
    assert [evaluate_attempts(n).should_skip_reconciler for n in range(6)] == [
        False, False, False, False, True, True,
    ]


def test_custom_limit():
    check = evaluate_attempts(2, limit=1)
    assert check.attempts == 2
    assert check.should_skip_reconciler
