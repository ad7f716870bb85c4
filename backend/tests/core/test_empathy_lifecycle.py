"""Empathy lifecycle tests — forward-only transitions, terminal REVEALED, duplicates."""

import pytest

from app.core.domain_types import EmpathyStatus as S
from app.core.empathy_lifecycle import (
    can_resubmit, check_transition, is_duplicate, sources_for,
)


@pytest.mark.parametrize("current,target", [
    (S.HELD, S.REVEALED),
    (S.HELD, S.AWAITING_SHARING),
    (S.AWAITING_SHARING, S.REFINING),
    (S.AWAITING_SHARING, S.REVEALED),
    (S.REFINING, S.REVEALED),
])
def test_legal_transitions(current, target):
    assert check_transition(current, target) is None


@pytest.mark.parametrize("current,target", [
    (S.HELD, S.REFINING),
    (S.REFINING, S.AWAITING_SHARING),
    (S.REFINING, S.HELD),
    (S.AWAITING_SHARING, S.HELD),
])
def test_illegal_transitions(current, target):
    assert check_transition(current, target)["error_code"] == "INVALID_TRANSITION"


@pytest.mark.parametrize("target", [S.HELD, S.AWAITING_SHARING, S.REFINING])
def test_leaving_revealed_is_terminal_violation(target):
    assert check_transition(S.REVEALED, target)["error_code"] == "TERMINAL_STATE"


def test_reapplying_same_status_is_duplicate_not_error():
    assert is_duplicate(S.REVEALED, S.REVEALED)
    assert check_transition(S.REVEALED, S.REVEALED) is None
    assert check_transition(S.AWAITING_SHARING, S.AWAITING_SHARING) is None


def test_sources_for_feed_conditional_update():
    assert sources_for(S.REVEALED) == {S.HELD, S.AWAITING_SHARING, S.REFINING}
    assert sources_for(S.REFINING) == {S.AWAITING_SHARING}
    assert sources_for(S.HELD) == frozenset()


def test_resubmit_only_first_time_or_while_refining():
    assert can_resubmit(None)
    assert can_resubmit(S.REFINING)
    assert not can_resubmit(S.HELD)
    assert not can_resubmit(S.REVEALED)
