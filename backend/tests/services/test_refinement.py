"""Refinement tests — resubmission counting, re-check decisions, circuit breaker trip."""

import pytest

from app.core.domain_types import (
    EmpathyStatus, GuidanceType, MessageRole, NotificationEvent, ShareAction,
)
from app.core.errors import InvalidTransitionError, PreconditionNotMetError
from app.core.format_messages import format_circuit_breaker_notice

from tests.services.fakes import analysis, significant_gap


@pytest.fixture
async def refining(engine, members, ready, fake_analyst):
    """alice -> bob direction in REFINING after bob accepted a share offer."""
    fake_analyst.result = significant_gap()
    await ready(engine, members)
    await engine.reconciler.reconcile(members.session_id, "alice", "bob")
    await engine.negotiator.respond(members.session_id, "bob", ShareAction.ACCEPT)
    fake_analyst.analyze_calls.clear()
    return members


async def test_resubmit_requires_refining(engine, members, ready):
    await ready(engine, members)
    with pytest.raises(InvalidTransitionError):
        await engine.refinement.resubmit(members.session_id, "alice", "again")


async def test_resubmit_counts_and_replaces_content(engine, refining):
    sid = refining.session_id
    attempts = await engine.refinement.resubmit(sid, "alice", "You felt alone with it all.")
    assert attempts == 1
    attempt = await engine.ledger.get(sid, "alice")
    assert attempt.content == "You felt alone with it all."
    assert attempt.revision_count == 1
    assert attempt.status == EmpathyStatus.REFINING
    # the reverse direction is untouched
    assert (await engine.breaker.check_attempts(sid, "bob", "alice")).attempts == 0


async def test_recheck_reveals_when_gap_closed(engine, refining, fake_analyst, fake_notifier):
    sid = refining.session_id
    fake_analyst.result = analysis(score=88)
    await engine.refinement.resubmit(sid, "alice", "You felt alone with it all.")
    outcome = await engine.refinement.recheck(sid, "alice")

    assert outcome.empathy_status == EmpathyStatus.REVEALED
    assert outcome.skipped_reconciler is False
    assert outcome.attempts == 1
    assert fake_analyst.analyze_calls[0]["guesser_statement"] == "You felt alone with it all."
    assert (await engine.ledger.get(sid, "alice")).status == EmpathyStatus.REVEALED
    assert NotificationEvent.PARTNER_EMPATHY_SHARED.value in fake_notifier.types_for("bob")


async def test_recheck_keeps_refining_with_abstract_guidance(engine, refining, fake_analyst):
    sid = refining.session_id
    stored_before = await engine.results.get(sid, "alice", "bob")
    fake_analyst.result = significant_gap(misattributions=["assumed she was angry"])
    await engine.refinement.resubmit(sid, "alice", "You were angry.")
    outcome = await engine.refinement.recheck(sid, "alice")

    assert outcome.empathy_status == EmpathyStatus.REFINING
    assert outcome.guidance.guidance_type == GuidanceType.RECONSIDER_ASSUMPTIONS
    assert "angry" not in (outcome.guidance.area_hint or "")
    # re-check analyses are not stored
    stored_after = await engine.results.get(sid, "alice", "bob")
    assert stored_after.id == stored_before.id
    assert stored_after.analysis == stored_before.analysis


async def test_circuit_breaker_forces_reveal(engine, refining, fake_analyst, fake_notifier):
    sid = refining.session_id
    for n in range(4):
        await engine.refinement.resubmit(sid, "alice", f"revision {n}")
    outcome = await engine.refinement.recheck(sid, "alice")

    assert outcome.skipped_reconciler is True
    assert outcome.attempts == 4
    assert outcome.empathy_status == EmpathyStatus.REVEALED
    assert fake_analyst.analyze_calls == []
    attempt = await engine.ledger.get(sid, "alice")
    assert attempt.content == "revision 3"

    system = [
        m.content for m in await engine.messages.list_for_user(sid, "alice")
        if m.role == MessageRole.SYSTEM
    ]
    assert format_circuit_breaker_notice("Bob") in system
    skipped = [
        payload for uid, event, payload in fake_notifier.events
        if uid == "alice" and event == NotificationEvent.REFINEMENT_SKIPPED.value
    ]
    assert skipped == [{"attempts": 4}]


async def test_three_attempts_still_analysed(engine, refining, fake_analyst):
    sid = refining.session_id
    fake_analyst.result = significant_gap()
    for n in range(3):
        await engine.refinement.resubmit(sid, "alice", f"revision {n}")
    outcome = await engine.refinement.recheck(sid, "alice")
    assert outcome.skipped_reconciler is False
    assert len(fake_analyst.analyze_calls) == 1


async def test_recheck_requires_refining(engine, members, ready):
    await ready(engine, members)
    with pytest.raises(PreconditionNotMetError):
        await engine.refinement.recheck(members.session_id, "alice")
