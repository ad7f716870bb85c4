"""Empathy exchange tests — feel-heard confirmation, submissions, reconcile triggers."""

import pytest

from app.core.domain_types import EmpathyStatus, ShareAction, Stage
from app.core.errors import InvalidTransitionError
from app.core.records import ReconcileTrigger

from tests.services.fakes import significant_gap


async def test_feel_heard_sets_gates_and_advances(engine, members, walk):
    sid = members.session_id
    await walk(engine, sid, "bob", Stage.WITNESS)
    progress, trigger = await engine.exchange.confirm_feel_heard(
        members, "bob", emotional_reading=6,
    )

    assert progress.stage == Stage.PERSPECTIVE_STRETCH
    assert trigger is None
    witness = await engine.tracker.get(sid, "bob", Stage.WITNESS)
    assert witness.gates.feel_heard_confirmed is True
    assert witness.gates.feel_heard_confirmed_at is not None
    assert witness.gates.final_emotional_reading == 6


async def test_feel_heard_before_witness_stage_fails(engine, members):
    with pytest.raises(InvalidTransitionError):
        await engine.exchange.confirm_feel_heard(members, "bob")


async def test_submission_before_partner_feels_heard_waits(engine, members, walk):
    sid = members.session_id
    await walk(engine, sid, "alice", Stage.PERSPECTIVE_STRETCH)
    await walk(engine, sid, "bob", Stage.WITNESS)

    submission = await engine.exchange.submit_empathy(members, "alice", "You felt alone.")
    assert submission.attempt.status == EmpathyStatus.HELD
    assert submission.trigger is None
    assert submission.needs_recheck is False

    _, trigger = await engine.exchange.confirm_feel_heard(members, "bob")
    assert trigger == ReconcileTrigger(sid, "alice", "bob")


async def test_submission_after_partner_feels_heard_triggers(engine, members, walk):
    sid = members.session_id
    await walk(engine, sid, "alice", Stage.PERSPECTIVE_STRETCH)
    await walk(engine, sid, "bob", Stage.PERSPECTIVE_STRETCH)

    submission = await engine.exchange.submit_empathy(members, "alice", "You felt alone.")
    assert submission.trigger == ReconcileTrigger(sid, "alice", "bob")

    stage_two = await engine.tracker.get(sid, "alice", Stage.PERSPECTIVE_STRETCH)
    assert stage_two.gates.empathy_draft_ready is True
    assert stage_two.gates.empathy_consented is True
    assert await engine.tracker.current_stage(sid, "alice") == Stage.NEED_MAPPING


async def test_submission_off_stage_rejected(engine, members, walk):
    await walk(engine, members.session_id, "alice", Stage.WITNESS)
    with pytest.raises(InvalidTransitionError):
        await engine.exchange.submit_empathy(members, "alice", "You felt alone.")
    assert await engine.ledger.get(members.session_id, "alice") is None


async def test_second_submission_rejected_while_held(engine, members, walk):
    await walk(engine, members.session_id, "alice", Stage.PERSPECTIVE_STRETCH)
    await engine.exchange.submit_empathy(members, "alice", "first")
    with pytest.raises(InvalidTransitionError):
        await engine.exchange.submit_empathy(members, "alice", "second")
    assert (await engine.ledger.get(members.session_id, "alice")).content == "first"


async def test_submission_while_refining_is_a_revision(
    engine, members, ready, fake_analyst,
):
    sid = members.session_id
    fake_analyst.result = significant_gap()
    await ready(engine, members)
    await engine.reconciler.reconcile(sid, "alice", "bob")
    await engine.negotiator.respond(sid, "bob", ShareAction.ACCEPT)
    stage_before = await engine.tracker.current_stage(sid, "alice")

    submission = await engine.exchange.submit_empathy(members, "alice", "You felt alone.")
    assert submission.needs_recheck is True
    assert submission.trigger is None
    assert submission.refinement_attempts == 1
    assert submission.attempt.revision_count == 1
    assert submission.attempt.status == EmpathyStatus.REFINING
    assert await engine.tracker.current_stage(sid, "alice") == stage_before


async def test_feel_heard_skips_trigger_when_partner_not_held(engine, members, walk):
    sid = members.session_id
    await walk(engine, sid, "alice", Stage.PERSPECTIVE_STRETCH)
    await walk(engine, sid, "bob", Stage.WITNESS)
    await engine.exchange.submit_empathy(members, "alice", "You felt alone.")
    await engine.ledger.mark_revealed(sid, "alice")

    _, trigger = await engine.exchange.confirm_feel_heard(members, "bob")
    assert trigger is None
