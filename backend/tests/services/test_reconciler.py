"""Reconciler tests — compute-once, reveal vs share offer, fallbacks, degradation.

Covers:
    - analysis called at most once per direction (cached result returned as-is)
    - significant gap -> AWAITING_SHARING + PENDING offer + subject gate set
    - collaborator failure / malformed output / timeout -> conservative reveal
    - persistence exhaustion -> reveal with an unpersisted result, no offer
    - preconditions (HELD attempt, witnessing content) checked before any call
"""

import pytest

from app.core.domain_types import (
    EmpathyStatus, GapSeverity, MessageRole, NotificationEvent,
    RecommendedAction, ShareOfferStatus, Stage,
)
from app.core.errors import DatabaseError, PreconditionNotMetError
from app.core.gap_analysis import (
    CONSERVATIVE_ANALYSIS, derive_guidance, to_private_analysis,
)
from app.core.records import WitnessingContent
from app.services.reconciler import analyze_with_fallback

from tests.services.fakes import FakeAnalyst, analysis, significant_gap


async def test_small_gap_reveals(engine, members, ready, fake_analyst, fake_notifier):
    await ready(engine, members)
    outcome = await engine.reconciler.reconcile(members.session_id, "alice", "bob")

    assert outcome.empathy_status == EmpathyStatus.REVEALED
    assert outcome.share_offer is None
    assert outcome.result.persisted
    assert outcome.result.analysis.alignment_score == 85
    assert fake_analyst.suggest_calls == []

    assert NotificationEvent.EMPATHY_REVEALED.value in fake_notifier.types_for("alice")
    assert NotificationEvent.PARTNER_EMPATHY_SHARED.value in fake_notifier.types_for("bob")
    notices = await engine.messages.list_for_user(members.session_id, "alice")
    assert [m.role for m in notices] == [MessageRole.SYSTEM]
    assert "Bob" in notices[0].content


async def test_analysis_receives_subject_witnessing(engine, members, ready, fake_analyst):
    await ready(engine, members, statement="You felt alone.", witnessing="Nobody helped me.")
    await engine.reconciler.reconcile(members.session_id, "alice", "bob")
    call = fake_analyst.analyze_calls[0]
    assert call["guesser_statement"] == "You felt alone."
    assert call["subject_content"] == "Nobody helped me."
    # no emotions were tagged, so themes came from the extractor
    assert call["themes"] == ["overwhelm"]


async def test_compute_once(engine, members, ready, fake_analyst):
    await ready(engine, members)
    first = await engine.reconciler.reconcile(members.session_id, "alice", "bob")
    second = await engine.reconciler.reconcile(members.session_id, "alice", "bob")

    assert len(fake_analyst.analyze_calls) == 1
    assert second.result.id == first.result.id
    assert second.empathy_status == EmpathyStatus.REVEALED


async def test_significant_gap_offers_sharing(
    engine, members, ready, fake_analyst, fake_notifier,
):
    fake_analyst.result = significant_gap()
    await ready(engine, members)
    outcome = await engine.reconciler.reconcile(members.session_id, "alice", "bob")

    assert outcome.empathy_status == EmpathyStatus.AWAITING_SHARING
    offer = outcome.share_offer
    assert offer.status == ShareOfferStatus.PENDING
    assert offer.guesser_id == "alice" and offer.subject_id == "bob"
    assert offer.suggested_content == "I felt alone carrying all of it."

    bob_stage = await engine.tracker.get(members.session_id, "bob", Stage.PERSPECTIVE_STRETCH)
    assert bob_stage.gates.reconciler_check_offered is True
    assert NotificationEvent.SHARE_OFFER.value in fake_notifier.types_for("bob")
    assert fake_notifier.types_for("alice") == []
    # nothing revealed, nothing delivered to the guesser
    assert (await engine.ledger.get(members.session_id, "alice")).revealed_at is None
    assert await engine.messages.list_for_user(members.session_id, "alice") == []


async def test_cached_result_returns_existing_offer(engine, members, ready, fake_analyst):
    fake_analyst.result = significant_gap()
    await ready(engine, members)
    first = await engine.reconciler.reconcile(members.session_id, "alice", "bob")
    second = await engine.reconciler.reconcile(members.session_id, "alice", "bob")
    assert second.share_offer.id == first.share_offer.id
    assert second.empathy_status == EmpathyStatus.AWAITING_SHARING
    assert len(fake_analyst.suggest_calls) == 1


async def test_offer_sharing_action_blocks_reveal_for_moderate_gap(
    engine, members, ready, fake_analyst,
):
    fake_analyst.result = analysis(score=60, severity="moderate", action="OFFER_SHARING")
    await ready(engine, members)
    outcome = await engine.reconciler.reconcile(members.session_id, "alice", "bob")
    assert outcome.empathy_status == EmpathyStatus.AWAITING_SHARING


async def test_subject_gate_missing_is_not_fatal(engine, members, fake_analyst, walk):
    fake_analyst.result = significant_gap()
    sid = members.session_id
    # subject never reached PERSPECTIVE_STRETCH
    await walk(engine, sid, "alice", Stage.PERSPECTIVE_STRETCH)
    await engine.messages.add(
        sid, "bob", MessageRole.USER, "I felt alone.", Stage.WITNESS, sender_id="bob",
    )
    await engine.ledger.submit(sid, "alice", "You were tired.")
    outcome = await engine.reconciler.reconcile(sid, "alice", "bob")
    assert outcome.share_offer is not None


@pytest.mark.parametrize("failure", [
    RuntimeError("model exploded"),
    {"alignment_score": "high", "gap_severity": "minor", "recommended_action": "PROCEED"},
    {"alignment_score": 10, "gap_severity": "catastrophic", "recommended_action": "PROCEED"},
])
async def test_analysis_failure_falls_back_to_reveal(
    engine, members, ready, fake_analyst, failure,
):
    fake_analyst.result = failure
    await ready(engine, members)
    outcome = await engine.reconciler.reconcile(members.session_id, "alice", "bob")

    assert outcome.empathy_status == EmpathyStatus.REVEALED
    assert outcome.result.analysis == CONSERVATIVE_ANALYSIS
    assert outcome.result.analysis.alignment_score == 70
    assert outcome.result.analysis.gap_severity == GapSeverity.MINOR
    assert outcome.result.analysis.recommended_action == RecommendedAction.PROCEED


async def test_timeout_falls_back():
    analyst = FakeAnalyst(result=significant_gap(), delay=0.5)
    result = await analyze_with_fallback(
        analyst, "You felt alone.", WitnessingContent(user_messages="I was alone."),
        guesser_name="Alice", subject_name="Bob", timeout_seconds=0.01,
    )
    assert result == CONSERVATIVE_ANALYSIS


async def test_persistence_exhaustion_reveals_without_offer(
    engine, members, ready, fake_analyst, monkeypatch,
):
    fake_analyst.result = significant_gap()
    await ready(engine, members)
    calls = []

    async def failing_create(*args, **kwargs):
        calls.append(1)
        raise DatabaseError("disk full", "insert")

    monkeypatch.setattr(engine.results, "create", failing_create)
    outcome = await engine.reconciler.reconcile(members.session_id, "alice", "bob")

    assert len(calls) == 3
    assert outcome.result.persisted is False
    assert outcome.result.analysis.gap_severity == GapSeverity.SIGNIFICANT
    assert outcome.share_offer is None
    assert outcome.empathy_status == EmpathyStatus.REVEALED


async def test_persistence_recovers_on_retry(
    engine, members, ready, fake_analyst, monkeypatch,
):
    await ready(engine, members)
    real_create = engine.results.create
    calls = []

    async def flaky_create(*args, **kwargs):
        calls.append(1)
        if len(calls) == 1:
            raise DatabaseError("connection reset", "insert")
        return await real_create(*args, **kwargs)

    monkeypatch.setattr(engine.results, "create", flaky_create)
    outcome = await engine.reconciler.reconcile(members.session_id, "alice", "bob")
    assert len(calls) == 2
    assert outcome.result.persisted


async def test_offer_persistence_failure_reveals(
    engine, members, ready, fake_analyst, monkeypatch,
):
    fake_analyst.result = significant_gap()
    await ready(engine, members)

    async def failing_create(*args, **kwargs):
        raise DatabaseError("disk full", "insert")

    monkeypatch.setattr(engine.offers, "create", failing_create)
    outcome = await engine.reconciler.reconcile(members.session_id, "alice", "bob")
    assert outcome.share_offer is None
    assert outcome.empathy_status == EmpathyStatus.REVEALED


async def test_result_store_race_returns_winner(engine, members):
    sid = members.session_id
    winner = analysis(score=90)
    loser = analysis(score=20, severity="significant", action="OFFER_SHARING")

    first = await engine.results.create(
        sid, "alice", "bob", to_private_analysis(winner),
        derive_guidance(to_private_analysis(winner)),
    )
    second = await engine.results.create(
        sid, "alice", "bob", to_private_analysis(loser),
        derive_guidance(to_private_analysis(loser)),
    )
    assert second.id == first.id
    assert second.analysis.alignment_score == 90


async def test_notification_failure_does_not_block_reveal(
    engine, members, ready, fake_notifier,
):
    fake_notifier.fail = True
    await ready(engine, members)
    outcome = await engine.reconciler.reconcile(members.session_id, "alice", "bob")
    assert outcome.empathy_status == EmpathyStatus.REVEALED


# ─── Preconditions ───────────────────────────────────────────────

async def test_requires_guesser_attempt(engine, members, fake_analyst):
    with pytest.raises(PreconditionNotMetError):
        await engine.reconciler.reconcile(members.session_id, "alice", "bob")
    assert fake_analyst.analyze_calls == []


async def test_requires_subject_witnessing(engine, members, fake_analyst, walk):
    sid = members.session_id
    await walk(engine, sid, "alice", Stage.PERSPECTIVE_STRETCH)
    await engine.ledger.submit(sid, "alice", "You were tired.")
    with pytest.raises(PreconditionNotMetError):
        await engine.reconciler.reconcile(sid, "alice", "bob")
    assert fake_analyst.analyze_calls == []
    assert await engine.results.get(sid, "alice", "bob") is None


async def test_requires_held_status(engine, members, ready, fake_analyst):
    await ready(engine, members)
    await engine.ledger.mark_revealed(members.session_id, "alice")
    with pytest.raises(PreconditionNotMetError):
        await engine.reconciler.reconcile(members.session_id, "alice", "bob")
    assert fake_analyst.analyze_calls == []


async def test_directions_are_independent(engine, members, ready, fake_analyst):
    await ready(engine, members)
    await ready(engine, members, guesser="bob", subject="alice")
    await engine.reconciler.reconcile(members.session_id, "alice", "bob")
    await engine.reconciler.reconcile(members.session_id, "bob", "alice")
    assert len(fake_analyst.analyze_calls) == 2
