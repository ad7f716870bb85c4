"""Share offer tests — accept / decline / refine, expiry, terminal responses, fallbacks."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import update

from app.core.domain_types import (
    DeliveryStatus, EmpathyStatus, MessageRole, NotificationEvent,
    ShareAction, ShareOfferStatus,
)
from app.core.errors import InvalidTransitionError, ResourceNotFoundError
from app.core.format_messages import ACCEPT_CONFIRMATION, DECLINE_CONFIRMATION
from app.core.share_offer_policy import FALLBACK_SUGGESTION
from app.models.share_offer import ReconcilerShareOffer

from tests.services.fakes import significant_gap


@pytest.fixture
async def offer(engine, members, ready, fake_analyst):
    fake_analyst.result = significant_gap()
    await ready(engine, members)
    outcome = await engine.reconciler.reconcile(members.session_id, "alice", "bob")
    return outcome.share_offer


async def test_first_read_marks_offered(engine, members, offer):
    pending = await engine.negotiator.get_pending_offer(members.session_id, "bob")
    assert pending.id == offer.id
    assert pending.status == ShareOfferStatus.OFFERED
    # the guesser has no offer of their own
    assert await engine.negotiator.get_pending_offer(members.session_id, "alice") is None


async def test_decline_reveals_original_and_shares_nothing(
    engine, members, offer, fake_notifier,
):
    outcome = await engine.negotiator.respond(members.session_id, "bob", ShareAction.DECLINE)

    assert outcome.offer.status == ShareOfferStatus.DECLINED
    assert outcome.offer.shared_content is None
    assert outcome.disclosure is None
    assert outcome.confirmation == DECLINE_CONFIRMATION
    assert outcome.empathy_status == EmpathyStatus.REVEALED

    alice = await engine.ledger.get(members.session_id, "alice")
    assert alice.status == EmpathyStatus.REVEALED
    assert alice.content == "You were exhausted and felt nobody noticed."
    roles = [m.role for m in await engine.messages.list_for_user(members.session_id, "alice")]
    assert MessageRole.SHARED_CONTEXT not in roles
    assert NotificationEvent.CONTEXT_SHARED.value not in fake_notifier.types_for("alice")


async def test_accept_shares_suggestion_and_moves_guesser_to_refining(
    engine, members, offer, fake_notifier,
):
    outcome = await engine.negotiator.respond(members.session_id, "bob", ShareAction.ACCEPT)

    assert outcome.offer.status == ShareOfferStatus.ACCEPTED
    assert outcome.offer.shared_content == offer.suggested_content
    assert outcome.offer.refined_content is None
    assert outcome.offer.delivery_status == DeliveryStatus.DELIVERED
    assert outcome.offer.shared_at is not None
    assert outcome.confirmation == ACCEPT_CONFIRMATION
    assert outcome.empathy_status == EmpathyStatus.REFINING
    assert outcome.disclosure.from_user_id == "bob"
    assert outcome.disclosure.to_user_id == "alice"

    alice = await engine.ledger.get(members.session_id, "alice")
    assert alice.status == EmpathyStatus.REFINING
    assert alice.revealed_at is None

    [context] = await engine.messages.list_for_user(members.session_id, "alice")
    assert context.role == MessageRole.SHARED_CONTEXT
    assert context.sender_id == "bob"
    assert offer.suggested_content in context.content
    [receipt] = [
        m for m in await engine.messages.list_for_user(members.session_id, "bob")
        if m.role == MessageRole.SHARE_RECEIPT
    ]
    assert receipt.sender_id == "bob"
    assert offer.suggested_content in receipt.content
    assert NotificationEvent.CONTEXT_SHARED.value in fake_notifier.types_for("alice")


async def test_refine_shares_refined_text(engine, members, offer):
    outcome = await engine.negotiator.respond(
        members.session_id, "bob", ShareAction.REFINE,
        refined_content="I needed you to see how alone I felt.",
    )
    assert outcome.offer.shared_content == "I needed you to see how alone I felt."
    assert outcome.offer.refined_content == "I needed you to see how alone I felt."
    assert outcome.empathy_status == EmpathyStatus.REFINING
    [context] = await engine.messages.list_for_user(members.session_id, "alice")
    assert "I needed you to see how alone I felt." in context.content
    assert offer.suggested_content not in context.content


async def test_refine_without_content_rejected(engine, members, offer):
    with pytest.raises(InvalidTransitionError):
        await engine.negotiator.respond(members.session_id, "bob", ShareAction.REFINE, "  ")
    pending = await engine.negotiator.get_pending_offer(members.session_id, "bob")
    assert pending is not None


async def test_second_response_rejected(engine, members, offer):
    await engine.negotiator.respond(members.session_id, "bob", ShareAction.ACCEPT)
    with pytest.raises(InvalidTransitionError) as exc:
        await engine.negotiator.respond(members.session_id, "bob", ShareAction.DECLINE)
    assert "ACCEPTED" in exc.value.message
    alice = await engine.ledger.get(members.session_id, "alice")
    assert alice.status == EmpathyStatus.REFINING


async def test_respond_without_offer(engine, members):
    with pytest.raises(ResourceNotFoundError):
        await engine.negotiator.respond(members.session_id, "bob", ShareAction.ACCEPT)


async def test_expired_offer_is_auto_declined(engine, members, offer, test_db):
    await test_db.execute(
        update(ReconcilerShareOffer)
        .where(ReconcilerShareOffer.id == offer.id)
        .values(created_at=datetime.now(timezone.utc) - timedelta(days=8)),
    )
    await test_db.commit()

    assert await engine.negotiator.get_pending_offer(members.session_id, "bob") is None
    stored = await engine.offers.get(offer.id)
    assert stored.status == ShareOfferStatus.DECLINED
    assert stored.shared_content is None
    alice = await engine.ledger.get(members.session_id, "alice")
    assert alice.status == EmpathyStatus.REVEALED

    with pytest.raises(InvalidTransitionError):
        await engine.negotiator.respond(members.session_id, "bob", ShareAction.ACCEPT)


async def test_suggestion_failure_uses_fallback(engine, members, ready, fake_analyst):
    fake_analyst.result = significant_gap()
    fake_analyst.suggestion = RuntimeError("no suggestion today")
    await ready(engine, members)
    outcome = await engine.reconciler.reconcile(members.session_id, "alice", "bob")
    assert outcome.share_offer.suggested_content == FALLBACK_SUGGESTION.suggested_content
    assert outcome.share_offer.suggested_reason == FALLBACK_SUGGESTION.reason


async def test_empty_suggestion_uses_fallback(engine, members, ready, fake_analyst):
    fake_analyst.result = significant_gap()
    fake_analyst.suggestion = {"suggested_content": "   ", "reason": ""}
    await ready(engine, members)
    outcome = await engine.reconciler.reconcile(members.session_id, "alice", "bob")
    assert outcome.share_offer.suggested_content == FALLBACK_SUGGESTION.suggested_content


async def test_suggestion_uses_gap_and_subject_words(engine, members, ready, fake_analyst):
    fake_analyst.result = significant_gap()
    await ready(engine, members, witnessing="I carried it all.")
    await engine.reconciler.reconcile(members.session_id, "alice", "bob")
    [call] = fake_analyst.suggest_calls
    assert call["gap_summary"] == "Missed how lonely they felt."
    assert call["subject_raw_content"] == "I carried it all."
