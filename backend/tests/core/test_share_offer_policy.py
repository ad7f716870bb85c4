"""Share offer policy tests — content resolution, expiry, open/closed, disclosure."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

from app.core.domain_types import DeliveryStatus, ShareAction, ShareOfferStatus
from app.core.records import ShareOfferRecord
from app.core.share_offer_policy import (
    FALLBACK_SUGGESTION, as_utc, build_disclosure, check_offer_open, check_response,
    is_offer_expired, normalize_suggestion, resolve_shared_content,
)

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _offer(status=ShareOfferStatus.OFFERED, created_at=NOW):
    return ShareOfferRecord(
        id=uuid4(), result_id=uuid4(), session_id=uuid4(),
        guesser_id="alice", subject_id="bob", status=status,
        suggested_content="I felt alone.", suggested_reason="Names the gap.",
        refined_content=None, shared_content=None, shared_at=None,
        delivery_status=DeliveryStatus.UNDELIVERED, created_at=created_at,
    )


def test_accept_shares_the_suggestion():
    assert resolve_shared_content(ShareAction.ACCEPT, "I felt alone.", None) == "I felt alone."


def test_refine_shares_the_refined_text():
    content = resolve_shared_content(ShareAction.REFINE, "I felt alone.", "  I felt unseen.  ")
    assert content == "I felt unseen."


def test_decline_shares_nothing():
    assert resolve_shared_content(ShareAction.DECLINE, "I felt alone.", "x") is None


def test_empty_suggestion_falls_back():
    content = resolve_shared_content(ShareAction.ACCEPT, "   ", None)
    assert content == FALLBACK_SUGGESTION.suggested_content


def test_refine_without_content_is_rejected():
    assert check_response(ShareAction.REFINE, "  ")["error_code"] == "REFINED_CONTENT_REQUIRED"
    assert check_response(ShareAction.ACCEPT, None) is None


def test_normalize_suggestion():
    assert normalize_suggestion("", "why") == FALLBACK_SUGGESTION
    suggestion = normalize_suggestion(" I was scared. ", None)
    assert suggestion.suggested_content == "I was scared."
    assert suggestion.reason == FALLBACK_SUGGESTION.reason


def test_offer_expires_after_seven_days():
    offer = _offer(created_at=NOW - timedelta(days=7))
    assert is_offer_expired(offer, NOW)
    assert not is_offer_expired(_offer(created_at=NOW - timedelta(days=6)), NOW)


def test_closed_offers_never_expire():
    offer = _offer(status=ShareOfferStatus.DECLINED, created_at=NOW - timedelta(days=30))
    assert not is_offer_expired(offer, NOW)


def test_naive_timestamps_are_treated_as_utc():
    naive = (NOW - timedelta(days=8)).replace(tzinfo=None)
    assert as_utc(naive).tzinfo == timezone.utc
    assert is_offer_expired(_offer(created_at=naive), NOW)


def test_only_open_offers_accept_a_response():
    assert check_offer_open(_offer(status=ShareOfferStatus.PENDING)) is None
    assert check_offer_open(_offer()) is None
    error = check_offer_open(_offer(status=ShareOfferStatus.ACCEPTED))
    assert error["error_code"] == "OFFER_CLOSED"


def test_disclosure_flows_from_subject_to_guesser():
    offer = _offer()
    disclosure = build_disclosure(offer, "I felt alone.", NOW)
    assert disclosure.from_user_id == "bob"
    assert disclosure.to_user_id == "alice"
    assert disclosure.offer_id == offer.id
