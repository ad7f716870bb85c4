"""Share Offer Policy — pure rules for the subject's accept/decline/refine response.

Invariants:
    - Shared content is never empty: refine -> refined text, accept -> suggestion,
      and an empty suggestion is replaced by FALLBACK_SUGGESTION
    - decline shares nothing (no ConsentedDisclosure is built)
    - An offer still PENDING/OFFERED after expiry_days is expired (auto-declined by the shell)
    - Only PENDING/OFFERED offers accept a response; ACCEPTED and DECLINED are terminal

Design Decisions:
    - Lazy expiry over a scheduler: no background worker needed; the first read after the
      deadline applies it (see DESIGN.md, unanswered share offers)
"""

from datetime import datetime, timedelta, timezone

from app.core.domain_types import OPEN_OFFER_STATUSES, ShareAction
from app.core.records import ConsentedDisclosure, ShareOfferRecord, ShareSuggestion

SHARE_OFFER_EXPIRY_DAYS = 7

FALLBACK_SUGGESTION = ShareSuggestion(
    suggested_content=(
        "There's more to what I've been feeling than I've put into words so far, "
        "and I'd like you to understand that part of it too."
    ),
    reason="Sharing a little more of your experience could help them understand you better.",
)


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def check_offer_open(offer: ShareOfferRecord) -> dict | None:
    if offer.status not in OPEN_OFFER_STATUSES:
        return {
            "status": "error",
            "error_code": "OFFER_CLOSED",
            "message": f"Share offer was already {offer.status.value}.",
        }
    return None


def check_response(action: ShareAction, refined_content: str | None) -> dict | None:
    if action == ShareAction.REFINE and not (refined_content or "").strip():
        return {
            "status": "error",
            "error_code": "REFINED_CONTENT_REQUIRED",
            "message": "A refine response needs the refined content to share.",
        }
    return None


def resolve_shared_content(
    action: ShareAction, suggested_content: str, refined_content: str | None,
) -> str | None:
    """Content that crosses to the guesser, or None for decline."""
    if action == ShareAction.DECLINE:
        return None
    if action == ShareAction.REFINE and refined_content and refined_content.strip():
        return refined_content.strip()
    if suggested_content and suggested_content.strip():
        return suggested_content
    return FALLBACK_SUGGESTION.suggested_content


def normalize_suggestion(content: str | None, reason: str | None) -> ShareSuggestion:
    if not content or not content.strip():
        return FALLBACK_SUGGESTION
    return ShareSuggestion(
        suggested_content=content.strip(),
        reason=(reason or "").strip() or FALLBACK_SUGGESTION.reason,
    )


def is_offer_expired(
    offer: ShareOfferRecord, now: datetime, expiry_days: int = SHARE_OFFER_EXPIRY_DAYS,
) -> bool:
    if offer.status not in OPEN_OFFER_STATUSES or offer.created_at is None:
        return False
    return as_utc(now) - as_utc(offer.created_at) >= timedelta(days=expiry_days)


def build_disclosure(
    offer: ShareOfferRecord, content: str, shared_at: datetime,
) -> ConsentedDisclosure:
    return ConsentedDisclosure(
        offer_id=offer.id,
        session_id=offer.session_id,
        from_user_id=offer.subject_id,
        to_user_id=offer.guesser_id,
        content=content,
        shared_at=shared_at,
    )
