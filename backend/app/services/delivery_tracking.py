"""Delivery Tracking — DELIVERED -> SEEN once a user has viewed the session.

Invariants:
    - Only items addressed to the viewer move: disclosures shared with them and the
      partner's statement revealed to them
    - Only items delivered at or before viewed_at move (a later delivery stays DELIVERED)
    - UNDELIVERED never jumps to SEEN; SEEN is never downgraded
"""

import logging
from datetime import datetime

from app.core.domain_types import DeliveryStatus, EmpathyStatus
from app.core.records import SessionMembers
from app.core.share_offer_policy import as_utc
from app.services.empathy_ledger import EmpathyLedger
from app.services.reconciler_store import ShareOfferStore

logger = logging.getLogger(__name__)


async def record_session_viewed(
    ledger: EmpathyLedger,
    offers: ShareOfferStore,
    members: SessionMembers,
    user_id: str,
    viewed_at: datetime,
) -> int:
    """Mark what the viewer has seen. Returns how many items changed."""
    viewed_at = as_utc(viewed_at)
    marked = 0

    for offer in await offers.list_shared_with(members.session_id, user_id):
        if (
            offer.delivery_status == DeliveryStatus.DELIVERED
            and offer.shared_at is not None
            and as_utc(offer.shared_at) <= viewed_at
            and await offers.mark_seen(offer.id)
        ):
            marked += 1

    partner = await ledger.get(members.session_id, members.partner_of(user_id))
    if (
        partner is not None
        and partner.status == EmpathyStatus.REVEALED
        and partner.delivery_status == DeliveryStatus.DELIVERED
        and partner.revealed_at is not None
        and as_utc(partner.revealed_at) <= viewed_at
        and await ledger.mark_seen(partner.id)
    ):
        marked += 1

    if marked:
        logger.info(
            f"Marked {marked} delivered item(s) as seen",
            extra={"session_id": members.session_id, "user_id": user_id},
        )
    return marked
