"""Empathy Status View — what one user is allowed to see about the exchange.

Invariants:
    - The partner's statement is visible only once REVEALED
    - Guidance is the viewer's own, only while their attempt is AWAITING_SHARING or
      REFINING, and always AbstractGuidance (fixed vocabulary)
    - The open share offer shown is the viewer's own (its suggestion is their own words)
    - Shared context received comes only from ACCEPTED offers (consented disclosures)
    - PrivateAnalysis never appears in the view
"""

from dataclasses import dataclass, field
from datetime import datetime

from app.core.domain_types import EmpathyStatus
from app.core.records import (
    AbstractGuidance, ConsentedDisclosure, EmpathyAttemptRecord,
    SessionMembers, ShareOfferRecord,
)
from app.core.share_offer_policy import build_disclosure
from app.services.empathy_ledger import EmpathyLedger
from app.services.reconciler_store import ReconcilerResultStore, ShareOfferStore
from app.services.share_offer import ShareOfferNegotiator

GUIDANCE_STATUSES = frozenset({EmpathyStatus.AWAITING_SHARING, EmpathyStatus.REFINING})


@dataclass(frozen=True)
class PartnerStatement:
    content: str
    revealed_at: datetime | None


@dataclass(frozen=True)
class EmpathyStatusView:
    my_status: EmpathyStatus | None
    my_revision_count: int = 0
    partner_status: EmpathyStatus | None = None
    partner_statement: PartnerStatement | None = None
    guidance: AbstractGuidance | None = None
    share_offer: ShareOfferRecord | None = None
    shared_context: list[ConsentedDisclosure] = field(default_factory=list)


class EmpathyStatusReader:

    def __init__(
        self,
        ledger: EmpathyLedger,
        results: ReconcilerResultStore,
        offers: ShareOfferStore,
        negotiator: ShareOfferNegotiator,
    ):
        self._ledger = ledger
        self._results = results
        self._offers = offers
        self._negotiator = negotiator

    async def status_for(
        self, members: SessionMembers, user_id: str,
    ) -> EmpathyStatusView:
        session_id = members.session_id
        partner_id = members.partner_of(user_id)
        mine = await self._ledger.get(session_id, user_id)
        partner = await self._ledger.get(session_id, partner_id)

        return EmpathyStatusView(
            my_status=mine.status if mine else None,
            my_revision_count=mine.revision_count if mine else 0,
            partner_status=partner.status if partner else None,
            partner_statement=_revealed(partner),
            guidance=await self._guidance(mine, partner_id),
            share_offer=await self._negotiator.get_pending_offer(session_id, user_id),
            shared_context=[
                build_disclosure(offer, offer.shared_content, offer.shared_at)
                for offer in await self._offers.list_shared_with(session_id, user_id)
                if offer.shared_content and offer.shared_at
            ],
        )

    async def _guidance(
        self, mine: EmpathyAttemptRecord | None, partner_id: str,
    ) -> AbstractGuidance | None:
        if mine is None or mine.status not in GUIDANCE_STATUSES:
            return None
        result = await self._results.get(mine.session_id, mine.source_user_id, partner_id)
        return result.guidance if result else None


def _revealed(attempt: EmpathyAttemptRecord | None) -> PartnerStatement | None:
    if attempt is None or attempt.status != EmpathyStatus.REVEALED:
        return None
    return PartnerStatement(content=attempt.content, revealed_at=attempt.revealed_at)
