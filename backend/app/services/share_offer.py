"""Share-Offer Negotiator — the subject's accept / decline / refine response to a gap.

Invariants:
    - create_offer() always persists a non-empty suggestion (collaborator failure,
      timeout, or empty output -> FALLBACK_SUGGESTION) with status PENDING
    - decline: offer DECLINED, guesser's original statement REVEALED, nothing shared
    - accept/refine: offer ACCEPTED with shared_content, guesser attempt -> REFINING (not
      revealed); the guesser gets the shared content plus a reflection prompt and the
      subject gets a mirrored receipt
    - ACCEPTED / DECLINED are terminal: a second response raises InvalidTransitionError
    - An open offer older than expiry_days is auto-declined on the next read/response

Design Decisions:
    - Status moves are conditional UPDATEs: two concurrent responses cannot both win
    - Suggestion content comes from the subject's own witnessing; it is shown only to
      the subject until they consent (ConsentedDisclosure)
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from uuid import UUID

from pydantic import ValidationError

from app.core.domain_types import (
    DeliveryStatus, MessageRole, NotificationEvent, OPEN_OFFER_STATUSES,
    ShareAction, ShareOfferStatus, Stage,
)
from app.core.errors import (
    ErrorContext, InvalidTransitionError, ResourceNotFoundError,
)
from app.core.format_messages import (
    ACCEPT_CONFIRMATION, DECLINE_CONFIRMATION,
    format_share_receipt, format_shared_context,
)
from app.core.gap_analysis import gap_summary_for_suggestion
from app.core.records import (
    ReconcilerResultRecord, SessionMembers, ShareOfferRecord,
    ShareResponseOutcome, ShareSuggestion, WitnessingContent,
)
from app.core.repository_protocols import NotificationChannel, SuggestionCollaborator
from app.core.share_offer_policy import (
    FALLBACK_SUGGESTION, SHARE_OFFER_EXPIRY_DAYS, build_disclosure,
    check_offer_open, check_response, is_offer_expired, normalize_suggestion,
    resolve_shared_content,
)
from app.infrastructure.retry import retry_persistence
from app.schemas.gap_analysis import ShareSuggestionPayload
from app.services.empathy_ledger import EmpathyLedger
from app.services.message_store import MessageStore
from app.services.notifier import notify_safely
from app.services.reconciler_store import ShareOfferStore
from app.services.reveal import reveal_direction

logger = logging.getLogger(__name__)


class ShareOfferNegotiator:

    def __init__(
        self,
        offers: ShareOfferStore,
        ledger: EmpathyLedger,
        messages: MessageStore,
        suggestions: SuggestionCollaborator,
        notifier: NotificationChannel,
        members: Callable[[UUID], Awaitable[SessionMembers]],
        *,
        timeout_seconds: float = 30.0,
        expiry_days: int = SHARE_OFFER_EXPIRY_DAYS,
        retry_attempts: int = 3,
        retry_delay_ms: int = 100,
    ):
        self._offers = offers
        self._ledger = ledger
        self._messages = messages
        self._suggestions = suggestions
        self._notifier = notifier
        self._members = members
        self._timeout_seconds = timeout_seconds
        self._expiry_days = expiry_days
        self._retry_attempts = retry_attempts
        self._retry_delay_ms = retry_delay_ms

    # ─── Offer creation ──────────────────────────────────────────

    async def create_offer(
        self, result: ReconcilerResultRecord, witnessing: WitnessingContent,
    ) -> ShareOfferRecord:
        members = await self._members(result.session_id)
        suggestion = await self._suggest(result, witnessing, members)
        offer = await retry_persistence(
            lambda: self._offers.create(result, suggestion),
            attempts=self._retry_attempts,
            delay_ms=self._retry_delay_ms,
            label="share offer write",
        )
        await notify_safely(
            self._notifier, result.session_id, result.subject_id,
            NotificationEvent.SHARE_OFFER, {"offer_id": str(offer.id)},
        )
        return offer

    async def _suggest(
        self,
        result: ReconcilerResultRecord,
        witnessing: WitnessingContent,
        members: SessionMembers,
    ) -> ShareSuggestion:
        log_extra = {
            "session_id": result.session_id,
            "direction": f"{result.guesser_id}->{result.subject_id}",
        }
        try:
            raw = await asyncio.wait_for(
                self._suggestions.suggest_share(
                    members.name_of(result.subject_id),
                    members.name_of(result.guesser_id),
                    gap_summary_for_suggestion(result.analysis),
                    result.analysis.most_important_gap,
                    witnessing.user_messages,
                ),
                timeout=self._timeout_seconds,
            )
            payload = ShareSuggestionPayload.model_validate(raw)
        except asyncio.TimeoutError:
            logger.warning("Share suggestion timed out, using fallback", extra=log_extra)
            return FALLBACK_SUGGESTION
        except ValidationError as e:
            logger.warning(f"Share suggestion malformed, using fallback: {e}", extra=log_extra)
            return FALLBACK_SUGGESTION
        except Exception as e:
            logger.warning(f"Share suggestion failed, using fallback: {e}", extra=log_extra)
            return FALLBACK_SUGGESTION
        return normalize_suggestion(payload.suggested_content, payload.reason)

    # ─── Subject-facing reads ────────────────────────────────────

    async def get_pending_offer(
        self, session_id: UUID, subject_id: str,
    ) -> ShareOfferRecord | None:
        """The subject's open offer; PENDING becomes OFFERED once they have seen it."""
        offer = await self._open_offer(session_id, subject_id)
        if offer is None:
            return None
        if offer.status == ShareOfferStatus.PENDING:
            await self._offers.transition(
                offer.id, [ShareOfferStatus.PENDING], ShareOfferStatus.OFFERED,
            )
            offer = await self._offers.get(offer.id)
        return offer

    async def _open_offer(
        self, session_id: UUID, subject_id: str,
    ) -> ShareOfferRecord | None:
        now = datetime.now(timezone.utc)
        for offer in await self._offers.list_for_subject(session_id, subject_id):
            if is_offer_expired(offer, now, self._expiry_days):
                await self._auto_decline(offer)
                continue
            return offer
        return None

    async def _auto_decline(self, offer: ShareOfferRecord) -> None:
        if not await self._offers.transition(
            offer.id, OPEN_OFFER_STATUSES, ShareOfferStatus.DECLINED,
            responded_at=datetime.now(timezone.utc),
        ):
            return
        logger.info(
            "Share offer expired without a response, auto-declined",
            extra={
                "session_id": offer.session_id,
                "direction": f"{offer.guesser_id}->{offer.subject_id}",
            },
        )
        members = await self._members(offer.session_id)
        await reveal_direction(
            self._ledger, self._messages, self._notifier, members, offer.guesser_id,
        )

    # ─── Response ────────────────────────────────────────────────

    async def respond(
        self,
        session_id: UUID,
        subject_id: str,
        action: ShareAction,
        refined_content: str | None = None,
    ) -> ShareResponseOutcome:
        ctx = ErrorContext(session_id=str(session_id), user_id=subject_id)
        error = check_response(action, refined_content)
        if error:
            raise InvalidTransitionError(error["message"], context=ctx)

        offer = await self._open_offer(session_id, subject_id)
        if offer is None:
            closed = await self._offers.list_for_subject(
                session_id, subject_id,
                [ShareOfferStatus.ACCEPTED, ShareOfferStatus.DECLINED],
            )
            error = check_offer_open(closed[0]) if closed else None
            if error:
                raise InvalidTransitionError(error["message"], context=ctx)
            raise ResourceNotFoundError("ShareOffer", f"{session_id}/{subject_id}", context=ctx)

        members = await self._members(session_id)
        if action == ShareAction.DECLINE:
            return await self._decline(offer, members, ctx)
        return await self._share(offer, action, refined_content, members, ctx)

    async def _decline(
        self, offer: ShareOfferRecord, members: SessionMembers, ctx: ErrorContext,
    ) -> ShareResponseOutcome:
        if not await self._offers.transition(
            offer.id, OPEN_OFFER_STATUSES, ShareOfferStatus.DECLINED,
            responded_at=datetime.now(timezone.utc),
        ):
            raise InvalidTransitionError("Share offer was already answered", context=ctx)
        attempt = await reveal_direction(
            self._ledger, self._messages, self._notifier, members, offer.guesser_id,
        )
        logger.info(
            "Share offer declined",
            extra={"session_id": offer.session_id, "user_id": offer.subject_id},
        )
        return ShareResponseOutcome(
            offer=await self._offers.get(offer.id),
            empathy_status=attempt.status,
            confirmation=DECLINE_CONFIRMATION,
            disclosure=None,
        )

    async def _share(
        self,
        offer: ShareOfferRecord,
        action: ShareAction,
        refined_content: str | None,
        members: SessionMembers,
        ctx: ErrorContext,
    ) -> ShareResponseOutcome:
        content = resolve_shared_content(action, offer.suggested_content, refined_content)
        now = datetime.now(timezone.utc)
        if not await self._offers.transition(
            offer.id, OPEN_OFFER_STATUSES, ShareOfferStatus.ACCEPTED,
            shared_content=content,
            refined_content=content if action == ShareAction.REFINE else None,
            shared_at=now,
            delivery_status=DeliveryStatus.DELIVERED.value,
            responded_at=now,
        ):
            raise InvalidTransitionError("Share offer was already answered", context=ctx)
        offer = await self._offers.get(offer.id)
        attempt = await self._ledger.mark_refining(offer.session_id, offer.guesser_id)

        disclosure = build_disclosure(offer, content, now)
        await self._messages.add(
            offer.session_id, offer.guesser_id, MessageRole.SHARED_CONTEXT,
            format_shared_context(disclosure, members.name_of(offer.subject_id)),
            Stage.PERSPECTIVE_STRETCH, sender_id=offer.subject_id,
        )
        await self._messages.add(
            offer.session_id, offer.subject_id, MessageRole.SHARE_RECEIPT,
            format_share_receipt(disclosure, members.name_of(offer.guesser_id)),
            Stage.PERSPECTIVE_STRETCH, sender_id=offer.subject_id,
        )
        await notify_safely(
            self._notifier, offer.session_id, offer.guesser_id,
            NotificationEvent.CONTEXT_SHARED, {"offer_id": str(offer.id)},
        )
        logger.info(
            f"Share offer accepted ({action.value})",
            extra={"session_id": offer.session_id, "user_id": offer.subject_id},
        )
        return ShareResponseOutcome(
            offer=offer,
            empathy_status=attempt.status,
            confirmation=ACCEPT_CONFIRMATION,
            disclosure=disclosure,
        )
