"""Reconciler Engine — decides, per guesser->subject direction, reveal or share offer.

Invariants:
    - Compute-once: a stored result for the direction is returned as-is, the analysis
      collaborator is called at most once per direction (refinement re-checks excepted)
    - Preconditions: guesser attempt HELD and subject witnessing content non-empty,
      else PreconditionNotMetError (nothing written, nothing called)
    - Analysis failure, timeout, or malformed output -> CONSERVATIVE_ANALYSIS
      (70 / minor / PROCEED): a failure never escalates to a share offer
    - Persistence is retried (3 x 100ms by default); exhaustion logs critical and the
      direction is revealed with the in-memory result so the humans never stall
    - Reveal iff severity in {none, minor, moderate} and action != OFFER_SHARING
    - Duplicate triggers converge: only the call that moves the attempt out of HELD
      reveals or offers; a late duplicate returns the stored state and never raises

Design Decisions:
    - Decision rules live in core/gap_analysis.py so RefinementFlow applies the same ones
    - The subject's reconciler_check_offered gate is best effort: a missing stage-2 row
      is logged, the offer still stands
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from uuid import UUID

from pydantic import ValidationError

from app.core.domain_types import EmpathyStatus, Stage
from app.core.errors import (
    ErrorContext, InvalidTransitionError, PreconditionNotMetError,
)
from app.core.gap_analysis import (
    CONSERVATIVE_ANALYSIS, derive_guidance, should_reveal, to_private_analysis,
)
from app.core.records import (
    PrivateAnalysis, ReconcileOutcome, ReconcilerResultRecord,
    SessionMembers, WitnessingContent,
)
from app.core.repository_protocols import (
    AnalysisCollaborator, NotificationChannel, WitnessingContentProvider,
)
from app.infrastructure.retry import RETRYABLE_ERRORS, retry_persistence
from app.schemas.gap_analysis import GapAnalysisPayload
from app.services.empathy_ledger import EmpathyLedger
from app.services.message_store import MessageStore
from app.services.reconciler_store import ReconcilerResultStore, ShareOfferStore
from app.services.reveal import reveal_direction
from app.services.share_offer import ShareOfferNegotiator
from app.services.stage_progress import StageProgressTracker

logger = logging.getLogger(__name__)


async def analyze_with_fallback(
    collaborator: AnalysisCollaborator,
    guesser_statement: str,
    witnessing: WitnessingContent,
    *,
    guesser_name: str,
    subject_name: str,
    timeout_seconds: float,
    log_extra: dict | None = None,
) -> PrivateAnalysis:
    """Run the gap analysis; any failure becomes the conservative default."""
    try:
        raw = await asyncio.wait_for(
            collaborator.analyze_gap(
                guesser_statement,
                witnessing.user_messages,
                witnessing.themes,
                guesser_name=guesser_name,
                subject_name=subject_name,
            ),
            timeout=timeout_seconds,
        )
        payload = GapAnalysisPayload.model_validate(raw)
    except asyncio.TimeoutError:
        logger.warning(
            f"Gap analysis timed out after {timeout_seconds}s, using conservative default",
            extra=log_extra,
        )
        return CONSERVATIVE_ANALYSIS
    except ValidationError as e:
        logger.warning(
            f"Gap analysis malformed, using conservative default: {e.error_count()} errors",
            extra=log_extra,
        )
        return CONSERVATIVE_ANALYSIS
    except Exception as e:
        logger.warning(
            f"Gap analysis failed, using conservative default: {e}", extra=log_extra,
        )
        return CONSERVATIVE_ANALYSIS
    return to_private_analysis(payload.model_dump())


class ReconcilerEngine:

    def __init__(
        self,
        results: ReconcilerResultStore,
        offers: ShareOfferStore,
        ledger: EmpathyLedger,
        tracker: StageProgressTracker,
        witnessing: WitnessingContentProvider,
        analysis: AnalysisCollaborator,
        negotiator: ShareOfferNegotiator,
        messages: MessageStore,
        notifier: NotificationChannel,
        members: Callable[[UUID], Awaitable[SessionMembers]],
        *,
        timeout_seconds: float = 30.0,
        retry_attempts: int = 3,
        retry_delay_ms: int = 100,
    ):
        self._results = results
        self._offers = offers
        self._ledger = ledger
        self._tracker = tracker
        self._witnessing = witnessing
        self._analysis = analysis
        self._negotiator = negotiator
        self._messages = messages
        self._notifier = notifier
        self._members = members
        self._timeout_seconds = timeout_seconds
        self._retry_attempts = retry_attempts
        self._retry_delay_ms = retry_delay_ms

    async def reconcile(
        self, session_id: UUID, guesser_id: str, subject_id: str,
    ) -> ReconcileOutcome:
        log_extra = {"session_id": session_id, "direction": f"{guesser_id}->{subject_id}"}
        ctx = ErrorContext(
            session_id=str(session_id), user_id=guesser_id,
            direction=f"{guesser_id}->{subject_id}",
        )

        # 1. Cache
        cached = await self._results.get(session_id, guesser_id, subject_id)
        if cached:
            logger.info("Reconciler result cached, skipping analysis", extra=log_extra)
            return await self._settled_outcome(cached)

        # 2. Preconditions
        attempt = await self._ledger.get(session_id, guesser_id)
        if attempt is None or attempt.status != EmpathyStatus.HELD:
            found = attempt.status.value if attempt else "missing"
            raise PreconditionNotMetError(
                f"Guesser attempt must be HELD to reconcile (found {found})", context=ctx,
            )
        witnessing = await self._witnessing.get_witnessing_content(session_id, subject_id)
        if witnessing.is_empty:
            raise PreconditionNotMetError(
                "Subject has no witnessing content yet", context=ctx,
            )
        members = await self._members(session_id)

        # 3. Analysis
        analysis = await analyze_with_fallback(
            self._analysis, attempt.content, witnessing,
            guesser_name=members.name_of(guesser_id),
            subject_name=members.name_of(subject_id),
            timeout_seconds=self._timeout_seconds,
            log_extra=log_extra,
        )
        guidance = derive_guidance(analysis)

        # 4. Persist
        try:
            result = await retry_persistence(
                lambda: self._results.create(
                    session_id, guesser_id, subject_id, analysis, guidance,
                ),
                attempts=self._retry_attempts,
                delay_ms=self._retry_delay_ms,
                label="reconciler result write",
            )
        except RETRYABLE_ERRORS as e:
            logger.critical(
                f"Reconciler result could not be persisted, revealing without a share offer: {e}",
                extra=log_extra,
            )
            attempt = await reveal_direction(
                self._ledger, self._messages, self._notifier, members, guesser_id,
            )
            return ReconcileOutcome(
                result=ReconcilerResultRecord(
                    id=None, session_id=session_id, guesser_id=guesser_id,
                    subject_id=subject_id, analysis=analysis, guidance=guidance,
                ),
                empathy_status=attempt.status,
                share_offer=None,
            )

        # 5. Decide (using the stored analysis: a race winner's result rules)
        logger.info(
            f"Gap analysis: score={result.analysis.alignment_score} "
            f"severity={result.analysis.gap_severity.value} "
            f"action={result.analysis.recommended_action.value}",
            extra=log_extra,
        )
        current = await self._ledger.get(session_id, guesser_id)
        if current is None or current.status != EmpathyStatus.HELD:
            logger.info(
                "Direction already decided by a concurrent reconcile", extra=log_extra,
            )
            return await self._settled_outcome(result)
        if should_reveal(result.analysis):
            attempt = await reveal_direction(
                self._ledger, self._messages, self._notifier, members, guesser_id,
            )
            return ReconcileOutcome(result=result, empathy_status=attempt.status, share_offer=None)
        return await self._defer_to_subject(result, witnessing, members, log_extra)

    async def _settled_outcome(self, result: ReconcilerResultRecord) -> ReconcileOutcome:
        """Outcome read back from storage for a direction another call already decided."""
        attempt = await self._ledger.get(result.session_id, result.guesser_id)
        return ReconcileOutcome(
            result=result,
            empathy_status=attempt.status if attempt else EmpathyStatus.HELD,
            share_offer=await self._offers.get_by_result(result.id),
        )

    async def _defer_to_subject(
        self,
        result: ReconcilerResultRecord,
        witnessing: WitnessingContent,
        members: SessionMembers,
        log_extra: dict,
    ) -> ReconcileOutcome:
        attempt, claimed = await self._ledger.mark_awaiting_sharing(
            result.session_id, result.guesser_id,
        )
        if not claimed:
            logger.info(
                "Direction already decided by a concurrent reconcile", extra=log_extra,
            )
            return await self._settled_outcome(result)
        try:
            offer = await self._negotiator.create_offer(result, witnessing)
        except RETRYABLE_ERRORS as e:
            logger.critical(
                f"Share offer could not be persisted, revealing instead: {e}",
                extra=log_extra,
            )
            attempt = await reveal_direction(
                self._ledger, self._messages, self._notifier, members, result.guesser_id,
            )
            return ReconcileOutcome(result=result, empathy_status=attempt.status, share_offer=None)

        try:
            await self._tracker.satisfy_gate(
                result.session_id, result.subject_id, Stage.PERSPECTIVE_STRETCH,
                "reconciler_check_offered", True,
            )
        except InvalidTransitionError as e:
            logger.warning(
                f"Could not mark reconciler_check_offered on subject: {e.message}",
                extra=log_extra,
            )
        return ReconcileOutcome(result=result, empathy_status=attempt.status, share_offer=offer)
