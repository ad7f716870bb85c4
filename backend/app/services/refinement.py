"""Refinement Flow — guesser revisions while REFINING, bounded by the circuit breaker.

Invariants:
    - resubmit() only works while the attempt is REFINING; each revision counts once
    - Counter over the limit -> the current statement is force-revealed, the guesser gets
      a "let's move forward" notice, and no collaborator call is made
    - Otherwise the revision is re-analysed with the same rules as reconcile();
      reveal decision -> REVEALED, else it stays REFINING with abstract guidance only
    - Re-check analyses are not stored: the reconciler result stays compute-once
"""

import logging
from collections.abc import Awaitable, Callable
from uuid import UUID

from app.core.domain_types import EmpathyStatus, MessageRole, NotificationEvent, Stage
from app.core.errors import ErrorContext, InvalidTransitionError, PreconditionNotMetError
from app.core.format_messages import format_circuit_breaker_notice
from app.core.gap_analysis import derive_guidance, should_reveal
from app.core.records import RefinementOutcome, SessionMembers
from app.core.repository_protocols import (
    AnalysisCollaborator, NotificationChannel, WitnessingContentProvider,
)
from app.services.circuit_breaker import RefinementCircuitBreaker
from app.services.empathy_ledger import EmpathyLedger
from app.services.message_store import MessageStore
from app.services.notifier import notify_safely
from app.services.reconciler import analyze_with_fallback
from app.services.reveal import reveal_direction

logger = logging.getLogger(__name__)


class RefinementFlow:

    def __init__(
        self,
        ledger: EmpathyLedger,
        breaker: RefinementCircuitBreaker,
        witnessing: WitnessingContentProvider,
        analysis: AnalysisCollaborator,
        messages: MessageStore,
        notifier: NotificationChannel,
        members: Callable[[UUID], Awaitable[SessionMembers]],
        *,
        timeout_seconds: float = 30.0,
    ):
        self._ledger = ledger
        self._breaker = breaker
        self._witnessing = witnessing
        self._analysis = analysis
        self._messages = messages
        self._notifier = notifier
        self._members = members
        self._timeout_seconds = timeout_seconds

    async def resubmit(
        self, session_id: UUID, guesser_id: str, content: str,
    ) -> int:
        """Store the revised statement and count it. Returns the attempt count."""
        attempt = await self._ledger.get(session_id, guesser_id)
        if attempt is None or attempt.status != EmpathyStatus.REFINING:
            raise InvalidTransitionError(
                "Empathy statement can only be revised while REFINING",
                context=ErrorContext(session_id=str(session_id), user_id=guesser_id),
            )
        await self._ledger.submit(session_id, guesser_id, content)
        members = await self._members(session_id)
        check = await self._breaker.increment_attempts(
            session_id, guesser_id, members.partner_of(guesser_id),
        )
        return check.attempts

    async def recheck(self, session_id: UUID, guesser_id: str) -> RefinementOutcome:
        members = await self._members(session_id)
        subject_id = members.partner_of(guesser_id)
        log_extra = {"session_id": session_id, "direction": f"{guesser_id}->{subject_id}"}

        attempt = await self._ledger.get(session_id, guesser_id)
        if attempt is None or attempt.status != EmpathyStatus.REFINING:
            raise PreconditionNotMetError(
                "Refinement re-check needs a REFINING attempt",
                context=ErrorContext(session_id=str(session_id), user_id=guesser_id),
            )

        check = await self._breaker.check_attempts(session_id, guesser_id, subject_id)
        if check.should_skip_reconciler:
            return await self._move_forward(members, guesser_id, check.attempts, log_extra)

        witnessing = await self._witnessing.get_witnessing_content(session_id, subject_id)
        analysis = await analyze_with_fallback(
            self._analysis, attempt.content, witnessing,
            guesser_name=members.name_of(guesser_id),
            subject_name=members.name_of(subject_id),
            timeout_seconds=self._timeout_seconds,
            log_extra=log_extra,
        )
        if should_reveal(analysis):
            attempt = await reveal_direction(
                self._ledger, self._messages, self._notifier, members, guesser_id,
            )
            return RefinementOutcome(
                empathy_status=attempt.status, attempts=check.attempts,
                skipped_reconciler=False,
            )
        logger.info("Revision still has a gap, guesser keeps refining", extra=log_extra)
        return RefinementOutcome(
            empathy_status=EmpathyStatus.REFINING,
            attempts=check.attempts,
            skipped_reconciler=False,
            guidance=derive_guidance(analysis),
        )

    async def _move_forward(
        self, members: SessionMembers, guesser_id: str, attempts: int, log_extra: dict,
    ) -> RefinementOutcome:
        subject_id = members.partner_of(guesser_id)
        logger.info(
            f"Refinement limit reached after {attempts} attempts, revealing",
            extra={**log_extra, "attempt": attempts},
        )
        attempt = await reveal_direction(
            self._ledger, self._messages, self._notifier, members, guesser_id,
        )
        await self._messages.add(
            members.session_id, guesser_id, MessageRole.SYSTEM,
            format_circuit_breaker_notice(members.name_of(subject_id)),
            Stage.PERSPECTIVE_STRETCH,
        )
        await notify_safely(
            self._notifier, members.session_id, guesser_id,
            NotificationEvent.REFINEMENT_SKIPPED, {"attempts": attempts},
        )
        return RefinementOutcome(
            empathy_status=attempt.status, attempts=attempts, skipped_reconciler=True,
        )
