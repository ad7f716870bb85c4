"""Empathy Exchange — the two user actions that gate reconciliation.

Invariants:
    - confirm_feel_heard() sets the three witness gates, completes WITNESS, and returns
      a trigger for the partner's direction only when the partner's attempt is HELD
    - submit_empathy() first submission requires the user to be on PERSPECTIVE_STRETCH;
      it returns a trigger only when the subject already confirmed feeling heard
    - A submission while REFINING is a revision: no stage change, counted by the
      circuit breaker, re-checked in the background
    - Triggers are returned, never run here: the route schedules them after its response

Design Decisions:
    - Direct, state-gated calls instead of an event bus: duplicate triggers are harmless
      because reconcile() is compute-once and every transition is conditional
"""

import logging
from datetime import datetime, timezone
from uuid import UUID

from app.core.domain_types import EmpathyStatus, Stage
from app.core.errors import ErrorContext, InvalidTransitionError
from app.core.records import (
    EmpathySubmission, ReconcileTrigger, SessionMembers, StageProgressRecord,
)
from app.services.empathy_ledger import EmpathyLedger
from app.services.refinement import RefinementFlow
from app.services.stage_progress import StageProgressTracker

logger = logging.getLogger(__name__)


class EmpathyExchange:

    def __init__(
        self,
        tracker: StageProgressTracker,
        ledger: EmpathyLedger,
        refinement: RefinementFlow,
    ):
        self._tracker = tracker
        self._ledger = ledger
        self._refinement = refinement

    async def confirm_feel_heard(
        self,
        members: SessionMembers,
        user_id: str,
        emotional_reading: int | None = None,
    ) -> tuple[StageProgressRecord, ReconcileTrigger | None]:
        session_id = members.session_id
        await self._tracker.satisfy_gate(
            session_id, user_id, Stage.WITNESS, "feel_heard_confirmed", True,
        )
        await self._tracker.satisfy_gate(
            session_id, user_id, Stage.WITNESS,
            "feel_heard_confirmed_at", datetime.now(timezone.utc).isoformat(),
        )
        if emotional_reading is not None:
            await self._tracker.satisfy_gate(
                session_id, user_id, Stage.WITNESS,
                "final_emotional_reading", emotional_reading,
            )
        progress = await self._tracker.advance(session_id, user_id, Stage.WITNESS)
        logger.info(
            "User confirmed feeling heard",
            extra={"session_id": session_id, "user_id": user_id},
        )

        partner_id = members.partner_of(user_id)
        partner_attempt = await self._ledger.get(session_id, partner_id)
        if partner_attempt and partner_attempt.status == EmpathyStatus.HELD:
            return progress, ReconcileTrigger(session_id, partner_id, user_id)
        return progress, None

    async def submit_empathy(
        self, members: SessionMembers, user_id: str, content: str,
    ) -> EmpathySubmission:
        session_id = members.session_id
        existing = await self._ledger.get(session_id, user_id)
        if existing and existing.status == EmpathyStatus.REFINING:
            attempts = await self._refinement.resubmit(session_id, user_id, content)
            return EmpathySubmission(
                attempt=await self._ledger.get(session_id, user_id),
                needs_recheck=True,
                refinement_attempts=attempts,
            )

        current = await self._tracker.current_stage(session_id, user_id)
        if current != Stage.PERSPECTIVE_STRETCH:
            raise InvalidTransitionError(
                f"Empathy statements are written in PERSPECTIVE_STRETCH "
                f"(user is on {current.name})",
                context=ErrorContext(
                    session_id=str(session_id), user_id=user_id, stage=int(current),
                ),
            )

        attempt = await self._ledger.submit(session_id, user_id, content)
        await self._tracker.satisfy_gate(
            session_id, user_id, Stage.PERSPECTIVE_STRETCH, "empathy_draft_ready", True,
        )
        await self._tracker.satisfy_gate(
            session_id, user_id, Stage.PERSPECTIVE_STRETCH, "empathy_consented", True,
        )
        await self._tracker.advance(session_id, user_id, Stage.PERSPECTIVE_STRETCH)

        subject_id = members.partner_of(user_id)
        witness = await self._tracker.get(session_id, subject_id, Stage.WITNESS)
        if witness and witness.gates.feel_heard_confirmed:
            return EmpathySubmission(
                attempt=attempt,
                trigger=ReconcileTrigger(session_id, user_id, subject_id),
            )
        return EmpathySubmission(attempt=attempt)
