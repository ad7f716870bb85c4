"""Empathy Exchange — feel-heard, empathy statements, share offers, and delivery.

Invariants:
    - Every route checks session membership first
    - Reconciliation and refinement re-checks run as background tasks AFTER the response;
      the triggering action never fails because reconciliation failed
    - Responses carry statuses and consented content only, never the gap analysis

Design Decisions:
    - BackgroundTasks over a queue: single-process deployment, duplicate triggers are
      harmless (compute-once reconcile, conditional transitions)
    - /reconciler/run is the synchronous, idempotent entry point for operators and retries
"""

import logging
from datetime import datetime, timezone
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends

from app.api.routes.dependencies import get_engine, member_of
from app.api.routes.response_builders import build_offer_response, build_status_response
from app.core.circuit_breaker import direction_key
from app.core.errors import ErrorContext, NotSessionMemberError
from app.core.records import ReconcileTrigger
from app.schemas.empathy import (
    AttemptCheckResponse, EmpathyStatusResponse, EmpathySubmit,
    EmpathySubmitResponse, FeelHeardRequest, FeelHeardResponse,
    ReconcileRequest, ReconcileResponse, SessionViewed,
    ShareOfferRespond, ShareOfferRespondResponse, ShareOfferResponse,
)
from app.services.delivery_tracking import record_session_viewed
from app.services.engine_factory import (
    Engine, run_reconcile_in_background, run_refinement_recheck_in_background,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/sessions", tags=["empathy"])


@router.post("/{session_id}/users/{user_id}/feel-heard", response_model=FeelHeardResponse)
async def confirm_feel_heard(
    session_id: UUID,
    user_id: str,
    body: FeelHeardRequest,
    background_tasks: BackgroundTasks,
    engine: Engine = Depends(get_engine),
):
    """Subject confirms feeling heard; completes WITNESS."""
    members = await member_of(engine, session_id, user_id)
    progress, trigger = await engine.exchange.confirm_feel_heard(
        members, user_id, body.emotional_reading,
    )
    if trigger:
        background_tasks.add_task(run_reconcile_in_background, trigger)
    return FeelHeardResponse(
        current_stage=progress.stage, reconcile_scheduled=trigger is not None,
    )


@router.post("/{session_id}/users/{user_id}/empathy", response_model=EmpathySubmitResponse)
async def submit_empathy(
    session_id: UUID,
    user_id: str,
    body: EmpathySubmit,
    background_tasks: BackgroundTasks,
    engine: Engine = Depends(get_engine),
):
    """Submit (or, while REFINING, revise) the user's empathy statement."""
    members = await member_of(engine, session_id, user_id)
    submission = await engine.exchange.submit_empathy(members, user_id, body.content)
    if submission.trigger:
        background_tasks.add_task(run_reconcile_in_background, submission.trigger)
    if submission.needs_recheck:
        background_tasks.add_task(
            run_refinement_recheck_in_background,
            ReconcileTrigger(session_id, user_id, members.partner_of(user_id)),
        )
    return EmpathySubmitResponse(
        status=submission.attempt.status,
        revision_count=submission.attempt.revision_count,
        reconcile_scheduled=submission.trigger is not None,
        refinement_attempts=submission.refinement_attempts,
    )


@router.get(
    "/{session_id}/users/{user_id}/empathy/status", response_model=EmpathyStatusResponse,
)
async def get_empathy_status(
    session_id: UUID, user_id: str, engine: Engine = Depends(get_engine),
):
    members = await member_of(engine, session_id, user_id)
    return build_status_response(await engine.status.status_for(members, user_id))


@router.get(
    "/{session_id}/users/{user_id}/share-offer",
    response_model=ShareOfferResponse | None,
)
async def get_share_offer(
    session_id: UUID, user_id: str, engine: Engine = Depends(get_engine),
):
    """The user's open share offer, if any. Marks it OFFERED (seen)."""
    await member_of(engine, session_id, user_id)
    offer = await engine.negotiator.get_pending_offer(session_id, user_id)
    return build_offer_response(offer)


@router.post(
    "/{session_id}/users/{user_id}/share-offer/respond",
    response_model=ShareOfferRespondResponse,
)
async def respond_to_share_offer(
    session_id: UUID,
    user_id: str,
    body: ShareOfferRespond,
    engine: Engine = Depends(get_engine),
):
    await member_of(engine, session_id, user_id)
    outcome = await engine.negotiator.respond(
        session_id, user_id, body.action, body.refined_content,
    )
    return ShareOfferRespondResponse(
        offer_status=outcome.offer.status,
        empathy_status=outcome.empathy_status,
        confirmation=outcome.confirmation,
        shared_content=outcome.offer.shared_content,
        delivery_status=outcome.offer.delivery_status,
    )


@router.post("/{session_id}/users/{user_id}/viewed")
async def session_viewed(
    session_id: UUID,
    user_id: str,
    body: SessionViewed,
    engine: Engine = Depends(get_engine),
):
    """Record that the user viewed the session; delivered items become SEEN."""
    members = await member_of(engine, session_id, user_id)
    marked = await record_session_viewed(
        engine.ledger, engine.offers, members, user_id,
        body.viewed_at or datetime.now(timezone.utc),
    )
    return {"marked_seen": marked}


# ─── Reconciler ──────────────────────────────────────────────────

def _require_direction(members, guesser_id: str, subject_id: str) -> None:
    for user_id in (guesser_id, subject_id):
        if not members.is_member(user_id):
            raise NotSessionMemberError(
                user_id, context=ErrorContext(session_id=str(members.session_id)),
            )
    if members.partner_of(guesser_id) != subject_id:
        raise NotSessionMemberError(
            subject_id,
            context=ErrorContext(
                session_id=str(members.session_id),
                debug_info={"reason": "guesser and subject must be the two members"},
            ),
        )


@router.post("/{session_id}/reconciler/run", response_model=ReconcileResponse)
async def run_reconciler(
    session_id: UUID, body: ReconcileRequest, engine: Engine = Depends(get_engine),
):
    """Reconcile one direction now. Idempotent: a stored result is returned as-is."""
    members = await member_of(engine, session_id, body.guesser_id)
    _require_direction(members, body.guesser_id, body.subject_id)
    outcome = await engine.reconciler.reconcile(
        session_id, body.guesser_id, body.subject_id,
    )
    return ReconcileResponse(
        empathy_status=outcome.empathy_status,
        share_offer_created=outcome.share_offer is not None,
        persisted=outcome.result.persisted,
    )


@router.get("/{session_id}/reconciler/attempts", response_model=AttemptCheckResponse)
async def check_refinement_attempts(
    session_id: UUID,
    guesser_id: str,
    subject_id: str,
    engine: Engine = Depends(get_engine),
):
    members = await member_of(engine, session_id, guesser_id)
    _require_direction(members, guesser_id, subject_id)
    check = await engine.breaker.check_attempts(session_id, guesser_id, subject_id)
    return AttemptCheckResponse(
        direction=direction_key(guesser_id, subject_id),
        attempts=check.attempts,
        should_skip_reconciler=check.should_skip_reconciler,
    )
