"""Engine Factory — wires stores, collaborators, and services onto one DB session.

Invariants:
    - Everything built by build_engine() shares the same AsyncSession
    - One ResilientAnthropicClient per process (lazy, created on first use)
    - Background runs open their own DB session: the request session is already
      closed when a background task starts
    - Background runs never raise: PreconditionNotMetError is an expected race
      (duplicate or early trigger) and is logged at info; anything else is logged

Design Decisions:
    - Plain constructor injection, no DI container: the graph is small and explicit
    - _build_gap_analyst() is the single seam tests replace to avoid the network
"""

import functools
import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.core.errors import PreconditionNotMetError
from app.core.records import ReconcileTrigger
from app.core.repository_protocols import NotificationChannel
from app.infrastructure.anthropic_client import ResilientAnthropicClient
from app.services.circuit_breaker import RefinementCircuitBreaker
from app.services.empathy_exchange import EmpathyExchange
from app.services.empathy_ledger import EmpathyLedger
from app.services.empathy_status import EmpathyStatusReader
from app.services.gap_analyst import AnthropicGapAnalyst
from app.services.message_store import MessageStore
from app.services.notifier import LoggingNotificationChannel
from app.services.progress_store import ProgressStore
from app.services.reconciler import ReconcilerEngine
from app.services.reconciler_store import ReconcilerResultStore, ShareOfferStore
from app.services.refinement import RefinementFlow
from app.services.session_members import load_members
from app.services.share_offer import ShareOfferNegotiator
from app.services.stage_progress import StageProgressTracker
from app.services.witnessing import TranscriptWitnessingProvider

logger = logging.getLogger(__name__)

_anthropic_client: ResilientAnthropicClient | None = None
_notification_channel: NotificationChannel = LoggingNotificationChannel()


def _get_anthropic_client() -> ResilientAnthropicClient:
    global _anthropic_client
    if _anthropic_client is None:
        settings = get_settings()
        _anthropic_client = ResilientAnthropicClient(
            api_key=settings.anthropic_api_key,
            max_retries=settings.anthropic_max_retries,
            base_delay_ms=settings.anthropic_base_delay_ms,
            max_delay_ms=settings.anthropic_max_delay_ms,
            timeout_seconds=settings.anthropic_timeout_seconds,
        )
    return _anthropic_client


def _build_gap_analyst() -> AnthropicGapAnalyst:
    settings = get_settings()
    return AnthropicGapAnalyst(
        _get_anthropic_client(),
        model=settings.reconciler_model,
        max_tokens=settings.reconciler_max_tokens,
    )


@dataclass
class Engine:
    db: AsyncSession
    messages: MessageStore
    tracker: StageProgressTracker
    ledger: EmpathyLedger
    breaker: RefinementCircuitBreaker
    results: ReconcilerResultStore
    offers: ShareOfferStore
    negotiator: ShareOfferNegotiator
    reconciler: ReconcilerEngine
    refinement: RefinementFlow
    exchange: EmpathyExchange
    status: EmpathyStatusReader


def build_engine(db: AsyncSession) -> Engine:
    settings = get_settings()
    analyst = _build_gap_analyst()
    notifier = _notification_channel
    members = functools.partial(load_members, db)

    messages = MessageStore(db)
    tracker = StageProgressTracker(ProgressStore(db))
    ledger = EmpathyLedger(db)
    breaker = RefinementCircuitBreaker(db, limit=settings.refinement_attempt_limit)
    results = ReconcilerResultStore(db)
    offers = ShareOfferStore(db)
    witnessing = TranscriptWitnessingProvider(
        messages, theme_extractor=analyst,
        timeout_seconds=settings.analysis_timeout_seconds,
    )

    negotiator = ShareOfferNegotiator(
        offers, ledger, messages, analyst, notifier, members,
        timeout_seconds=settings.analysis_timeout_seconds,
        expiry_days=settings.share_offer_expiry_days,
        retry_attempts=settings.persistence_retry_attempts,
        retry_delay_ms=settings.persistence_retry_delay_ms,
    )
    reconciler = ReconcilerEngine(
        results, offers, ledger, tracker, witnessing, analyst,
        negotiator, messages, notifier, members,
        timeout_seconds=settings.analysis_timeout_seconds,
        retry_attempts=settings.persistence_retry_attempts,
        retry_delay_ms=settings.persistence_retry_delay_ms,
    )
    refinement = RefinementFlow(
        ledger, breaker, witnessing, analyst, messages, notifier, members,
        timeout_seconds=settings.analysis_timeout_seconds,
    )
    return Engine(
        db=db,
        messages=messages,
        tracker=tracker,
        ledger=ledger,
        breaker=breaker,
        results=results,
        offers=offers,
        negotiator=negotiator,
        reconciler=reconciler,
        refinement=refinement,
        exchange=EmpathyExchange(tracker, ledger, refinement),
        status=EmpathyStatusReader(ledger, results, offers, negotiator),
    )


# ─── Background runs ─────────────────────────────────────────────

async def run_reconcile_in_background(trigger: ReconcileTrigger) -> None:
    """Background task: reconcile one direction after the triggering response."""
    from app.infrastructure.database import db_manager

    log_extra = {
        "session_id": trigger.session_id,
        "direction": f"{trigger.guesser_id}->{trigger.subject_id}",
    }
    if not db_manager:
        logger.error("Cannot reconcile: database not initialized", extra=log_extra)
        return
    try:
        async with db_manager.session() as db:
            await build_engine(db).reconciler.reconcile(
                trigger.session_id, trigger.guesser_id, trigger.subject_id,
            )
    except PreconditionNotMetError as e:
        logger.info(f"Reconcile skipped: {e.message}", extra=log_extra)
    except Exception as e:
        logger.error(f"Background reconcile failed: {e}", exc_info=True, extra=log_extra)


async def run_refinement_recheck_in_background(trigger: ReconcileTrigger) -> None:
    """Background task: re-check a revised statement during REFINING."""
    from app.infrastructure.database import db_manager

    log_extra = {
        "session_id": trigger.session_id,
        "direction": f"{trigger.guesser_id}->{trigger.subject_id}",
    }
    if not db_manager:
        logger.error("Cannot re-check refinement: database not initialized", extra=log_extra)
        return
    try:
        async with db_manager.session() as db:
            await build_engine(db).refinement.recheck(trigger.session_id, trigger.guesser_id)
    except PreconditionNotMetError as e:
        logger.info(f"Refinement re-check skipped: {e.message}", extra=log_extra)
    except Exception as e:
        logger.error(
            f"Background refinement re-check failed: {e}", exc_info=True, extra=log_extra,
        )
