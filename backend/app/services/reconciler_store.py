"""Reconciler Store — write-once reconciler results and their share offers.

Invariants:
    - A result row is inserted once per (session, guesser, subject); the loser of an
      insert race rolls back and returns the winner's row
    - Every insert is read back; a missing row after a successful write raises
      DatabaseError so the caller's bounded retry can handle it
    - One share offer per result (unique result_id), same race handling
    - Offer status changes are conditional UPDATEs (WHERE status IN ...)
"""

import logging
from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.domain_types import (
    DeliveryStatus, GapSeverity, OPEN_OFFER_STATUSES,
    RecommendedAction, ShareOfferStatus,
)
from app.core.errors import DatabaseError
from app.core.gap_analysis import guidance_from_type
from app.core.records import (
    AbstractGuidance, PrivateAnalysis, ReconcilerResultRecord,
    ShareOfferRecord, ShareSuggestion,
)
from app.models.reconciler_result import ReconcilerResult
from app.models.share_offer import ReconcilerShareOffer

logger = logging.getLogger(__name__)


def _result_to_record(row: ReconcilerResult) -> ReconcilerResultRecord:
    analysis = PrivateAnalysis(
        alignment_score=row.alignment_score,
        gap_severity=GapSeverity(row.gap_severity),
        recommended_action=RecommendedAction(row.recommended_action),
        alignment_summary=row.alignment_summary,
        correctly_identified=tuple(row.correctly_identified or ()),
        gap_summary=row.gap_summary,
        missed_feelings=tuple(row.missed_feelings or ()),
        misattributions=tuple(row.misattributions or ()),
        most_important_gap=row.most_important_gap,
        rationale=row.rationale,
        sharing_would_help=row.sharing_would_help,
        suggested_share_focus=row.suggested_share_focus,
    )
    return ReconcilerResultRecord(
        id=row.id,
        session_id=row.session_id,
        guesser_id=row.guesser_id,
        subject_id=row.subject_id,
        analysis=analysis,
        guidance=guidance_from_type(row.guidance_type),
        created_at=row.created_at,
    )


def _offer_to_record(row: ReconcilerShareOffer) -> ShareOfferRecord:
    return ShareOfferRecord(
        id=row.id,
        result_id=row.result_id,
        session_id=row.session_id,
        guesser_id=row.guesser_id,
        subject_id=row.subject_id,
        status=ShareOfferStatus(row.status),
        suggested_content=row.suggested_content,
        suggested_reason=row.suggested_reason,
        refined_content=row.refined_content,
        shared_content=row.shared_content,
        shared_at=row.shared_at,
        delivery_status=DeliveryStatus(row.delivery_status),
        created_at=row.created_at,
    )


class ReconcilerResultStore:

    def __init__(self, db: AsyncSession):
        self._db = db

    async def get(
        self, session_id: UUID, guesser_id: str, subject_id: str,
    ) -> ReconcilerResultRecord | None:
        result = await self._db.execute(
            select(ReconcilerResult)
            .where(ReconcilerResult.session_id == session_id)
            .where(ReconcilerResult.guesser_id == guesser_id)
            .where(ReconcilerResult.subject_id == subject_id),
        )
        row = result.scalar_one_or_none()
        return _result_to_record(row) if row else None

    async def create(
        self,
        session_id: UUID,
        guesser_id: str,
        subject_id: str,
        analysis: PrivateAnalysis,
        guidance: AbstractGuidance,
    ) -> ReconcilerResultRecord:
        """Insert once. Returns the stored row (the winner's, if we lost a race)."""
        self._db.add(ReconcilerResult(
            session_id=session_id,
            guesser_id=guesser_id,
            subject_id=subject_id,
            alignment_score=analysis.alignment_score,
            alignment_summary=analysis.alignment_summary,
            correctly_identified=list(analysis.correctly_identified),
            gap_severity=analysis.gap_severity.value,
            gap_summary=analysis.gap_summary,
            missed_feelings=list(analysis.missed_feelings),
            misattributions=list(analysis.misattributions),
            most_important_gap=analysis.most_important_gap,
            recommended_action=analysis.recommended_action.value,
            rationale=analysis.rationale,
            sharing_would_help=analysis.sharing_would_help,
            suggested_share_focus=analysis.suggested_share_focus,
            guidance_type=guidance.guidance_type.value,
            area_hint=guidance.area_hint,
        ))
        try:
            await self._db.commit()
        except IntegrityError:
            await self._db.rollback()
            logger.info(
                "Reconciler result already written by a concurrent run",
                extra={"session_id": session_id, "direction": f"{guesser_id}->{subject_id}"},
            )
        except SQLAlchemyError:
            await self._db.rollback()
            raise
        stored = await self.get(session_id, guesser_id, subject_id)
        if stored is None:
            raise DatabaseError("Reconciler result not found after write", "read_back")
        return stored


class ShareOfferStore:

    def __init__(self, db: AsyncSession):
        self._db = db

    async def get(self, offer_id: UUID) -> ShareOfferRecord | None:
        result = await self._db.execute(
            select(ReconcilerShareOffer)
            .where(ReconcilerShareOffer.id == offer_id)
            .execution_options(populate_existing=True),
        )
        row = result.scalar_one_or_none()
        return _offer_to_record(row) if row else None

    async def get_by_result(self, result_id: UUID) -> ShareOfferRecord | None:
        result = await self._db.execute(
            select(ReconcilerShareOffer)
            .where(ReconcilerShareOffer.result_id == result_id)
            .execution_options(populate_existing=True),
        )
        row = result.scalar_one_or_none()
        return _offer_to_record(row) if row else None

    async def create(
        self, result: ReconcilerResultRecord, suggestion: ShareSuggestion,
    ) -> ShareOfferRecord:
        self._db.add(ReconcilerShareOffer(
            result_id=result.id,
            session_id=result.session_id,
            guesser_id=result.guesser_id,
            subject_id=result.subject_id,
            status=ShareOfferStatus.PENDING.value,
            suggested_content=suggestion.suggested_content,
            suggested_reason=suggestion.reason,
            delivery_status=DeliveryStatus.UNDELIVERED.value,
        ))
        try:
            await self._db.commit()
        except IntegrityError:
            await self._db.rollback()
            logger.info(
                "Share offer already created by a concurrent run",
                extra={"session_id": result.session_id},
            )
        except SQLAlchemyError:
            await self._db.rollback()
            raise
        stored = await self.get_by_result(result.id)
        if stored is None:
            raise DatabaseError("Share offer not found after write", "read_back")
        return stored

    async def list_for_subject(
        self, session_id: UUID, subject_id: str,
        statuses: Iterable[ShareOfferStatus] = OPEN_OFFER_STATUSES,
    ) -> list[ShareOfferRecord]:
        result = await self._db.execute(
            select(ReconcilerShareOffer)
            .where(ReconcilerShareOffer.session_id == session_id)
            .where(ReconcilerShareOffer.subject_id == subject_id)
            .where(ReconcilerShareOffer.status.in_([s.value for s in statuses]))
            .order_by(ReconcilerShareOffer.created_at.desc())
            .execution_options(populate_existing=True),
        )
        return [_offer_to_record(row) for row in result.scalars().all()]

    async def list_shared_with(
        self, session_id: UUID, guesser_id: str,
    ) -> list[ShareOfferRecord]:
        """Accepted offers whose content went to this guesser."""
        result = await self._db.execute(
            select(ReconcilerShareOffer)
            .where(ReconcilerShareOffer.session_id == session_id)
            .where(ReconcilerShareOffer.guesser_id == guesser_id)
            .where(ReconcilerShareOffer.status == ShareOfferStatus.ACCEPTED.value)
            .order_by(ReconcilerShareOffer.shared_at)
            .execution_options(populate_existing=True),
        )
        return [_offer_to_record(row) for row in result.scalars().all()]

    async def transition(
        self,
        offer_id: UUID,
        from_statuses: Iterable[ShareOfferStatus],
        to_status: ShareOfferStatus,
        **values,
    ) -> bool:
        result = await self._db.execute(
            update(ReconcilerShareOffer)
            .where(ReconcilerShareOffer.id == offer_id)
            .where(ReconcilerShareOffer.status.in_([s.value for s in from_statuses]))
            .values(status=to_status.value, **values)
            .execution_options(synchronize_session=False),
        )
        await self._db.commit()
        return result.rowcount == 1

    async def mark_seen(self, offer_id: UUID) -> bool:
        result = await self._db.execute(
            update(ReconcilerShareOffer)
            .where(ReconcilerShareOffer.id == offer_id)
            .where(ReconcilerShareOffer.delivery_status == DeliveryStatus.DELIVERED.value)
            .values(delivery_status=DeliveryStatus.SEEN.value)
            .execution_options(synchronize_session=False),
        )
        await self._db.commit()
        return result.rowcount == 1
