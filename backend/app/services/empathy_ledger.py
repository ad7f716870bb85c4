"""Empathy Attempt Ledger — one empathy statement per (session, source user).

Invariants:
    - submit() creates the row HELD; a second submit is only accepted while REFINING,
      where it replaces content and bumps revision_count without touching status
    - Status transitions are conditional UPDATEs (WHERE status IN legal sources):
      a concurrent duplicate finds the status already advanced and becomes a no-op
    - mark_revealed() and mark_awaiting_sharing() return (record, applied); applied is
      True only for the one call whose UPDATE moved the row, so side effects run once
    - mark_revealed() is idempotent; leaving REVEALED raises TerminalStateViolationError
    - Returned values are records, re-read after every write

Design Decisions:
    - Lifecycle table in core/empathy_lifecycle.py; this shell translates its error
      dicts into typed exceptions
"""

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.domain_types import DeliveryStatus, EmpathyStatus
from app.core.empathy_lifecycle import (
    can_resubmit, check_transition, is_duplicate, sources_for,
)
from app.core.errors import (
    ConcurrencyError, ErrorContext, InvalidTransitionError,
    ResourceNotFoundError, TerminalStateViolationError,
)
from app.core.records import EmpathyAttemptRecord
from app.models.empathy_attempt import EmpathyAttempt

logger = logging.getLogger(__name__)


def _to_record(row: EmpathyAttempt) -> EmpathyAttemptRecord:
    return EmpathyAttemptRecord(
        id=row.id,
        session_id=row.session_id,
        source_user_id=row.source_user_id,
        content=row.content,
        status=EmpathyStatus(row.status),
        shared_at=row.shared_at,
        revealed_at=row.revealed_at,
        delivery_status=DeliveryStatus(row.delivery_status),
        revision_count=row.revision_count,
    )


def _raise_for(error: dict, context: ErrorContext) -> None:
    if error["error_code"] == "TERMINAL_STATE":
        raise TerminalStateViolationError(error["message"], context=context)
    raise InvalidTransitionError(error["message"], context=context)


class EmpathyLedger:
    """SQL-backed empathy attempts with forward-only status guards."""

    def __init__(self, db: AsyncSession):
        self._db = db

    async def get(
        self, session_id: UUID, source_user_id: str,
    ) -> EmpathyAttemptRecord | None:
        result = await self._db.execute(
            select(EmpathyAttempt)
            .where(EmpathyAttempt.session_id == session_id)
            .where(EmpathyAttempt.source_user_id == source_user_id)
            .execution_options(populate_existing=True),
        )
        row = result.scalar_one_or_none()
        return _to_record(row) if row else None

    async def submit(
        self, session_id: UUID, source_user_id: str, content: str,
    ) -> EmpathyAttemptRecord:
        ctx = ErrorContext(session_id=str(session_id), user_id=source_user_id)
        existing = await self.get(session_id, source_user_id)
        if not can_resubmit(existing.status if existing else None):
            raise InvalidTransitionError(
                f"Empathy statement already submitted ({existing.status.value}); "
                f"it can only be revised while REFINING",
                context=ctx,
            )
        if existing is None:
            return await self._insert(session_id, source_user_id, content, ctx)
        return await self._revise(existing, content, ctx)

    async def _insert(
        self, session_id: UUID, source_user_id: str, content: str, ctx: ErrorContext,
    ) -> EmpathyAttemptRecord:
        row = EmpathyAttempt(
            session_id=session_id,
            source_user_id=source_user_id,
            content=content,
            status=EmpathyStatus.HELD.value,
            shared_at=datetime.now(timezone.utc),
            delivery_status=DeliveryStatus.UNDELIVERED.value,
            revision_count=0,
        )
        self._db.add(row)
        try:
            await self._db.commit()
        except IntegrityError:
            await self._db.rollback()
            raise ConcurrencyError(
                "Empathy statement was submitted concurrently", context=ctx,
            )
        logger.info(
            "Empathy attempt held",
            extra={"session_id": session_id, "user_id": source_user_id},
        )
        return _to_record(row)

    async def _revise(
        self, existing: EmpathyAttemptRecord, content: str, ctx: ErrorContext,
    ) -> EmpathyAttemptRecord:
        result = await self._db.execute(
            update(EmpathyAttempt)
            .where(EmpathyAttempt.id == existing.id)
            .where(EmpathyAttempt.status == EmpathyStatus.REFINING.value)
            .values(
                content=content,
                revision_count=EmpathyAttempt.revision_count + 1,
                shared_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False),
        )
        await self._db.commit()
        if result.rowcount != 1:
            raise InvalidTransitionError(
                "Empathy attempt left REFINING before the revision was saved",
                context=ctx,
            )
        return await self.get(existing.session_id, existing.source_user_id)

    async def mark_revealed(
        self, session_id: UUID, source_user_id: str,
    ) -> tuple[EmpathyAttemptRecord, bool]:
        return await self._transition(
            session_id, source_user_id, EmpathyStatus.REVEALED,
            revealed_at=datetime.now(timezone.utc),
            delivery_status=DeliveryStatus.DELIVERED.value,
        )

    async def mark_awaiting_sharing(
        self, session_id: UUID, source_user_id: str,
    ) -> tuple[EmpathyAttemptRecord, bool]:
        """Claim a HELD attempt for a share offer.

        Never raises on a lost race: a caller that finds the attempt already moved
        gets applied=False and must leave the direction to whoever moved it.
        """
        return await self._transition(
            session_id, source_user_id, EmpathyStatus.AWAITING_SHARING, strict=False,
        )

    async def mark_refining(
        self, session_id: UUID, source_user_id: str,
    ) -> EmpathyAttemptRecord:
        attempt, _ = await self._transition(
            session_id, source_user_id, EmpathyStatus.REFINING,
        )
        return attempt

    async def mark_seen(self, attempt_id: UUID) -> bool:
        result = await self._db.execute(
            update(EmpathyAttempt)
            .where(EmpathyAttempt.id == attempt_id)
            .where(EmpathyAttempt.delivery_status == DeliveryStatus.DELIVERED.value)
            .values(delivery_status=DeliveryStatus.SEEN.value)
            .execution_options(synchronize_session=False),
        )
        await self._db.commit()
        return result.rowcount == 1

    async def _transition(
        self,
        session_id: UUID,
        source_user_id: str,
        target: EmpathyStatus,
        *,
        strict: bool = True,
        **values,
    ) -> tuple[EmpathyAttemptRecord, bool]:
        """Move the attempt to target; the flag is True only for the call that moved it."""
        ctx = ErrorContext(session_id=str(session_id), user_id=source_user_id)
        existing = await self.get(session_id, source_user_id)
        if existing is None:
            raise ResourceNotFoundError(
                "EmpathyAttempt", f"{session_id}/{source_user_id}", context=ctx,
            )
        if is_duplicate(existing.status, target):
            return existing, False
        error = check_transition(existing.status, target)
        if error:
            if not strict:
                return existing, False
            _raise_for(error, ctx)

        result = await self._db.execute(
            update(EmpathyAttempt)
            .where(EmpathyAttempt.id == existing.id)
            .where(EmpathyAttempt.status.in_([s.value for s in sources_for(target)]))
            .values(status=target.value, **values)
            .execution_options(synchronize_session=False),
        )
        await self._db.commit()
        current = await self.get(session_id, source_user_id)
        if result.rowcount != 1:
            # Lost the race: converge if the winner applied the same transition
            if is_duplicate(current.status, target) or not strict:
                return current, False
            error = check_transition(current.status, target)
            _raise_for(error or {
                "error_code": "INVALID_TRANSITION",
                "message": f"Empathy attempt changed to {current.status.value} concurrently",
            }, ctx)
        logger.info(
            f"Empathy attempt {existing.status.value} -> {target.value}",
            extra={"session_id": session_id, "user_id": source_user_id},
        )
        return current, True
