"""Refinement Circuit Breaker — per-direction cap on refine/reconcile cycles.

Invariants:
    - check_attempts() is read-only: absent counter -> attempts 0, never creates a row
    - increment_attempts() creates the counter at 1, else adds 1 (atomic UPDATE)
    - should_skip_reconciler iff attempts > limit; directions "A->B" and "B->A" independent

Design Decisions:
    - Increment is UPDATE-first, INSERT on miss, UPDATE again if the INSERT lost a
      unique-key race: no lost increments without a lock
"""

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.circuit_breaker import (
    REFINEMENT_ATTEMPT_LIMIT, direction_key, evaluate_attempts,
)
from app.core.records import AttemptCheck
from app.models.refinement_attempt import RefinementAttemptCounter

logger = logging.getLogger(__name__)


class RefinementCircuitBreaker:

    def __init__(self, db: AsyncSession, limit: int = REFINEMENT_ATTEMPT_LIMIT):
        self._db = db
        self._limit = limit

    async def check_attempts(
        self, session_id: UUID, guesser_id: str, subject_id: str,
    ) -> AttemptCheck:
        attempts = await self._read(session_id, direction_key(guesser_id, subject_id))
        return evaluate_attempts(attempts, self._limit)

    async def increment_attempts(
        self, session_id: UUID, guesser_id: str, subject_id: str,
    ) -> AttemptCheck:
        direction = direction_key(guesser_id, subject_id)
        if not await self._bump(session_id, direction):
            self._db.add(RefinementAttemptCounter(
                session_id=session_id, direction=direction, attempts=1,
                updated_at=datetime.now(timezone.utc),
            ))
            try:
                await self._db.commit()
            except IntegrityError:
                await self._db.rollback()
                await self._bump(session_id, direction)
        check = evaluate_attempts(await self._read(session_id, direction), self._limit)
        logger.info(
            f"Refinement attempt {check.attempts} recorded",
            extra={
                "session_id": session_id, "direction": direction,
                "attempt": check.attempts,
            },
        )
        return check

    async def _bump(self, session_id: UUID, direction: str) -> bool:
        result = await self._db.execute(
            update(RefinementAttemptCounter)
            .where(RefinementAttemptCounter.session_id == session_id)
            .where(RefinementAttemptCounter.direction == direction)
            .values(
                attempts=RefinementAttemptCounter.attempts + 1,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False),
        )
        await self._db.commit()
        return result.rowcount == 1

    async def _read(self, session_id: UUID, direction: str) -> int:
        result = await self._db.execute(
            select(RefinementAttemptCounter.attempts)
            .where(RefinementAttemptCounter.session_id == session_id)
            .where(RefinementAttemptCounter.direction == direction),
        )
        return result.scalar_one_or_none() or 0
