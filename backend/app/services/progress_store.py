"""Progress Store — durable per-(session, user, stage) progress rows.

Invariants:
    - Every write is a single-row statement followed by commit
    - create() returns None when the row already exists (unique key) instead of raising
    - transition() only applies when the current status is in from_statuses (rowcount == 1)
    - write_gates() only applies when version is unchanged since the read (optimistic guard)
    - Reads use populate_existing: a row updated by a bulk UPDATE is never served stale
"""

import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.domain_types import Stage, StageStatus
from app.core.records import StageProgressRecord
from app.core.stage_gates import StageGates, empty_gates, gates_to_dict, parse_gates
from app.models.stage_progress import StageProgress

logger = logging.getLogger(__name__)


def _to_record(row: StageProgress) -> StageProgressRecord:
    stage = Stage(row.stage)
    return StageProgressRecord(
        session_id=row.session_id,
        user_id=row.user_id,
        stage=stage,
        status=StageStatus(row.status),
        gates=parse_gates(stage, row.gates_satisfied),
        started_at=row.started_at,
        completed_at=row.completed_at,
        version=row.version,
    )


class ProgressStore:
    """SQL-backed stage progress rows."""

    def __init__(self, db: AsyncSession):
        self._db = db

    async def get(
        self, session_id: UUID, user_id: str, stage: Stage,
    ) -> StageProgressRecord | None:
        result = await self._db.execute(
            select(StageProgress)
            .where(StageProgress.session_id == session_id)
            .where(StageProgress.user_id == user_id)
            .where(StageProgress.stage == int(stage))
            .execution_options(populate_existing=True),
        )
        row = result.scalar_one_or_none()
        return _to_record(row) if row else None

    async def list_for_user(
        self, session_id: UUID, user_id: str,
    ) -> list[StageProgressRecord]:
        result = await self._db.execute(
            select(StageProgress)
            .where(StageProgress.session_id == session_id)
            .where(StageProgress.user_id == user_id)
            .order_by(StageProgress.stage)
            .execution_options(populate_existing=True),
        )
        return [_to_record(row) for row in result.scalars().all()]

    async def create(
        self, session_id: UUID, user_id: str, stage: Stage,
        status: StageStatus = StageStatus.IN_PROGRESS,
    ) -> StageProgressRecord | None:
        """Insert a new stage row. None when (session, user, stage) already exists."""
        row = StageProgress(
            session_id=session_id,
            user_id=user_id,
            stage=int(stage),
            status=status.value,
            gates_satisfied=gates_to_dict(empty_gates(stage)),
            version=0,
            started_at=datetime.now(timezone.utc),
        )
        self._db.add(row)
        try:
            await self._db.commit()
        except IntegrityError:
            await self._db.rollback()
            logger.info(
                "Stage row already exists",
                extra={"session_id": session_id, "user_id": user_id, "stage": int(stage)},
            )
            return None
        return _to_record(row)

    async def transition(
        self,
        session_id: UUID,
        user_id: str,
        stage: Stage,
        from_statuses: Iterable[StageStatus],
        to_status: StageStatus,
        completed_at: datetime | None = None,
    ) -> bool:
        values: dict = {"status": to_status.value}
        if completed_at is not None:
            values["completed_at"] = completed_at
        result = await self._db.execute(
            update(StageProgress)
            .where(StageProgress.session_id == session_id)
            .where(StageProgress.user_id == user_id)
            .where(StageProgress.stage == int(stage))
            .where(StageProgress.status.in_([s.value for s in from_statuses]))
            .values(**values)
            .execution_options(synchronize_session=False),
        )
        await self._db.commit()
        return result.rowcount == 1

    async def write_gates(
        self, record: StageProgressRecord, gates: StageGates,
    ) -> bool:
        """Replace the gate map if nobody wrote it since `record` was read."""
        result = await self._db.execute(
            update(StageProgress)
            .where(StageProgress.session_id == record.session_id)
            .where(StageProgress.user_id == record.user_id)
            .where(StageProgress.stage == int(record.stage))
            .where(StageProgress.version == record.version)
            .values(
                gates_satisfied=gates_to_dict(gates),
                version=record.version + 1,
            )
            .execution_options(synchronize_session=False),
        )
        await self._db.commit()
        return result.rowcount == 1
