"""Stage Progress Tracker — moves one user through the ordered stages.

Invariants:
    - advance(): from_stage IN_PROGRESS|GATE_PENDING -> COMPLETED, next stage created IN_PROGRESS
    - advance() twice for the same stage fails with InvalidTransitionError (never double-advances)
    - satisfy_gate() merges exactly one key; other gates are untouched
    - satisfy_gate() requires the user's own row for that stage (stage ownership)
    - current_stage(): highest IN_PROGRESS|GATE_PENDING stage, else stage 0

Design Decisions:
    - Pure checks in core/enforce_stages.py, this shell only does IO and raises
    - Gate merge is read-merge-write with an optimistic version check, retried a few
      times on a lost race, then ConcurrencyError
"""

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from app.core.domain_types import ACTIVE_STAGE_STATUSES, Stage, StageStatus
from app.core.enforce_stages import (
    check_pause_transition, pick_current_stage, validate_advance,
)
from app.core.errors import (
    ConcurrencyError, ErrorContext, GatesNotSatisfiedError,
    InvalidTransitionError, UnknownGateError,
)
from app.core.records import StageProgressRecord
from app.core.stage_gates import check_gate_value, merge_gate
from app.services.progress_store import ProgressStore

logger = logging.getLogger(__name__)

GATE_WRITE_ATTEMPTS = 3


def _raise_for(error: dict, context: ErrorContext) -> None:
    if error["error_code"] == "GATES_NOT_SATISFIED":
        raise GatesNotSatisfiedError(error["missing_gates"], context=context)
    raise InvalidTransitionError(error["message"], context=context)


class StageProgressTracker:
    """Per-user stage state machine over the ProgressStore."""

    def __init__(self, store: ProgressStore):
        self._store = store

    async def begin(self, session_id: UUID, user_id: str) -> StageProgressRecord:
        """Enter stage 0. Idempotent."""
        created = await self._store.create(session_id, user_id, Stage.ONBOARDING)
        if created:
            return created
        return await self._store.get(session_id, user_id, Stage.ONBOARDING)

    async def advance(
        self, session_id: UUID, user_id: str, from_stage: Stage,
    ) -> StageProgressRecord:
        """Complete from_stage and open the next one. Returns the new stage row
        (or the completed row when from_stage is the final stage)."""
        ctx = ErrorContext(
            session_id=str(session_id), user_id=user_id, stage=int(from_stage),
        )
        record = await self._store.get(session_id, user_id, from_stage)
        next_stage = from_stage.next
        successor = (
            await self._store.get(session_id, user_id, next_stage)
            if next_stage is not None else None
        )
        error = validate_advance(record, from_stage, successor)
        if error:
            _raise_for(error, ctx)

        completed = await self._store.transition(
            session_id, user_id, from_stage,
            ACTIVE_STAGE_STATUSES, StageStatus.COMPLETED,
            completed_at=datetime.now(timezone.utc),
        )
        if not completed:
            raise InvalidTransitionError(
                f"Stage {from_stage.name} changed while advancing", context=ctx,
            )
        logger.info(
            f"Stage {from_stage.name} completed",
            extra={"session_id": session_id, "user_id": user_id, "stage": int(from_stage)},
        )
        if next_stage is None:
            return await self._store.get(session_id, user_id, from_stage)

        created = await self._store.create(session_id, user_id, next_stage)
        if created is None:
            raise InvalidTransitionError(
                f"Stage {next_stage.name} already exists", context=ctx,
            )
        return created

    async def satisfy_gate(
        self, session_id: UUID, user_id: str, stage: Stage, gate_key: str, value: Any,
    ) -> StageProgressRecord:
        ctx = ErrorContext(session_id=str(session_id), user_id=user_id, stage=int(stage))
        error = check_gate_value(stage, gate_key, value)
        if error:
            raise UnknownGateError(error["message"], field=gate_key, context=ctx)

        for _ in range(GATE_WRITE_ATTEMPTS):
            record = await self._store.get(session_id, user_id, stage)
            if record is None:
                raise InvalidTransitionError(
                    f"User has no {stage.name} record to set '{gate_key}' on",
                    context=ctx,
                )
            merged = merge_gate(record.gates, stage, gate_key, value)
            if await self._store.write_gates(record, merged):
                return replace(record, gates=merged, version=record.version + 1)
            logger.warning(
                f"Gate write lost a race, retrying ({gate_key})",
                extra={"session_id": session_id, "user_id": user_id, "stage": int(stage)},
            )
        raise ConcurrencyError(
            f"Could not merge gate '{gate_key}' after {GATE_WRITE_ATTEMPTS} attempts",
            context=ctx,
        )

    async def current_stage(self, session_id: UUID, user_id: str) -> Stage:
        return pick_current_stage(await self._store.list_for_user(session_id, user_id))

    async def list_progress(
        self, session_id: UUID, user_id: str,
    ) -> list[StageProgressRecord]:
        return await self._store.list_for_user(session_id, user_id)

    async def get(
        self, session_id: UUID, user_id: str, stage: Stage,
    ) -> StageProgressRecord | None:
        return await self._store.get(session_id, user_id, stage)

    async def mark_gate_pending(
        self, session_id: UUID, user_id: str, stage: Stage,
    ) -> StageProgressRecord:
        return await self._toggle(session_id, user_id, stage, StageStatus.GATE_PENDING)

    async def resume(
        self, session_id: UUID, user_id: str, stage: Stage,
    ) -> StageProgressRecord:
        return await self._toggle(session_id, user_id, stage, StageStatus.IN_PROGRESS)

    async def _toggle(
        self, session_id: UUID, user_id: str, stage: Stage, target: StageStatus,
    ) -> StageProgressRecord:
        ctx = ErrorContext(session_id=str(session_id), user_id=user_id, stage=int(stage))
        record = await self._store.get(session_id, user_id, stage)
        error = check_pause_transition(record, target)
        if error:
            _raise_for(error, ctx)
        source = (
            StageStatus.IN_PROGRESS if target == StageStatus.GATE_PENDING
            else StageStatus.GATE_PENDING
        )
        if not await self._store.transition(session_id, user_id, stage, [source], target):
            raise InvalidTransitionError(
                f"Stage {stage.name} changed before it could move to {target.value}",
                context=ctx,
            )
        return replace(record, status=target)
