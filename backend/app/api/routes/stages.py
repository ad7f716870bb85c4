"""Stages — progress reads, stage advance, single-gate merge, gate-pending/resume.

Invariants:
    - Every route checks session membership first
    - Gate updates merge one key; unknown keys are 400, never stored
    - Advance on a completed or foreign stage is 409 (InvalidTransitionError)
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Path

from app.api.routes.dependencies import get_engine, member_of
from app.api.routes.response_builders import build_progress_response
from app.core.domain_types import Stage, StageStatus
from app.core.errors import ErrorContext, InvalidTransitionError
from app.schemas.stage import (
    GateUpdate, ProgressListResponse, StageAdvanceRequest,
    StageProgressResponse, StageStatusUpdate,
)
from app.services.engine_factory import Engine

router = APIRouter(prefix="/api/v1/sessions", tags=["stages"])


@router.get(
    "/{session_id}/users/{user_id}/progress", response_model=ProgressListResponse,
)
async def get_progress(
    session_id: UUID, user_id: str, engine: Engine = Depends(get_engine),
):
    await member_of(engine, session_id, user_id)
    records = await engine.tracker.list_progress(session_id, user_id)
    return ProgressListResponse(
        current_stage=await engine.tracker.current_stage(session_id, user_id),
        stages=[build_progress_response(r) for r in records],
    )


@router.post(
    "/{session_id}/users/{user_id}/stages/advance",
    response_model=StageProgressResponse,
)
async def advance_stage(
    session_id: UUID,
    user_id: str,
    body: StageAdvanceRequest,
    engine: Engine = Depends(get_engine),
):
    """Complete from_stage and open the next one."""
    await member_of(engine, session_id, user_id)
    record = await engine.tracker.advance(session_id, user_id, body.from_stage)
    return build_progress_response(record)


@router.post(
    "/{session_id}/users/{user_id}/stages/{stage}/gates",
    response_model=StageProgressResponse,
)
async def satisfy_gate(
    session_id: UUID,
    user_id: str,
    body: GateUpdate,
    stage: int = Path(ge=0, le=4),
    engine: Engine = Depends(get_engine),
):
    await member_of(engine, session_id, user_id)
    record = await engine.tracker.satisfy_gate(
        session_id, user_id, Stage(stage), body.key, body.value,
    )
    return build_progress_response(record)


@router.post(
    "/{session_id}/users/{user_id}/stages/{stage}/status",
    response_model=StageProgressResponse,
)
async def set_stage_status(
    session_id: UUID,
    user_id: str,
    body: StageStatusUpdate,
    stage: int = Path(ge=0, le=4),
    engine: Engine = Depends(get_engine),
):
    """Pause on a gate (GATE_PENDING) or resume (IN_PROGRESS)."""
    await member_of(engine, session_id, user_id)
    stage = Stage(stage)
    if body.status == StageStatus.GATE_PENDING:
        record = await engine.tracker.mark_gate_pending(session_id, user_id, stage)
    elif body.status == StageStatus.IN_PROGRESS:
        record = await engine.tracker.resume(session_id, user_id, stage)
    else:
        raise InvalidTransitionError(
            f"Stage status can only be set to GATE_PENDING or IN_PROGRESS, "
            f"not {body.status.value}",
            context=ErrorContext(
                session_id=str(session_id), user_id=user_id, stage=int(stage),
            ),
        )
    return build_progress_response(record)
