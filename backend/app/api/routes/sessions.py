"""Sessions — create/read a two-person session and each member's message slice.

Invariants:
    - Creating a session opens stage 0 for both members
    - Messages are written to and read from the caller's own slice only
    - User input is validated by Pydantic before reaching the route handler

Design Decisions:
    - Caller identity arrives as a path segment: authentication is an upstream concern,
      membership is checked here on every call
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select

from app.api.routes.dependencies import get_engine, member_of
from app.api.routes.response_builders import (
    build_message_response, build_session_response,
)
from app.core.domain_types import MessageRole, SessionStatus, Stage
from app.core.errors import ResourceNotFoundError
from app.core.records import SessionMembers
from app.models.session import Session as SessionModel
from app.schemas.session import (
    MessageCreate, MessageResponse, SessionCreate, SessionResponse,
)
from app.services.engine_factory import Engine

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/sessions", tags=["sessions"])


@router.post("", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def create_session(body: SessionCreate, engine: Engine = Depends(get_engine)):
    """Create a session and open ONBOARDING for both members."""
    session = SessionModel(
        user_a_id=body.user_a_id,
        user_a_name=body.user_a_name,
        user_b_id=body.user_b_id,
        user_b_name=body.user_b_name,
        status=SessionStatus.ACTIVE.value,
    )
    engine.db.add(session)
    await engine.db.commit()
    members = SessionMembers(
        session_id=session.id,
        user_a_id=session.user_a_id,
        user_a_name=session.user_a_name,
        user_b_id=session.user_b_id,
        user_b_name=session.user_b_name,
    )
    created_at = session.created_at
    for user_id in (members.user_a_id, members.user_b_id):
        await engine.tracker.begin(members.session_id, user_id)
    logger.info("Session created", extra={"session_id": members.session_id})
    return build_session_response(members, SessionStatus.ACTIVE.value, created_at)


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(session_id: UUID, engine: Engine = Depends(get_engine)):
    result = await engine.db.execute(
        select(SessionModel).where(SessionModel.id == session_id),
    )
    session = result.scalar_one_or_none()
    if not session:
        raise ResourceNotFoundError("Session", str(session_id))
    return SessionResponse(
        id=session.id,
        user_a_id=session.user_a_id,
        user_a_name=session.user_a_name,
        user_b_id=session.user_b_id,
        user_b_name=session.user_b_name,
        status=session.status,
        created_at=session.created_at,
    )


@router.post(
    "/{session_id}/users/{user_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_message(
    session_id: UUID,
    user_id: str,
    body: MessageCreate,
    engine: Engine = Depends(get_engine),
):
    """Append the user's own message to their private conversation."""
    await member_of(engine, session_id, user_id)
    message = await engine.messages.add(
        session_id, user_id, MessageRole.USER, body.content, body.stage,
        sender_id=user_id, extracted_emotions=body.extracted_emotions,
    )
    return build_message_response(message)


@router.get(
    "/{session_id}/users/{user_id}/messages", response_model=list[MessageResponse],
)
async def list_messages(
    session_id: UUID,
    user_id: str,
    stage: int | None = Query(None, ge=0, le=4),
    engine: Engine = Depends(get_engine),
):
    await member_of(engine, session_id, user_id)
    messages = await engine.messages.list_for_user(
        session_id, user_id, Stage(stage) if stage is not None else None,
    )
    return [build_message_response(m) for m in messages]
