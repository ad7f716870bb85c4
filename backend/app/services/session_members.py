"""Session Members — load the two members of a session as an immutable record.

Invariants:
    - Missing session -> ResourceNotFoundError (404)
    - Non-member user -> NotSessionMemberError (403)
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ErrorContext, NotSessionMemberError, ResourceNotFoundError
from app.core.records import SessionMembers
from app.models.session import Session as SessionModel


async def load_members(db: AsyncSession, session_id: UUID) -> SessionMembers:
    result = await db.execute(
        select(SessionModel).where(SessionModel.id == session_id),
    )
    session = result.scalar_one_or_none()
    if not session:
        raise ResourceNotFoundError("Session", str(session_id))
    return SessionMembers(
        session_id=session.id,
        user_a_id=session.user_a_id,
        user_a_name=session.user_a_name,
        user_b_id=session.user_b_id,
        user_b_name=session.user_b_name,
    )


def require_member(members: SessionMembers, user_id: str) -> None:
    if not members.is_member(user_id):
        raise NotSessionMemberError(
            user_id,
            context=ErrorContext(session_id=str(members.session_id), user_id=user_id),
        )
