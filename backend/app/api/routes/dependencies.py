"""Route Dependencies — engine wiring and session membership checks shared by routes.

Invariants:
    - One Engine per request, bound to the request's DB session
    - member_of() raises 404 for an unknown session and 403 for a non-member
"""

from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.records import SessionMembers
from app.infrastructure.database import get_db
from app.services.engine_factory import Engine, build_engine
from app.services.session_members import load_members, require_member


async def get_engine(db: AsyncSession = Depends(get_db)) -> Engine:
    return build_engine(db)


async def member_of(engine: Engine, session_id: UUID, user_id: str) -> SessionMembers:
    members = await load_members(engine.db, session_id)
    require_member(members, user_id)
    return members
