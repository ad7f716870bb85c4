"""Message Store — appends and reads the per-user transcript slice.

Invariants:
    - Every message is visible to exactly one user (for_user_id)
    - witnessing_messages() returns only the user's own stage-1 messages, oldest first
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.domain_types import MessageRole, Stage
from app.core.records import MessageRecord
from app.models.message import Message


def _to_record(row: Message) -> MessageRecord:
    return MessageRecord(
        id=row.id,
        session_id=row.session_id,
        for_user_id=row.for_user_id,
        sender_id=row.sender_id,
        role=MessageRole(row.role),
        content=row.content,
        stage=Stage(row.stage),
        extracted_emotions=tuple(row.extracted_emotions or ()),
        created_at=row.created_at,
    )


class MessageStore:

    def __init__(self, db: AsyncSession):
        self._db = db

    async def add(
        self,
        session_id: UUID,
        for_user_id: str,
        role: MessageRole,
        content: str,
        stage: Stage,
        sender_id: str | None = None,
        extracted_emotions: list[str] | None = None,
    ) -> MessageRecord:
        row = Message(
            session_id=session_id,
            for_user_id=for_user_id,
            sender_id=sender_id,
            role=role.value,
            content=content,
            stage=int(stage),
            extracted_emotions=extracted_emotions or [],
        )
        self._db.add(row)
        await self._db.commit()
        return _to_record(row)

    async def list_for_user(
        self, session_id: UUID, user_id: str, stage: Stage | None = None,
    ) -> list[MessageRecord]:
        query = (
            select(Message)
            .where(Message.session_id == session_id)
            .where(Message.for_user_id == user_id)
        )
        if stage is not None:
            query = query.where(Message.stage == int(stage))
        result = await self._db.execute(query.order_by(Message.created_at))
        return [_to_record(row) for row in result.scalars().all()]

    async def witnessing_messages(
        self, session_id: UUID, user_id: str,
    ) -> list[MessageRecord]:
        result = await self._db.execute(
            select(Message)
            .where(Message.session_id == session_id)
            .where(Message.for_user_id == user_id)
            .where(Message.sender_id == user_id)
            .where(Message.role == MessageRole.USER.value)
            .where(Message.stage == int(Stage.WITNESS))
            .order_by(Message.created_at),
        )
        return [_to_record(row) for row in result.scalars().all()]
