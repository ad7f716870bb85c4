"""Session ORM — the aggregate root for one two-person repair conversation.

Invariants:
    - id is UUID primary key
    - Exactly two members (user_a, user_b); membership is immutable once created
    - Every other table references sessions.id with ON DELETE CASCADE

Design Decisions:
    - Member ids/names denormalized on the row: every engine operation needs "who is the
      partner" and "what is their name", without a join to an out-of-scope user table
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base


class Session(Base):
    """Session aggregate root — owns all stage and empathy-exchange entities."""
    __tablename__ = "sessions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    user_a_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_a_name: Mapped[str] = mapped_column(String(100), nullable=False)
    user_b_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_b_name: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="active",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
