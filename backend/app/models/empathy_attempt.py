"""EmpathyAttempt ORM — one empathy statement per (session, source user).

Invariants:
    - Unique (session_id, source_user_id): one directed guess per user per session
    - status only moves forward (core/empathy_lifecycle.py); REVEALED is terminal
    - revision_count counts resubmissions made while REFINING
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    String, Text, Integer, DateTime, ForeignKey, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base


class EmpathyAttempt(Base):
    __tablename__ = "empathy_attempts"
    __table_args__ = (
        UniqueConstraint(
            "session_id", "source_user_id", name="uq_empathy_attempt_direction",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    session_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("sessions.id", ondelete="CASCADE"),
        nullable=False,
    )
    source_user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="HELD",
    )
    shared_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        default=lambda: datetime.now(timezone.utc),
    )
    revealed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    delivery_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="UNDELIVERED",
    )
    revision_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0,
    )
