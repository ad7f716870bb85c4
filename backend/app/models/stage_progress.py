"""StageProgress ORM — one row per (session, user, stage).

Invariants:
    - Unique (session_id, user_id, stage): a stage is entered at most once per user
    - gates_satisfied holds the stage's typed gate struct as JSON (core/stage_gates.py)
    - version increments on every gate merge (optimistic guard for read-merge-write)
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    String, Integer, DateTime, JSON, ForeignKey, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base


class StageProgress(Base):
    __tablename__ = "stage_progress"
    __table_args__ = (
        UniqueConstraint(
            "session_id", "user_id", "stage", name="uq_stage_progress_user_stage",
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
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    stage: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="IN_PROGRESS",
    )
    gates_satisfied: Mapped[dict] = mapped_column(
        JSON, nullable=False, default=dict,
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        default=lambda: datetime.now(timezone.utc),
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
